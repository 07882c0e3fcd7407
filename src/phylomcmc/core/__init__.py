"""Trees, trait data and the likelihood/ASR oracles the sampler consumes."""

from phylomcmc.core.trees import TreeStructure, TreeNode, load_tree
from phylomcmc.core.pruning import (
    FelsensteinPruning,
    PruningResult,
    BinaryTransitionProvider,
    ArrayTipConditionalProvider,
    MkLikelihood,
)
from phylomcmc.core.ancestral import (
    AncestralStates,
    AncestralStateOracle,
    marginal_probabilities,
    reconstruct_ancestral_states,
)
from phylomcmc.core.simulation import (
    TraitHistory,
    simulate_pure_birth_tree,
    simulate_trait_history,
    expected_changes,
)
from phylomcmc.core.data import TraitDataset

__all__ = [
    "TreeStructure",
    "TreeNode",
    "load_tree",
    "FelsensteinPruning",
    "PruningResult",
    "BinaryTransitionProvider",
    "ArrayTipConditionalProvider",
    "MkLikelihood",
    "AncestralStates",
    "AncestralStateOracle",
    "marginal_probabilities",
    "reconstruct_ancestral_states",
    "TraitHistory",
    "simulate_pure_birth_tree",
    "simulate_trait_history",
    "expected_changes",
    "TraitDataset",
]
