"""Immutable tree + trait dataset threaded through every chain run."""

from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional

import numpy as np

from phylomcmc.config import DatasetSettings
from phylomcmc.errors import InvalidParameter
from .ancestral import AncestralStateOracle, AncestralStates
from .pruning import MkLikelihood
from .simulation import TraitHistory, simulate_pure_birth_tree, simulate_trait_history
from .trees import TreeStructure


@dataclass(frozen=True, eq=False)
class TraitDataset:
    """
    A tree with one binary character observed at its tips.

    Built once (simulated or loaded) and passed explicitly to every run, so
    no chain depends on hidden module state.

    Attributes:
        tree: The phylogeny
        tip_states: (n_tips,) observed states aligned with ``tree.tip_indices``;
            -1 marks missing data
        history: True simulated history, when the data were simulated
    """
    tree: TreeStructure
    tip_states: np.ndarray
    history: Optional[TraitHistory] = None
    _likelihood: MkLikelihood = field(init=False, repr=False, compare=False)
    _asr: AncestralStateOracle = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        names = self.tree.tip_names
        if len(set(names)) != len(names):
            duplicated = sorted({n for n in names if names.count(n) > 1})
            raise InvalidParameter(f"Tip names must be unique, repeated: {duplicated}")
        states = np.array(self.tip_states)
        if states.shape != (self.tree.n_tips,):
            raise InvalidParameter(
                f"Expected {self.tree.n_tips} tip states, got shape {states.shape}"
            )
        if np.any((states != 0) & (states != 1) & (states != -1)):
            raise InvalidParameter("Tip states must be 0, 1 or -1 (missing)")
        states = states.astype(np.int8)
        states.setflags(write=False)
        object.__setattr__(self, "tip_states", states)

        likelihood = MkLikelihood(self.tree, states)
        object.__setattr__(self, "_likelihood", likelihood)
        object.__setattr__(self, "_asr", AncestralStateOracle(likelihood))

    @classmethod
    def simulate(cls, settings: Optional[DatasetSettings] = None) -> "TraitDataset":
        """Simulate a pure-birth tree and a trait history on it."""
        settings = (settings or DatasetSettings()).validate()
        rng = np.random.default_rng(settings.seed)
        tree = simulate_pure_birth_tree(settings.n_tips, settings.birth_rate, rng=rng)
        history = simulate_trait_history(tree, settings.true_rate, rng=rng)
        return cls(tree=tree, tip_states=history.tip_states(tree), history=history)

    @classmethod
    def from_newick(cls, newick: str, states: Mapping[str, int], backend: str = "simple") -> "TraitDataset":
        """
        Build from a Newick string and a ``{tip name: state}`` mapping.

        Tips absent from ``states`` are treated as missing data.
        """
        tree = TreeStructure.from_newick(newick, backend=backend)
        unknown = set(states) - set(tree.tip_names)
        if unknown:
            raise InvalidParameter(f"States given for unknown tips: {sorted(unknown)}")
        tip_states = np.array([states.get(name, -1) for name in tree.tip_names])
        return cls(tree=tree, tip_states=tip_states)

    @property
    def true_rate(self) -> Optional[float]:
        return self.history.rate if self.history is not None else None

    @property
    def likelihood(self) -> MkLikelihood:
        """Likelihood oracle: rate -> log-likelihood."""
        return self._likelihood

    @property
    def ancestral_oracle(self) -> AncestralStateOracle:
        """ASR oracle: rate -> AncestralStates."""
        return self._asr

    def log_likelihood(self, rate: float) -> float:
        return self._likelihood(rate)

    def ancestral_states(self, rate: float) -> AncestralStates:
        return self._asr(rate)

    def tip_state_map(self) -> Dict[str, int]:
        return {name: int(s) for name, s in zip(self.tree.tip_names, self.tip_states)}

    def __repr__(self) -> str:
        counts = np.bincount(self.tip_states[self.tip_states >= 0], minlength=2)
        return (
            f"TraitDataset({self.tree.n_tips} tips, "
            f"state0={counts[0]}, state1={counts[1]})"
        )
