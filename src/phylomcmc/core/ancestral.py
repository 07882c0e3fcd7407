"""
Marginal ancestral state reconstruction.

A post-order pruning pass gives, for every node, the likelihood of the data
below it. A pre-order pass then carries down the likelihood of everything
outside each subtree. Their product at an internal node, normalised, is the
marginal posterior probability of each state at that node for a fixed rate.
"""

from dataclasses import dataclass
from typing import List

import numpy as np
import pandas as pd

from phylomcmc.errors import InvalidParameter, OracleFailure
from .pruning import MkLikelihood, PruningResult
from .trees import TreeStructure


@dataclass(frozen=True, eq=False)
class AncestralStates:
    """
    Marginal state probabilities at the internal nodes of a tree.

    Attributes:
        rate: Transition rate the reconstruction was computed at
        node_ids: Internal node ids, root first
        labels: Display label per node
        probabilities: (n_internal, n_states) rows summing to one
    """
    rate: float
    node_ids: List[int]
    labels: List[str]
    probabilities: np.ndarray

    def most_likely_states(self) -> np.ndarray:
        return np.argmax(self.probabilities, axis=1)

    def for_node(self, node_id: int) -> np.ndarray:
        return self.probabilities[self.node_ids.index(node_id)]

    def to_frame(self) -> pd.DataFrame:
        frame = pd.DataFrame(
            self.probabilities,
            columns=[f"p{s}" for s in range(self.probabilities.shape[1])],
        )
        frame.insert(0, "node", self.labels)
        frame.insert(0, "node_id", self.node_ids)
        return frame


def marginal_probabilities(tree: TreeStructure, result: PruningResult, site: int = 0) -> np.ndarray:
    """
    Marginal state probabilities for every node from a pruning result.

    Returns:
        (n_nodes, n_states) array; tip rows reflect the observed data
    """
    L = result.conditionals[:, site, :]
    P = result.transition_matrices
    n_states = L.shape[1]

    # Message each non-root node sends up to its parent
    up = np.ones_like(L)
    for node_id in tree.postorder:
        if node_id != tree.root_index:
            up[node_id] = P[node_id] @ L[node_id]

    outside = np.zeros_like(L)
    outside[tree.root_index] = result.root_frequencies
    for node_id in tree.preorder:
        children = tree.children(node_id)
        for child in children:
            above = outside[node_id].copy()
            for sibling in children:
                if sibling != child:
                    above *= up[sibling]
            msg = above @ P[child]
            total = msg.sum()
            outside[child] = msg / total if total > 0 else np.full(n_states, 1.0 / n_states)

    joint = outside * L
    totals = joint.sum(axis=1, keepdims=True)
    with np.errstate(invalid="ignore", divide="ignore"):
        return joint / totals


class AncestralStateOracle:
    """
    ASR oracle: given a rate, returns marginal probabilities per internal node.

    Wraps an ``MkLikelihood`` so both oracles share the same tree and data.
    """

    def __init__(self, likelihood: MkLikelihood, site: int = 0):
        self.likelihood = likelihood
        self.site = site

    @property
    def tree(self) -> TreeStructure:
        return self.likelihood.tree

    def __call__(self, rate: float) -> AncestralStates:
        if not np.isfinite(rate) or rate <= 0:
            raise InvalidParameter(f"ASR rate must be positive and finite, got {rate}")

        result = self.likelihood.prune(rate)
        if not np.isfinite(result.log_likelihood):
            raise OracleFailure(
                f"Data have zero likelihood at rate {rate}; ancestral states are undefined"
            )

        probs = marginal_probabilities(self.tree, result, site=self.site)
        internal = list(self.tree.internal_indices)
        node_probs = probs[internal]
        if not np.all(np.isfinite(node_probs)):
            raise OracleFailure(f"Non-finite ancestral probabilities at rate {rate}")

        return AncestralStates(
            rate=float(rate),
            node_ids=internal,
            labels=[self.tree.node_label(i) for i in internal],
            probabilities=node_probs,
        )


def reconstruct_ancestral_states(likelihood: MkLikelihood, rate: float, site: int = 0) -> AncestralStates:
    """Marginal ASR at a single rate."""
    return AncestralStateOracle(likelihood, site=site)(rate)
