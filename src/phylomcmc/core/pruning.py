"""
Felsenstein pruning for discrete-state models on a tree.

The pruning pass supplies the likelihood oracle used by the sampler: for a
candidate transition rate it returns the log-likelihood of the observed tip
states under the two-state Mk model. Conditional likelihoods are rescaled
at every internal node and the scale factors are accumulated in log space,
so large trees and tiny rates do not underflow.

The same pass also exposes its per-node conditionals, which the ancestral
state reconstruction in ``phylomcmc.core.ancestral`` builds on.
"""

from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence
import numpy as np

from .trees import TreeStructure


class TransitionMatrixProvider(Protocol):
    """
    Anything that can produce P(t) = exp(Qt) and a root prior.
    """

    def get_transition_matrix(self, branch_length: float) -> np.ndarray:
        """(n_states, n_states) transition probability matrix for a branch."""
        ...

    @property
    def n_states(self) -> int:
        ...

    @property
    def equilibrium_frequencies(self) -> np.ndarray:
        ...


class BinaryTransitionProvider:
    """
    Closed-form two-state CTMC.

    Attributes:
        rate_01: Rate of 0 -> 1 transitions
        rate_10: Rate of 1 -> 0 transitions
    """

    def __init__(self, rate_01: float, rate_10: float):
        if rate_01 < 0 or rate_10 < 0:
            raise ValueError(f"Rates must be non-negative, got ({rate_01}, {rate_10})")
        self.rate_01 = float(rate_01)
        self.rate_10 = float(rate_10)

    @classmethod
    def symmetric(cls, rate: float) -> "BinaryTransitionProvider":
        """Equal-rates model, q01 = q10 = rate."""
        return cls(rate, rate)

    @property
    def n_states(self) -> int:
        return 2

    @property
    def rate_matrix(self) -> np.ndarray:
        return np.array([
            [-self.rate_01, self.rate_01],
            [self.rate_10, -self.rate_10],
        ])

    @property
    def equilibrium_frequencies(self) -> np.ndarray:
        """Stationary frequencies; uniform when both rates are zero."""
        total = self.rate_01 + self.rate_10
        if total < 1e-12:
            return np.array([0.5, 0.5])
        return np.array([self.rate_10 / total, self.rate_01 / total])

    def get_transition_matrix(self, branch_length: float) -> np.ndarray:
        a = self.rate_01
        b = self.rate_10
        total = a + b
        if total < 1e-12 or branch_length <= 0:
            return np.eye(2)

        decay = np.exp(-total * branch_length)
        p00 = (b + a * decay) / total
        p11 = (a + b * decay) / total
        return np.array([[p00, 1.0 - p00], [1.0 - p11, p11]])

    def __repr__(self) -> str:
        return f"BinaryTransitionProvider(q01={self.rate_01:g}, q10={self.rate_10:g})"


class ArrayTipConditionalProvider:
    """
    Tip conditionals from an integer state array.

    ``data[i, s]`` is the observed state of taxon ``taxon_names[i]`` at site
    ``s``. Negative or out-of-range entries are treated as missing data
    (every state equally compatible).
    """

    def __init__(self, data: np.ndarray, taxon_names: Sequence[str], n_states: int = 2):
        data = np.asarray(data)
        if data.ndim == 1:
            data = data[:, None]
        if data.shape[0] != len(taxon_names):
            raise ValueError(
                f"Data has {data.shape[0]} rows but {len(taxon_names)} taxon names were given"
            )
        self.data = data.astype(np.int64)
        self.taxon_names = list(taxon_names)
        self.taxon_to_idx = {name: i for i, name in enumerate(self.taxon_names)}
        self.n_states = n_states

    @property
    def n_sites(self) -> int:
        return self.data.shape[1]

    def get_tip_conditionals(self, tip_name: str) -> np.ndarray:
        """(n_sites, n_states) array of P(observation | state)."""
        taxon_idx = self.taxon_to_idx.get(tip_name)
        if taxon_idx is None:
            return np.ones((self.n_sites, self.n_states))

        observed = self.data[taxon_idx]
        cond = np.zeros((self.n_sites, self.n_states))
        known = (observed >= 0) & (observed < self.n_states)
        cond[np.flatnonzero(known), observed[known]] = 1.0
        cond[~known] = 1.0
        return cond


@dataclass
class PruningResult:
    """
    Result of a pruning pass.

    Attributes:
        log_likelihood: Total log-likelihood over sites
        site_log_likelihoods: (n_sites,) per-site log-likelihoods
        conditionals: (n_nodes, n_sites, n_states) rescaled conditional
            likelihoods of the data below each node
        transition_matrices: P(t) for the branch above each node
        root_frequencies: Root prior used for the final sum
    """
    log_likelihood: float
    site_log_likelihoods: np.ndarray
    conditionals: np.ndarray
    transition_matrices: List[np.ndarray]
    root_frequencies: np.ndarray


class FelsensteinPruning:
    """
    Post-order pruning over a ``TreeStructure``.

    Usage:
        tree = TreeStructure.from_newick("((A:1,B:1):1,C:2);")
        pruning = FelsensteinPruning(tree)
        result = pruning.compute(
            BinaryTransitionProvider.symmetric(0.3),
            ArrayTipConditionalProvider(states, tree.tip_names),
        )
    """

    def __init__(self, tree: TreeStructure, n_states: int = 2):
        self.tree = tree
        self.n_states = n_states

    def compute(
        self,
        transition_provider: TransitionMatrixProvider,
        tip_provider: ArrayTipConditionalProvider,
        root_frequencies: Optional[np.ndarray] = None,
    ) -> PruningResult:
        """
        Run the pruning pass.

        Args:
            transition_provider: Supplies P(t) and default root frequencies
            tip_provider: Supplies tip conditionals
            root_frequencies: Optional root prior overriding the provider's
                equilibrium frequencies

        Returns:
            PruningResult with the log-likelihood and per-node conditionals
        """
        tree = self.tree
        n_sites = tip_provider.n_sites

        matrices = [
            transition_provider.get_transition_matrix(float(t))
            for t in tree.branch_lengths
        ]

        conditionals = np.zeros((tree.n_nodes, n_sites, self.n_states))
        log_scale = np.zeros(n_sites)

        for tip_idx, tip_name in zip(tree.tip_indices, tree.tip_names):
            conditionals[tip_idx] = tip_provider.get_tip_conditionals(tip_name)

        for node_id in tree.postorder:
            children = tree.children(node_id)
            if not children:
                continue
            partial = np.ones((n_sites, self.n_states))
            for child in children:
                # L_parent[s, i] *= sum_j P[i, j] L_child[s, j]
                partial *= conditionals[child] @ matrices[child].T
            scale = partial.max(axis=1)
            safe = np.where(scale > 0, scale, 1.0)
            conditionals[node_id] = partial / safe[:, None]
            log_scale += np.log(safe)

        if root_frequencies is None:
            freqs = np.asarray(transition_provider.equilibrium_frequencies, dtype=float)
        else:
            freqs = np.asarray(root_frequencies, dtype=float)

        site_lik = conditionals[tree.root_index] @ freqs
        with np.errstate(divide="ignore"):
            site_log_liks = np.log(site_lik) + log_scale

        return PruningResult(
            log_likelihood=float(np.sum(site_log_liks)),
            site_log_likelihoods=site_log_liks,
            conditionals=conditionals,
            transition_matrices=matrices,
            root_frequencies=freqs,
        )


class MkLikelihood:
    """
    Likelihood oracle for the equal-rates two-state Mk model.

    Calling the object with a rate returns the log-likelihood of the tip
    states; rates that are not finite and positive give ``-inf``.

    Attributes:
        tree: Tree the data were observed on
        tip_provider: Observed tip states
        root_frequencies: Root prior (uniform by default)
    """

    def __init__(
        self,
        tree: TreeStructure,
        tip_states: np.ndarray,
        root_frequencies: Optional[np.ndarray] = None,
    ):
        self.tree = tree
        self.tip_provider = ArrayTipConditionalProvider(tip_states, tree.tip_names)
        if root_frequencies is None:
            root_frequencies = np.array([0.5, 0.5])
        self.root_frequencies = np.asarray(root_frequencies, dtype=float)
        self._pruning = FelsensteinPruning(tree, n_states=2)

    def prune(self, rate: float) -> PruningResult:
        """Full pruning result at ``rate``."""
        return self._pruning.compute(
            BinaryTransitionProvider.symmetric(rate),
            self.tip_provider,
            root_frequencies=self.root_frequencies,
        )

    def __call__(self, rate: float) -> float:
        if not np.isfinite(rate) or rate <= 0:
            return -np.inf
        return self.prune(rate).log_likelihood

    def __repr__(self) -> str:
        return f"MkLikelihood({self.tree!r}, sites={self.tip_provider.n_sites})"
