"""
Simulation of trees and binary trait histories.

Provides the example data the teaching tool runs on: a pure-birth (Yule)
tree and a two-state character evolved along it under the equal-rates Mk
model. Both take an explicit numpy ``Generator`` so a seed fully determines
the dataset.
"""

from dataclasses import dataclass
from typing import List, Optional
import numpy as np

from .trees import TreeNode, TreeStructure


@dataclass
class TraitHistory:
    """
    A simulated character history.

    Attributes:
        rate: Transition rate used for the simulation
        node_states: (n_nodes,) state at every node
        change_times: Per node, times along the branch above it (measured
            from the parent) at which the state flipped
    """
    rate: float
    node_states: np.ndarray
    change_times: List[np.ndarray]

    @property
    def n_changes(self) -> np.ndarray:
        """Number of state changes on the branch above each node."""
        return np.array([len(t) for t in self.change_times], dtype=np.int64)

    def tip_states(self, tree: TreeStructure) -> np.ndarray:
        """States at the tips, aligned with ``tree.tip_indices``."""
        return self.node_states[tree.tip_indices].copy()


def simulate_pure_birth_tree(
    n_tips: int,
    birth_rate: float = 1.0,
    rng: Optional[np.random.Generator] = None,
) -> TreeStructure:
    """
    Simulate an ultrametric pure-birth (Yule) tree.

    Starts from a root split into two lineages. While fewer than ``n_tips``
    lineages exist, waits an exponential time with rate
    ``birth_rate * n_lineages`` and splits a uniformly chosen lineage. A
    final waiting time is added so terminal branches are non-zero.

    Args:
        n_tips: Number of tips (>= 2)
        birth_rate: Per-lineage speciation rate
        rng: Random number generator (default: create new one)

    Returns:
        TreeStructure with tips named t1..tn

    Example:
        >>> tree = simulate_pure_birth_tree(10, rng=np.random.default_rng(1))
        >>> tree.n_tips
        10
    """
    if n_tips < 2:
        raise ValueError(f"n_tips must be at least 2, got {n_tips}")
    if birth_rate <= 0:
        raise ValueError(f"birth_rate must be positive, got {birth_rate}")
    if rng is None:
        rng = np.random.default_rng()

    nodes = [TreeNode(id=0)]

    def split(parent_id: int) -> List[int]:
        new_ids = []
        for _ in range(2):
            child = TreeNode(id=len(nodes), parent_id=parent_id)
            nodes.append(child)
            nodes[parent_id].children_ids.append(child.id)
            new_ids.append(child.id)
        return new_ids

    extant = split(0)
    while True:
        k = len(extant)
        wait = rng.exponential(1.0 / (birth_rate * k))
        for lineage in extant:
            nodes[lineage].branch_length += wait
        if k == n_tips:
            break
        pick = int(rng.integers(k))
        lineage = extant.pop(pick)
        extant.extend(split(lineage))

    tree = TreeStructure.from_nodes(nodes, root_index=0)
    for k, tip_id in enumerate(tree.tip_indices, start=1):
        tree.nodes[tip_id].name = f"t{k}"
    tree.tip_names = [tree.nodes[i].name for i in tree.tip_indices]
    return tree


def simulate_trait_history(
    tree: TreeStructure,
    rate: float,
    rng: Optional[np.random.Generator] = None,
    root_state: Optional[int] = None,
) -> TraitHistory:
    """
    Simulate a binary character along every branch of a tree.

    State changes along a branch occur as a Poisson process with the given
    rate (equal in both directions), so the full history is recorded, not
    only the states at the nodes.

    Args:
        tree: TreeStructure with branch lengths
        rate: Symmetric transition rate q
        rng: Random number generator (default: create new one)
        root_state: Fixed root state; drawn uniformly when None

    Returns:
        TraitHistory
    """
    if rate < 0:
        raise ValueError(f"rate must be non-negative, got {rate}")
    if rng is None:
        rng = np.random.default_rng()

    node_states = np.zeros(tree.n_nodes, dtype=np.int8)
    change_times: List[np.ndarray] = [np.zeros(0) for _ in range(tree.n_nodes)]

    if root_state is None:
        root_state = int(rng.integers(2))
    elif root_state not in (0, 1):
        raise ValueError(f"root_state must be 0 or 1, got {root_state}")
    node_states[tree.root_index] = root_state

    for node_id in tree.preorder:
        if node_id == tree.root_index:
            continue
        state = int(node_states[tree.parent_indices[node_id]])
        length = float(tree.branch_lengths[node_id])
        times = []
        t = 0.0
        while rate > 0:
            t += rng.exponential(1.0 / rate)
            if t >= length:
                break
            times.append(t)
            state = 1 - state
        node_states[node_id] = state
        change_times[node_id] = np.array(times)

    return TraitHistory(rate=float(rate), node_states=node_states, change_times=change_times)


def expected_changes(tree: TreeStructure, rate: float) -> float:
    """
    Expected number of state changes over the whole tree.

    Example:
        >>> tree = TreeStructure.from_newick("((A:1,B:1):1,(C:1,D:1):1);")
        >>> expected_changes(tree, 0.5)
        3.0
    """
    return float(rate * np.sum(tree.branch_lengths))
