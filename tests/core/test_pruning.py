"""
Unit tests for phylomcmc.core.pruning.

The pruning likelihood is checked against brute-force enumeration of all
internal-node states on small trees.
"""

import itertools

import numpy as np
import pytest
from scipy.linalg import expm

from phylomcmc.core.pruning import (
    ArrayTipConditionalProvider,
    BinaryTransitionProvider,
    FelsensteinPruning,
    MkLikelihood,
)
from phylomcmc.core.simulation import simulate_pure_birth_tree, simulate_trait_history
from phylomcmc.core.trees import TreeStructure


def brute_force_log_likelihood(tree, tip_states, rate):
    """Sum over every assignment of states to internal nodes."""
    provider = BinaryTransitionProvider.symmetric(rate)
    matrices = [provider.get_transition_matrix(t) for t in tree.branch_lengths]
    states = np.zeros(tree.n_nodes, dtype=int)
    for tip_idx, s in zip(tree.tip_indices, tip_states):
        states[tip_idx] = s

    total = 0.0
    for assignment in itertools.product([0, 1], repeat=tree.n_internal):
        for node_id, s in zip(tree.internal_indices, assignment):
            states[node_id] = s
        prob = 0.5
        for node_id in range(tree.n_nodes):
            parent = tree.parent_indices[node_id]
            if parent >= 0:
                prob *= matrices[node_id][states[parent], states[node_id]]
        total += prob
    return np.log(total)


class TestBinaryTransitionProvider:
    """Closed-form P(t) for the two-state model."""

    @pytest.mark.parametrize("rate_01,rate_10,t", [
        (0.3, 0.3, 1.0),
        (1.5, 0.5, 0.7),
        (0.01, 2.0, 3.0),
    ])
    def test_matches_matrix_exponential(self, rate_01, rate_10, t):
        provider = BinaryTransitionProvider(rate_01, rate_10)
        expected = expm(provider.rate_matrix * t)
        assert np.allclose(provider.get_transition_matrix(t), expected)

    def test_rows_sum_to_one(self):
        provider = BinaryTransitionProvider.symmetric(0.8)
        for t in [0.0, 0.1, 1.0, 50.0]:
            P = provider.get_transition_matrix(t)
            assert np.allclose(P.sum(axis=1), 1.0)

    def test_symmetric_long_branch_forgets_state(self):
        P = BinaryTransitionProvider.symmetric(1.0).get_transition_matrix(100.0)
        assert np.allclose(P, 0.5)

    def test_zero_length_is_identity(self):
        P = BinaryTransitionProvider.symmetric(1.0).get_transition_matrix(0.0)
        assert np.array_equal(P, np.eye(2))

    def test_equilibrium(self):
        provider = BinaryTransitionProvider(3.0, 1.0)
        assert np.allclose(provider.equilibrium_frequencies, [0.25, 0.75])
        assert np.allclose(
            BinaryTransitionProvider(0.0, 0.0).equilibrium_frequencies, [0.5, 0.5]
        )

    def test_negative_rate_rejected(self):
        with pytest.raises(ValueError):
            BinaryTransitionProvider(-1.0, 1.0)


class TestTipConditionals:
    def test_observed_and_missing(self):
        provider = ArrayTipConditionalProvider(np.array([0, 1, -1]), ["A", "B", "C"])
        assert np.array_equal(provider.get_tip_conditionals("A"), [[1.0, 0.0]])
        assert np.array_equal(provider.get_tip_conditionals("B"), [[0.0, 1.0]])
        assert np.array_equal(provider.get_tip_conditionals("C"), [[1.0, 1.0]])
        assert np.array_equal(provider.get_tip_conditionals("Z"), [[1.0, 1.0]])

    def test_row_count_must_match(self):
        with pytest.raises(ValueError):
            ArrayTipConditionalProvider(np.array([0, 1]), ["A"])


class TestMkLikelihood:
    """Log-likelihood oracle."""

    @pytest.fixture
    def tree(self):
        return TreeStructure.from_newick("((A:1.0,B:0.5):0.7,(C:1.2,D:0.3):0.4);")

    @pytest.mark.parametrize("tip_states", [
        [0, 0, 0, 0],
        [0, 1, 0, 1],
        [1, 1, 0, 0],
    ])
    @pytest.mark.parametrize("rate", [0.01, 0.3, 2.0])
    def test_matches_brute_force(self, tree, tip_states, rate):
        likelihood = MkLikelihood(tree, np.array(tip_states))
        expected = brute_force_log_likelihood(tree, tip_states, rate)
        assert likelihood(rate) == pytest.approx(expected, rel=1e-10)

    def test_multifurcating_tree(self):
        tree = TreeStructure.from_newick("((A:1,B:1,C:2):0.5,D:1);")
        tip_states = [0, 1, 1, 0]
        likelihood = MkLikelihood(tree, np.array(tip_states))
        assert likelihood(0.4) == pytest.approx(
            brute_force_log_likelihood(tree, tip_states, 0.4), rel=1e-10
        )

    @pytest.mark.parametrize("rate", [0.0, -0.5, np.nan, np.inf])
    def test_invalid_rate_is_minus_infinity(self, tree, rate):
        likelihood = MkLikelihood(tree, np.array([0, 1, 0, 1]))
        assert likelihood(rate) == -np.inf

    def test_missing_data_marginalised(self):
        # Root prior is stationary, so a missing outgroup is the same as no outgroup
        with_missing = MkLikelihood(
            TreeStructure.from_newick("(((A:1,B:0.5):0.7,C:1.6):1.0,D:2.0);"),
            np.array([0, 1, 0, -1]),
        )
        without = MkLikelihood(
            TreeStructure.from_newick("((A:1,B:0.5):0.7,C:1.6);"),
            np.array([0, 1, 0]),
        )
        assert with_missing(0.3) == pytest.approx(without(0.3), rel=1e-10)

    def test_large_tree_does_not_underflow(self):
        rng = np.random.default_rng(3)
        tree = simulate_pure_birth_tree(400, rng=rng)
        history = simulate_trait_history(tree, 0.5, rng=rng)
        likelihood = MkLikelihood(tree, history.tip_states(tree))
        for rate in [1e-3, 0.5, 9.0]:
            value = likelihood(rate)
            assert np.isfinite(value)
            assert value < 0

    def test_constant_data_favours_small_rates(self, tree):
        likelihood = MkLikelihood(tree, np.array([1, 1, 1, 1]))
        assert likelihood(0.01) > likelihood(0.1) > likelihood(1.0)

    def test_pruning_result_per_site(self, tree):
        data = np.array([[0, 1], [0, 1], [1, 1], [1, 0]])
        pruning = FelsensteinPruning(tree)
        result = pruning.compute(
            BinaryTransitionProvider.symmetric(0.5),
            ArrayTipConditionalProvider(data, tree.tip_names),
        )
        assert result.site_log_likelihoods.shape == (2,)
        assert result.log_likelihood == pytest.approx(result.site_log_likelihoods.sum())
        assert result.site_log_likelihoods[0] == pytest.approx(
            brute_force_log_likelihood(tree, data[:, 0], 0.5)
        )
