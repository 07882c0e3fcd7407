"""
Unit tests for phylomcmc.mcmc.summary.
"""

import numpy as np
import pytest
from scipy.integrate import trapezoid

from phylomcmc.config import DatasetSettings
from phylomcmc.core.ancestral import AncestralStates
from phylomcmc.core.data import TraitDataset
from phylomcmc.errors import InvalidParameter, OracleFailure
from phylomcmc.mcmc import summary
from phylomcmc.mcmc.priors import make_prior
from phylomcmc.mcmc.sampler import SampleRecord, run


def make_records(rates, accepted=None):
    accepted = accepted or [True] * len(rates)
    return [
        SampleRecord(
            iteration=i + 1,
            rate=r,
            log_likelihood=-1.0,
            log_prior=0.0,
            accepted=a,
            acceptance_probability=1.0 if a else 0.0,
        )
        for i, (r, a) in enumerate(zip(rates, accepted))
    ]


@pytest.fixture(scope="module")
def dataset():
    return TraitDataset.simulate(DatasetSettings(n_tips=12, true_rate=0.5, seed=3))


@pytest.fixture(scope="module")
def chain(dataset):
    return run(0.5, 400, make_prior("exponential"), 0.3, dataset.likelihood, 17)


class TestProjections:
    def test_trace(self, chain):
        iterations, values = summary.trace(chain)
        assert np.array_equal(iterations, np.arange(1, 401))
        assert values.shape == (400,)
        assert values[10] == chain[10].rate

    def test_head_default_is_25(self, chain):
        rows = summary.head(chain)
        assert len(rows) == 25
        assert rows[0] is chain[0]
        assert rows[-1].iteration == 25

    def test_head_short_chain(self):
        assert len(summary.head(make_records([0.1, 0.2, 0.3]))) == 3

    def test_head_negative_k(self, chain):
        with pytest.raises(InvalidParameter):
            summary.head(chain, -1)

    def test_rates_with_burn_in(self):
        records = make_records([0.1, 0.2, 0.3, 0.4])
        assert np.allclose(summary.rates(records, burn_in=2), [0.3, 0.4])

    @pytest.mark.parametrize("burn_in", [-1, 4, 10])
    def test_bad_burn_in(self, burn_in):
        with pytest.raises(InvalidParameter):
            summary.rates(make_records([0.1, 0.2, 0.3, 0.4]), burn_in=burn_in)

    def test_empty(self):
        with pytest.raises(InvalidParameter):
            summary.summarize([])

    def test_acceptance_rate(self):
        records = make_records([0.1, 0.1, 0.2, 0.3], accepted=[True, False, True, True])
        assert summary.acceptance_rate(records) == pytest.approx(0.75)
        assert summary.acceptance_rate([]) == 0.0

    def test_samples_to_frame(self, chain):
        frame = summary.samples_to_frame(chain)
        assert len(frame) == 400
        assert frame["iteration"].iloc[0] == 1
        assert np.allclose(frame["log_posterior"], frame["log_likelihood"] + frame["log_prior"])


class TestDensity:
    def test_kde_integrates_to_about_one(self, chain):
        estimate = summary.posterior_density(chain, burn_in=50)
        assert estimate.method == "kde"
        assert np.all(estimate.density >= 0)
        assert np.all(estimate.grid >= 0)
        area = trapezoid(estimate.density, estimate.grid)
        assert 0.7 < area < 1.05

    def test_histogram(self, chain):
        estimate = summary.posterior_density(chain, method="histogram", bins=20)
        assert estimate.method == "histogram"
        assert len(estimate.grid) == 20
        widths = np.diff(estimate.grid).mean()
        assert estimate.density.sum() * widths == pytest.approx(1.0)

    def test_constant_chain_falls_back_to_histogram(self):
        with pytest.warns(UserWarning):
            estimate = summary.posterior_density(make_records([0.42] * 50))
        assert estimate.method == "histogram"
        assert estimate.mode() == pytest.approx(0.42, abs=0.05)

    def test_unknown_method(self, chain):
        with pytest.raises(InvalidParameter):
            summary.posterior_density(chain, method="spline")


class TestSummarize:
    def test_known_values(self):
        records = make_records([0.1, 0.2, 0.3, 0.4, 0.5])
        result = summary.summarize(records, credible_mass=0.5)
        assert result.n_samples == 5
        assert result.mean == pytest.approx(0.3)
        assert result.median == pytest.approx(0.3)
        assert result.lower == pytest.approx(0.2)
        assert result.upper == pytest.approx(0.4)

    def test_interval_contains_median(self, chain):
        result = summary.summarize(chain, burn_in=100)
        assert result.n_samples == 300
        assert result.lower <= result.median <= result.upper
        assert 0 < result.acceptance_rate <= 1

    @pytest.mark.parametrize("mass", [0.0, 1.0, 1.5])
    def test_bad_credible_mass(self, chain, mass):
        with pytest.raises(InvalidParameter):
            summary.summarize(chain, credible_mass=mass)


class TestPosteriorAncestralStates:
    def test_average_of_point_estimates(self, dataset):
        records = make_records([0.2, 0.2, 0.8])
        averaged = summary.posterior_ancestral_states(records, dataset.ancestral_states)
        expected = (
            2 * dataset.ancestral_states(0.2).probabilities
            + dataset.ancestral_states(0.8).probabilities
        ) / 3
        assert np.allclose(averaged.probabilities, expected)
        assert averaged.rate == pytest.approx(0.4)
        assert np.allclose(averaged.probabilities.sum(axis=1), 1.0)

    def test_repeated_rates_share_one_call(self, dataset):
        calls = []

        def counting(rate):
            calls.append(rate)
            return dataset.ancestral_states(rate)

        summary.posterior_ancestral_states(make_records([0.3, 0.3, 0.3, 0.5]), counting)
        assert calls == [0.3, 0.5]

    def test_thinning(self, dataset):
        calls = []

        def counting(rate):
            calls.append(rate)
            return dataset.ancestral_states(rate)

        records = make_records([0.1, 0.2, 0.3, 0.4, 0.5, 0.6])
        summary.posterior_ancestral_states(records, counting, burn_in=1, thin=2)
        assert calls == [0.2, 0.4, 0.6]

    def test_bad_thin(self, dataset):
        with pytest.raises(InvalidParameter):
            summary.posterior_ancestral_states(make_records([0.1]), dataset.ancestral_states, thin=0)

    def test_failure_wrapped(self):
        def broken(rate):
            raise ZeroDivisionError("boom")

        with pytest.raises(OracleFailure):
            summary.posterior_ancestral_states(make_records([0.1]), broken)

    def test_result_type(self, dataset):
        result = summary.posterior_ancestral_states(make_records([0.3]), dataset.ancestral_states)
        assert isinstance(result, AncestralStates)
        assert result.node_ids == dataset.tree.internal_indices
