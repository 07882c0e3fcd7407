"""
Smoke tests for phylomcmc.plotting.
"""

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import numpy as np
import pytest

from phylomcmc.config import DatasetSettings
from phylomcmc.core.data import TraitDataset
from phylomcmc.mcmc.priors import make_prior
from phylomcmc.mcmc.sampler import run
from phylomcmc.mcmc.summary import posterior_ancestral_states
from phylomcmc.plotting import (
    chain_report,
    plot_posterior_density,
    plot_trace,
    plot_tree_with_pies,
    tree_layout,
)


@pytest.fixture(scope="module")
def dataset():
    return TraitDataset.simulate(DatasetSettings(n_tips=9, true_rate=0.5, seed=8))


@pytest.fixture(scope="module")
def samples(dataset):
    return run(0.5, 200, make_prior("exponential"), 0.3, dataset.likelihood, 5)


@pytest.fixture(autouse=True)
def close_figures():
    yield
    plt.close("all")


def test_tree_layout(dataset):
    tree = dataset.tree
    x, y = tree_layout(tree)
    assert x[tree.root_index] == 0.0
    assert sorted(y[tree.tip_indices]) == list(range(tree.n_tips))
    for node_id in tree.internal_indices:
        child_y = [y[c] for c in tree.children(node_id)]
        assert min(child_y) <= y[node_id] <= max(child_y)


def test_posterior_density(samples, dataset):
    ax = plot_posterior_density(samples, burn_in=20, prior=make_prior("exponential"),
                                true_rate=dataset.true_rate)
    labels = [t.get_text() for t in ax.get_legend().get_texts()]
    assert labels[0] == "Posterior"
    assert any(label.startswith("Prior: Exponential") for label in labels)


def test_trace(samples):
    ax = plot_trace(samples)
    xdata, ydata = ax.lines[0].get_data()
    assert len(xdata) == len(samples)
    assert np.allclose(ydata, [s.rate for s in samples])


def test_tree_with_pies(dataset):
    ancestral = dataset.ancestral_states(0.5)
    ax = plot_tree_with_pies(dataset, ancestral)
    # At most two wedges per internal node
    assert dataset.tree.n_internal <= len(ax.patches) <= 2 * dataset.tree.n_internal


def test_chain_report_saves(tmp_path, dataset, samples):
    ancestral = posterior_ancestral_states(samples, dataset.ancestral_states, thin=20)
    path = tmp_path / "report.png"
    fig = chain_report(dataset, samples, ancestral, prior=make_prior("exponential"),
                       save_path=str(path))
    assert len(fig.axes) == 3
    assert path.exists()
