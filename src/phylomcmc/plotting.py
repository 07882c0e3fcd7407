"""
Figures for the teaching front end.

Posterior density, trace, and the tree with ancestral-state pie charts.
Each function draws onto a supplied Axes or creates its own figure.
"""

from typing import Optional, Sequence, Tuple

import numpy as np
import matplotlib.pyplot as plt
from matplotlib.patches import Wedge
from matplotlib.transforms import Affine2D

from phylomcmc.core.ancestral import AncestralStates
from phylomcmc.core.data import TraitDataset
from phylomcmc.core.trees import TreeStructure
from phylomcmc.mcmc.priors import LogPrior
from phylomcmc.mcmc.sampler import SampleRecord
from phylomcmc.mcmc.summary import posterior_density, trace

STATE_COLORS = ("#1f77b4", "#d62728")


def _axes(ax: Optional[plt.Axes], figsize: Tuple[float, float]) -> plt.Axes:
    if ax is None:
        _, ax = plt.subplots(figsize=figsize)
    return ax


def plot_posterior_density(
    samples: Sequence[SampleRecord],
    burn_in: int = 0,
    prior: Optional[LogPrior] = None,
    true_rate: Optional[float] = None,
    ax: Optional[plt.Axes] = None,
) -> plt.Axes:
    """
    Posterior density of q, optionally with the prior and the true rate.
    """
    ax = _axes(ax, (6, 4))
    estimate = posterior_density(samples, burn_in=burn_in)

    if estimate.method == "kde":
        ax.plot(estimate.grid, estimate.density, "k-", lw=2, label="Posterior")
        ax.fill_between(estimate.grid, estimate.density, alpha=0.2, color="gray")
    else:
        width = estimate.grid[1] - estimate.grid[0] if len(estimate.grid) > 1 else 1.0
        ax.bar(estimate.grid, estimate.density, width=width, alpha=0.5,
               color="gray", edgecolor="black", label="Posterior")

    if prior is not None:
        prior_density = np.exp([prior(x) for x in estimate.grid])
        ax.plot(estimate.grid, prior_density, "b--", lw=1.5, label=f"Prior: {prior.spec.describe()}")
    if true_rate is not None:
        ax.axvline(true_rate, color="r", linestyle=":", lw=2, label=f"True q = {true_rate:.3g}")

    ax.set_xlabel("Transition rate q", fontsize=12)
    ax.set_ylabel("Density", fontsize=12)
    ax.set_title("Posterior density", fontsize=14, fontweight="bold")
    ax.legend()
    ax.grid(True, alpha=0.3)
    return ax


def plot_trace(samples: Sequence[SampleRecord], ax: Optional[plt.Axes] = None) -> plt.Axes:
    """Rate against iteration."""
    ax = _axes(ax, (8, 3))
    iterations, values = trace(samples)
    ax.plot(iterations, values, "-", lw=0.8, color="black")
    ax.set_xlabel("Iteration", fontsize=12)
    ax.set_ylabel("q", fontsize=12)
    ax.set_title("Trace", fontsize=14, fontweight="bold")
    ax.grid(True, alpha=0.3)
    return ax


def tree_layout(tree: TreeStructure) -> Tuple[np.ndarray, np.ndarray]:
    """
    Rectangular layout: x is depth from the root, tips are spaced one unit
    apart in y and internal nodes sit midway between their extreme children.
    """
    x = tree.node_depths()
    y = np.zeros(tree.n_nodes)
    y[tree.tip_indices] = np.arange(tree.n_tips)
    for node_id in tree.postorder:
        children = tree.children(node_id)
        if children:
            y[node_id] = 0.5 * (min(y[c] for c in children) + max(y[c] for c in children))
    return x, y


def plot_tree_with_pies(
    dataset: TraitDataset,
    ancestral: AncestralStates,
    ax: Optional[plt.Axes] = None,
    pie_radius: float = 0.35,
) -> plt.Axes:
    """
    Tree with tip states as coloured squares and marginal ancestral
    probabilities as pie charts at the internal nodes.
    """
    tree = dataset.tree
    ax = _axes(ax, (7, max(4.0, 0.25 * tree.n_tips)))
    x, y = tree_layout(tree)

    for node_id in tree.postorder:
        children = tree.children(node_id)
        if not children:
            continue
        ys = [y[c] for c in children]
        ax.plot([x[node_id], x[node_id]], [min(ys), max(ys)], "k-", lw=1)
        for c in children:
            ax.plot([x[node_id], x[c]], [y[c], y[c]], "k-", lw=1)

    for tip_id, name, state in zip(tree.tip_indices, tree.tip_names, dataset.tip_states):
        color = STATE_COLORS[state] if state >= 0 else "white"
        ax.scatter([x[tip_id]], [y[tip_id]], marker="s", s=30, color=color, edgecolor="black", zorder=3)
        ax.text(x[tip_id], y[tip_id], f"  {name}", va="center", fontsize=8)

    # Pies are drawn in data units; squash them to the x scale
    x_span = max(float(np.max(x)), 1e-12)
    y_span = max(float(tree.n_tips), 1.0)
    aspect = x_span / y_span
    for node_id, probs in zip(ancestral.node_ids, ancestral.probabilities):
        start = 90.0
        for state, p in enumerate(probs):
            sweep = 360.0 * float(p)
            if sweep <= 0:
                continue
            wedge = Wedge((0, 0), pie_radius, start, start + sweep,
                          facecolor=STATE_COLORS[state], edgecolor="black", lw=0.5)
            transform = (
                Affine2D()
                .scale(aspect, 1.0)
                .translate(x[node_id], y[node_id])
                + ax.transData
            )
            wedge.set_transform(transform)
            ax.add_patch(wedge)
            start += sweep

    ax.set_xlim(-0.05 * x_span, 1.2 * x_span)
    ax.set_ylim(-1, tree.n_tips)
    ax.set_yticks([])
    ax.set_xlabel("Time from root", fontsize=12)
    ax.set_title(f"Marginal ancestral states (q = {ancestral.rate:.3g})", fontsize=14, fontweight="bold")
    return ax


def chain_report(
    dataset: TraitDataset,
    samples: Sequence[SampleRecord],
    ancestral: AncestralStates,
    prior: Optional[LogPrior] = None,
    burn_in: int = 0,
    save_path: Optional[str] = None,
) -> plt.Figure:
    """
    Three-panel figure: posterior density, trace and tree with pies.
    """
    fig = plt.figure(figsize=(14, 8))
    grid = fig.add_gridspec(2, 2, width_ratios=[1, 1])
    plot_posterior_density(samples, burn_in=burn_in, prior=prior,
                           true_rate=dataset.true_rate, ax=fig.add_subplot(grid[0, 0]))
    plot_trace(samples, ax=fig.add_subplot(grid[1, 0]))
    plot_tree_with_pies(dataset, ancestral, ax=fig.add_subplot(grid[:, 1]))
    fig.tight_layout()

    if save_path:
        fig.savefig(save_path, dpi=150, bbox_inches="tight")
    return fig
