"""Command-line interface."""

import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from phylomcmc.config import (
    DEFAULT_HEAD_ROWS,
    DEFAULT_PROPOSAL_WIDTH,
    ChainConfig,
    DatasetSettings,
)
from phylomcmc.errors import PhyloMCMCError

app = typer.Typer(help="phylomcmc: MCMC for a binary-trait transition rate")
console = Console()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _dataset(n_tips: int, true_rate: float, tree_seed: int):
    from phylomcmc.core.data import TraitDataset

    return TraitDataset.simulate(
        DatasetSettings(n_tips=n_tips, true_rate=true_rate, seed=tree_seed)
    )


def _fail(error: Exception) -> None:
    console.print(f"[red]Error: {error}[/red]")
    raise typer.Exit(code=1)


@app.command()
def version():
    """Show phylomcmc version."""
    from phylomcmc import __version__
    console.print(f"phylomcmc version {__version__}")


@app.command()
def simulate(
    n_tips: int = typer.Option(40, help="Number of tips"),
    true_rate: float = typer.Option(0.3, help="Rate used to simulate the trait"),
    tree_seed: int = typer.Option(1, help="Seed for tree and trait simulation"),
):
    """Simulate a tree and trait and print them."""
    try:
        dataset = _dataset(n_tips, true_rate, tree_seed)
    except PhyloMCMCError as e:
        _fail(e)

    console.print(dataset.tree.to_newick())
    table = Table(title=f"Tip states ({dataset.tree.n_tips} tips)")
    table.add_column("Tip", style="cyan")
    table.add_column("State", style="green")
    for name, state in dataset.tip_state_map().items():
        table.add_row(name, str(state))
    console.print(table)


@app.command()
def run(
    iterations: int = typer.Option(10000, help="Number of MCMC iterations (100-50000)"),
    prior: str = typer.Option("exponential", help="Prior family: exponential, uniform or normal"),
    prior_param: Optional[List[float]] = typer.Option(
        None, help="Prior parameter; repeat for families with two parameters"
    ),
    start: float = typer.Option(0.5, help="Starting rate (0.001-9.999)"),
    width: float = typer.Option(DEFAULT_PROPOSAL_WIDTH, help="Proposal width"),
    seed: Optional[int] = typer.Option(None, help="Chain seed"),
    n_tips: int = typer.Option(40, help="Number of tips in the simulated tree"),
    true_rate: float = typer.Option(0.3, help="Rate used to simulate the trait"),
    tree_seed: int = typer.Option(1, help="Seed for tree and trait simulation"),
    head_rows: int = typer.Option(DEFAULT_HEAD_ROWS, "--head", help="Rows of the sample table"),
    burn_in: int = typer.Option(0, help="Samples dropped before summarising"),
    plot: Optional[Path] = typer.Option(None, help="Write a density/trace/tree figure here"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
):
    """Run a chain on a simulated dataset and print the samples."""
    from phylomcmc.mcmc.session import ChainSession

    _configure_logging(verbose)
    try:
        dataset = _dataset(n_tips, true_rate, tree_seed)
        config = ChainConfig(
            n_iterations=iterations,
            prior_family=prior,
            prior_params=tuple(prior_param) if prior_param else None,
            initial_rate=start,
            proposal_width=width,
            seed=seed,
        )
        session = ChainSession(dataset, config)
        result = session.run()
        stats = result.summary(burn_in=burn_in)
        rows = result.head(head_rows)
    except PhyloMCMCError as e:
        _fail(e)

    table = Table(title=f"First {len(rows)} iterations")
    table.add_column("Iteration", justify="right")
    table.add_column("q", style="cyan")
    table.add_column("logLik")
    table.add_column("logPrior")
    table.add_column("Accepted", style="green")
    for record in rows:
        table.add_row(
            str(record.iteration),
            f"{record.rate:.5f}",
            f"{record.log_likelihood:.4f}",
            f"{record.log_prior:.4f}",
            "yes" if record.accepted else "no",
        )
    console.print(table)

    summary = Table(title="Posterior summary")
    summary.add_column("Statistic", style="cyan")
    summary.add_column("Value", style="green")
    summary.add_row("Prior", result.prior.describe())
    summary.add_row("Samples", str(stats.n_samples))
    summary.add_row("Mean q", f"{stats.mean:.4f}")
    summary.add_row("Median q", f"{stats.median:.4f}")
    summary.add_row(f"{stats.credible_mass:.0%} interval", f"[{stats.lower:.4f}, {stats.upper:.4f}]")
    summary.add_row("Acceptance rate", f"{stats.acceptance_rate:.3f}")
    if dataset.true_rate is not None:
        summary.add_row("True q", f"{dataset.true_rate:.4f}")
    console.print(summary)

    if plot is not None:
        import matplotlib
        matplotlib.use("Agg")
        from phylomcmc.mcmc.priors import make_prior
        from phylomcmc.plotting import chain_report

        try:
            ancestral = session.ancestral_states(burn_in=burn_in)
        except PhyloMCMCError as e:
            _fail(e)
        chain_report(
            dataset,
            result.samples,
            ancestral,
            prior=make_prior(result.prior.family, result.prior.params),
            burn_in=burn_in,
            save_path=str(plot),
        )
        console.print(f"Figure written to {plot}")


@app.command()
def asr(
    rate: float = typer.Option(..., help="Transition rate to reconstruct at"),
    n_tips: int = typer.Option(40, help="Number of tips in the simulated tree"),
    true_rate: float = typer.Option(0.3, help="Rate used to simulate the trait"),
    tree_seed: int = typer.Option(1, help="Seed for tree and trait simulation"),
):
    """Marginal ancestral states at a fixed rate."""
    try:
        dataset = _dataset(n_tips, true_rate, tree_seed)
        states = dataset.ancestral_states(rate)
    except PhyloMCMCError as e:
        _fail(e)

    table = Table(title=f"Marginal ancestral states at q = {rate:g}")
    table.add_column("Node", style="cyan")
    table.add_column("P(0)")
    table.add_column("P(1)")
    for label, probs in zip(states.labels, states.probabilities):
        table.add_row(label, f"{probs[0]:.4f}", f"{probs[1]:.4f}")
    console.print(table)


if __name__ == "__main__":
    app()
