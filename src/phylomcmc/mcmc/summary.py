"""
Aggregation of a chain's sample sequence for display.

Everything here is a read-only projection of the list returned by
``phylomcmc.mcmc.sampler.run``.
"""

import warnings
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy import stats

from phylomcmc.config import DEFAULT_HEAD_ROWS
from phylomcmc.core.ancestral import AncestralStates
from phylomcmc.errors import InvalidParameter, OracleFailure, PhyloMCMCError
from .sampler import SampleRecord


@dataclass(frozen=True, eq=False)
class DensityEstimate:
    """
    Posterior density of the rate on a grid.

    Attributes:
        grid: Evaluation points (bin centres for histograms)
        density: Density values at ``grid``
        method: "kde" or "histogram"
    """
    grid: np.ndarray
    density: np.ndarray
    method: str

    def mode(self) -> float:
        return float(self.grid[int(np.argmax(self.density))])


@dataclass(frozen=True)
class ChainSummary:
    """Posterior summary of the rate after burn-in."""

    n_samples: int
    mean: float
    median: float
    sd: float
    lower: float
    upper: float
    credible_mass: float
    acceptance_rate: float

    def __repr__(self) -> str:
        return (
            f"ChainSummary(mean={self.mean:.4f}, "
            f"{self.credible_mass:.0%} CI=[{self.lower:.4f}, {self.upper:.4f}], "
            f"acceptance={self.acceptance_rate:.2f})"
        )


def _post_burn_in(samples: Sequence[SampleRecord], burn_in: int) -> Sequence[SampleRecord]:
    if not samples:
        raise InvalidParameter("No samples to summarise")
    if burn_in < 0 or burn_in >= len(samples):
        raise InvalidParameter(
            f"burn_in must be in [0, {len(samples) - 1}], got {burn_in}"
        )
    return samples[burn_in:]


def rates(samples: Sequence[SampleRecord], burn_in: int = 0) -> np.ndarray:
    return np.array([s.rate for s in _post_burn_in(samples, burn_in)])


def trace(samples: Sequence[SampleRecord]) -> Tuple[np.ndarray, np.ndarray]:
    """(iterations, rates) pairs for a trace plot."""
    iterations = np.array([s.iteration for s in samples], dtype=np.int64)
    values = np.array([s.rate for s in samples], dtype=float)
    return iterations, values


def head(samples: Sequence[SampleRecord], k: int = DEFAULT_HEAD_ROWS) -> List[SampleRecord]:
    """First ``k`` records, for tabular display."""
    if k < 0:
        raise InvalidParameter(f"k must be non-negative, got {k}")
    return list(samples[:k])


def acceptance_rate(samples: Sequence[SampleRecord]) -> float:
    if not samples:
        return 0.0
    return sum(s.accepted for s in samples) / len(samples)


def posterior_density(
    samples: Sequence[SampleRecord],
    burn_in: int = 0,
    method: str = "kde",
    grid_size: int = 200,
    bins: int = 30,
) -> DensityEstimate:
    """
    Estimate the posterior density of the rate.

    Args:
        samples: Chain output
        burn_in: Number of leading samples to drop
        method: "kde" (Gaussian kernel) or "histogram"
        grid_size: Number of KDE evaluation points
        bins: Number of histogram bins

    Returns:
        DensityEstimate
    """
    values = rates(samples, burn_in)
    if method not in ("kde", "histogram"):
        raise InvalidParameter(f"Unknown density method: {method}")

    if method == "kde":
        if np.ptp(values) > 0:
            kde = stats.gaussian_kde(values)
            pad = 0.1 * np.ptp(values)
            grid = np.linspace(max(values.min() - pad, 0.0), values.max() + pad, grid_size)
            return DensityEstimate(grid=grid, density=kde(grid), method="kde")
        warnings.warn("All sampled rates are identical; using a histogram instead of a KDE")

    density, edges = np.histogram(values, bins=bins, density=True)
    centres = 0.5 * (edges[:-1] + edges[1:])
    return DensityEstimate(grid=centres, density=density, method="histogram")


def summarize(
    samples: Sequence[SampleRecord],
    burn_in: int = 0,
    credible_mass: float = 0.95,
) -> ChainSummary:
    """Mean, median, sd and equal-tailed credible interval after burn-in."""
    if not 0 < credible_mass < 1:
        raise InvalidParameter(f"credible_mass must be in (0, 1), got {credible_mass}")
    kept = _post_burn_in(samples, burn_in)
    values = np.array([s.rate for s in kept])
    tail = (1.0 - credible_mass) / 2.0
    lower, upper = np.quantile(values, [tail, 1.0 - tail])
    return ChainSummary(
        n_samples=len(values),
        mean=float(np.mean(values)),
        median=float(np.median(values)),
        sd=float(np.std(values, ddof=1)) if len(values) > 1 else 0.0,
        lower=float(lower),
        upper=float(upper),
        credible_mass=credible_mass,
        acceptance_rate=acceptance_rate(kept),
    )


def samples_to_frame(samples: Sequence[SampleRecord]) -> pd.DataFrame:
    """One row per record, columns matching the SampleRecord fields."""
    return pd.DataFrame(
        {
            "iteration": [s.iteration for s in samples],
            "rate": [s.rate for s in samples],
            "log_likelihood": [s.log_likelihood for s in samples],
            "log_prior": [s.log_prior for s in samples],
            "log_posterior": [s.log_posterior for s in samples],
            "accepted": [s.accepted for s in samples],
            "acceptance_probability": [s.acceptance_probability for s in samples],
        }
    )


def posterior_ancestral_states(
    samples: Sequence[SampleRecord],
    asr_fn: Callable[[float], AncestralStates],
    burn_in: int = 0,
    thin: int = 1,
) -> AncestralStates:
    """
    Average marginal ancestral states over sampled rates.

    Integrates over rate uncertainty instead of conditioning on a single
    point estimate. ``thin`` keeps every thin-th post-burn-in sample.

    Returns:
        AncestralStates whose ``rate`` is the mean of the rates used
    """
    if thin < 1:
        raise InvalidParameter(f"thin must be >= 1, got {thin}")
    kept = list(_post_burn_in(samples, burn_in))[::thin]

    # Repeated rates (rejections) share one oracle call
    cache = {}
    total: Optional[np.ndarray] = None
    first: Optional[AncestralStates] = None
    for record in kept:
        states = cache.get(record.rate)
        if states is None:
            try:
                states = asr_fn(record.rate)
            except PhyloMCMCError:
                raise
            except Exception as e:
                raise OracleFailure(f"ASR failed at rate {record.rate!r}: {e}") from e
            cache[record.rate] = states
        if first is None:
            first = states
            total = np.zeros_like(states.probabilities)
        total += states.probabilities

    return AncestralStates(
        rate=float(np.mean([r.rate for r in kept])),
        node_ids=list(first.node_ids),
        labels=list(first.labels),
        probabilities=total / len(kept),
    )
