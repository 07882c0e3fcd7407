"""
Random-walk Metropolis-Hastings over a single transition rate.

Each iteration proposes ``q' = q + U(-w/2, w/2)``, evaluates the
unnormalised log-posterior ``log L(q') + log prior(q')`` and accepts with
probability ``min(1, exp(logPost' - logPost))``. The proposal is symmetric,
so no Hastings correction is needed. One ``SampleRecord`` is emitted per
iteration; a rejection repeats the retained state.

The initial state is not part of the output: ``run`` returns exactly
``n_steps`` records with iterations numbered from 1.
"""

import logging
import math
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol, Union

import numpy as np

from phylomcmc.config import MAX_ITERATIONS, MAX_START_RATE, MIN_START_RATE
from phylomcmc.errors import ChainCancelled, InvalidParameter, OracleFailure

logger = logging.getLogger(__name__)

LogDensity = Callable[[float], float]


class RandomSource(Protocol):
    """Source of the two random draws each iteration consumes."""

    def proposal_offset(self, width: float) -> float:
        """Draw from U(-width/2, width/2)."""
        ...

    def uniform(self) -> float:
        """Draw from U(0, 1)."""
        ...


class CancelEvent(Protocol):
    def is_set(self) -> bool:
        ...


class GeneratorRandomSource:
    """RandomSource backed by a ``numpy.random.Generator``."""

    def __init__(self, rng: Optional[np.random.Generator] = None):
        self.rng = rng if rng is not None else np.random.default_rng()

    @classmethod
    def from_seed(cls, seed: Optional[int]) -> "GeneratorRandomSource":
        return cls(np.random.default_rng(seed))

    def proposal_offset(self, width: float) -> float:
        half = 0.5 * width
        return float(self.rng.uniform(-half, half))

    def uniform(self) -> float:
        return float(self.rng.random())


def make_random_source(
    source: Union[None, int, np.random.Generator, RandomSource] = None,
) -> RandomSource:
    """Coerce a seed, Generator or existing source into a RandomSource."""
    if source is None or (isinstance(source, int) and not isinstance(source, bool)):
        return GeneratorRandomSource.from_seed(source)
    if isinstance(source, np.random.Generator):
        return GeneratorRandomSource(source)
    if hasattr(source, "proposal_offset") and hasattr(source, "uniform"):
        return source
    raise InvalidParameter(f"Cannot use {type(source).__name__} as a random source")


@dataclass
class ChainState:
    """Current position of a running chain."""

    rate: float
    log_likelihood: float
    log_prior: float

    @property
    def log_posterior(self) -> float:
        return self.log_likelihood + self.log_prior


@dataclass(frozen=True)
class SampleRecord:
    """
    Snapshot of the chain after one iteration.

    Attributes:
        iteration: 1-based iteration index
        rate: Retained rate after the accept/reject decision
        log_likelihood: Log-likelihood of ``rate``
        log_prior: Log-prior of ``rate``
        accepted: Whether this iteration's proposal was accepted
        acceptance_probability: alpha in [0, 1] for this iteration's proposal
    """
    iteration: int
    rate: float
    log_likelihood: float
    log_prior: float
    accepted: bool
    acceptance_probability: float

    @property
    def log_posterior(self) -> float:
        return self.log_likelihood + self.log_prior


def acceptance_probability(log_post_proposed: float, log_post_current: float) -> float:
    """
    alpha = min(1, exp(proposed - current)), evaluated without overflow.

    A proposal with zero posterior density is never accepted; from a
    zero-density current state, any proposal with positive density is.
    """
    if log_post_proposed == -math.inf:
        return 0.0
    if log_post_current == -math.inf:
        return 1.0
    return math.exp(min(0.0, log_post_proposed - log_post_current))


class MetropolisHastingsSampler:
    """
    Random-walk Metropolis-Hastings sampler for a positive scalar.

    Usage:
        sampler = MetropolisHastingsSampler(prior, dataset.likelihood, 0.1, source)
        state = sampler.initial_state(0.5)
        record = sampler.step(state, iteration=1)
    """

    def __init__(
        self,
        prior: LogDensity,
        likelihood_fn: LogDensity,
        proposal_width: float,
        random_source: RandomSource,
    ):
        self.prior = prior
        self.likelihood_fn = likelihood_fn
        self.proposal_width = proposal_width
        self.random_source = random_source

    def _log_likelihood(self, rate: float) -> float:
        try:
            value = float(self.likelihood_fn(rate))
        except Exception as e:
            raise OracleFailure(f"Likelihood evaluation failed at rate {rate!r}: {e}") from e
        if math.isnan(value) or value == math.inf:
            raise OracleFailure(f"Likelihood returned {value!r} at rate {rate!r}")
        return value

    def evaluate(self, rate: float) -> ChainState:
        """
        Log-likelihood and log-prior at ``rate``.

        Outside the prior's support (or for rate <= 0) the likelihood is not
        consulted and the state carries ``-inf`` posterior density.
        """
        if not math.isfinite(rate) or rate <= 0:
            return ChainState(rate, -math.inf, -math.inf)
        log_prior = float(self.prior(rate))
        if math.isnan(log_prior):
            raise InvalidParameter(f"Prior returned NaN at rate {rate!r}")
        if log_prior == -math.inf:
            return ChainState(rate, -math.inf, -math.inf)
        return ChainState(rate, self._log_likelihood(rate), log_prior)

    def initial_state(self, rate: float) -> ChainState:
        state = self.evaluate(rate)
        if state.log_posterior == -math.inf:
            logger.warning("Initial rate %g has zero posterior density", rate)
        return state

    def step(self, state: ChainState, iteration: int) -> SampleRecord:
        """Advance ``state`` in place by one iteration and record the result."""
        proposed_rate = state.rate + self.random_source.proposal_offset(self.proposal_width)
        proposed = self.evaluate(proposed_rate)
        alpha = acceptance_probability(proposed.log_posterior, state.log_posterior)

        u = self.random_source.uniform()
        accepted = u < alpha
        if accepted:
            state.rate = proposed.rate
            state.log_likelihood = proposed.log_likelihood
            state.log_prior = proposed.log_prior

        return SampleRecord(
            iteration=iteration,
            rate=state.rate,
            log_likelihood=state.log_likelihood,
            log_prior=state.log_prior,
            accepted=accepted,
            acceptance_probability=alpha,
        )


def _validate(initial_rate, n_steps, prior, proposal_width, likelihood_fn) -> None:
    if isinstance(initial_rate, bool) or not isinstance(initial_rate, (int, float)):
        raise InvalidParameter(f"initial_rate must be a number, got {initial_rate!r}")
    if not math.isfinite(initial_rate) or initial_rate <= 0:
        raise InvalidParameter(f"initial_rate must be positive, got {initial_rate!r}")
    if not (MIN_START_RATE <= initial_rate <= MAX_START_RATE):
        raise InvalidParameter(
            f"initial_rate must be in [{MIN_START_RATE}, {MAX_START_RATE}], got {initial_rate!r}"
        )
    if isinstance(n_steps, bool) or not isinstance(n_steps, (int, np.integer)):
        raise InvalidParameter(f"n_steps must be an integer, got {n_steps!r}")
    if not (1 <= n_steps <= MAX_ITERATIONS):
        raise InvalidParameter(f"n_steps must be in [1, {MAX_ITERATIONS}], got {n_steps}")
    if isinstance(proposal_width, bool) or not isinstance(proposal_width, (int, float)):
        raise InvalidParameter(f"proposal_width must be a number, got {proposal_width!r}")
    if not math.isfinite(proposal_width) or proposal_width < 0:
        raise InvalidParameter(f"proposal_width must be finite and >= 0, got {proposal_width!r}")
    if not callable(prior):
        raise InvalidParameter("prior must be callable")
    if not callable(likelihood_fn):
        raise InvalidParameter("likelihood_fn must be callable")


def run(
    initial_rate: float,
    n_steps: int,
    prior: LogDensity,
    proposal_width: float,
    likelihood_fn: LogDensity,
    random_source: Union[None, int, np.random.Generator, RandomSource] = None,
    *,
    cancel_event: Optional[CancelEvent] = None,
) -> List[SampleRecord]:
    """
    Run a Metropolis-Hastings chain over the transition rate.

    Args:
        initial_rate: Starting rate, within [0.001, 9.999]
        n_steps: Number of iterations, 1 to 50000
        prior: Log-prior density, e.g. from ``make_prior``
        proposal_width: Width w of the U(-w/2, w/2) proposal; 0 freezes the chain
        likelihood_fn: Log-likelihood oracle
        random_source: Seed, numpy Generator or RandomSource
        cancel_event: Optional object with ``is_set()``; checked before every
            iteration

    Returns:
        ``n_steps`` SampleRecords in iteration order (initial state excluded)

    Raises:
        InvalidParameter: Invalid inputs; raised before any iteration runs
        OracleFailure: The likelihood function raised or returned NaN/+inf
        ChainCancelled: ``cancel_event`` was set; partial output is discarded
    """
    _validate(initial_rate, n_steps, prior, proposal_width, likelihood_fn)
    source = make_random_source(random_source)
    sampler = MetropolisHastingsSampler(prior, likelihood_fn, float(proposal_width), source)

    logger.debug(
        "Starting chain: q0=%g, n_steps=%d, width=%g, prior=%r",
        initial_rate, n_steps, proposal_width, prior,
    )
    state = sampler.initial_state(float(initial_rate))

    samples: List[SampleRecord] = []
    n_accepted = 0
    for iteration in range(1, int(n_steps) + 1):
        if cancel_event is not None and cancel_event.is_set():
            logger.debug("Chain cancelled at iteration %d", iteration)
            raise ChainCancelled(f"Chain cancelled before iteration {iteration}")
        record = sampler.step(state, iteration)
        n_accepted += record.accepted
        samples.append(record)

    logger.info(
        "Chain finished: %d iterations, acceptance rate %.3f, final q=%g",
        n_steps, n_accepted / n_steps, state.rate,
    )
    return samples
