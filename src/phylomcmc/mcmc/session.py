"""
Explicit recomputation driver for interactive front ends.

A ``ChainSession`` holds one dataset and the most recent ``ChainRun``.
Every configuration change goes through ``run``/``update``, which discards
the previous samples and starts a fresh chain; nothing is resumed.
"""

import dataclasses
import logging
import threading
from dataclasses import dataclass
from typing import Optional

from phylomcmc.config import DEFAULT_HEAD_ROWS, ChainConfig
from phylomcmc.core.ancestral import AncestralStates
from phylomcmc.core.data import TraitDataset
from phylomcmc.errors import InvalidParameter
from . import sampler
from . import summary as chain_summary
from .priors import PriorSpec, make_prior

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class ChainRun:
    """A finished chain and the configuration that produced it."""

    config: ChainConfig
    prior: PriorSpec
    samples: list

    def summary(self, burn_in: int = 0) -> chain_summary.ChainSummary:
        return chain_summary.summarize(self.samples, burn_in=burn_in)

    def head(self, k: int = DEFAULT_HEAD_ROWS) -> list:
        return chain_summary.head(self.samples, k)


class ChainSession:
    """
    Re-runs the sampler whenever the configuration changes.

    Usage:
        session = ChainSession(TraitDataset.simulate())
        session.run(ChainConfig(n_iterations=5000, seed=1))
        session.update(prior_family="uniform")   # fresh chain
    """

    def __init__(self, dataset: TraitDataset, config: Optional[ChainConfig] = None):
        self.dataset = dataset
        self.config = (config or ChainConfig()).validate()
        self._result: Optional[ChainRun] = None
        self._cancel: Optional[threading.Event] = None
        self._lock = threading.Lock()

    @property
    def result(self) -> Optional[ChainRun]:
        """Most recent completed run, or None."""
        return self._result

    def run(self, config: Optional[ChainConfig] = None) -> ChainRun:
        """
        Start a fresh chain, replacing any previous result.

        Raises:
            InvalidParameter: Config out of bounds (nothing is run)
            ChainCancelled: ``cancel`` was called while this chain ran
        """
        config = (config or self.config).validate()
        prior_spec = PriorSpec.create(config.prior_family, config.prior_params)
        cancel = threading.Event()
        with self._lock:
            if self._cancel is not None:
                self._cancel.set()
            self._cancel = cancel
            self._result = None
            self.config = config

        logger.debug("Session run with %r", config)
        samples = sampler.run(
            initial_rate=config.initial_rate,
            n_steps=config.n_iterations,
            prior=make_prior(prior_spec.family, prior_spec.params),
            proposal_width=config.proposal_width,
            likelihood_fn=self.dataset.likelihood,
            random_source=config.seed,
            cancel_event=cancel,
        )

        chain_run = ChainRun(config=config, prior=prior_spec, samples=samples)
        with self._lock:
            if self._cancel is cancel:
                self._result = chain_run
                self._cancel = None
        return chain_run

    def update(self, **changes) -> ChainRun:
        """Apply configuration changes and re-run from scratch."""
        try:
            config = dataclasses.replace(self.config, **changes)
        except TypeError as e:
            raise InvalidParameter(str(e)) from e
        if "prior_family" in changes and "prior_params" not in changes:
            # Parameters of the old family do not carry over
            config = dataclasses.replace(config, prior_params=None)
        return self.run(config)

    def cancel(self) -> None:
        """Abandon the in-flight chain, if any."""
        with self._lock:
            if self._cancel is not None:
                self._cancel.set()

    def ancestral_states(self, burn_in: int = 0, thin: int = 10) -> AncestralStates:
        """Posterior-averaged marginal ASR for the latest run."""
        if self._result is None:
            raise InvalidParameter("No completed run to reconstruct ancestral states from")
        return chain_summary.posterior_ancestral_states(
            self._result.samples,
            self.dataset.ancestral_oracle,
            burn_in=burn_in,
            thin=thin,
        )
