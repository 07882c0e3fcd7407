"""Metropolis-Hastings sampling of the transition rate."""

from phylomcmc.mcmc.priors import LogPrior, PriorFamily, PriorSpec, make_prior
from phylomcmc.mcmc.sampler import (
    ChainState,
    GeneratorRandomSource,
    MetropolisHastingsSampler,
    RandomSource,
    SampleRecord,
    acceptance_probability,
    make_random_source,
    run,
)
from phylomcmc.mcmc.summary import (
    ChainSummary,
    DensityEstimate,
    acceptance_rate,
    head,
    posterior_ancestral_states,
    posterior_density,
    samples_to_frame,
    summarize,
    trace,
)
from phylomcmc.mcmc.session import ChainRun, ChainSession

__all__ = [
    "LogPrior",
    "PriorFamily",
    "PriorSpec",
    "make_prior",
    "ChainState",
    "GeneratorRandomSource",
    "MetropolisHastingsSampler",
    "RandomSource",
    "SampleRecord",
    "acceptance_probability",
    "make_random_source",
    "run",
    "ChainSummary",
    "DensityEstimate",
    "acceptance_rate",
    "head",
    "posterior_ancestral_states",
    "posterior_density",
    "samples_to_frame",
    "summarize",
    "trace",
    "ChainRun",
    "ChainSession",
]
