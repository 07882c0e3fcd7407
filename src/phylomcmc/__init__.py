"""
phylomcmc: Metropolis-Hastings estimation of a binary-trait transition rate

A teaching tool pairing a single-parameter MCMC sampler with ancestral
state reconstruction on a phylogenetic tree.
"""

__version__ = "0.1.0"

from phylomcmc.errors import (
    PhyloMCMCError,
    InvalidParameter,
    UnsupportedFamily,
    OracleFailure,
    ChainCancelled,
)
from phylomcmc.config import ChainConfig, DatasetSettings
from phylomcmc.core.trees import TreeStructure
from phylomcmc.core.data import TraitDataset
from phylomcmc.mcmc.priors import make_prior
from phylomcmc.mcmc.sampler import SampleRecord, run
from phylomcmc.mcmc.session import ChainSession

__all__ = [
    "PhyloMCMCError",
    "InvalidParameter",
    "UnsupportedFamily",
    "OracleFailure",
    "ChainCancelled",
    "ChainConfig",
    "DatasetSettings",
    "TreeStructure",
    "TraitDataset",
    "make_prior",
    "SampleRecord",
    "run",
    "ChainSession",
    "__version__",
]
