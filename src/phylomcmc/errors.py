"""Exception types raised by phylomcmc."""


class PhyloMCMCError(Exception):
    """Base class for all phylomcmc errors."""


class InvalidParameter(PhyloMCMCError, ValueError):
    """A rate, iteration count, width or prior parameter is out of its domain."""


class UnsupportedFamily(PhyloMCMCError, ValueError):
    """Unknown prior family identifier."""


class OracleFailure(PhyloMCMCError, RuntimeError):
    """
    The likelihood or ASR oracle raised or returned an unusable value.

    The sampler never retries; the original exception (if any) is
    available as ``__cause__``.
    """


class ChainCancelled(PhyloMCMCError):
    """A running chain was abandoned via its cancel event."""
