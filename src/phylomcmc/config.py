"""
User-facing configuration for chains and example datasets.

These are the knobs the teaching front end exposes. ``validate`` enforces
the same bounds a UI would, raising ``InvalidParameter`` instead of
clamping out-of-range values.
"""

import math
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence, Union

from phylomcmc.errors import InvalidParameter

MIN_ITERATIONS = 100
"""Smallest iteration count offered to users."""

MAX_ITERATIONS = 50000
"""Largest iteration count accepted anywhere, including direct ``run`` calls."""

MIN_START_RATE = 0.001
MAX_START_RATE = 9.999

DEFAULT_PROPOSAL_WIDTH = 0.1
DEFAULT_HEAD_ROWS = 25

PriorParams = Union[None, Mapping[str, float], Sequence[float]]


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass(frozen=True)
class ChainConfig:
    """Settings for one chain run."""

    n_iterations: int = 10000
    """Number of MCMC iterations (100 to 50000)."""

    prior_family: str = "exponential"
    """One of "exponential", "uniform", "normal"."""

    prior_params: PriorParams = None
    """Family parameters; None selects the family defaults."""

    initial_rate: float = 0.5
    """Starting value of q (0.001 to 9.999)."""

    proposal_width: float = DEFAULT_PROPOSAL_WIDTH
    """Width of the uniform random-walk proposal."""

    seed: Optional[int] = None
    """Seed for the chain's random source; None draws fresh entropy."""

    def validate(self) -> "ChainConfig":
        """Check user-facing bounds. Returns self for chaining."""
        if not _is_int(self.n_iterations) or not (
            MIN_ITERATIONS <= self.n_iterations <= MAX_ITERATIONS
        ):
            raise InvalidParameter(
                f"n_iterations must be an integer in [{MIN_ITERATIONS}, {MAX_ITERATIONS}], "
                f"got {self.n_iterations!r}"
            )
        if not isinstance(self.initial_rate, (int, float)) or isinstance(self.initial_rate, bool) or not (
            MIN_START_RATE <= self.initial_rate <= MAX_START_RATE
        ):
            raise InvalidParameter(
                f"initial_rate must be in [{MIN_START_RATE}, {MAX_START_RATE}], "
                f"got {self.initial_rate!r}"
            )
        if (
            isinstance(self.proposal_width, bool)
            or not isinstance(self.proposal_width, (int, float))
            or not math.isfinite(self.proposal_width)
            or self.proposal_width < 0
        ):
            raise InvalidParameter(
                f"proposal_width must be finite and non-negative, got {self.proposal_width!r}"
            )
        if self.seed is not None and not _is_int(self.seed):
            raise InvalidParameter(f"seed must be an integer or None, got {self.seed!r}")
        return self


@dataclass(frozen=True)
class DatasetSettings:
    """Settings for the simulated tree and trait."""

    n_tips: int = 40
    """Number of tips on the simulated tree."""

    true_rate: float = 0.3
    """Rate used to simulate the trait history."""

    birth_rate: float = 1.0
    """Speciation rate of the pure-birth tree."""

    seed: int = 1
    """Seed for tree and trait simulation."""

    def validate(self) -> "DatasetSettings":
        if not _is_int(self.n_tips) or self.n_tips < 2:
            raise InvalidParameter(f"n_tips must be an integer >= 2, got {self.n_tips!r}")
        if not math.isfinite(self.true_rate) or self.true_rate <= 0:
            raise InvalidParameter(f"true_rate must be positive, got {self.true_rate!r}")
        if not math.isfinite(self.birth_rate) or self.birth_rate <= 0:
            raise InvalidParameter(f"birth_rate must be positive, got {self.birth_rate!r}")
        if not _is_int(self.seed):
            raise InvalidParameter(f"seed must be an integer, got {self.seed!r}")
        return self
