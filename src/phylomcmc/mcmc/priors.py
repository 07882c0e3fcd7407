"""
Priors on the transition rate.

``make_prior`` turns a family name and its parameters into a ``LogPrior``:
a small immutable callable returning the log-density of a candidate rate,
``-inf`` outside the family's support.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Mapping, Tuple, Union

from scipy import stats

from phylomcmc.config import PriorParams
from phylomcmc.errors import InvalidParameter, UnsupportedFamily


class PriorFamily(Enum):
    """Supported prior families."""

    EXPONENTIAL = "exponential"
    UNIFORM = "uniform"
    NORMAL = "normal"

    @classmethod
    def parse(cls, family: Union[str, "PriorFamily"]) -> "PriorFamily":
        if isinstance(family, cls):
            return family
        if isinstance(family, str):
            try:
                return cls(family.strip().lower())
            except ValueError:
                pass
        supported = ", ".join(f.value for f in cls)
        raise UnsupportedFamily(f"Unsupported prior family {family!r} (expected one of: {supported})")


PARAMETER_NAMES: Dict[PriorFamily, Tuple[str, ...]] = {
    PriorFamily.EXPONENTIAL: ("rate",),
    PriorFamily.UNIFORM: ("lower", "upper"),
    PriorFamily.NORMAL: ("mean", "sd"),
}

DEFAULT_PARAMETERS: Dict[PriorFamily, Tuple[float, ...]] = {
    PriorFamily.EXPONENTIAL: (1.0,),
    PriorFamily.UNIFORM: (0.0, 10.0),
    PriorFamily.NORMAL: (1.0, 1.0),
}


@dataclass(frozen=True)
class PriorSpec:
    """
    Family plus validated parameters, fixed for a chain's lifetime.

    Attributes:
        family: Prior family
        params: Parameter values in ``PARAMETER_NAMES[family]`` order
    """
    family: PriorFamily
    params: Tuple[float, ...]

    @classmethod
    def create(cls, family: Union[str, PriorFamily], params: PriorParams = None) -> "PriorSpec":
        fam = PriorFamily.parse(family)
        values = _normalise_params(fam, params)
        _check_params(fam, values)
        return cls(family=fam, params=values)

    def as_dict(self) -> Dict[str, float]:
        return dict(zip(PARAMETER_NAMES[self.family], self.params))

    def describe(self) -> str:
        inner = ", ".join(f"{k}={v:g}" for k, v in self.as_dict().items())
        return f"{self.family.value.capitalize()}({inner})"


def _normalise_params(family: PriorFamily, params: PriorParams) -> Tuple[float, ...]:
    names = PARAMETER_NAMES[family]
    if params is None:
        return DEFAULT_PARAMETERS[family]

    if isinstance(params, Mapping):
        missing = [n for n in names if n not in params]
        extra = [k for k in params if k not in names]
        if missing or extra:
            raise InvalidParameter(
                f"{family.value} prior takes parameters {names}; "
                f"missing={missing}, unexpected={extra}"
            )
        raw = [params[n] for n in names]
    elif isinstance(params, (int, float)) and not isinstance(params, bool):
        raw = [params]
    elif isinstance(params, str):
        raise InvalidParameter(f"Prior parameters must be numbers, got {params!r}")
    else:
        raw = list(params)
        if len(raw) != len(names):
            raise InvalidParameter(
                f"{family.value} prior takes {len(names)} parameter(s) {names}, got {len(raw)}"
            )

    try:
        values = tuple(float(v) for v in raw)
    except (TypeError, ValueError):
        raise InvalidParameter(f"Prior parameters must be numbers, got {raw!r}")
    if not all(math.isfinite(v) for v in values):
        raise InvalidParameter(f"Prior parameters must be finite, got {values}")
    return values


def _check_params(family: PriorFamily, values: Tuple[float, ...]) -> None:
    if family is PriorFamily.EXPONENTIAL and values[0] <= 0:
        raise InvalidParameter(f"Exponential rate must be positive, got {values[0]}")
    if family is PriorFamily.UNIFORM and values[1] <= values[0]:
        raise InvalidParameter(f"Uniform bounds need upper > lower, got {values}")
    if family is PriorFamily.NORMAL and values[1] <= 0:
        raise InvalidParameter(f"Normal sd must be positive, got {values[1]}")


@dataclass(frozen=True)
class LogPrior:
    """Log-density of a ``PriorSpec``; call it with a rate."""

    spec: PriorSpec

    def __call__(self, x: float) -> float:
        family = self.spec.family
        if family is PriorFamily.EXPONENTIAL:
            (lam,) = self.spec.params
            if x > 0:
                return math.log(lam) - lam * x
            return -math.inf
        if family is PriorFamily.UNIFORM:
            lo, hi = self.spec.params
            if lo <= x <= hi:
                return -math.log(hi - lo)
            return -math.inf
        mean, sd = self.spec.params
        return float(stats.norm.logpdf(x, loc=mean, scale=sd))

    def support_contains(self, x: float) -> bool:
        return self(x) > -math.inf

    def __repr__(self) -> str:
        return f"LogPrior({self.spec.describe()})"


def make_prior(family: Union[str, PriorFamily], params: PriorParams = None) -> LogPrior:
    """
    Build the log-density function for a prior family.

    Args:
        family: "exponential", "uniform" or "normal" (case-insensitive),
            or a PriorFamily member
        params: Mapping, sequence or scalar of family parameters
            (exponential: rate; uniform: lower, upper; normal: mean, sd);
            None for the family defaults

    Returns:
        LogPrior callable ``rate -> log-density``

    Raises:
        UnsupportedFamily: Unknown family identifier
        InvalidParameter: Malformed or out-of-domain parameters

    Example:
        >>> prior = make_prior("exponential", {"rate": 50})
        >>> round(prior(0.06), 6)
        0.912023
    """
    return LogPrior(PriorSpec.create(family, params))
