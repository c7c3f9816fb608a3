"""Run configuration: specification limits, value range and search parameters."""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass
from typing import Optional

from .errors import InvalidInput


class SpecKind(enum.Enum):
    BILATERAL = "bilateral"
    UNILATERAL_LOWER = "unilateral_lsl"
    UNILATERAL_UPPER = "unilateral_usl"


def _finite(name: str, value: Optional[float]) -> None:
    if value is None or not math.isfinite(value):
        raise InvalidInput(f"{name} must be a finite number.")


@dataclass(frozen=True)
class SpecLimits:
    kind: SpecKind
    lower_limit: Optional[float] = None
    upper_limit: Optional[float] = None

    def __post_init__(self) -> None:
        if not isinstance(self.kind, SpecKind):
            raise InvalidInput(f"Unknown specification kind: {self.kind!r}")
        if self.kind is SpecKind.BILATERAL:
            _finite("Lower limit", self.lower_limit)
            _finite("Upper limit", self.upper_limit)
            if self.lower_limit >= self.upper_limit:
                raise InvalidInput("Lower limit must be smaller than upper limit.")
        elif self.kind is SpecKind.UNILATERAL_LOWER:
            _finite("Lower limit", self.lower_limit)
        elif self.kind is SpecKind.UNILATERAL_UPPER:
            _finite("Upper limit", self.upper_limit)

    @classmethod
    def bilateral(cls, lower_limit: float, upper_limit: float) -> "SpecLimits":
        return cls(SpecKind.BILATERAL, lower_limit, upper_limit)

    @classmethod
    def lower_only(cls, lower_limit: float) -> "SpecLimits":
        return cls(SpecKind.UNILATERAL_LOWER, lower_limit=lower_limit)

    @classmethod
    def upper_only(cls, upper_limit: float) -> "SpecLimits":
        return cls(SpecKind.UNILATERAL_UPPER, upper_limit=upper_limit)


@dataclass(frozen=True)
class RangeConstraint:
    min_value: float
    max_value: float

    def __post_init__(self) -> None:
        _finite("Minimum value", self.min_value)
        _finite("Maximum value", self.max_value)
        if self.min_value >= self.max_value:
            raise InvalidInput("Minimum value must be smaller than maximum value.")

    @property
    def width(self) -> float:
        return self.max_value - self.min_value

    def contains(self, value: float) -> bool:
        return self.min_value <= value <= self.max_value


@dataclass(frozen=True)
class SearchParams:
    """Per-run search settings, read-only for the lifetime of a run.

    ``center_fraction`` places the starting mean inside the value range and
    ``spread_fraction`` sets the starting sigma to half that share of the
    range width.
    """

    target_cpk: float = 1.67
    sample_size: int = 125
    subgroup_size: int = 5
    max_attempts: int = 1000
    tolerance: float = 0.05
    sigma_adjust_factor: float = 0.95
    decimal_precision: int = 3
    restrict_to_range: bool = False
    auto_adjust_sigma: bool = True
    center_fraction: float = 0.5
    spread_fraction: float = 0.25
    report_every: int = 10

    def __post_init__(self) -> None:
        _finite("Target Cpk", self.target_cpk)
        if self.target_cpk <= 0:
            raise InvalidInput("Target Cpk must be positive.")
        for name in ("sample_size", "subgroup_size", "max_attempts", "report_every"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise InvalidInput(f"{name} must be a positive integer.")
        if self.subgroup_size > self.sample_size:
            raise InvalidInput("Subgroup size cannot exceed sample size.")
        _finite("Tolerance", self.tolerance)
        if self.tolerance < 0:
            raise InvalidInput("Tolerance cannot be negative.")
        if not 0.0 < self.sigma_adjust_factor < 1.0:
            raise InvalidInput("Sigma adjustment factor must be between 0 and 1.")
        if (
            isinstance(self.decimal_precision, bool)
            or not isinstance(self.decimal_precision, int)
            or self.decimal_precision < 0
        ):
            raise InvalidInput("Decimal precision must be a non-negative integer.")
        for name in ("center_fraction", "spread_fraction"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise InvalidInput(f"{name} must be within [0, 1].")
