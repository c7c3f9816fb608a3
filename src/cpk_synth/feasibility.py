"""Pre-check whether a target Cpk fits inside the allowed value range."""

from __future__ import annotations

from .limits import RangeConstraint, SpecKind, SpecLimits

# Cpk units added to both bounds to tolerate rounding at the range edges.
ACHIEVABILITY_SLACK = 0.1


def min_achievable_cpk(spec: SpecLimits, value_range: RangeConstraint) -> float:
    range_width = value_range.width
    if spec.kind is SpecKind.BILATERAL:
        return (spec.upper_limit - spec.lower_limit) / (6 * range_width)
    if spec.kind in (SpecKind.UNILATERAL_LOWER, SpecKind.UNILATERAL_UPPER):
        # Collapses to 1/6 whatever the limit; kept for compatibility, it is not a tight bound.
        return range_width / (6 * range_width)
    raise ValueError(f"Unhandled specification kind: {spec.kind!r}")


def is_achievable(target_cpk: float, spec: SpecLimits, value_range: RangeConstraint) -> bool:
    return target_cpk <= min_achievable_cpk(spec, value_range) + ACHIEVABILITY_SLACK
