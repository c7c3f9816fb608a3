"""Turn a (mean, sigma, count) request into a rounded sample."""

from __future__ import annotations

import math
from typing import Iterable, Tuple

from .limits import RangeConstraint, SpecKind, SpecLimits
from .variates import NormalVariateGenerator

Sample = Tuple[float, ...]

OVERSAMPLE_FACTOR = 1.5


def round_value(value: float, decimals: int) -> float:
    return round(float(value), decimals)


def round_values(values: Iterable[float], decimals: int) -> Sample:
    return tuple(round_value(value, decimals) for value in values)


def _clamp(value: float, value_range: RangeConstraint) -> float:
    return max(value_range.min_value, min(value_range.max_value, value))


def generate_restricted(
    count: int,
    mean: float,
    sigma: float,
    value_range: RangeConstraint,
    decimals: int,
    variates: NormalVariateGenerator,
) -> Sample:
    """Clamped normal draws; every returned value lies inside ``value_range``.

    Clamping piles the tails up on the range bounds. Any shortfall against
    ``count`` is padded with uniform draws over the range.
    """
    oversample = math.floor(count * OVERSAMPLE_FACTOR)
    values = [_clamp(variates.sample(mean, sigma), value_range) for _ in range(oversample)]

    if len(values) >= count:
        values = values[:count]
    else:
        for _ in range(count - len(values)):
            values.append(variates.uniform_between(value_range.min_value, value_range.max_value))

    # A bound finer than the requested precision must not round out of range.
    return tuple(_clamp(value, value_range) for value in round_values(values, decimals))


def blended_sigma(sigma: float, spec: SpecLimits, target_cpk: float) -> float:
    """Pull sigma halfway toward the spread implied by the target Cpk.

    Only bilateral limits imply a spread; unilateral kinds keep ``sigma``.
    """
    if spec.kind is SpecKind.BILATERAL:
        target_sigma = (spec.upper_limit - spec.lower_limit) / (6 * target_cpk)
        return (sigma + target_sigma) / 2
    if spec.kind in (SpecKind.UNILATERAL_LOWER, SpecKind.UNILATERAL_UPPER):
        return sigma
    raise ValueError(f"Unhandled specification kind: {spec.kind!r}")


def generate_free(
    count: int,
    mean: float,
    sigma: float,
    spec: SpecLimits,
    target_cpk: float,
    decimals: int,
    variates: NormalVariateGenerator,
) -> Sample:
    sigma = blended_sigma(sigma, spec, target_cpk)
    return round_values((variates.sample(mean, sigma) for _ in range(count)), decimals)
