"""Process capability estimates for a generated sample."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Optional

import numpy as np
from scipy.special import gammaln
from statsmodels.stats.diagnostic import normal_ad

from .limits import RangeConstraint, SpecKind, SpecLimits

# Moving range of 2 uses d2 = 1.128 for the unbiasing constant.
D2_SPAN_TWO = 1.128

MIN_NORMALITY_COUNT = 8


@dataclass(frozen=True)
class CapabilityEstimate:
    mean: float
    std_overall: float
    std_within: float
    cpk: float
    ppk: float
    cp: Optional[float] = None
    pp: Optional[float] = None


@dataclass(frozen=True)
class SampleSummary:
    count: int
    minimum: float
    maximum: float
    estimate: CapabilityEstimate
    outside_range: int
    ad_stat: Optional[float]
    ad_p_value: Optional[float]


def c4(subgroup_size: int) -> float:
    """Bias correction for the standard deviation of ``subgroup_size`` values."""
    if subgroup_size < 2:
        raise ValueError("c4 is defined for subgroups of at least two values.")
    n = subgroup_size
    return math.sqrt(2.0 / (n - 1)) * math.exp(gammaln(n / 2.0) - gammaln((n - 1) / 2.0))


def _moving_ranges(values: np.ndarray) -> np.ndarray:
    return np.abs(np.diff(values))


def _within_sigma_individuals(values: np.ndarray) -> float:
    if values.size < 2:
        return 0.0
    return float(np.mean(_moving_ranges(values))) / D2_SPAN_TWO


def _within_sigma_subgroups(values: np.ndarray, subgroup_size: int) -> float:
    # Trailing values that do not fill a whole subgroup are dropped.
    groups = values.size // subgroup_size
    if groups == 0:
        raise ValueError("Sample is smaller than one subgroup.")
    matrix = values[: groups * subgroup_size].reshape(groups, subgroup_size)
    s_bar = float(np.mean(np.std(matrix, axis=1, ddof=1)))
    return s_bar / c4(subgroup_size)


def within_sigma(values: np.ndarray, subgroup_size: int) -> float:
    if subgroup_size < 1:
        raise ValueError("Subgroup size must be at least 1.")
    if subgroup_size == 1:
        return _within_sigma_individuals(values)
    return _within_sigma_subgroups(values, subgroup_size)


def overall_sigma(values: np.ndarray) -> float:
    if values.size < 2:
        return 0.0
    return float(np.std(values, ddof=1))


def capability_index(mean: float, sigma: float, spec: SpecLimits) -> float:
    """Cpk-style index for ``sigma``; ``inf`` when there is no spread."""
    if sigma == 0:
        return math.inf
    if spec.kind is SpecKind.BILATERAL:
        return min((spec.upper_limit - mean) / (3 * sigma), (mean - spec.lower_limit) / (3 * sigma))
    if spec.kind is SpecKind.UNILATERAL_LOWER:
        return (mean - spec.lower_limit) / (3 * sigma)
    if spec.kind is SpecKind.UNILATERAL_UPPER:
        return (spec.upper_limit - mean) / (3 * sigma)
    raise ValueError(f"Unhandled specification kind: {spec.kind!r}")


def _potential_index(sigma: float, spec: SpecLimits) -> Optional[float]:
    if spec.kind is not SpecKind.BILATERAL:
        return None
    if sigma == 0:
        return math.inf
    return (spec.upper_limit - spec.lower_limit) / (6 * sigma)


def estimate_capability(sample: Iterable[float], spec: SpecLimits, subgroup_size: int) -> CapabilityEstimate:
    values = np.asarray(list(sample), dtype=float)
    if values.size == 0:
        raise ValueError("Cannot estimate capability of an empty sample.")

    mean = float(np.mean(values))
    std_overall = overall_sigma(values)
    std_within = within_sigma(values, subgroup_size)

    return CapabilityEstimate(
        mean=mean,
        std_overall=std_overall,
        std_within=std_within,
        cpk=capability_index(mean, std_within, spec),
        ppk=capability_index(mean, std_overall, spec),
        cp=_potential_index(std_within, spec),
        pp=_potential_index(std_overall, spec),
    )


def summarize_sample(
    sample: Iterable[float],
    spec: SpecLimits,
    value_range: RangeConstraint,
    subgroup_size: int,
) -> SampleSummary:
    values = np.asarray(list(sample), dtype=float)
    estimate = estimate_capability(values, spec, subgroup_size)

    ad_stat: Optional[float] = None
    ad_p_value: Optional[float] = None
    if values.size >= MIN_NORMALITY_COUNT and estimate.std_overall > 0:
        stat, p_value = normal_ad(values)
        ad_stat, ad_p_value = float(stat), float(p_value)

    outside = int(np.count_nonzero((values < value_range.min_value) | (values > value_range.max_value)))
    return SampleSummary(
        count=int(values.size),
        minimum=float(np.min(values)),
        maximum=float(np.max(values)),
        estimate=estimate,
        outside_range=outside,
        ad_stat=ad_stat,
        ad_p_value=ad_p_value,
    )
