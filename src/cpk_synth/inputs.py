"""Parse form-style text fields into validated run configuration."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Mapping, Union

from .errors import InvalidInput
from .limits import RangeConstraint, SearchParams, SpecKind, SpecLimits

FieldValue = Union[str, bool, int, float]

DEFAULT_FIELDS: dict[str, FieldValue] = {
    "specType": "bilateral",
    "targetCpk": "1.67",
    "sampleSize": "125",
    "subgroupSize": "5",
    "maxIterations": "1000",
    "adjFactor": "0.95",
    "lsl": "0",
    "usl": "10",
    "minVal": "-5",
    "maxVal": "15",
    "decimals": "3",
    "tolerance": "0.05",
    "sigmaSlider": "25",
    "centerSlider": "50",
    "forceRange": False,
    "autoAdjust": True,
}

_TRUE_WORDS = {"1", "true", "yes", "on"}
_FALSE_WORDS = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class RunConfig:
    spec: SpecLimits
    value_range: RangeConstraint
    params: SearchParams


def parse_number(text: FieldValue) -> float:
    """Parse a decimal number, accepting a comma as the decimal separator."""
    if isinstance(text, bool):
        raise InvalidInput(f"Not a number: {text!r}")
    if isinstance(text, (int, float)):
        value = float(text)
    else:
        cleaned = str(text).strip().replace(",", ".")
        try:
            value = float(cleaned)
        except ValueError:
            raise InvalidInput(f"Not a number: {text!r}") from None
    if not math.isfinite(value):
        raise InvalidInput(f"Not a finite number: {text!r}")
    return value


def parse_integer(text: FieldValue) -> int:
    value = parse_number(text)
    if not value.is_integer():
        raise InvalidInput(f"Not a whole number: {text!r}")
    return int(value)


def parse_flag(text: FieldValue) -> bool:
    if isinstance(text, bool):
        return text
    word = str(text).strip().lower()
    if word in _TRUE_WORDS:
        return True
    if word in _FALSE_WORDS:
        return False
    raise InvalidInput(f"Not a yes/no value: {text!r}")


def parse_spec_kind(text: FieldValue) -> SpecKind:
    try:
        return SpecKind(str(text).strip())
    except ValueError:
        choices = ", ".join(kind.value for kind in SpecKind)
        raise InvalidInput(f"Unknown specification type {text!r}; expected one of {choices}.") from None


def parse_form(fields: Mapping[str, FieldValue]) -> RunConfig:
    """Build a run configuration from form fields, filling gaps with defaults.

    Percent sliders (``sigmaSlider``, ``centerSlider``) become fractions.
    """
    merged = {**DEFAULT_FIELDS, **fields}

    kind = parse_spec_kind(merged["specType"])
    lsl = parse_number(merged["lsl"])
    usl = parse_number(merged["usl"])
    min_value = parse_number(merged["minVal"])
    max_value = parse_number(merged["maxVal"])
    value_range = RangeConstraint(min_value, max_value)

    if kind is SpecKind.BILATERAL:
        spec = SpecLimits(kind, lsl, usl)
    elif kind is SpecKind.UNILATERAL_LOWER:
        spec = SpecLimits(kind, lower_limit=lsl)
    else:
        spec = SpecLimits(kind, upper_limit=usl)

    params = SearchParams(
        target_cpk=parse_number(merged["targetCpk"]),
        sample_size=parse_integer(merged["sampleSize"]),
        subgroup_size=parse_integer(merged["subgroupSize"]),
        max_attempts=parse_integer(merged["maxIterations"]),
        tolerance=parse_number(merged["tolerance"]),
        sigma_adjust_factor=parse_number(merged["adjFactor"]),
        decimal_precision=parse_integer(merged["decimals"]),
        restrict_to_range=parse_flag(merged["forceRange"]),
        auto_adjust_sigma=parse_flag(merged["autoAdjust"]),
        center_fraction=parse_number(merged["centerSlider"]) / 100,
        spread_fraction=parse_number(merged["sigmaSlider"]) / 100,
    )
    return RunConfig(spec=spec, value_range=value_range, params=params)
