"""Generate numeric samples whose process capability (Cpk) matches a target."""

from .capability import CapabilityEstimate, SampleSummary, estimate_capability, summarize_sample
from .errors import CpkSynthError, InvalidInput, NoSampleProduced, TargetUnreachable
from .feasibility import is_achievable
from .generators import generate_free, generate_restricted
from .inputs import RunConfig, parse_form
from .limits import RangeConstraint, SearchParams, SpecKind, SpecLimits
from .search import (
    CancellationToken,
    ProgressReport,
    SearchController,
    SearchOutcome,
    SearchResult,
    SearchState,
)
from .variates import NormalVariateGenerator

__version__ = "0.1.0"
__all__ = [
    "CancellationToken",
    "CapabilityEstimate",
    "CpkSynthError",
    "InvalidInput",
    "NoSampleProduced",
    "NormalVariateGenerator",
    "ProgressReport",
    "RangeConstraint",
    "RunConfig",
    "SampleSummary",
    "SearchController",
    "SearchOutcome",
    "SearchParams",
    "SearchResult",
    "SearchState",
    "SpecKind",
    "SpecLimits",
    "TargetUnreachable",
    "estimate_capability",
    "generate_free",
    "generate_restricted",
    "is_achievable",
    "parse_form",
    "summarize_sample",
]
