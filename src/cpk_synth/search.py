"""Feedback-controlled search for a sample that hits a target Cpk.

One run alternates generate, estimate and adjust steps until the estimate is
within tolerance of the target, the attempt budget runs out, or the caller
cancels. The best candidate by distance to the target is kept throughout and
is what the run returns, which is not necessarily the last sample drawn.

The loop yields control every ``report_every`` attempts. ``run`` calls a
blocking ``pause`` hook there and ``run_async`` awaits ``asyncio.sleep(0)``,
so cancellation from another thread or task is seen within one attempt.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Generator, Optional

from .capability import CapabilityEstimate, estimate_capability
from .errors import NoSampleProduced, TargetUnreachable
from .feasibility import is_achievable
from .generators import Sample, generate_free, generate_restricted
from .limits import RangeConstraint, SearchParams, SpecLimits
from .variates import NormalVariateGenerator

logger = logging.getLogger(__name__)

# Sigma never drops below this share of the range width.
SIGMA_FLOOR_FRACTION = 0.01


class SearchOutcome(enum.Enum):
    CONVERGED = "converged"
    CANCELLED = "cancelled"
    EXHAUSTED = "exhausted"
    REJECTED = "rejected"


class CancellationToken:
    """Flag a caller sets to stop a running search at its next attempt."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class SearchState:
    current_mean: float
    current_sigma: float
    attempt_index: int = 0
    attempts: int = 0
    best_sample: Optional[Sample] = None
    best_cpk: Optional[float] = None
    best_difference: float = math.inf
    target_reached: bool = False
    cancelled: bool = False

    def record(self, sample: Sample, cpk: float, difference: float) -> bool:
        if self.best_sample is not None and not difference < self.best_difference:
            return False
        self.best_sample = tuple(sample)
        self.best_cpk = cpk
        self.best_difference = difference
        return True


@dataclass(frozen=True)
class ProgressReport:
    attempt: int
    max_attempts: int
    current_cpk: float
    best_cpk: Optional[float]
    best_difference: float
    message: str

    @property
    def fraction_done(self) -> float:
        return (self.attempt + 1) / self.max_attempts


@dataclass(frozen=True)
class SearchResult:
    outcome: SearchOutcome
    target_cpk: float
    restricted: bool
    attempts: int
    message: str
    sample: Optional[Sample] = None
    estimate: Optional[CapabilityEstimate] = None
    best_difference: float = math.inf
    final_mean: Optional[float] = None
    final_sigma: Optional[float] = None
    error: Optional[TargetUnreachable] = None

    def raise_for_outcome(self) -> None:
        if self.error is not None:
            raise self.error


def _mode_label(restricted: bool) -> str:
    return "Restricted mode" if restricted else "Free mode"


def _format_cpk(value: Optional[float]) -> str:
    if value is None:
        return "n/a"
    return f"{value:.3f}"


class SearchController:
    def __init__(
        self,
        spec: SpecLimits,
        value_range: RangeConstraint,
        params: SearchParams,
        *,
        variates: Optional[NormalVariateGenerator] = None,
        seed: Optional[int] = None,
        cancel_token: Optional[CancellationToken] = None,
        on_progress: Optional[Callable[[ProgressReport], None]] = None,
        on_finish: Optional[Callable[[SearchResult], None]] = None,
        pause: Optional[Callable[[], None]] = None,
    ) -> None:
        self.spec = spec
        self.value_range = value_range
        self.params = params
        self.variates = variates if variates is not None else NormalVariateGenerator(seed=seed)
        self.cancel_token = cancel_token if cancel_token is not None else CancellationToken()
        self._on_progress = on_progress
        self._on_finish = on_finish
        self._pause = pause if pause is not None else (lambda: time.sleep(0))
        self.state: Optional[SearchState] = None

    # -----------------
    # Public entrypoints
    # -----------------

    def run(self) -> SearchResult:
        steps = self._steps()
        while True:
            try:
                next(steps)
            except StopIteration as stop:
                return stop.value
            self._pause()

    async def run_async(self) -> SearchResult:
        steps = self._steps()
        while True:
            try:
                next(steps)
            except StopIteration as stop:
                return stop.value
            await asyncio.sleep(0)

    # -----------------
    # Core loop
    # -----------------

    def _steps(self) -> Generator[int, None, SearchResult]:
        params = self.params
        restricted = params.restrict_to_range
        if restricted and not is_achievable(params.target_cpk, self.spec, self.value_range):
            error = TargetUnreachable(params.target_cpk, self.value_range.min_value, self.value_range.max_value)
            logger.warning("Search rejected: %s", error)
            return self._finish(SearchOutcome.REJECTED, str(error), error=error)

        state = self._initial_state()
        self.state = state
        logger.info(
            "Searching %d values for Cpk %.3f (%s, %d attempts max)",
            params.sample_size,
            params.target_cpk,
            _mode_label(restricted).lower(),
            params.max_attempts,
        )

        for attempt in range(params.max_attempts):
            if self.cancel_token.cancelled:
                state.cancelled = True
                break

            state.attempt_index = attempt
            sample = self._generate(state)
            cpk = estimate_capability(sample, self.spec, params.subgroup_size).cpk
            difference = abs(cpk - params.target_cpk)
            state.attempts += 1
            state.record(sample, cpk, difference)

            if difference <= params.tolerance:
                state.target_reached = True
                break

            if params.auto_adjust_sigma:
                self._adjust_sigma(state, cpk)

            if attempt % params.report_every == 0:
                self._report(state, cpk)
                yield attempt

        if state.target_reached:
            outcome = SearchOutcome.CONVERGED
        elif state.cancelled:
            outcome = SearchOutcome.CANCELLED
        else:
            outcome = SearchOutcome.EXHAUSTED

        if state.best_sample is None and outcome is not SearchOutcome.CANCELLED:
            raise NoSampleProduced(f"Search ended {outcome.value} without any candidate sample.")
        return self._finish(outcome, self._terminal_message(outcome, state), state=state)

    def _initial_state(self) -> SearchState:
        width = self.value_range.width
        return SearchState(
            current_mean=self.value_range.min_value + width * self.params.center_fraction,
            current_sigma=width * self.params.spread_fraction * 0.5,
        )

    def _generate(self, state: SearchState) -> Sample:
        params = self.params
        if params.restrict_to_range:
            return generate_restricted(
                params.sample_size,
                state.current_mean,
                state.current_sigma,
                self.value_range,
                params.decimal_precision,
                self.variates,
            )
        return generate_free(
            params.sample_size,
            state.current_mean,
            state.current_sigma,
            self.spec,
            params.target_cpk,
            params.decimal_precision,
            self.variates,
        )

    def _adjust_sigma(self, state: SearchState, cpk: float) -> None:
        factor = self.params.sigma_adjust_factor
        if cpk < self.params.target_cpk:
            state.current_sigma *= factor
        else:
            state.current_sigma *= 2 - factor

        width = self.value_range.width
        if self.params.restrict_to_range:
            state.current_sigma = min(state.current_sigma, width / 6)
        state.current_sigma = max(state.current_sigma, width * SIGMA_FLOOR_FRACTION)

    # -----------------
    # Reporting
    # -----------------

    def _report(self, state: SearchState, cpk: float) -> None:
        params = self.params
        message = "\n".join(
            [
                _mode_label(params.restrict_to_range),
                f"Attempt {state.attempt_index + 1}/{params.max_attempts}",
                f"Current Cpk: {_format_cpk(cpk)} (Target: {params.target_cpk:g})",
                f"Best Cpk: {_format_cpk(state.best_cpk)}, Diff: {state.best_difference:.3f}",
            ]
        )
        logger.debug(message.replace("\n", " | "))
        if self._on_progress is not None:
            self._on_progress(
                ProgressReport(
                    attempt=state.attempt_index,
                    max_attempts=params.max_attempts,
                    current_cpk=cpk,
                    best_cpk=state.best_cpk,
                    best_difference=state.best_difference,
                    message=message,
                )
            )

    def _terminal_message(self, outcome: SearchOutcome, state: SearchState) -> str:
        target = self.params.target_cpk
        if outcome is SearchOutcome.CONVERGED:
            return (
                f"Target achieved after {state.attempts} attempts: "
                f"Cpk {_format_cpk(state.best_cpk)} (Target: {target:g})"
            )
        if outcome is SearchOutcome.CANCELLED:
            return f"Stopped by user; best Cpk so far {_format_cpk(state.best_cpk)} (Target: {target:g})"
        return (
            f"Target not reached in {self.params.max_attempts} attempts; best Cpk "
            f"{_format_cpk(state.best_cpk)} (Target: {target:g}, Diff: {state.best_difference:.3f})"
        )

    def _finish(
        self,
        outcome: SearchOutcome,
        message: str,
        *,
        state: Optional[SearchState] = None,
        error: Optional[TargetUnreachable] = None,
    ) -> SearchResult:
        params = self.params
        sample = state.best_sample if state is not None else None
        estimate = None
        if sample is not None:
            estimate = estimate_capability(sample, self.spec, params.subgroup_size)

        result = SearchResult(
            outcome=outcome,
            target_cpk=params.target_cpk,
            restricted=params.restrict_to_range,
            attempts=0 if state is None else state.attempts,
            message=message,
            sample=sample,
            estimate=estimate,
            best_difference=math.inf if state is None else state.best_difference,
            final_mean=None if state is None else state.current_mean,
            final_sigma=None if state is None else state.current_sigma,
            error=error,
        )
        logger.info("Search %s: %s", outcome.value, message)
        if self._on_finish is not None:
            self._on_finish(result)
        return result
