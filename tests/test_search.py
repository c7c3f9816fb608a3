"""
Tests for the feedback-controlled Cpk search.

Runs use seeded variate sources so every scenario is reproducible.
"""

import asyncio
import math
import threading
import time

import pytest

from cpk_synth import search
from cpk_synth.capability import estimate_capability
from cpk_synth.errors import NoSampleProduced, TargetUnreachable
from cpk_synth.limits import RangeConstraint, SearchParams, SpecLimits
from cpk_synth.search import (
    CancellationToken,
    SearchController,
    SearchOutcome,
    SearchState,
)
from cpk_synth.variates import NormalVariateGenerator


class ExplodingVariates(NormalVariateGenerator):
    def sample(self, mean=0.0, sigma=1.0):
        raise AssertionError("no variates may be drawn")


BILATERAL = SpecLimits.bilateral(0.0, 10.0)
WIDE_RANGE = RangeConstraint(-5.0, 15.0)


def test_unreachable_target_is_rejected_before_sampling():
    finished = []
    controller = SearchController(
        SpecLimits.lower_only(0.0),
        WIDE_RANGE,
        SearchParams(target_cpk=5.0, restrict_to_range=True),
        variates=ExplodingVariates(seed=0),
        on_finish=finished.append,
    )

    result = controller.run()

    assert result.outcome is SearchOutcome.REJECTED
    assert result.sample is None
    assert result.attempts == 0
    assert isinstance(result.error, TargetUnreachable)
    assert result.error.range_width == 20.0
    assert "-5" in result.message and "15" in result.message
    assert controller.state is None
    assert finished == [result]
    with pytest.raises(TargetUnreachable):
        result.raise_for_outcome()


def test_default_bilateral_scenario_converges_or_reports_closest():
    params = SearchParams(target_cpk=1.67, sample_size=125, subgroup_size=5, tolerance=0.05, max_attempts=1000)
    result = SearchController(BILATERAL, WIDE_RANGE, params, seed=7).run()

    assert result.outcome in (SearchOutcome.CONVERGED, SearchOutcome.EXHAUSTED)
    assert len(result.sample) == 125
    estimate = estimate_capability(result.sample, BILATERAL, 5)
    assert result.estimate == estimate
    assert abs(estimate.cpk - 1.67) == pytest.approx(result.best_difference)
    if result.outcome is SearchOutcome.CONVERGED:
        assert 1.62 <= estimate.cpk <= 1.72
        assert result.attempts <= 1000


def test_unilateral_free_run_converges():
    params = SearchParams(target_cpk=1.33, sample_size=100, subgroup_size=4, max_attempts=1000)
    result = SearchController(SpecLimits.lower_only(0.0), RangeConstraint(0.0, 20.0), params, seed=3).run()

    assert result.outcome is SearchOutcome.CONVERGED
    assert abs(result.estimate.cpk - 1.33) <= params.tolerance


def test_restricted_runs_keep_every_sample_in_range(monkeypatch):
    generated = []
    original = search.generate_restricted

    def recording_generator(*args, **kwargs):
        sample = original(*args, **kwargs)
        generated.append(sample)
        return sample

    monkeypatch.setattr(search, "generate_restricted", recording_generator)
    value_range = RangeConstraint(-1.0, 11.0)
    params = SearchParams(target_cpk=0.2, sample_size=40, max_attempts=60, tolerance=0.0, restrict_to_range=True)

    result = SearchController(BILATERAL, value_range, params, seed=5).run()

    assert result.outcome is SearchOutcome.EXHAUSTED
    assert len(generated) == 60
    for sample in generated:
        assert len(sample) == 40
        assert all(value_range.contains(value) for value in sample)


def test_best_difference_never_increases():
    reports = []
    params = SearchParams(target_cpk=1.0, sample_size=30, max_attempts=80, tolerance=0.0, report_every=1)
    SearchController(BILATERAL, WIDE_RANGE, params, seed=21, on_progress=reports.append).run()

    differences = [report.best_difference for report in reports]
    assert len(differences) == 80
    assert all(later <= earlier for earlier, later in zip(differences, differences[1:]))


def test_result_is_best_candidate_not_last(monkeypatch):
    generated = []
    original = search.generate_free

    def recording_generator(*args, **kwargs):
        sample = original(*args, **kwargs)
        generated.append(sample)
        return sample

    monkeypatch.setattr(search, "generate_free", recording_generator)
    params = SearchParams(
        target_cpk=1.0, sample_size=25, max_attempts=40, tolerance=0.0, auto_adjust_sigma=False
    )
    result = SearchController(BILATERAL, WIDE_RANGE, params, seed=13).run()

    differences = [abs(estimate_capability(s, BILATERAL, 5).cpk - 1.0) for s in generated]
    best_index = differences.index(min(differences))
    assert result.sample == generated[best_index]
    assert result.best_difference == pytest.approx(differences[best_index])


def test_exhausted_run_reports_attempt_budget():
    params = SearchParams(target_cpk=1.0, sample_size=20, max_attempts=5, tolerance=0.0)
    result = SearchController(BILATERAL, WIDE_RANGE, params, seed=1).run()

    assert result.outcome is SearchOutcome.EXHAUSTED
    assert result.attempts == 5
    assert "5 attempts" in result.message


def test_cancel_before_start_returns_without_sample():
    token = CancellationToken()
    token.cancel()
    controller = SearchController(
        BILATERAL,
        WIDE_RANGE,
        SearchParams(),
        variates=ExplodingVariates(seed=0),
        cancel_token=token,
    )

    result = controller.run()

    assert result.outcome is SearchOutcome.CANCELLED
    assert result.sample is None
    assert result.attempts == 0
    assert controller.state.cancelled


def test_cancel_is_observed_at_next_attempt():
    token = CancellationToken()
    params = SearchParams(target_cpk=1.0, sample_size=20, max_attempts=100, tolerance=0.0)
    controller = SearchController(
        BILATERAL,
        WIDE_RANGE,
        params,
        seed=2,
        cancel_token=token,
        on_progress=lambda report: token.cancel(),
    )

    result = controller.run()

    assert result.outcome is SearchOutcome.CANCELLED
    assert result.attempts == 1
    assert len(result.sample) == 20


def test_cancel_from_another_thread():
    token = CancellationToken()
    params = SearchParams(target_cpk=1.0, sample_size=20, max_attempts=10**7, tolerance=0.0)
    controller = SearchController(BILATERAL, WIDE_RANGE, params, seed=4, cancel_token=token)
    results = []

    worker = threading.Thread(target=lambda: results.append(controller.run()))
    worker.start()
    time.sleep(0.05)
    token.cancel()
    worker.join(timeout=10)

    assert not worker.is_alive()
    assert results[0].outcome is SearchOutcome.CANCELLED
    assert results[0].sample is not None


def test_pause_hook_runs_at_reporting_cadence():
    pauses = []
    params = SearchParams(target_cpk=1.0, sample_size=20, max_attempts=25, tolerance=0.0)
    SearchController(BILATERAL, WIDE_RANGE, params, seed=6, pause=lambda: pauses.append(1)).run()

    # Attempts 0, 10 and 20 are reporting points.
    assert len(pauses) == 3


def test_async_run_matches_sync_run():
    params = SearchParams(target_cpk=1.2, sample_size=50, max_attempts=200)
    sync_result = SearchController(BILATERAL, WIDE_RANGE, params, seed=10).run()
    async_result = asyncio.run(SearchController(BILATERAL, WIDE_RANGE, params, seed=10).run_async())

    assert async_result.outcome is sync_result.outcome
    assert async_result.sample == sync_result.sample


def test_missing_candidate_is_fatal(monkeypatch):
    monkeypatch.setattr(SearchState, "record", lambda self, sample, cpk, difference: False)
    params = SearchParams(target_cpk=1.0, sample_size=20, max_attempts=3, tolerance=0.0)

    with pytest.raises(NoSampleProduced):
        SearchController(BILATERAL, WIDE_RANGE, params, seed=1).run()


def test_initial_state_follows_center_and_spread():
    params = SearchParams(center_fraction=0.25, spread_fraction=0.4)
    controller = SearchController(BILATERAL, WIDE_RANGE, params, seed=1)
    state = controller._initial_state()

    assert state.current_mean == pytest.approx(0.0)
    assert state.current_sigma == pytest.approx(4.0)
    assert state.best_difference == math.inf


def _adjusted(params, sigma, cpk, value_range=WIDE_RANGE):
    controller = SearchController(BILATERAL, value_range, params, seed=1)
    state = SearchState(current_mean=5.0, current_sigma=sigma)
    controller._adjust_sigma(state, cpk)
    return state.current_sigma


def test_sigma_shrinks_when_cpk_is_too_low():
    assert _adjusted(SearchParams(target_cpk=1.5), 2.0, 1.0) == pytest.approx(1.9)


def test_sigma_grows_when_cpk_is_too_high():
    assert _adjusted(SearchParams(target_cpk=1.5), 2.0, 2.0) == pytest.approx(2.1)


def test_restricted_sigma_is_capped_at_sixth_of_range():
    params = SearchParams(target_cpk=0.1, restrict_to_range=True)
    assert _adjusted(params, 10.0, 1.0) == pytest.approx(20.0 / 6)


def test_sigma_is_floored_at_one_percent_of_range():
    assert _adjusted(SearchParams(target_cpk=1.5), 0.01, 1.0) == pytest.approx(0.2)
