"""Tests for repetition counting, form-score aggregation and feedback.

Covers:
  - down → up edge counting and non-counting transitions
  - Over-counting on an oscillating phase stream (known sensitivity)
  - Rolling form history capacity and average
  - Feedback bands and the 2 s throttle
"""

import pytest

from physio_track.pipelines.feedback import (
    FeedbackPolicy,
    FormScoreAggregator,
    feedback_for_score,
)
from physio_track.pipelines.rep_tracker import RepPhaseTracker
from physio_track.pipelines.state import RepPhase

N, D, U = RepPhase.NEUTRAL, RepPhase.DOWN, RepPhase.UP


def _run(phases):
    tracker = RepPhaseTracker()
    edges = [tracker.update(p) for p in phases]
    return tracker, edges


# ============================================================================
# Test: Rep/Phase Tracker
# ============================================================================

class TestRepPhaseTracker:

    def test_initial_state(self):
        tracker = RepPhaseTracker()
        assert tracker.current_phase == RepPhase.NEUTRAL
        assert tracker.rep_count == 0

    @pytest.mark.parametrize("phases, expected", [
        ([N, D, U], 1),
        ([D, D, U, U], 1),
        ([D, U, D, U], 2),
        ([N, D, N, U], 0),
        ([U, D, D, N], 0),
        ([N, N, N], 0),
    ])
    def test_rep_counts(self, phases, expected):
        tracker, _ = _run(phases)
        assert tracker.rep_count == expected

    def test_update_reports_completed_rep(self):
        _, edges = _run([N, D, U, U, D, U])
        assert edges == [False, False, True, False, False, True]

    def test_phase_follows_classification(self):
        tracker, _ = _run([D, U, N])
        assert tracker.current_phase == RepPhase.NEUTRAL

    def test_accepts_string_phase(self):
        tracker, _ = _run(["down", "up"])
        assert tracker.rep_count == 1

    def test_jittery_stream_counts_every_edge(self):
        """A classifier flickering between down and up over-counts; this is preserved."""
        tracker, _ = _run([D, U] * 5)
        assert tracker.rep_count == 5

    def test_reset(self):
        tracker, _ = _run([D, U, D])
        tracker.reset()
        assert tracker.rep_count == 0
        assert tracker.current_phase == RepPhase.NEUTRAL


# ============================================================================
# Test: Form-Score Aggregator
# ============================================================================

class TestFormScoreAggregator:

    def test_empty_average_is_zero(self):
        agg = FormScoreAggregator()
        assert agg.average_score == 0.0
        assert agg.current_score == 0.0

    def test_current_and_average(self):
        agg = FormScoreAggregator()
        for s in (50.0, 70.0, 90.0):
            agg.add(s)
        assert agg.current_score == 90.0
        assert agg.average_score == pytest.approx(70.0)

    def test_capacity_after_150_pushes(self):
        agg = FormScoreAggregator(capacity=100)
        for i in range(150):
            agg.add(float(i))
        assert len(agg) == 100
        assert agg.history[0] == 50.0
        # mean of 50..149
        assert agg.average_score == pytest.approx(99.5)

    def test_reset(self):
        agg = FormScoreAggregator()
        agg.add(80.0)
        agg.reset()
        assert len(agg) == 0
        assert agg.current_score == 0.0


# ============================================================================
# Test: Feedback Policy
# ============================================================================

class FakeClock:
    def __init__(self, t: float = 100.0):
        self.t = t

    def __call__(self) -> float:
        return self.t


class TestFeedbackBands:

    @pytest.mark.parametrize("score, severity, fragment", [
        (95.0, "success", "Excellent"),
        (80.0, "success", "Excellent"),
        (79.9, "success", "Good form"),
        (60.0, "success", "Good form"),
        (45.0, "warning", "needs improvement"),
        (39.9, "error", "slow down"),
        (0.0, "error", "slow down"),
    ])
    def test_bands(self, score, severity, fragment):
        message, sev = feedback_for_score(score)
        assert sev == severity
        assert fragment in message


class TestFeedbackThrottle:

    def test_first_call_emits(self):
        policy = FeedbackPolicy(throttle_seconds=2.0, clock=FakeClock())
        hint = policy.maybe_feedback(85.0)
        assert hint is not None
        assert hint.severity == "success"
        assert policy.last_feedback_timestamp == 100.0

    def test_within_window_emits_once(self):
        clock = FakeClock()
        policy = FeedbackPolicy(throttle_seconds=2.0, clock=clock)
        emitted = []
        for _ in range(10):
            emitted.append(policy.maybe_feedback(85.0))
            clock.t += 0.15
        assert sum(h is not None for h in emitted) == 1

    def test_separated_by_window_each_emits(self):
        clock = FakeClock()
        policy = FeedbackPolicy(throttle_seconds=2.0, clock=clock)
        assert policy.maybe_feedback(85.0) is not None
        clock.t += 2.0
        assert policy.maybe_feedback(30.0).severity == "error"
        clock.t += 1.99
        assert policy.maybe_feedback(30.0) is None

    def test_reset_clears_throttle(self):
        clock = FakeClock()
        policy = FeedbackPolicy(throttle_seconds=2.0, clock=clock)
        policy.maybe_feedback(85.0)
        policy.reset()
        assert policy.last_feedback_timestamp is None
        assert policy.maybe_feedback(85.0) is not None
