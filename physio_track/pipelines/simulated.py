"""
Simulated analysis backend for UI development without a trained model.

Produces plausible telemetry on a fixed cadence: every ``tick_seconds`` a
repetition completes with probability ``rep_probability`` and a form score is
drawn uniformly from ``[min_form_score, max_form_score]``. Counting, score
aggregation and feedback go through the same components as the live session.

When :meth:`SimulatedSession.start` runs inside an event loop the session
ticks on its own timer, so a host that only polls metrics still sees them
move. Without a running loop, incoming frames advance the simulation clock.
"""

import asyncio
import logging
import time
from typing import Callable, List, Optional

import numpy as np

from .config import TrackerConfig, load_tracker_config
from .feedback import FeedbackPolicy, FormScoreAggregator
from .polling import MetricsCallback, MetricsPoller
from .rep_tracker import RepPhaseTracker
from .state import LabeledSequence, PoseFrame, RepPhase, SessionMetrics, TrainingSummary

logger = logging.getLogger(__name__)


class SimulatedSession:
    """Same capability surface as :class:`TrackingSession`, no model."""

    name = "simulated"

    def __init__(
        self,
        config: Optional[TrackerConfig] = None,
        on_rep_completed: Optional[Callable[[], None]] = None,
        on_form_feedback: Optional[Callable[[str, str], None]] = None,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[np.random.Generator] = None,
    ):
        self.config = config or load_tracker_config()
        self.on_rep_completed = on_rep_completed
        self.on_form_feedback = on_form_feedback
        self.clock = clock
        self.rng = rng or np.random.default_rng(self.config.simulation.seed)

        self.tracker = RepPhaseTracker()
        self.scores = FormScoreAggregator(self.config.feedback.history_size)
        self.feedback = FeedbackPolicy(self.config.feedback.throttle_seconds, clock=clock)
        self._poller = MetricsPoller(self.get_metrics)

        self.init_error = None
        self.initialized = False
        self._active = True
        self._last_tick: Optional[float] = None
        self._ticker: Optional[asyncio.Task] = None

    def initialize(self, strict: bool = False) -> None:
        self.initialized = True
        logger.info("Simulated pose analysis initialized")

    def start(self) -> None:
        """Reset and start ticking on the running loop, if there is one."""
        self.reset_session()
        self._active = True
        self._cancel_ticker()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.info("Simulated tracking started (frame-driven)")
            return
        self._ticker = loop.create_task(self._run_ticks())
        logger.info("Simulated tracking started")

    def stop(self) -> None:
        self._active = False
        self._cancel_ticker()
        self._poller.stop()
        logger.info("Simulated tracking stopped")

    def close(self) -> None:
        self.stop()

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def ticking(self) -> bool:
        return self._ticker is not None and not self._ticker.done()

    def _cancel_ticker(self) -> None:
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None

    async def _run_ticks(self) -> None:
        while True:
            await asyncio.sleep(self.config.simulation.tick_seconds)
            self._tick()

    async def on_pose_frame(self, frame: PoseFrame) -> None:
        """Advance the simulation clock unless the timer drives it; frame contents are ignored."""
        if not self._active or self.ticking:
            return None
        now = self.clock()
        if self._last_tick is None:
            self._last_tick = now
            return None
        if now - self._last_tick < self.config.simulation.tick_seconds:
            return None
        self._last_tick = now
        self._tick()
        return None

    def _tick(self) -> None:
        sim = self.config.simulation
        if self.rng.random() < sim.rep_probability:
            self.tracker.update(RepPhase.DOWN)
            if self.tracker.update(RepPhase.UP) and self.on_rep_completed is not None:
                self.on_rep_completed()

        self.scores.add(float(self.rng.uniform(sim.min_form_score, sim.max_form_score)))
        hint = self.feedback.maybe_feedback(self.scores.average_score)
        if hint is not None and self.on_form_feedback is not None:
            self.on_form_feedback(hint.message, hint.severity)

    def get_metrics(self) -> SessionMetrics:
        return SessionMetrics(
            rep_count=self.tracker.rep_count,
            current_phase=self.tracker.current_phase,
            last_form_score=self.scores.current_score,
            average_form_score=self.scores.average_score,
            form_history=self.scores.history,
            last_feedback_timestamp=self.feedback.last_feedback_timestamp,
        )

    def reset_session(self) -> None:
        self.tracker.reset()
        self.scores.reset()
        self.feedback.reset()
        self._last_tick = None

    def start_metrics_polling(self, callback: MetricsCallback, interval: Optional[float] = None):
        return self._poller.start(callback, interval or self.config.polling.interval_seconds)

    async def train(self, sequences: Optional[List[LabeledSequence]] = None) -> TrainingSummary:
        sequences = sequences or []
        logger.info("Simulated training completed with %d samples", len(sequences))
        return TrainingSummary(
            num_sequences=len(sequences),
            num_windows=0,
            windows_per_label={},
            epochs_run=0,
            final_metrics={},
            model_path="",
        )
