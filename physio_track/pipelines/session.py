"""
Live tracking session (the BiLSTM-backed analysis backend).

Drives one exercise session frame by frame:

    PoseFrame → normalize → window → (full) classify → rep tracker
                                                     → form scores → feedback

The host pushes frames through :meth:`TrackingSession.on_pose_frame` and reads
:meth:`TrackingSession.get_metrics`; the session calls back
``on_rep_completed()`` and ``on_form_feedback(message, severity)``.
"""

import asyncio
import logging
import time
from typing import Callable, List, Optional

from .classifier import SequenceClassifier, get_shared_classifier
from .config import TrackerConfig, load_tracker_config
from .errors import InferenceError, ModelBusyError, ModelInitError, NormalizationError
from .feedback import FeedbackPolicy, FormScoreAggregator
from .normalization import FeatureNormalizer
from .polling import MetricsCallback, MetricsPoller
from .recorder import SequenceRecorder
from .rep_tracker import RepPhaseTracker
from .state import (
    ExerciseClassification,
    FormFeedback,
    LabeledSequence,
    PoseFrame,
    RepPhase,
    SessionMetrics,
    TrainingSummary,
)
from .training import train_classifier_async
from .window import SequenceWindow

logger = logging.getLogger(__name__)

RepCallback = Callable[[], None]
FeedbackCallback = Callable[[str, str], None]


class TrackingSession:
    """One exercise session backed by the shared sequence classifier.

    Args:
        config: Tracker configuration; loaded from YAML when omitted.
        classifier: Classifier to use; defaults to the process-wide one.
        on_rep_completed: Called once per counted repetition.
        on_form_feedback: Called with ``(message, severity)`` per throttle window.
        clock: Monotonic clock for the feedback throttle.
    """

    name = "bilstm"

    def __init__(
        self,
        config: Optional[TrackerConfig] = None,
        classifier: Optional[SequenceClassifier] = None,
        on_rep_completed: Optional[RepCallback] = None,
        on_form_feedback: Optional[FeedbackCallback] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or load_tracker_config()
        self.classifier = classifier or get_shared_classifier(self.config)
        self.on_rep_completed = on_rep_completed
        self.on_form_feedback = on_form_feedback

        win = self.config.window
        self.normalizer = FeatureNormalizer(
            num_landmarks=win.num_landmarks,
            include_z=win.include_z,
            visibility_threshold=win.visibility_threshold,
        )
        self.window = SequenceWindow(win.length)
        self.tracker = RepPhaseTracker()
        self.scores = FormScoreAggregator(self.config.feedback.history_size)
        self.feedback = FeedbackPolicy(self.config.feedback.throttle_seconds, clock=clock)
        self._poller = MetricsPoller(self.get_metrics)
        self.recorder = SequenceRecorder()

        self.init_error: Optional[ModelInitError] = None
        self._active = True
        self._generation = 0
        self._inflight = False
        self._last: Optional[ExerciseClassification] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self, strict: bool = False) -> None:
        """Load or create the shared model.

        A corrupt persisted model is replaced by a fresh architecture and the
        error is kept in :attr:`init_error`, unless *strict* is set.

        Raises:
            ModelInitError: Only when *strict* and the stored model is unusable.
        """
        self.classifier.load_or_create(strict=strict)
        self.init_error = self.classifier.init_error
        logger.info("Tracking session initialized (model=%s)", self.classifier.model_path)

    def start(self) -> None:
        """Begin a fresh session and accept frames."""
        self.reset_session()
        self._active = True
        logger.info("Started pose tracking")

    def stop(self) -> None:
        """Stop accepting frames and cancel metrics polling.

        An inference already dispatched is not cancelled, but its result is
        discarded.
        """
        self._active = False
        self._generation += 1
        self._poller.stop()
        logger.info("Stopped pose tracking")

    def close(self) -> None:
        self.stop()

    @property
    def is_active(self) -> bool:
        return self._active

    # ------------------------------------------------------------------
    # Per-frame path
    # ------------------------------------------------------------------

    async def on_pose_frame(self, frame: PoseFrame) -> Optional[ExerciseClassification]:
        """Push one detector frame through the pipeline.

        Normalization and inference failures drop the frame (logged, never
        raised). Inference runs on every full-window state unless the model
        is training or another inference is still in flight.

        Returns:
            The classification applied for this frame, if any.
        """
        if not self._active:
            return None
        self.recorder.add(frame)

        try:
            vector = self.normalizer(frame)
        except NormalizationError as exc:
            logger.debug("Dropping frame: %s", exc)
            return None

        self.window.push(vector)
        if not self.window.is_full():
            return None
        if self.classifier.is_training:
            logger.debug("Model is training; skipping inference.")
            return None
        if self._inflight:
            logger.debug("Inference in flight; skipping.")
            return None

        snapshot = self.window.snapshot()
        generation = self._generation
        self._inflight = True
        try:
            result = await asyncio.to_thread(self.classifier.classify, snapshot)
        except ModelBusyError:
            logger.debug("Training started during dispatch; skipping inference.")
            return None
        except InferenceError as exc:
            logger.warning("Inference skipped: %s", exc)
            return None
        finally:
            self._inflight = False

        if generation != self._generation:
            logger.debug("Session reset during inference; discarding result.")
            return None

        self._apply(result)
        return result

    def _apply(self, result: ExerciseClassification) -> None:
        self._last = result
        if self.tracker.update(result.rep_phase):
            logger.info("Rep %d completed", self.tracker.rep_count)
            if self.on_rep_completed is not None:
                self.on_rep_completed()

        self.scores.add(result.form_score)
        hint: Optional[FormFeedback] = self.feedback.maybe_feedback(self.scores.average_score)
        if hint is not None and self.on_form_feedback is not None:
            self.on_form_feedback(hint.message, hint.severity)

    # ------------------------------------------------------------------
    # Queries and control
    # ------------------------------------------------------------------

    def get_metrics(self) -> SessionMetrics:
        return SessionMetrics(
            rep_count=self.tracker.rep_count,
            current_phase=self.tracker.current_phase,
            last_form_score=self.scores.current_score,
            average_form_score=self.scores.average_score,
            form_history=self.scores.history,
            last_feedback_timestamp=self.feedback.last_feedback_timestamp,
            exercise_type=self._last.exercise_type if self._last else None,
            confidence=self._last.type_confidence if self._last else 0.0,
        )

    def reset_session(self) -> None:
        """Zero the metrics and empty the window; the model is untouched."""
        self._generation += 1
        self.window.reset()
        self.tracker.reset()
        self.scores.reset()
        self.feedback.reset()
        self._last = None

    def start_metrics_polling(
        self, callback: MetricsCallback, interval: Optional[float] = None
    ) -> asyncio.Task:
        """Deliver :meth:`get_metrics` to *callback* periodically until :meth:`stop`."""
        return self._poller.start(callback, interval or self.config.polling.interval_seconds)

    # ------------------------------------------------------------------
    # Training-data capture
    # ------------------------------------------------------------------

    def start_recording(
        self, exercise_type: str, quality: float = 1.0, phase: RepPhase = RepPhase.NEUTRAL
    ) -> None:
        """Store every accepted frame under *exercise_type* until :meth:`stop_recording`."""
        self.recorder.start(exercise_type, quality=quality, phase=phase)

    def set_recording_phase(self, phase: RepPhase) -> None:
        self.recorder.set_phase(phase)

    def stop_recording(self) -> Optional[LabeledSequence]:
        return self.recorder.finish()

    def collected_sequences(self) -> List[LabeledSequence]:
        """Sequences recorded so far (an open recording is not included)."""
        return self.recorder.sequences

    def clear_recordings(self) -> None:
        self.recorder.clear()

    async def train(self, sequences: Optional[List[LabeledSequence]] = None) -> TrainingSummary:
        """Fit the shared classifier on labeled sequences and persist it.

        Args:
            sequences: Training data; defaults to the recorded sequences.

        Raises:
            TrainingDataError: Insufficient or malformed data.
            ModelBusyError: Another training run holds the model.
        """
        if sequences is None:
            self.recorder.finish()
            sequences = self.recorder.sequences
        return await train_classifier_async(self.classifier, sequences, self.config)
