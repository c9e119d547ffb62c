"""
Stage 3 — Sequence Classification.

Wraps the multi-output BiLSTM: loads it from the model store (or builds a
fresh one), runs inference on a full window, and returns one
:class:`ExerciseClassification`. The classifier is shared process-wide; live
inference reads it, training takes it exclusively via :meth:`exclusive`.
"""

import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, Optional

import numpy as np
import tensorflow as tf

from physio_track.models import (
    EXERCISE_HEAD,
    OUTPUT_HEADS,
    PHASE_HEAD,
    QUALITY_HEAD,
    build_bilstm_multitask_model,
    compile_multitask_model,
)
from physio_track.utils.io_utils import load_model_file, model_store_path, save_model_atomic

from .config import INT_TO_EXERCISE, NUM_EXERCISES, PHASE_LABELS, TrackerConfig
from .errors import InferenceError, ModelBusyError, ModelInitError
from .state import ExerciseClassification, RepPhase

logger = logging.getLogger(__name__)


def _clip01(value: float) -> float:
    return float(min(max(value, 0.0), 1.0))


class SequenceClassifier:
    """Process-wide exercise/phase/quality classifier.

    Attributes:
        is_training: True while a training run holds the model. Inference
            callers must skip rather than wait.
        init_error: The :class:`ModelInitError` swallowed by a non-strict
            :meth:`load_or_create`, if any.
    """

    def __init__(self, config: TrackerConfig):
        self.config = config
        self.seq_length = config.window.length
        self.num_features = config.window.feature_dim
        self.model_path: Path = model_store_path(config.model.store_dir, config.model.key)
        self.model: Optional[tf.keras.Model] = None
        self.is_training = False
        self.init_error: Optional[ModelInitError] = None
        self._lock = threading.Condition()
        self._readers = 0

    @property
    def is_loaded(self) -> bool:
        return self.model is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def build(self) -> tf.keras.Model:
        """Construct a fresh, untrained architecture for the configured shape."""
        cfg = self.config.model
        model = build_bilstm_multitask_model(
            seq_length=self.seq_length,
            num_features=self.num_features,
            num_exercises=NUM_EXERCISES,
            num_phases=len(PHASE_LABELS),
            hidden_units=cfg.hidden_units,
            dense_units=cfg.dense_units,
            dropout=cfg.dropout,
            head_dropout=cfg.head_dropout,
        )
        return compile_multitask_model(model, learning_rate=cfg.learning_rate)

    def _check_shape(self, model: tf.keras.Model) -> None:
        expected = (self.seq_length, self.num_features)
        got = tuple(model.input_shape[1:])
        if got != expected:
            raise ModelInitError(
                f"Persisted model expects input {got}, configured window is {expected}."
            )

    def load_or_create(self, strict: bool = False) -> tf.keras.Model:
        """Load the persisted model, or build a fresh one if none exists.

        Args:
            strict: Raise :class:`ModelInitError` for an unreadable model
                instead of falling back to a fresh architecture.

        Returns:
            The compiled Keras model now held by this classifier.

        Raises:
            ModelInitError: Only when *strict* and the stored model is unusable.
        """
        if self.model is not None:
            return self.model

        self.init_error = None
        model: Optional[tf.keras.Model] = None
        err: Optional[ModelInitError] = None
        try:
            model = load_model_file(self.model_path)
            if model is not None:
                self._check_shape(model)
                model = compile_multitask_model(model, self.config.model.learning_rate)
                logger.info("Loaded existing model from %s", self.model_path)
        except ModelInitError as exc:
            err = exc
        except Exception as exc:
            err = ModelInitError(f"Persisted model at {self.model_path} is unreadable: {exc}")
            err.__cause__ = exc

        if err is not None:
            if strict:
                raise err
            logger.warning("%s; constructing a fresh model.", err)
            self.init_error = err
            model = None

        if model is None:
            logger.info("No usable saved model, creating new model")
            model = self.build()

        self.model = model
        return model

    def save(self) -> Path:
        """Persist the current weights under the fixed model key."""
        if self.model is None:
            raise InferenceError("No model to save; call load_or_create() first.")
        return save_model_atomic(self.model, self.model_path)

    def teardown(self) -> None:
        """Drop the model reference; the next use reloads it from the store."""
        self.model = None
        self.init_error = None

    # ------------------------------------------------------------------
    # Exclusive access (training) vs. shared access (inference)
    # ------------------------------------------------------------------

    def begin_training(self) -> None:
        """Claim the model for training; new inference calls are refused.

        Non-blocking, so it can run on the event loop. Inferences already
        running are not interrupted; see :meth:`wait_for_inference`.

        Raises:
            ModelBusyError: If another training run already holds the model.
        """
        with self._lock:
            if self.is_training:
                raise ModelBusyError("A training run is already in progress.")
            self.is_training = True

    def wait_for_inference(self, timeout: Optional[float] = None) -> bool:
        """Block until no inference is running. Returns False on timeout."""
        with self._lock:
            return self._lock.wait_for(lambda: self._readers == 0, timeout=timeout)

    def end_training(self) -> None:
        with self._lock:
            self.is_training = False
            self._lock.notify_all()

    @contextmanager
    def exclusive(self) -> Iterator[tf.keras.Model]:
        """Hold the model exclusively for the duration of the block.

        Claims the model, waits for running inferences to finish, then
        yields the loaded model.

        Raises:
            ModelBusyError: If another training run already holds the model.
        """
        self.begin_training()
        try:
            self.wait_for_inference()
            yield self.load_or_create()
        finally:
            self.end_training()

    # ------------------------------------------------------------------
    # Inference
    # ------------------------------------------------------------------

    def _split_outputs(self, preds) -> Dict[str, np.ndarray]:
        if isinstance(preds, dict):
            return {k: np.asarray(preds[k]) for k in OUTPUT_HEADS}
        if isinstance(preds, (list, tuple)) and len(preds) == len(OUTPUT_HEADS):
            return {k: np.asarray(p) for k, p in zip(OUTPUT_HEADS, preds)}
        raise InferenceError(f"Unexpected model output structure: {type(preds).__name__}")

    def classify(self, window: np.ndarray) -> ExerciseClassification:
        """Run one inference pass over a full (L, F) window.

        Args:
            window: Snapshot of the sequence window.

        Returns:
            ExerciseClassification for the window.

        Raises:
            InferenceError: Model unavailable, wrong input shape, or a
                failure inside the model call.
            ModelBusyError: A training run holds the model.
        """
        with self._lock:
            if self.is_training:
                raise ModelBusyError("Model is training; inference refused.")
            self._readers += 1
        try:
            return self._classify(window)
        finally:
            with self._lock:
                self._readers -= 1
                self._lock.notify_all()

    def _classify(self, window: np.ndarray) -> ExerciseClassification:
        if self.model is None:
            raise InferenceError("Model is not loaded.")

        arr = np.asarray(window, dtype=np.float32)
        expected = (self.seq_length, self.num_features)
        if arr.shape != expected:
            raise InferenceError(f"Window shape {arr.shape} != expected {expected}.")

        try:
            preds = self.model.predict(arr[None, ...], verbose=0)
        except Exception as exc:
            raise InferenceError(f"Model evaluation failed: {exc}") from exc
        out = self._split_outputs(preds)

        type_probs = out[EXERCISE_HEAD].reshape(-1)
        phase_probs = out[PHASE_HEAD].reshape(-1)
        quality = out[QUALITY_HEAD].reshape(-1)
        if type_probs.size != NUM_EXERCISES or phase_probs.size != len(PHASE_LABELS) or quality.size != 1:
            raise InferenceError(
                f"Model head sizes {type_probs.size}/{phase_probs.size}/{quality.size} "
                f"do not match {NUM_EXERCISES}/{len(PHASE_LABELS)}/1."
            )

        type_idx = int(np.argmax(type_probs))
        phase_idx = int(np.argmax(phase_probs))
        result = ExerciseClassification(
            exercise_type=INT_TO_EXERCISE[type_idx],
            type_confidence=_clip01(np.max(type_probs)),
            rep_phase=RepPhase(PHASE_LABELS[phase_idx]),
            form_quality=_clip01(quality[0]),
        )
        logger.debug(
            "Classification: '%s' confidence=%.3f phase=%s quality=%.3f",
            result.exercise_type, result.type_confidence,
            result.rep_phase.value, result.form_quality,
        )
        return result


# ---------------------------------------------------------------------------
# Process-wide classifier cache (populated by ``get_shared_classifier``)
# ---------------------------------------------------------------------------
_shared_classifiers: dict[str, SequenceClassifier] = {}


def get_shared_classifier(config: TrackerConfig) -> SequenceClassifier:
    """Return (or create) the classifier for the configured model store.

    The model itself is loaded lazily by :meth:`SequenceClassifier.load_or_create`.
    """
    key = str(model_store_path(config.model.store_dir, config.model.key))
    classifier = _shared_classifiers.get(key)
    if classifier is None:
        classifier = SequenceClassifier(config)
        _shared_classifiers[key] = classifier
    return classifier


def release_shared_classifier(config: Optional[TrackerConfig] = None) -> None:
    """Tear down one shared classifier, or all of them when *config* is None."""
    if config is None:
        keys = list(_shared_classifiers)
    else:
        keys = [str(model_store_path(config.model.store_dir, config.model.key))]
    for key in keys:
        classifier = _shared_classifiers.pop(key, None)
        if classifier is not None:
            classifier.teardown()
