"""
Stage 6 — Classifier training.

Windows labeled sequences exactly like the live path, holds out a
per-exercise validation slice, fits the three heads jointly, and persists the
weights under the fixed model key. The classifier is held exclusively for the
whole fit: new inferences are refused and running ones are waited for, so no
prediction ever overlaps a weight update. A failed run restores the previous
in-memory weights and never touches the stored model.
"""

import asyncio
import logging
from typing import Dict, List

import numpy as np

from physio_track.data import build_training_arrays, split_train_validation
from physio_track.models import EXERCISE_HEAD, get_callbacks
from physio_track.utils.io_utils import set_global_seed

from .classifier import SequenceClassifier
from .config import TrackerConfig
from .state import LabeledSequence, TrainingSummary

logger = logging.getLogger(__name__)


def _fit_and_persist(
    classifier: SequenceClassifier,
    X: np.ndarray,
    targets: Dict[str, np.ndarray],
    windows_per_label: Dict[str, int],
    num_sequences: int,
    config: TrackerConfig,
) -> TrainingSummary:
    """Fit the held model and save it. Caller must hold the model exclusively."""
    model = classifier.load_or_create()
    cfg = config.training
    backup = model.get_weights()

    labels = targets[EXERCISE_HEAD].argmax(axis=1)
    train_idx, val_idx = split_train_validation(labels, cfg.validation_split, seed=cfg.seed)
    X_train = X[train_idx]
    Y_train = {k: v[train_idx] for k, v in targets.items()}
    validation_data = None
    if len(val_idx) > 0:
        validation_data = (X[val_idx], {k: v[val_idx] for k, v in targets.items()})
    monitor = "val_loss" if validation_data is not None else "loss"

    try:
        set_global_seed(cfg.seed)
        logger.info(
            "Training on %d windows, validating on %d (epochs=%d, batch=%d)",
            len(train_idx), len(val_idx), cfg.epochs, cfg.batch_size,
        )
        history = model.fit(
            X_train, Y_train,
            validation_data=validation_data,
            epochs=cfg.epochs,
            batch_size=cfg.batch_size,
            shuffle=True,
            callbacks=get_callbacks(monitor=monitor, patience=cfg.patience),
            verbose=0,
        )
        path = classifier.save()
    except Exception:
        model.set_weights(backup)
        logger.error("Training failed; previous model weights kept.")
        raise

    final_metrics = {k: float(v[-1]) for k, v in history.history.items() if v}
    epochs_run = len(history.history.get("loss", []))
    logger.info("Training complete: %d epochs, loss=%.4f", epochs_run, final_metrics.get("loss", float("nan")))

    return TrainingSummary(
        num_sequences=num_sequences,
        num_windows=int(X.shape[0]),
        num_train_windows=int(len(train_idx)),
        num_val_windows=int(len(val_idx)),
        windows_per_label=windows_per_label,
        epochs_run=epochs_run,
        final_metrics=final_metrics,
        model_path=str(path),
    )


def train_classifier(
    classifier: SequenceClassifier,
    sequences: List[LabeledSequence],
    config: TrackerConfig,
) -> TrainingSummary:
    """Blocking training run.

    Args:
        classifier: Shared classifier to update.
        sequences: Labeled training sequences.
        config: Tracker configuration (window + training sections).

    Returns:
        TrainingSummary of the run.

    Raises:
        TrainingDataError: Insufficient or malformed data.
        ModelBusyError: Another run holds the model.
    """
    X, targets, per_label = build_training_arrays(
        sequences, config.window, stride=config.training.stride
    )
    with classifier.exclusive():
        return _fit_and_persist(classifier, X, targets, per_label, len(sequences), config)


def _train_held(
    classifier: SequenceClassifier,
    X: np.ndarray,
    targets: Dict[str, np.ndarray],
    windows_per_label: Dict[str, int],
    num_sequences: int,
    config: TrackerConfig,
) -> TrainingSummary:
    classifier.wait_for_inference()
    return _fit_and_persist(classifier, X, targets, windows_per_label, num_sequences, config)


async def train_classifier_async(
    classifier: SequenceClassifier,
    sequences: List[LabeledSequence],
    config: TrackerConfig,
) -> TrainingSummary:
    """:func:`train_classifier` with the heavy work running off the event loop.

    The model is claimed on the loop thread, so frames arriving during
    training see ``is_training`` immediately. Waiting for running inferences,
    loading the model and fitting all happen in the worker thread.
    """
    X, targets, per_label = build_training_arrays(
        sequences, config.window, stride=config.training.stride
    )
    classifier.begin_training()
    try:
        return await asyncio.to_thread(
            _train_held, classifier, X, targets, per_label, len(sequences), config
        )
    finally:
        classifier.end_training()
