"""
Training dataset building for the sequence classifier.

Labeled pose sequences are normalized and windowed with the exact objects the
live path uses (:class:`FeatureNormalizer`, :class:`SequenceWindow`), then
stacked into the per-head target arrays the multi-output model expects.
"""

import json
import logging
from pathlib import Path
from typing import Dict, List, Tuple

import numpy as np
from pydantic import TypeAdapter, ValidationError

from physio_track.models import EXERCISE_HEAD, PHASE_HEAD, QUALITY_HEAD
from physio_track.pipelines.config import EXERCISE_TO_INT, NUM_EXERCISES, PHASE_LABELS, WindowConfig
from physio_track.pipelines.errors import NormalizationError, TrainingDataError
from physio_track.pipelines.normalization import FeatureNormalizer
from physio_track.pipelines.state import LabeledSequence, RepPhase
from physio_track.pipelines.window import SequenceWindow

logger = logging.getLogger(__name__)

_SEQUENCES_ADAPTER = TypeAdapter(List[LabeledSequence])


def load_labeled_sequences(path: str) -> List[LabeledSequence]:
    """
    Load labeled sequences from a JSON file.
    
    The file holds a list of objects with ``exercise_type``, ``frames``
    (each ``{"landmarks": [{x, y, z, visibility}], "timestamp"}``),
    ``phases`` and ``quality``.
    
    Args:
        path (str): JSON file path
        
    Returns:
        List[LabeledSequence]: Validated sequences
        
    Raises:
        TrainingDataError: If the file is missing, not JSON, or fails validation
    """
    file_path = Path(path)
    if not file_path.exists():
        raise TrainingDataError(f"Training data not found: {file_path}")
    try:
        with open(file_path, 'r') as f:
            raw = json.load(f)
        return _SEQUENCES_ADAPTER.validate_python(raw)
    except (json.JSONDecodeError, ValidationError) as exc:
        raise TrainingDataError(f"Malformed training data in {file_path}: {exc}") from exc


def window_sequence(
    sequence: LabeledSequence,
    normalizer: FeatureNormalizer,
    window_length: int,
    stride: int = 1,
) -> Tuple[List[np.ndarray], List[RepPhase]]:
    """
    Slide the live-path window over one labeled sequence.
    
    Frames that fail normalization are skipped, as in live tracking. Every
    ``stride``-th full-window state becomes one sample, labeled with the
    phase of its newest frame.
    
    Args:
        sequence (LabeledSequence): Source sequence
        normalizer (FeatureNormalizer): Shared normalizer
        window_length (int): Window capacity L
        stride (int): Emit one sample every ``stride`` full windows
        
    Returns:
        Tuple[List[np.ndarray], List[RepPhase]]: (L, F) windows and their phase labels
    """
    window = SequenceWindow(window_length)
    windows: List[np.ndarray] = []
    phases: List[RepPhase] = []
    n_full = 0
    n_dropped = 0
    
    for frame, phase in zip(sequence.frames, sequence.phases):
        try:
            vector = normalizer(frame)
        except NormalizationError:
            n_dropped += 1
            continue
        window.push(vector)
        if not window.is_full():
            continue
        if n_full % stride == 0:
            windows.append(window.snapshot())
            phases.append(phase)
        n_full += 1
    
    if n_dropped:
        logger.debug(f"Dropped {n_dropped} / {len(sequence.frames)} frames of '{sequence.exercise_type}'")
    
    return windows, phases


def build_training_arrays(
    sequences: List[LabeledSequence],
    window_config: WindowConfig,
    stride: int = 1,
) -> Tuple[np.ndarray, Dict[str, np.ndarray], Dict[str, int]]:
    """
    Turn labeled sequences into model inputs and per-head targets.
    
    Args:
        sequences (List[LabeledSequence]): Training sequences
        window_config (WindowConfig): Window/normalizer settings of the live path
        stride (int): Window stride, see :func:`window_sequence`
        
    Returns:
        Tuple:
            - X: shape (N, L, F), float32
            - targets: {'exercise_type': (N, C) one-hot,
                        'rep_phase': (N, 3) one-hot,
                        'form_quality': (N, 1)}
            - windows_per_label: number of windows per exercise label
            
    Raises:
        TrainingDataError: No sequences, unknown labels, or a label without
            a single full window
    """
    if not sequences:
        raise TrainingDataError("No labeled sequences supplied.")
    
    unknown = sorted({s.exercise_type for s in sequences} - set(EXERCISE_TO_INT))
    if unknown:
        raise TrainingDataError(
            f"Unknown exercise labels: {unknown}. "
            f"Supported: {sorted(EXERCISE_TO_INT)}"
        )
    
    normalizer = FeatureNormalizer(
        num_landmarks=window_config.num_landmarks,
        include_z=window_config.include_z,
        visibility_threshold=window_config.visibility_threshold,
    )
    
    X_list: List[np.ndarray] = []
    type_idx: List[int] = []
    phase_idx: List[int] = []
    quality: List[float] = []
    windows_per_label: Dict[str, int] = {s.exercise_type: 0 for s in sequences}
    
    for seq in sequences:
        windows, phases = window_sequence(seq, normalizer, window_config.length, stride)
        windows_per_label[seq.exercise_type] += len(windows)
        X_list.extend(windows)
        type_idx.extend([EXERCISE_TO_INT[seq.exercise_type]] * len(windows))
        phase_idx.extend(PHASE_LABELS.index(p.value) for p in phases)
        quality.extend([seq.quality] * len(windows))
    
    starved = sorted(label for label, n in windows_per_label.items() if n == 0)
    if starved:
        raise TrainingDataError(
            f"Labels without a full {window_config.length}-frame window: {starved}"
        )
    
    X = np.stack(X_list).astype(np.float32)
    targets = {
        EXERCISE_HEAD: np.eye(NUM_EXERCISES, dtype=np.float32)[type_idx],
        PHASE_HEAD: np.eye(len(PHASE_LABELS), dtype=np.float32)[phase_idx],
        QUALITY_HEAD: np.asarray(quality, dtype=np.float32).reshape(-1, 1),
    }
    
    logger.info(
        f"Built {X.shape[0]} windows of shape {X.shape[1:]} "
        f"from {len(sequences)} sequences"
    )
    
    return X, targets, windows_per_label


def split_train_validation(
    labels: np.ndarray,
    val_ratio: float = 0.2,
    seed: int = 42,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Split window indices into train/validation, stratified by exercise label.
    
    Windows are stacked label by label, so a tail split would hold out whole
    exercises. Here every label contributes ``int(n * val_ratio)`` windows to
    validation and always keeps at least one window for training.
    
    Args:
        labels (np.ndarray): Exercise index per window, shape (N,)
        val_ratio (float): Fraction of each label's windows to hold out
        seed (int): Shuffle seed
        
    Returns:
        Tuple[np.ndarray, np.ndarray]: Shuffled train indices, validation indices
    """
    rng = np.random.RandomState(seed)
    labels = np.asarray(labels)
    train_idx: List[int] = []
    val_idx: List[int] = []
    
    for label in np.unique(labels):
        idx = np.flatnonzero(labels == label)
        rng.shuffle(idx)
        n_val = min(int(len(idx) * val_ratio), len(idx) - 1)
        val_idx.extend(idx[:n_val].tolist())
        train_idx.extend(idx[n_val:].tolist())
    
    train = np.asarray(train_idx, dtype=np.int64)
    rng.shuffle(train)
    return train, np.asarray(sorted(val_idx), dtype=np.int64)
