"""Shared fixtures: synthetic pose frames and small tracker configs."""

import sys
from pathlib import Path

import numpy as np
import pytest

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from physio_track.pipelines.config import (
    ModelConfig,
    TrackerConfig,
    TrainingConfig,
    WindowConfig,
)
from physio_track.pipelines.state import PoseFrame, PoseLandmark


def tpose_landmarks(n: int = 33) -> np.ndarray:
    """(n, 3) landmarks of a person standing with arms spread horizontally."""
    lm = np.zeros((n, 3), dtype=np.float32)
    for i in range(n):
        if i < 11:      # head / face
            lm[i] = [0.48 + 0.004 * i, 0.12 + 0.003 * i, -0.1]
        elif i < 23:    # shoulders, arms, hands
            lm[i] = [0.1 + 0.8 * (i - 11) / 11.0, 0.35, 0.0]
        else:           # hips, legs, feet
            side = 0.45 if i % 2 else 0.55
            lm[i] = [side, 0.55 + 0.4 * (i - 23) / 9.0, 0.05]
    return lm


def make_frame(lm_xyz, visibility=None, timestamp: float = 0.0) -> PoseFrame:
    """Wrap an (n, 3) array as a PoseFrame."""
    return PoseFrame(
        landmarks=tuple(
            PoseLandmark(x=float(x), y=float(y), z=float(z), visibility=visibility)
            for x, y, z in np.asarray(lm_xyz)
        ),
        timestamp=timestamp,
    )


@pytest.fixture
def tpose_frame() -> PoseFrame:
    return make_frame(tpose_landmarks())


@pytest.fixture
def tiny_config(tmp_path) -> TrackerConfig:
    """Keras-sized-down config: 4-frame window, 3 landmarks, x/y only."""
    return TrackerConfig(
        backend="bilstm",
        window=WindowConfig(length=4, num_landmarks=3, include_z=False),
        model=ModelConfig(store_dir=str(tmp_path / "models"), hidden_units=4, dense_units=4),
        training=TrainingConfig(epochs=2, batch_size=4, patience=1, validation_split=0.0),
    )


def small_frame(offset: float = 0.0) -> PoseFrame:
    """Three-landmark frame for the tiny config."""
    return make_frame(
        [[0.2 + offset, 0.2, 0.0], [0.5, 0.6 + offset, 0.0], [0.8, 0.3, 0.0]]
    )
