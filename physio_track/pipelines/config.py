"""
Configuration constants for the physio-track telemetry core.

Centralizes model storage, label mappings, window dimensions, feedback
bands and environment variable loading. Runtime-tunable values live in
``config/tracker.yaml`` and are validated into :class:`TrackerConfig`.
"""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from physio_track.utils.io_utils import load_config

# ---------------------------------------------------------------------------
# Project paths
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_PATH = PROJECT_ROOT / ".env"
load_dotenv(_ENV_PATH)

DEFAULT_CONFIG_PATH = PROJECT_ROOT / "config" / "tracker.yaml"

# ---------------------------------------------------------------------------
# Model storage
# ---------------------------------------------------------------------------
MODEL_KEY: str = "physio-bilstm-model"
MODEL_STORE_DIR: str = os.environ.get(
    "PHYSIO_TRACK_MODEL_DIR", str(PROJECT_ROOT / "models")
)

# ---------------------------------------------------------------------------
# Window / feature dimensions
# ---------------------------------------------------------------------------
SEQUENCE_LENGTH: int = 30      # ~1 second at 30 fps
NUM_LANDMARKS: int = 33        # BlazePose topology
INCLUDE_Z: bool = True         # 33 × 3 = 99 features per frame
FORM_HISTORY_SIZE: int = 100

# ---------------------------------------------------------------------------
# Label mappings
# ---------------------------------------------------------------------------
INT_TO_EXERCISE: dict[int, str] = {
    0: "push-up",
    1: "squat",
    2: "bicep-curl",
    3: "plank",
    4: "lunges",
    5: "jumping-jacks",
    6: "burpees",
    7: "mountain-climbers",
    8: "sit-ups",
    9: "other",
}
EXERCISE_TO_INT: dict[str, int] = {v: k for k, v in INT_TO_EXERCISE.items()}
NUM_EXERCISES: int = len(INT_TO_EXERCISE)

# Output order of the rep-phase head.
PHASE_LABELS: tuple[str, ...] = ("up", "down", "neutral")

# ---------------------------------------------------------------------------
# Feedback
# ---------------------------------------------------------------------------
FEEDBACK_THROTTLE_SECONDS: float = 2.0

# (lower bound on the average score, message, severity), checked top-down
FEEDBACK_BANDS: tuple[tuple[float, str, str], ...] = (
    (80.0, "Excellent form! Keep it up!", "success"),
    (60.0, "Good form, maintain your posture", "success"),
    (40.0, "Form needs improvement - check your posture", "warning"),
    (0.0, "Poor form detected - slow down and focus on technique", "error"),
)

# ---------------------------------------------------------------------------
# Backend selection
# ---------------------------------------------------------------------------
BACKEND: str = os.environ.get("PHYSIO_TRACK_BACKEND", "bilstm")


# ============================================================================
# YAML-backed runtime configuration
# ============================================================================

class WindowConfig(BaseModel):
    length: int = Field(default=SEQUENCE_LENGTH, ge=1)
    num_landmarks: int = Field(default=NUM_LANDMARKS, ge=1)
    include_z: bool = INCLUDE_Z
    visibility_threshold: float = Field(
        default=0.0, ge=0.0, le=1.0,
        description="Drop frames whose mean visibility is below this (0 disables)",
    )

    @property
    def feature_dim(self) -> int:
        return self.num_landmarks * (3 if self.include_z else 2)


class ModelConfig(BaseModel):
    store_dir: str = MODEL_STORE_DIR
    key: str = MODEL_KEY
    hidden_units: int = Field(default=64, ge=2)
    dense_units: int = Field(default=64, ge=1)
    dropout: float = Field(default=0.2, ge=0.0, lt=1.0)
    head_dropout: float = Field(default=0.3, ge=0.0, lt=1.0)
    learning_rate: float = Field(default=1e-3, gt=0.0)


class FeedbackConfig(BaseModel):
    throttle_seconds: float = Field(default=FEEDBACK_THROTTLE_SECONDS, ge=0.0)
    history_size: int = Field(default=FORM_HISTORY_SIZE, ge=1)


class TrainingConfig(BaseModel):
    epochs: int = Field(default=50, ge=1)
    batch_size: int = Field(default=32, ge=1)
    validation_split: float = Field(default=0.2, ge=0.0, lt=1.0)
    patience: int = Field(default=10, ge=1)
    stride: int = Field(default=1, ge=1)
    seed: int = 42


class PollingConfig(BaseModel):
    interval_seconds: float = Field(default=0.1, gt=0.0)


class SimulationConfig(BaseModel):
    tick_seconds: float = Field(default=2.0, gt=0.0)
    rep_probability: float = Field(default=0.3, ge=0.0, le=1.0)
    min_form_score: float = Field(default=60.0, ge=0.0, le=100.0)
    max_form_score: float = Field(default=95.0, ge=0.0, le=100.0)
    seed: Optional[int] = None


class TrackerConfig(BaseModel):
    """Validated runtime configuration for one tracking process."""
    backend: str = BACKEND
    window: WindowConfig = Field(default_factory=WindowConfig)
    model: ModelConfig = Field(default_factory=ModelConfig)
    feedback: FeedbackConfig = Field(default_factory=FeedbackConfig)
    training: TrainingConfig = Field(default_factory=TrainingConfig)
    polling: PollingConfig = Field(default_factory=PollingConfig)
    simulation: SimulationConfig = Field(default_factory=SimulationConfig)


def load_tracker_config(config_path: Optional[str] = None) -> TrackerConfig:
    """Load and validate the tracker configuration.

    Resolution order: explicit *config_path*, then ``PHYSIO_TRACK_CONFIG``,
    then ``config/tracker.yaml``. A missing default file yields the built-in
    defaults. The backend and model directory environment variables always
    win over the file.

    Args:
        config_path: Optional path to a YAML file.

    Returns:
        TrackerConfig instance.

    Raises:
        FileNotFoundError: If an explicitly requested file does not exist.
    """
    path = config_path or os.environ.get("PHYSIO_TRACK_CONFIG")
    if path is not None:
        raw = load_config(str(path))
    elif DEFAULT_CONFIG_PATH.exists():
        raw = load_config(str(DEFAULT_CONFIG_PATH))
    else:
        raw = {}

    if "PHYSIO_TRACK_BACKEND" in os.environ:
        raw["backend"] = os.environ["PHYSIO_TRACK_BACKEND"]
    if "PHYSIO_TRACK_MODEL_DIR" in os.environ:
        raw["model"] = {**(raw.get("model") or {}), "store_dir": os.environ["PHYSIO_TRACK_MODEL_DIR"]}

    return TrackerConfig.model_validate(raw)
