"""
State definitions flowing through the telemetry core.

Pydantic models for the values that cross the host boundary: incoming pose
frames, per-window classifications, session metrics, and training inputs and
summaries.
"""

import time
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class RepPhase(str, Enum):
    """Coarse position inside one repetition cycle."""
    UP = "up"
    DOWN = "down"
    NEUTRAL = "neutral"


# ============================================================================
# Input Models
# ============================================================================

class PoseLandmark(BaseModel):
    """One tracked body joint in detector-native coordinates."""
    model_config = ConfigDict(frozen=True)

    x: float
    y: float
    z: float = 0.0
    visibility: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class PoseFrame(BaseModel):
    """All landmarks the detector produced for one camera frame."""
    model_config = ConfigDict(frozen=True)

    landmarks: tuple[PoseLandmark, ...] = Field(
        description="Ordered landmarks, detector topology"
    )
    timestamp: float = Field(
        default_factory=time.monotonic,
        description="Capture time in seconds",
    )

    @property
    def mean_visibility(self) -> Optional[float]:
        """Mean visibility over landmarks that report one, else None."""
        values = [lm.visibility for lm in self.landmarks if lm.visibility is not None]
        if not values:
            return None
        return sum(values) / len(values)


class LabeledSequence(BaseModel):
    """A recorded pose sequence with its training targets."""
    exercise_type: str = Field(description="Exercise label, see INT_TO_EXERCISE")
    frames: list[PoseFrame]
    phases: list[RepPhase] = Field(description="Rep phase for every frame")
    quality: float = Field(ge=0.0, le=1.0, description="Target form quality (0-1)")

    @model_validator(mode="after")
    def _phases_match_frames(self) -> "LabeledSequence":
        if len(self.phases) != len(self.frames):
            raise ValueError(
                f"phases has {len(self.phases)} entries, "
                f"expected one per frame ({len(self.frames)})"
            )
        return self


# ============================================================================
# Output Models
# ============================================================================

class ExerciseClassification(BaseModel):
    """Result of one inference pass over a full window."""
    exercise_type: str
    type_confidence: float = Field(ge=0.0, le=1.0)
    rep_phase: RepPhase
    form_quality: float = Field(ge=0.0, le=1.0, description="Sigmoid output (0-1)")

    @property
    def form_score(self) -> float:
        """Form quality on the 0-100 reporting scale."""
        return self.form_quality * 100.0


class FormFeedback(BaseModel):
    """One advisory message emitted by the feedback policy."""
    message: str
    severity: str = Field(description="'success', 'warning' or 'error'")
    timestamp: float


class SessionMetrics(BaseModel):
    """Snapshot of one tracking session, safe to poll at any rate."""
    rep_count: int = Field(default=0, ge=0)
    current_phase: RepPhase = RepPhase.NEUTRAL
    last_form_score: float = Field(default=0.0, ge=0.0, le=100.0)
    average_form_score: float = Field(default=0.0, ge=0.0, le=100.0)
    form_history: list[float] = Field(default_factory=list)
    last_feedback_timestamp: Optional[float] = None
    exercise_type: Optional[str] = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class TrainingSummary(BaseModel):
    """Outcome of a successful training run."""
    num_sequences: int
    num_windows: int
    num_train_windows: int = 0
    num_val_windows: int = 0
    windows_per_label: dict[str, int]
    epochs_run: int
    final_metrics: dict[str, float] = Field(
        description="Last-epoch value of every tracked loss/metric"
    )
    model_path: str
