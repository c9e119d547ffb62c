"""
Training-data capture from the live frame stream.

While a recording is open every raw frame the session accepts is stored with
the current rep-phase label. Closing the recording yields one
:class:`LabeledSequence`, which goes through the same normalizer and window
as live inference when it is trained on.
"""

import logging
from typing import List, Optional

from .config import EXERCISE_TO_INT
from .errors import TrainingDataError
from .state import LabeledSequence, PoseFrame, RepPhase

logger = logging.getLogger(__name__)


class SequenceRecorder:
    """Accumulates labeled sequences until they are trained on or cleared."""

    def __init__(self):
        self._sequences: List[LabeledSequence] = []
        self._label: Optional[str] = None
        self._quality = 1.0
        self._phase = RepPhase.NEUTRAL
        self._frames: List[PoseFrame] = []
        self._phases: List[RepPhase] = []

    @property
    def recording(self) -> bool:
        return self._label is not None

    def start(self, exercise_type: str, quality: float = 1.0,
              phase: RepPhase = RepPhase.NEUTRAL) -> None:
        """Open a recording; an open one is closed first.

        Raises:
            TrainingDataError: Unknown exercise label or quality outside [0, 1].
        """
        if exercise_type not in EXERCISE_TO_INT:
            raise TrainingDataError(
                f"Unknown exercise label '{exercise_type}'. Supported: {sorted(EXERCISE_TO_INT)}"
            )
        if not 0.0 <= quality <= 1.0:
            raise TrainingDataError(f"Quality {quality} outside [0, 1].")
        self.finish()
        self._label = exercise_type
        self._quality = quality
        self._phase = RepPhase(phase)
        logger.info("Recording '%s' (quality=%.2f)", exercise_type, quality)

    def set_phase(self, phase: RepPhase) -> None:
        """Label the following frames with *phase*."""
        self._phase = RepPhase(phase)

    def add(self, frame: PoseFrame) -> None:
        if self._label is None:
            return
        self._frames.append(frame)
        self._phases.append(self._phase)

    def finish(self) -> Optional[LabeledSequence]:
        """Close the open recording. Empty recordings are discarded."""
        if self._label is None:
            return None
        sequence = None
        if self._frames:
            sequence = LabeledSequence(
                exercise_type=self._label,
                frames=self._frames,
                phases=self._phases,
                quality=self._quality,
            )
            self._sequences.append(sequence)
            logger.info("Recorded %d frames of '%s'", len(self._frames), self._label)
        self._label = None
        self._frames = []
        self._phases = []
        return sequence

    @property
    def sequences(self) -> List[LabeledSequence]:
        return list(self._sequences)

    def clear(self) -> None:
        self.finish()
        self._sequences = []
