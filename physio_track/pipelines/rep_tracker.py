"""
Stage 4 — Repetition counting.

State machine over the rep-phase stream. The counter advances only on a
``down → up`` edge. Because the classifier runs once per window, single-frame
noise cannot produce a rep, but a phase stream that really oscillates
``down, up, down, up`` counts every edge.
"""

import logging

from .state import RepPhase

logger = logging.getLogger(__name__)


class RepPhaseTracker:
    """Monotonic repetition counter driven by phase classifications."""

    def __init__(self):
        self.current_phase = RepPhase.NEUTRAL
        self.rep_count = 0

    def update(self, phase: RepPhase) -> bool:
        """Feed one phase classification.

        Args:
            phase: Phase reported for the latest window.

        Returns:
            True if this update completed a repetition.
        """
        phase = RepPhase(phase)
        if phase == self.current_phase:
            return False

        completed = self.current_phase == RepPhase.DOWN and phase == RepPhase.UP
        self.current_phase = phase
        if completed:
            self.rep_count += 1
            logger.debug("Rep completed (total=%d)", self.rep_count)
        return completed

    def reset(self) -> None:
        self.current_phase = RepPhase.NEUTRAL
        self.rep_count = 0
