"""
Stage 5 — Form-score aggregation and throttled feedback.

- Rolling buffer of 0-100 form scores (oldest dropped past capacity)
- Rule-based hint derived from the rolling average
- At most one hint per throttle window on a monotonic clock
"""

import logging
import time
from collections import deque
from typing import Callable, Optional, Tuple

from .config import FEEDBACK_BANDS, FEEDBACK_THROTTLE_SECONDS, FORM_HISTORY_SIZE
from .state import FormFeedback

logger = logging.getLogger(__name__)


class FormScoreAggregator:
    """Bounded history of form scores on the 0-100 scale."""

    def __init__(self, capacity: int = FORM_HISTORY_SIZE):
        self.capacity = capacity
        self._history: deque = deque(maxlen=capacity)
        self.current_score = 0.0

    def __len__(self) -> int:
        return len(self._history)

    def add(self, score: float) -> None:
        self.current_score = float(score)
        self._history.append(self.current_score)

    @property
    def history(self) -> list[float]:
        return list(self._history)

    @property
    def average_score(self) -> float:
        """Mean of the retained history; 0 when empty."""
        if not self._history:
            return 0.0
        return sum(self._history) / len(self._history)

    def reset(self) -> None:
        self._history.clear()
        self.current_score = 0.0


def feedback_for_score(average_score: float) -> Tuple[str, str]:
    """Map an average form score to ``(message, severity)``.

    Args:
        average_score: Rolling mean score (0-100).

    Returns:
        The message and severity of the first band whose lower bound the
        score reaches.
    """
    for lower, message, severity in FEEDBACK_BANDS:
        if average_score >= lower:
            return message, severity
    _, message, severity = FEEDBACK_BANDS[-1]
    return message, severity


class FeedbackPolicy:
    """Emits at most one hint per ``throttle_seconds``."""

    def __init__(
        self,
        throttle_seconds: float = FEEDBACK_THROTTLE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.throttle_seconds = throttle_seconds
        self.clock = clock
        self.last_feedback_timestamp: Optional[float] = None

    def maybe_feedback(self, average_score: float) -> Optional[FormFeedback]:
        """Return a hint if the throttle window has elapsed, else None."""
        now = self.clock()
        if (
            self.last_feedback_timestamp is not None
            and now - self.last_feedback_timestamp < self.throttle_seconds
        ):
            return None

        message, severity = feedback_for_score(average_score)
        self.last_feedback_timestamp = now
        logger.debug("Feedback (avg=%.1f): %s", average_score, message)
        return FormFeedback(message=message, severity=severity, timestamp=now)

    def reset(self) -> None:
        self.last_feedback_timestamp = None
