"""
Error taxonomy for the telemetry core.

Per-frame errors (:class:`NormalizationError`, :class:`InferenceError`) are
handled inside the session and never reach the host. Initialization and
training errors are raised to whoever called ``initialize()`` / ``train()``.
"""


class TrackingError(Exception):
    """Base class for every error raised by the telemetry core."""


class NormalizationError(TrackingError):
    """A pose frame is empty or malformed; the frame is dropped."""


class InferenceError(TrackingError):
    """Classification could not run (bad tensor shape, model unavailable)."""


class ModelInitError(TrackingError):
    """The persisted model exists but could not be read."""


class TrainingDataError(TrackingError):
    """Labeled training data is insufficient or malformed."""


class ModelBusyError(TrackingError):
    """Another training run currently holds exclusive access to the model."""
