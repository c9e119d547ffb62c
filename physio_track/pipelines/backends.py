"""Analysis backend registry.

Lets the host swap the model-backed session for the simulated one through
configuration (``backend`` in ``tracker.yaml`` or ``PHYSIO_TRACK_BACKEND``)
without touching its own code.
"""

import asyncio
from typing import Callable, Dict, List, Optional, Protocol

from .config import TrackerConfig, load_tracker_config
from .polling import MetricsCallback
from .session import TrackingSession
from .simulated import SimulatedSession
from .state import ExerciseClassification, LabeledSequence, PoseFrame, SessionMetrics, TrainingSummary


class PoseAnalysisBackend(Protocol):
    """Capability surface shared by every analysis backend."""

    name: str
    init_error: Optional[Exception]

    def initialize(self, strict: bool = False) -> None: ...

    async def on_pose_frame(self, frame: PoseFrame) -> Optional[ExerciseClassification]: ...

    def get_metrics(self) -> SessionMetrics: ...

    def reset_session(self) -> None: ...

    def start(self) -> None: ...

    def stop(self) -> None: ...

    def close(self) -> None: ...

    def start_metrics_polling(
        self, callback: MetricsCallback, interval: Optional[float] = None
    ) -> asyncio.Task: ...

    async def train(self, sequences: Optional[List[LabeledSequence]] = None) -> TrainingSummary: ...


BACKEND_REGISTRY: Dict[str, Callable[..., PoseAnalysisBackend]] = {
    TrackingSession.name: TrackingSession,
    SimulatedSession.name: SimulatedSession,
}


def get_available_backends() -> List[str]:
    """Return the list of registered backend names."""
    return list(BACKEND_REGISTRY.keys())


def build_session(config: Optional[TrackerConfig] = None, **kwargs) -> PoseAnalysisBackend:
    """Instantiate the backend named by ``config.backend``.

    Extra keyword arguments (callbacks, clock, ...) go to the backend.
    """
    config = config or load_tracker_config()
    factory = BACKEND_REGISTRY.get(config.backend)
    if factory is None:
        raise ValueError(
            f"Unknown analysis backend '{config.backend}'. "
            f"Available options: {', '.join(get_available_backends())}"
        )
    return factory(config=config, **kwargs)
