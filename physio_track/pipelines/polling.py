"""
Coarse metrics polling for hosts that refresh their UI on a timer.
"""

import asyncio
import logging
from typing import Callable, Optional

from .state import SessionMetrics

logger = logging.getLogger(__name__)

MetricsCallback = Callable[[SessionMetrics], None]


class MetricsPoller:
    """Pushes a metrics snapshot to a callback every ``interval`` seconds.

    Owned by a session; :meth:`stop` cancels the task so no further snapshot
    is delivered after the session stops.
    """

    def __init__(self, get_metrics: Callable[[], SessionMetrics]):
        self._get_metrics = get_metrics
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, callback: MetricsCallback, interval: float) -> asyncio.Task:
        """Schedule polling on the running event loop (replaces any previous task)."""
        self.stop()
        self._task = asyncio.get_running_loop().create_task(self._run(callback, interval))
        return self._task

    async def _run(self, callback: MetricsCallback, interval: float) -> None:
        while True:
            callback(self._get_metrics())
            await asyncio.sleep(interval)

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
