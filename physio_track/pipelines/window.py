"""
Stage 2 — Sequence Window.

Fixed-capacity FIFO of normalized feature vectors; the model's input context.
"""

from collections import deque

import numpy as np


class SequenceWindow:
    """The most recent ``capacity`` feature vectors, oldest first.

    Pushing onto a full window evicts the oldest vector. Classification is
    only allowed once the window is full; after :meth:`reset` it refills from
    scratch.
    """

    def __init__(self, capacity: int = 30):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self._frames: deque = deque(maxlen=capacity)

    def __len__(self) -> int:
        return len(self._frames)

    def push(self, vector: np.ndarray) -> None:
        self._frames.append(np.asarray(vector, dtype=np.float32))

    def is_full(self) -> bool:
        return len(self._frames) == self.capacity

    def reset(self) -> None:
        self._frames.clear()

    def snapshot(self) -> np.ndarray:
        """Copy the window into an independent (len, features) matrix.

        Later pushes do not affect the returned array.
        """
        if not self._frames:
            return np.zeros((0, 0), dtype=np.float32)
        return np.stack(list(self._frames)).astype(np.float32, copy=True)
