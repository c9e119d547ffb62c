"""
Stage 1 — Feature Normalization.

Turns one :class:`PoseFrame` into a fixed-length feature vector that does not
change when the person moves across the image or towards the camera:

    1. Bounding box of all landmarks (x, y)
    2. Center on the box centroid
    3. Divide by the larger box side
    4. Flatten to (x, y[, z]) per landmark

The same function feeds live inference and training so both see identical
inputs.
"""

import logging
from typing import Optional

import numpy as np

from .errors import NormalizationError
from .state import PoseFrame

logger = logging.getLogger(__name__)

_MIN_SCALE = 1e-6


def _frame_to_array(frame: PoseFrame) -> np.ndarray:
    """Stack landmarks into a (K, 3) float array of x, y, z."""
    return np.array(
        [[lm.x, lm.y, lm.z] for lm in frame.landmarks], dtype=np.float32
    ).reshape(-1, 3)


def normalize_landmarks_array(lm_xyz: np.ndarray, include_z: bool = True) -> np.ndarray:
    """Normalize raw (K, 3) landmarks: box-centered, box-size-scaled.

    z is centered on its mean and divided by the same scale as x and y.

    Returns:
        Flat float32 vector of length ``3*K`` (or ``2*K`` without z), or an
        empty vector when there are no landmarks or the box has no extent.
    """
    if lm_xyz.shape[0] == 0:
        return np.zeros(0, dtype=np.float32)

    min_xy = lm_xyz[:, :2].min(axis=0)
    max_xy = lm_xyz[:, :2].max(axis=0)
    extent = max_xy - min_xy
    scale = float(extent.max())
    if scale < _MIN_SCALE:
        return np.zeros(0, dtype=np.float32)

    center = min_xy + extent / 2.0
    xy = (lm_xyz[:, :2] - center) / scale
    if not include_z:
        return xy.reshape(-1).astype(np.float32)

    z = (lm_xyz[:, 2:3] - lm_xyz[:, 2].mean()) / scale
    return np.concatenate([xy, z], axis=1).reshape(-1).astype(np.float32)


def normalize_pose_frame(frame: PoseFrame, include_z: bool = True) -> np.ndarray:
    """Normalize one pose frame (pure, no side effects).

    Args:
        frame: Detector output for a single camera frame.
        include_z: Emit ``(x, y, z)`` per landmark instead of ``(x, y)``.

    Returns:
        Flat feature vector; empty when the frame has no landmarks.
    """
    return normalize_landmarks_array(_frame_to_array(frame), include_z=include_z)


class FeatureNormalizer:
    """Validating wrapper around :func:`normalize_pose_frame`.

    Enforces the configured landmark count and visibility floor so every
    vector reaching the window has the same length.
    """

    def __init__(
        self,
        num_landmarks: int,
        include_z: bool = True,
        visibility_threshold: float = 0.0,
    ):
        self.num_landmarks = num_landmarks
        self.include_z = include_z
        self.visibility_threshold = visibility_threshold

    @property
    def feature_dim(self) -> int:
        return self.num_landmarks * (3 if self.include_z else 2)

    def __call__(self, frame: PoseFrame) -> np.ndarray:
        """Normalize *frame* or raise :class:`NormalizationError`."""
        n = len(frame.landmarks)
        if n == 0:
            raise NormalizationError("Pose frame has no landmarks.")
        if n != self.num_landmarks:
            raise NormalizationError(
                f"Expected {self.num_landmarks} landmarks per frame, got {n}."
            )

        if self.visibility_threshold > 0.0:
            mean_vis: Optional[float] = frame.mean_visibility
            if mean_vis is not None and mean_vis < self.visibility_threshold:
                raise NormalizationError(
                    f"Mean visibility {mean_vis:.2f} below {self.visibility_threshold:.2f}."
                )

        vector = normalize_pose_frame(frame, include_z=self.include_z)
        if vector.size == 0:
            raise NormalizationError("Pose frame has zero spatial extent.")
        if not np.all(np.isfinite(vector)):
            raise NormalizationError("Pose frame contains non-finite coordinates.")
        return vector
