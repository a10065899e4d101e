"""Motion compensation of a scan between two poses."""

from __future__ import annotations

import numpy as np

from kisslam.geometry import SE3

# Timestamp (normalised to the scan) at which the scan is considered to be taken.
MID_POSE_TIMESTAMP = 0.5


def deskew_scan(frame, timestamps, start_pose: SE3, finish_pose: SE3) -> np.ndarray:
    """Correct every point by the constant-velocity motion between two poses.

    Each point ``i`` is moved by ``exp((timestamps[i] - 0.5) * log(start^-1 * finish))``.
    """
    points = np.asarray(frame, dtype=float).reshape(-1, 3)
    stamps = np.asarray(timestamps, dtype=float).reshape(-1)
    if len(stamps) != len(points):
        raise ValueError(
            f"got {len(points)} points but {len(stamps)} timestamps; they must match"
        )
    delta = (start_pose.inverse() * finish_pose).log()
    corrected = [
        SE3.exp((stamp - MID_POSE_TIMESTAMP) * delta).apply(point)
        for point, stamp in zip(points, stamps)
    ]
    return np.array(corrected, dtype=float).reshape(-1, 3)