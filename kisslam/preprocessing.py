"""Point-cloud cropping, voxel downsampling and KITTI calibration correction."""

from __future__ import annotations

import math

import numpy as np

# KITTI vertical-angle calibration offset, in radians.
VERTICAL_ANGLE_OFFSET = (0.205 * math.pi) / 180.0


def _points(frame) -> np.ndarray:
    return np.asarray(frame, dtype=float).reshape(-1, 3)


def voxel_downsample(frame, voxel_size: float) -> np.ndarray:
    """Keep the first point seen in each voxel, preserving its original coordinates.

    Voxel indices are the point coordinates divided by ``voxel_size`` and truncated
    toward zero. Points come back in the order their voxel was first seen.
    """
    if voxel_size <= 0:
        raise ValueError("voxel_size must be positive")
    points = _points(frame)
    if len(points) == 0:
        return points
    voxels = np.trunc(points / voxel_size).astype(np.int64)
    _, first = np.unique(voxels, axis=0, return_index=True)
    return points[np.sort(first)]


def preprocess(frame, max_range: float, min_range: float) -> np.ndarray:
    """Keep the points whose range lies strictly between ``min_range`` and ``max_range``."""
    points = _points(frame)
    norms = np.linalg.norm(points, axis=1)
    return points[(norms < max_range) & (norms > min_range)]


def correct_kitti_scan(frame) -> np.ndarray:
    """Apply the KITTI vertical-angle correction; meant for KITTI scans only.

    Each point is rotated by a fixed small angle about the normalised axis
    ``point x (0, 0, 1)``.
    """
    points = _points(frame)
    axes = np.cross(points, np.array([0.0, 0.0, 1.0]))
    norms = np.linalg.norm(axes, axis=1, keepdims=True)
    axes = np.divide(axes, norms, out=np.zeros_like(axes), where=norms > 0)
    c, s = math.cos(VERTICAL_ANGLE_OFFSET), math.sin(VERTICAL_ANGLE_OFFSET)
    along = np.sum(axes * points, axis=1, keepdims=True)
    return points * c + np.cross(axes, points) * s + axes * along * (1.0 - c)