"""Pose, keyframe and point-cloud types with the point-cloud filters used by the SLAM front end."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

import numpy as np

from kisslam.geometry import (
    affine_from_translation_euler,
    matrix_to_quaternion,
    quaternion_to_matrix,
)


def _vector(value, size: int, name: str) -> np.ndarray:
    arr = np.asarray(value, dtype=float).reshape(-1)
    if arr.shape != (size,):
        raise ValueError(f"{name} must have {size} components, got shape {arr.shape}")
    return arr.copy()


def _identity_quaternion() -> np.ndarray:
    return np.array([1.0, 0.0, 0.0, 0.0])


@dataclass
class Pose:
    """A 3D pose: position and unit quaternion orientation ``(w, x, y, z)``."""

    position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    orientation: np.ndarray = field(default_factory=_identity_quaternion)

    def __post_init__(self) -> None:
        self.position = _vector(self.position, 3, "position")
        self.orientation = _vector(self.orientation, 4, "orientation")

    def to_matrix(self) -> np.ndarray:
        """Homogeneous 4x4 transform of this pose."""
        matrix = np.eye(4)
        matrix[:3, :3] = quaternion_to_matrix(self.orientation)
        matrix[:3, 3] = self.position
        return matrix

    @classmethod
    def from_matrix(cls, matrix) -> "Pose":
        """Pose of a homogeneous 4x4 transform; the orientation is normalised."""
        m = np.asarray(matrix, dtype=float)
        if m.shape != (4, 4):
            raise ValueError(f"expected a 4x4 transform, got shape {m.shape}")
        return cls(m[:3, 3].copy(), matrix_to_quaternion(m[:3, :3]))


@dataclass
class Keyframe:
    """Points of a keyframe with its position and ``(w, x, y, z)`` rotation."""

    points: np.ndarray = field(default_factory=lambda: np.zeros((0, 3)))
    position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    rotation: np.ndarray = field(default_factory=_identity_quaternion)

    def __post_init__(self) -> None:
        self.points = np.asarray(self.points, dtype=float).reshape(-1, 3)
        self.position = _vector(self.position, 3, "position")
        self.rotation = _vector(self.rotation, 4, "rotation")


@dataclass
class PoseData:
    """Translation, Euler angles and a timestamp of a key pose."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    roll: float = 0.0
    pitch: float = 0.0
    yaw: float = 0.0
    timestamp: int = 0


@dataclass
class PointCloud:
    """An ``(N, 3)`` array of points with the acquisition timestamp."""

    points: np.ndarray = field(default_factory=lambda: np.zeros((0, 3)))
    stamp: int = 0

    def __post_init__(self) -> None:
        self.points = np.asarray(self.points, dtype=float).reshape(-1, 3)

    def __len__(self) -> int:
        return len(self.points)


CloudLike = Union[PointCloud, np.ndarray, list]


def _as_array(points: CloudLike) -> np.ndarray:
    if isinstance(points, PointCloud):
        return points.points
    return np.asarray(points, dtype=float).reshape(-1, 3)


def _same_kind(original: CloudLike, points: np.ndarray):
    if isinstance(original, PointCloud):
        return PointCloud(points, original.stamp)
    return points


def transform_point_cloud(points: CloudLike, pose_data: PoseData):
    """Transform points by the pose ``Rz(yaw) Ry(pitch) Rx(roll)`` plus translation."""
    matrix = affine_from_translation_euler(
        pose_data.x, pose_data.y, pose_data.z, pose_data.roll, pose_data.pitch, pose_data.yaw
    )
    pts = _as_array(points)
    return _same_kind(points, pts @ matrix[:3, :3].T + matrix[:3, 3])


def voxel_grid_filter(points: CloudLike, leaf_size):
    """Replace the points of each voxel by their centroid.

    Voxels are indexed by ``floor(point / leaf_size)``; non-finite points are
    dropped, and centroids come back ordered by voxel index with x varying fastest.
    """
    leaf = np.broadcast_to(np.asarray(leaf_size, dtype=float), (3,))
    if np.any(leaf <= 0):
        raise ValueError("leaf_size must be positive")
    pts = _as_array(points)
    pts = pts[np.all(np.isfinite(pts), axis=1)]
    if len(pts) == 0:
        return _same_kind(points, np.zeros((0, 3)))
    keys = np.floor(pts / leaf).astype(np.int64)[:, ::-1]
    unique, inverse = np.unique(keys, axis=0, return_inverse=True)
    inverse = np.asarray(inverse).reshape(-1)
    sums = np.zeros((len(unique), 3))
    np.add.at(sums, inverse, pts)
    counts = np.bincount(inverse, minlength=len(unique)).astype(float)
    return _same_kind(points, sums / counts[:, None])


def crop_box(points: CloudLike, minimum, maximum):
    """Keep the points inside the axis-aligned box, bounds included."""
    low = np.asarray(minimum, dtype=float).reshape(-1)[:3]
    high = np.asarray(maximum, dtype=float).reshape(-1)[:3]
    if low.shape != (3,) or high.shape != (3,):
        raise ValueError("box bounds need at least three components")
    pts = _as_array(points)
    inside = np.all((pts >= low) & (pts <= high), axis=1)
    return _same_kind(points, pts[inside])