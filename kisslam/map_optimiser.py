"""Keyframe selection and pose-graph bookkeeping for the local map."""

from __future__ import annotations

import threading
from typing import List, Optional

import numpy as np

from kisslam.config import MapOptimiserConfig
from kisslam.geometry import (
    SE3,
    affine_from_translation_euler,
    euler_to_matrix,
    matrix_to_euler,
    quaternion_to_matrix,
    translation_euler_from_affine,
)
from kisslam.slam_types import PoseData, voxel_grid_filter

# Every one of the first keyframes is kept regardless of motion.
_ALWAYS_CACHED_FRAMES = 20


def _cloud_array(points) -> np.ndarray:
    cloud = getattr(points, "points", points)
    return np.asarray(cloud, dtype=float).reshape(-1, 3)


def _pose_data_to_affine(pose: PoseData) -> np.ndarray:
    return affine_from_translation_euler(
        pose.x, pose.y, pose.z, pose.roll, pose.pitch, pose.yaw
    )


def _pose_data_to_se3(pose: PoseData) -> SE3:
    return SE3(euler_to_matrix(pose.roll, pose.pitch, pose.yaw), (pose.x, pose.y, pose.z))


class MapOptimiser:
    """Selects keyframes from odometry, keeps their poses in a pose graph and caches their clouds.

    The graph holds a prior on the first keyframe and an odometry factor between
    each pair of consecutive keyframes. Such a chain has an exact solution, which
    is what the estimate holds after every update.
    """

    def __init__(self, config: Optional[MapOptimiserConfig] = None):
        self.config = config if config is not None else MapOptimiserConfig()
        self._max_keyframe_dist2 = self.config.position_delta * self.config.position_delta
        # (roll, pitch, yaw, x, y, z) of the pose being considered
        self._transform = np.zeros(6)
        self._timestamp = 0
        self._key_poses: List[PoseData] = []
        self._clouds: List[np.ndarray] = []
        self._estimate: List[SE3] = []
        self._world_t_odom = np.eye(4)
        self._lock = threading.RLock()

    def _transform_se3(self) -> SE3:
        roll, pitch, yaw, x, y, z = self._transform
        return SE3(euler_to_matrix(roll, pitch, yaw), (x, y, z))

    def update_pose_graph_with_keyframes(self, points, position, rotation, timestamp: int) -> bool:
        """Offer an odometry pose with its scan; return whether it became a keyframe.

        ``rotation`` is a ``(w, x, y, z)`` quaternion. The pose is first corrected
        by the current world-to-odometry offset.
        """
        tf = np.eye(4)
        tf[:3, :3] = quaternion_to_matrix(rotation)
        tf[:3, 3] = np.asarray(position, dtype=float).reshape(3)
        corrected = self._world_t_odom @ tf
        x, y, z, roll, pitch, yaw = translation_euler_from_affine(corrected)
        self._transform = np.array([roll, pitch, yaw, x, y, z])
        self._timestamp = int(timestamp)

        if not self._should_cache():
            return False

        self._add_odom_factor()
        downsampled = np.asarray(
            voxel_grid_filter(_cloud_array(points), self.config.voxel_size), dtype=float
        )
        with self._lock:
            self._update_all_poses()
            self._clouds.append(downsampled)
        self._update_world_t_odom(tf)
        return True

    def _should_cache(self) -> bool:
        if len(self._key_poses) < _ALWAYS_CACHED_FRAMES:
            return True
        start = _pose_data_to_affine(self._key_poses[-1])
        roll, pitch, yaw, x, y, z = self._transform
        final = affine_from_translation_euler(x, y, z, roll, pitch, yaw)
        between = np.linalg.inv(start) @ final
        bx, by, bz, broll, bpitch, byaw = translation_euler_from_affine(between)
        return (
            abs(broll) >= self.config.pitch_threshold
            or abs(bpitch) >= self.config.yaw_threshold
            or abs(byaw) >= self.config.roll_threshold
            or bx * bx + by * by + bz * bz >= self._max_keyframe_dist2
        )

    def _add_odom_factor(self) -> None:
        pose_to = self._transform_se3()
        if not self._key_poses:
            self._estimate.append(pose_to)
            return
        pose_from = _pose_data_to_se3(self._key_poses[-1])
        between = pose_from.inverse() * pose_to
        self._estimate.append(self._estimate[-1] * between)

    def _update_all_poses(self) -> None:
        roll, pitch, yaw, x, y, z = (float(v) for v in self._transform)
        self._key_poses.append(PoseData(x, y, z, roll, pitch, yaw, self._timestamp))
        for pose, value in zip(self._key_poses, self._estimate):
            pose.x, pose.y, pose.z = (float(v) for v in value.translation)
            pose.roll, pose.pitch, pose.yaw = matrix_to_euler(value.rotation)

    def _update_world_t_odom(self, odom_world_t_scan: np.ndarray) -> None:
        world_t_scan = self.keyframe_affine(self.num_keyframes() - 1)
        self._world_t_odom = world_t_scan @ np.linalg.inv(odom_world_t_scan)

    def point_cloud_at_frame(self, frame_id: int) -> Optional[np.ndarray]:
        """Downsampled cloud of a keyframe in its own frame, or ``None`` if there is none."""
        with self._lock:
            if frame_id < 0 or frame_id >= len(self._key_poses):
                return None
            return self._clouds[frame_id].copy()

    def point_cloud(self) -> np.ndarray:
        """All keyframe clouds placed at their keyframe poses."""
        parts = []
        for frame_id in range(self.num_keyframes()):
            cloud = self.point_cloud_at_frame(frame_id)
            tf = self.keyframe_affine(frame_id)
            parts.append(cloud @ tf[:3, :3].T + tf[:3, 3])
        if not parts:
            return np.zeros((0, 3))
        return np.vstack(parts)

    def poses(self) -> List[PoseData]:
        """Key poses with their timestamps."""
        return [PoseData(**vars(p)) for p in self._key_poses]

    def keyframe_poses(self) -> List[PoseData]:
        """A copy of the key poses, taken under the lock."""
        with self._lock:
            return [PoseData(**vars(p)) for p in self._key_poses]

    def keyframe_affine(self, keyframe_id: int) -> np.ndarray:
        """Homogeneous 4x4 transform of a keyframe."""
        with self._lock:
            return _pose_data_to_affine(self._key_poses[keyframe_id])

    def num_keyframes(self) -> int:
        with self._lock:
            return len(self._clouds)