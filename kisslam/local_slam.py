"""Local SLAM session: lidar odometry feeding a keyframe map."""

from __future__ import annotations

import logging
from typing import Dict, Optional, Sequence, Tuple

import numpy as np

from kisslam.config import LocalSlamConfig
from kisslam.lidar_odom import LidarOdom
from kisslam.map_optimiser import MapOptimiser
from kisslam.slam_types import PointCloud, Pose

_log = logging.getLogger(__name__)

_GREEN = np.array([0, 255, 0], dtype=np.uint8)


def _transform(value) -> np.ndarray:
    m = np.asarray(value, dtype=float)
    if m.shape != (4, 4):
        raise ValueError(f"expected a 4x4 transform, got shape {m.shape}")
    return m.copy()


def _pass_through(points: np.ndarray, axis: int, low: float, high: float) -> np.ndarray:
    values = points[:, axis]
    keep = np.isfinite(points).all(axis=1) & (values >= low) & (values <= high)
    return points[keep]


class LocalSlam:
    """Runs odometry on each scan and builds a local keyframe map."""

    def __init__(self, config: Optional[LocalSlamConfig] = None):
        self.config = config if config is not None else LocalSlamConfig()
        self._map_optimiser = MapOptimiser(self.config.map_optim_config)
        self._lidar_odom = LidarOdom(self.config.lidar_odom_config)
        self._latest_pose = Pose()
        self._pre_global_pose = np.eye(4)
        self._timestamped_poses: Dict[int, np.ndarray] = {}
        self._trajectory: list = []
        self._initial_transform = np.eye(4)
        self._transform_initialized = False

    def reset_slam(self) -> None:
        """Forget everything and start a new session."""
        self._lidar_odom.clear_poses()
        self._map_optimiser = MapOptimiser(self.config.map_optim_config)
        self._trajectory.clear()
        self._initial_transform = np.eye(4)
        self._transform_initialized = False
        self._timestamped_poses.clear()
        self._pre_global_pose = np.eye(4)
        _log.info("reset_slam - Local Slam Reset!")

    def submit(self, cloud) -> bool:
        """Process a scan; return whether it became a keyframe.

        A :class:`PointCloud` contributes its ``stamp`` as the keyframe timestamp;
        a bare array counts as timestamp 0.
        """
        points = cloud.points if isinstance(cloud, PointCloud) else np.asarray(cloud, dtype=float)
        stamp = cloud.stamp if isinstance(cloud, PointCloud) else 0
        pose = self._lidar_odom.lidar_odom_pose(points)
        pose.orientation = pose.orientation / np.linalg.norm(pose.orientation)
        self._latest_pose = pose
        self._trajectory.append(self.current_pose())
        return self._map_optimiser.update_pose_graph_with_keyframes(
            points, pose.position, pose.orientation, stamp
        )

    def local_map(self) -> np.ndarray:
        """All keyframe points in the local frame."""
        return self._map_optimiser.point_cloud()

    def filtered_local_map(
        self,
        length_range: Sequence[float],
        width_range: Sequence[float],
        height_range: Sequence[float],
        lidar_flip: bool = False,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Local map points inside the given x, y and z ranges, with green colours.

        Ranges are inclusive. With ``lidar_flip`` the x range is mirrored. Returns
        ``(points, colors)`` where colours are ``uint8`` RGB rows.
        """
        points = self._map_optimiser.point_cloud()
        if lidar_flip:
            points = _pass_through(points, 0, -length_range[1], -length_range[0])
        else:
            points = _pass_through(points, 0, length_range[0], length_range[1])
        points = _pass_through(points, 1, width_range[0], width_range[1])
        points = _pass_through(points, 2, height_range[0], height_range[1])
        colors = np.tile(_GREEN, (len(points), 1))
        return points, colors

    def current_pose(self) -> np.ndarray:
        """Homogeneous 4x4 transform of the latest odometry pose."""
        return self._latest_pose.to_matrix()

    def pre_global_pose(self) -> np.ndarray:
        return self._pre_global_pose.copy()

    def update_pre_global_pose(self, transform) -> None:
        self._pre_global_pose = _transform(transform)

    def save_timestamped_pose(self, timestamp: int, pose) -> None:
        """Store a pose under a timestamp, replacing any pose already stored there."""
        self._timestamped_poses[int(timestamp)] = _transform(pose)

    def clear_timestamped_poses(self) -> None:
        self._timestamped_poses.clear()

    def timestamped_poses(self) -> Dict[int, np.ndarray]:
        """A copy of the stored poses keyed by timestamp."""
        return {stamp: pose.copy() for stamp, pose in self._timestamped_poses.items()}

    def update_initial_transform(self, transform) -> None:
        self._initial_transform = _transform(transform)

    def reset_initial_transform(self) -> None:
        self._initial_transform = np.eye(4)

    def initial_transform(self) -> np.ndarray:
        return self._initial_transform.copy()

    def set_transform_initialized(self, initialized: bool) -> None:
        _log.info("local slam initialized")
        self._transform_initialized = bool(initialized)

    def transform_initialized(self) -> bool:
        return self._transform_initialized