"""Scan-to-map odometry pipeline built on the voxel map and ICP registration."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import List, Optional, Tuple

import numpy as np

from kisslam.deskew import deskew_scan
from kisslam.geometry import SE3
from kisslam.preprocessing import voxel_downsample
from kisslam.registration import register_frame, register_frame_with_cost
from kisslam.threshold import AdaptiveThreshold
from kisslam.voxel_map import VoxelHashMap


@dataclass
class KissConfig:
    """Parameters of the odometry pipeline."""

    # map parameters
    voxel_size: float = 1.0
    max_range: float = 100.0
    min_range: float = 5.0
    max_points_per_voxel: int = 20
    max_downsampled_points: int = 1500
    # threshold parameters
    min_motion_th: float = 0.1
    initial_threshold: float = 2.0
    # motion compensation
    deskew: bool = False


def _points(frame) -> np.ndarray:
    return np.asarray(frame, dtype=float).reshape(-1, 3)


class KissICP:
    """Registers successive scans against a local voxel map and keeps the pose history."""

    def __init__(self, config: Optional[KissConfig] = None, rng=None):
        self.config = replace(config) if config is not None else KissConfig()
        self._rng = np.random.default_rng(rng)
        self._poses: List[SE3] = []
        self._local_map = VoxelHashMap(
            self.config.voxel_size, self.config.max_range, self.config.max_points_per_voxel
        )
        self._threshold = AdaptiveThreshold(
            self.config.initial_threshold, self.config.min_motion_th, self.config.max_range
        )

    def _prepare(self, frame) -> Tuple[np.ndarray, np.ndarray, float]:
        query, map_points = self.voxelize(frame)
        query = self.uniform_sample(query)
        sigma = self.adaptive_threshold()
        return query, map_points, sigma

    def _predicted_guess(self) -> SE3:
        last_pose = self._poses[-1] if self._poses else SE3.identity()
        return last_pose * self.prediction_model()

    def _register(self, query, map_points, sigma: float, initial_guess: SE3) -> SE3:
        new_pose = register_frame(query, self._local_map, initial_guess, 3.0 * sigma, sigma / 3.0)
        self._threshold.update_model_deviation(initial_guess.inverse() * new_pose)
        self._local_map.update_with_pose(map_points, new_pose)
        self._poses.append(new_pose)
        return new_pose

    def register_frame(self, frame) -> SE3:
        """Register a scan using the constant-velocity prediction as initial guess."""
        query, map_points, sigma = self._prepare(frame)
        return self._register(query, map_points, sigma, self._predicted_guess())

    def register_frame_with_prior(self, frame, prior_position, prior_orientation) -> SE3:
        """Register a scan starting from a full pose prior (quaternion as ``(w, x, y, z)``)."""
        query, map_points, sigma = self._prepare(frame)
        initial_guess = SE3.from_quaternion(prior_orientation, prior_position)
        return self._register(query, map_points, sigma, initial_guess)

    def register_frame_with_orientation(self, frame, orientation_prior) -> SE3:
        """Register a scan using the predicted position with the given orientation."""
        query, map_points, sigma = self._prepare(frame)
        predicted = self._predicted_guess()
        initial_guess = SE3.from_quaternion(orientation_prior, predicted.translation)
        return self._register(query, map_points, sigma, initial_guess)

    def register_frame_deskewed(self, frame, timestamps) -> SE3:
        """Register a scan, first compensating its motion when deskewing is enabled.

        Deskewing needs more than two poses in the history; otherwise the scan is used as is.
        """
        points = _points(frame)
        if self.config.deskew and len(self._poses) > 2:
            points = deskew_scan(points, timestamps, self._poses[-2], self._poses[-1])
        return self.register_frame(points)

    def voxelize(self, frame) -> Tuple[np.ndarray, np.ndarray]:
        """Return ``(query_points, map_points)`` downsampled at 1.5 and 0.5 voxel sizes."""
        voxel_size = self.config.voxel_size
        map_points = voxel_downsample(frame, voxel_size * 0.5)
        query_points = voxel_downsample(map_points, voxel_size * 1.5)
        return query_points, map_points

    def adaptive_threshold(self) -> float:
        """Correspondence threshold: the initial one until the sensor has moved."""
        if not self.has_moved():
            return self.config.initial_threshold
        return self._threshold.compute_threshold()

    def prediction_model(self) -> SE3:
        """Relative motion between the last two poses, or identity with fewer poses."""
        if len(self._poses) < 2:
            return SE3.identity()
        return self._poses[-2].inverse() * self._poses[-1]

    def uniform_sample(self, frame) -> np.ndarray:
        """Randomly keep at most ``max_downsampled_points`` points."""
        points = _points(frame).copy()
        limit = self.config.max_downsampled_points
        if len(points) <= limit:
            return points
        return points[self._rng.permutation(len(points))[:limit]]

    def has_moved(self) -> bool:
        """Whether the trajectory has moved more than five times the minimum motion."""
        if not self._poses:
            return False
        motion = float(np.linalg.norm((self._poses[0].inverse() * self._poses[-1]).translation))
        return motion > 5.0 * self.config.min_motion_th

    def clear_poses(self) -> None:
        """Forget the local map and the pose history."""
        self._local_map.clear()
        self._poses.clear()

    def add_transform(self, position, quaternion) -> None:
        """Append a pose given as position and ``(w, x, y, z)`` quaternion."""
        self._poses.append(SE3.from_quaternion(quaternion, position))

    def set_map(self, points) -> None:
        """Replace the local map with the given points."""
        self._local_map.clear()
        self._local_map.add_points(points)

    def set_map_with_voxelize(self, points) -> None:
        """Downsample at half the voxel size and use the result as the local map."""
        self.set_map(voxel_downsample(points, self.config.voxel_size * 0.5))

    def find_frame_in_map(self, frame, prior_position, prior_orientation) -> Tuple[SE3, float]:
        """Locate a scan in the current map from a pose prior; return the pose and its cost.

        Neither the map nor the pose history is changed.
        """
        query, _, sigma = self._prepare(frame)
        initial_guess = SE3.from_quaternion(prior_orientation, prior_position)
        return register_frame_with_cost(
            query, self._local_map, initial_guess, 3.0 * sigma, sigma / 3.0
        )

    def local_map(self) -> np.ndarray:
        """All points of the local map."""
        return self._local_map.point_cloud()

    def poses(self) -> List[SE3]:
        """A copy of the pose history."""
        return list(self._poses)