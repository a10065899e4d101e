"""Detection of overgrown vegetation around recorded poses in a local map."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import List, Tuple

import numpy as np

from kisslam.geometry import SE3

_log = logging.getLogger(__name__)

# Height of the search box above its base, in metres.
_SEARCH_BOX_TOP = 3.0


def _affine(pose) -> np.ndarray:
    m = pose.matrix() if isinstance(pose, SE3) else np.asarray(pose, dtype=float)
    if m.shape != (4, 4):
        raise ValueError(f"expected a 4x4 transform, got shape {m.shape}")
    return m


def _rotation_part(matrix: np.ndarray) -> np.ndarray:
    """Rotation factor of the polar decomposition of the linear part."""
    u, _, vt = np.linalg.svd(matrix[:3, :3])
    correction = np.eye(3)
    correction[2, 2] = np.sign(np.linalg.det(u) * np.linalg.det(vt)) or 1.0
    return u @ correction @ vt


def _yaw(rotation: np.ndarray) -> float:
    return math.atan2(rotation[1, 0], rotation[0, 0])


@dataclass
class OverGrowthTreeData:
    """A pose to inspect, whether it was found overgrown, and its timestamp."""

    pose: np.ndarray = field(default_factory=lambda: np.eye(4))
    is_overgrown: bool = False
    timestamp: int = 0

    def __post_init__(self) -> None:
        self.pose = _affine(self.pose).copy()


class OvergrowthDetector:
    """Counts map points in a box above each pose to flag overgrowth."""

    def __init__(
        self,
        detection_box_length: float,
        detection_box_width: float,
        detection_box_height: float,
        points_threshold: int,
        search_height: float,
        lidar_height: float,
    ):
        self.box_x = float(detection_box_length)
        self.box_y = float(detection_box_width)
        self.box_z = float(detection_box_height)
        self.points_threshold = int(points_threshold)
        self.search_height = float(search_height)
        self.lidar_height = float(lidar_height)
        self._map = np.zeros((0, 3))
        self._overgrown: List[np.ndarray] = []
        self._tree_data: List[OverGrowthTreeData] = []
        self._start_timestamp = 0
        self._end_timestamp = 0
        _log.info("Overgrowth Detector Constructed")

    def update_map(self, points) -> None:
        """Set the map that detection searches."""
        cloud = getattr(points, "points", points)
        self._map = np.asarray(cloud, dtype=float).reshape(-1, 3).copy()

    def overgrowth_detection(self) -> bool:
        """Flag every stored pose with more than the threshold of map points in its box.

        The box is centred on the pose, lowered by the lidar height and raised by
        the search height, and spans ``[0, 3)`` m upwards in the pose frame.
        """
        if not self._tree_data:
            _log.warning("No poses provided for overgrowth detection")
            return False
        overgrown_count = 0
        for tree in self._tree_data:
            rotation = _rotation_part(tree.pose)
            position = tree.pose[:3, 3]
            center = np.array(
                [position[0], position[1], position[2] - self.lidar_height + self.search_height]
            )
            local = (self._map - center) @ rotation
            inside = (
                (local[:, 0] >= -self.box_x)
                & (local[:, 0] <= self.box_x)
                & (local[:, 1] >= -self.box_y)
                & (local[:, 1] <= self.box_y)
                & (local[:, 2] >= 0.0)
                & (local[:, 2] < _SEARCH_BOX_TOP)
            )
            found = self._map[inside]
            if len(found) > self.points_threshold:
                tree.is_overgrown = True
                if overgrown_count == 0:
                    self._start_timestamp = tree.timestamp
                self._end_timestamp = tree.timestamp
                overgrown_count += 1
                self._overgrown.append(found)
            else:
                tree.is_overgrown = False
        return overgrown_count > 0

    def distance_yaw_difference(self, pre_pose, curr_pose) -> Tuple[float, float]:
        """Euclidean distance and yaw change in ``[-pi, pi]`` between two poses."""
        first = _affine(pre_pose)
        second = _affine(curr_pose)
        distance = float(np.linalg.norm(first[:3, 3] - second[:3, 3]))
        yaw_diff = _yaw(_rotation_part(second)) - _yaw(_rotation_part(first))
        return distance, math.atan2(math.sin(yaw_diff), math.cos(yaw_diff))

    def overgrown_points(self) -> np.ndarray:
        """All map points found in overgrown boxes so far."""
        if not self._overgrown:
            return np.zeros((0, 3))
        return np.vstack(self._overgrown)

    def overgrown_start_timestamp(self) -> int:
        return self._start_timestamp

    def overgrown_end_timestamp(self) -> int:
        return self._end_timestamp

    def tree_data_list(self) -> List[OverGrowthTreeData]:
        """A copy of the stored poses and their detection results."""
        return [
            OverGrowthTreeData(t.pose.copy(), t.is_overgrown, t.timestamp) for t in self._tree_data
        ]

    def add_overgrown_tree_data(self, data: OverGrowthTreeData) -> None:
        self._tree_data.append(
            OverGrowthTreeData(data.pose.copy(), data.is_overgrown, data.timestamp)
        )

    def clear_overgrown_data(self) -> None:
        """Drop the stored poses, found points and timestamps."""
        self._tree_data.clear()
        self._overgrown.clear()
        self._start_timestamp = 0
        self._end_timestamp = 0