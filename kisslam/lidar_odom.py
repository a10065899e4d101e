"""Lidar odometry: crops and downsamples a scan, then registers it with the ICP pipeline."""

from __future__ import annotations

import logging
from typing import Optional

from kisslam.config import LidarOdomConfig
from kisslam.pipeline import KissICP
from kisslam.slam_types import PointCloud, Pose, crop_box, voxel_grid_filter

_log = logging.getLogger(__name__)

VOXEL_LEAF_SIZE = 0.05


class LidarOdom:
    """Estimates the sensor pose of each incoming scan."""

    def __init__(self, config: Optional[LidarOdomConfig] = None):
        self.config = config if config is not None else LidarOdomConfig()
        self._kiss = KissICP(self.config.kiss_icp_config)
        reach = self.config.kiss_icp_config.max_range
        self._crop_min = (-reach, -reach, -reach)
        self._crop_max = (reach, reach, reach)
        _log.info("[KissICP Lidar Odom] - Constructed!")

    def lidar_odom_pose(self, points, prior_pose: Optional[Pose] = None) -> Pose:
        """Register a scan and return the resulting pose.

        The scan is cropped to the lidar's maximum range and voxel-filtered at
        5 cm. With a prior, registration starts from it instead of the
        constant-velocity prediction.
        """
        cloud = points.points if isinstance(points, PointCloud) else points
        filtered = voxel_grid_filter(crop_box(cloud, self._crop_min, self._crop_max), VOXEL_LEAF_SIZE)
        if prior_pose is not None:
            self._kiss.register_frame_with_prior(
                filtered, prior_pose.position, prior_pose.orientation
            )
        else:
            self._kiss.register_frame(filtered)
        result = self._kiss.poses()[-1]
        return Pose(result.translation.copy(), result.quaternion())

    def clear_poses(self) -> None:
        """Forget the pose history and the local map."""
        self._kiss.clear_poses()