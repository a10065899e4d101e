"""Configuration of the local SLAM front end and map optimiser."""

from __future__ import annotations

import math
from dataclasses import dataclass, field

from kisslam.pipeline import KissConfig


@dataclass
class MapOptimiserConfig:
    """Keyframe selection and map caching parameters."""

    position_delta: float = 0.5
    roll_threshold: float = 0.1
    pitch_threshold: float = 0.1
    yaw_threshold: float = 0.1
    voxel_size: float = 0.2  # leaf size used to downsample cached keyframe clouds


def _default_kiss_config() -> KissConfig:
    return KissConfig(
        voxel_size=0.4,
        max_range=15.0,
        min_range=1.0,
        max_points_per_voxel=10,
        max_downsampled_points=1500,
        min_motion_th=0.1,
        initial_threshold=2.0,
        deskew=False,
    )


@dataclass
class LidarOdomConfig:
    """Lidar odometry parameters."""

    preview_image: bool = True
    num_cameras: int = 4
    sensor_timeout: int = 200  # ms
    drop_sensor_threshold: int = 50
    max_timediff: int = 100000000  # ns
    lidar_dynamic_throttle: bool = False
    use_imu: bool = False
    lidar_pitch: float = 30.0 * math.pi / 180.0
    imu_accelerometer_sd: float = 3.9939570888238808e-3
    imu_gyroscope_sd: float = 1.5636343949698187e-3
    imu_accelerometer_bias: float = 6.4356659353532566e-5
    imu_gyroscope_bias: float = 3.5640318696367613e-5
    imu_gravity: float = -9.81
    run_deskew: bool = False
    lidar_odom_mode: str = "kiss_icp"
    kiss_icp_config: KissConfig = field(default_factory=_default_kiss_config)
    max_icp_points_registered: int = 8000
    imu_converge_dist_threshold: float = 0.2  # m
    imu_converge_rotation_threshold: float = 15.0 * math.pi / 180.0  # rad
    min_converge_iterations_threshold: int = 100
    keypoint_dist_threshold: float = 0.5  # m
    keypoint_turn_threshold: float = 20.0 * math.pi / 180.0  # rad
    keypoint_time_threshold: int = 1000000  # µs
    key_pose_buffer_size: int = 5000
    stream_topic: str = "/local_slam/pointcloud"
    preview_crop_box: float = 30.0
    preview_voxel_ds_size: float = 0.1
    points_streamed: int = 5000
    preview_image_factor: float = 0.5
    preview_image_jpg_quality: float = 50.0
    cam_preview_frequency: float = 2.0  # Hz


@dataclass
class LocalSlamConfig:
    """Configuration of the whole local SLAM."""

    lidar_odom_config: LidarOdomConfig = field(default_factory=LidarOdomConfig)
    map_optim_config: MapOptimiserConfig = field(default_factory=MapOptimiserConfig)