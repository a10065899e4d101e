"""Voxel-hash ICP lidar odometry, keyframe mapping, trajectory metrics and overgrowth detection."""

__version__ = "0.2.9"

__all__ = [
    "config",
    "deskew",
    "geometry",
    "lidar_odom",
    "local_slam",
    "map_optimiser",
    "metrics",
    "overgrowth",
    "pipeline",
    "preprocessing",
    "registration",
    "slam_types",
    "threshold",
    "voxel_map",
]