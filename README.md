# kisslam

Lidar odometry and local mapping for point clouds, built on NumPy.

The package estimates the motion of a lidar from one scan to the next. It
aligns each scan against a voxel-hashed local map with a robust
point-to-point ICP, and an adaptive threshold sets the correspondence
distance. On top of that odometry it provides a small keyframe map, helpers
for evaluating trajectories, and a detector that counts map points in boxes
placed along the travelled path.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Point clouds and poses

Point clouds are `(N, 3)` NumPy arrays of floats. Rigid transforms are
`kisslam.geometry.SE3` objects. Quaternions are in `(w, x, y, z)` order.
Twists for `SE3.exp` and `SE3.log` are `(tx, ty, tz, wx, wy, wz)`.

```python
import numpy as np
from kisslam.geometry import SE3

pose = SE3.exp(np.array([1.0, 0.0, 0.0, 0.0, 0.0, 0.1]))
points = np.random.default_rng(0).normal(size=(100, 3))
moved = pose.apply(points)
back = pose.inverse().apply(moved)
```

`kisslam.geometry` also has `hat`, `rotation_angle`, conversions between
quaternions, rotation matrices and Euler angles (`Rz(yaw) Ry(pitch) Rx(roll)`),
and `affine_from_translation_euler` / `translation_euler_from_affine` for 4x4
transforms.

## Odometry with `KissICP`

```python
import numpy as np
from kisslam.pipeline import KissConfig, KissICP

odometry = KissICP(KissConfig(voxel_size=0.4, max_range=15.0), rng=np.random.default_rng(0))
for scan in scans:                  # each scan is an (N, 3) array
    odometry.register_frame(scan)

trajectory = odometry.poses()       # list of SE3, one per registered scan
local_map = odometry.local_map()    # (M, 3) array
```

Each scan is downsampled at half the voxel size for the map and at 1.5 times
the voxel size for the query, and the query is randomly cut down to
`max_downsampled_points`. The `rng` argument seeds that sampling.

A pose prior can replace the constant-velocity prediction:

- `register_frame_with_prior(frame, prior_position, prior_orientation)` starts from a full pose prior.
- `register_frame_with_orientation(frame, orientation_prior)` keeps the predicted position and uses the given orientation.
- `register_frame_deskewed(frame, timestamps)` first corrects motion within the scan from per-point timestamps in `[0, 1]`, when `KissConfig.deskew` is set and more than two poses are known.

Scan-to-map localisation works against a fixed map and changes neither the
map nor the pose history:

```python
odometry.set_map_with_voxelize(map_points)
pose, cost = odometry.find_frame_in_map(scan, prior_position, prior_orientation)
```

`clear_poses()` forgets the map and the trajectory; `add_transform(position, quaternion)`
appends a pose by hand.

## Building blocks

- `kisslam.preprocessing`: `voxel_downsample` (first point per voxel), `preprocess` (keep points with range strictly between two limits) and `correct_kitti_scan` (fixed vertical-angle correction for KITTI scans only).
- `kisslam.deskew.deskew_scan`: motion compensation between two poses.
- `kisslam.voxel_map.VoxelHashMap`: the local map, with nearest-neighbour search over the 27 surrounding voxels, correspondence search, one robust Gauss-Newton alignment step (`align`) and a robust cost (`compute_cost`).
- `kisslam.registration`: `register_frame` and `register_frame_with_cost` run the ICP loop, up to 500 iterations.
- `kisslam.threshold.AdaptiveThreshold`: the adaptive correspondence threshold.
- `kisslam.metrics`: `sequence_error` (KITTI-style relative error over 100 to 800 m segments; raises `ValueError` when the trajectory is too short) and `absolute_trajectory_error` (rotation and translation RMSE after rigid Umeyama alignment).

## Local SLAM

`kisslam.local_slam.LocalSlam` combines lidar odometry (`kisslam.lidar_odom.LidarOdom`)
with a keyframe map (`kisslam.map_optimiser.MapOptimiser`). Settings live in
`kisslam.config` (`LocalSlamConfig`, `LidarOdomConfig`, `MapOptimiserConfig`).

```python
from kisslam.config import LocalSlamConfig
from kisslam.local_slam import LocalSlam
from kisslam.slam_types import PointCloud

slam = LocalSlam(LocalSlamConfig())
is_keyframe = slam.submit(PointCloud(points=scan, stamp=timestamp))
pose_matrix = slam.current_pose()       # 4x4 array
map_points = slam.local_map()           # accumulated keyframe clouds
points, colors = slam.filtered_local_map((0.0, 5.0), (-1.0, 1.0), (0.0, 2.0), False)
slam.reset_slam()
```

`LidarOdom` crops each scan to the configured maximum range and averages it on
a 5 cm voxel grid before registration. `MapOptimiser` keeps the first 20
keyframes unconditionally and afterwards only poses that have moved or turned
past the configured thresholds; each keyframe cloud is stored downsampled at
`MapOptimiserConfig.voxel_size`. `LocalSlam` also keeps a few poses for the
caller: a previous global pose, poses stored by timestamp and an initial
transform with an "initialized" flag.

Point-cloud helpers in `kisslam.slam_types`: `transform_point_cloud`,
`voxel_grid_filter` (centroid per voxel) and `crop_box`.

## Overgrowth detection

`kisslam.overgrowth.OvergrowthDetector` checks boxes placed along a set of
poses. A box is flagged as overgrown when the map has more points inside it
than the threshold.

```python
from kisslam.overgrowth import OverGrowthTreeData, OvergrowthDetector

detector = OvergrowthDetector(1.0, 0.7, 1.0, 10, 1.9, 0.3)
detector.update_map(map_points)
detector.add_overgrown_tree_data(OverGrowthTreeData(pose=pose_matrix, is_overgrown=False, timestamp=stamp))
if detector.overgrowth_detection():
    flagged = detector.overgrown_points()
    first, last = detector.overgrown_start_timestamp(), detector.overgrown_end_timestamp()
```

`distance_yaw_difference(pre_pose, curr_pose)` returns the distance and the
yaw change, in `[-pi, pi]`, between two poses. It can be used to decide when
to place the next box along the path.

## What the package does not do

- It does not read sensors, message streams or point-cloud files; scans are passed in as arrays.
- It has no command-line tool and no viewer.
- The keyframe map is a plain chain of odometry poses: there is no loop closure and no global optimisation.
- Nothing is saved to disk.