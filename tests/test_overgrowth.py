import math

import numpy as np
import pytest

from kisslam.geometry import euler_to_matrix
from kisslam.overgrowth import OverGrowthTreeData, OvergrowthDetector

DETECTION_BOX_LENGTH = 1.0
DETECTION_BOX_WIDTH = 0.7
DETECTION_BOX_HEIGHT = 1.0
POINTS_THRESHOLD = 10
SEARCH_HEIGHT = 1.9
LIDAR_HEIGHT = 0.3
ANGLE_THRESHOLD = 30.0 * math.pi / 180.0
BOX_BASE = SEARCH_HEIGHT - LIDAR_HEIGHT


@pytest.fixture
def detector():
    return OvergrowthDetector(
        DETECTION_BOX_LENGTH,
        DETECTION_BOX_WIDTH,
        DETECTION_BOX_HEIGHT,
        POINTS_THRESHOLD,
        SEARCH_HEIGHT,
        LIDAR_HEIGHT,
    )


def _cluster(count, x=0.0, y=0.0, height=0.4):
    xs = np.linspace(-0.5, 0.5, count)
    return np.column_stack([xs + x, np.full(count, y), np.full(count, BOX_BASE + height)])


def _pose(x=0.0, y=0.0, z=0.0, yaw=0.0):
    pose = np.eye(4)
    pose[:3, :3] = euler_to_matrix(0.0, 0.0, yaw)
    pose[:3, 3] = (x, y, z)
    return pose


def test_no_poses_means_no_detection(detector):
    detector.update_map(_cluster(50))
    assert detector.overgrowth_detection() is False


def test_points_above_threshold_are_overgrown(detector):
    detector.update_map(_cluster(POINTS_THRESHOLD + 1))
    detector.add_overgrown_tree_data(OverGrowthTreeData(_pose(), False, 100))
    assert detector.overgrowth_detection() is True
    assert detector.tree_data_list()[0].is_overgrown is True
    assert detector.overgrown_start_timestamp() == 100
    assert detector.overgrown_end_timestamp() == 100
    assert len(detector.overgrown_points()) == POINTS_THRESHOLD + 1


def test_threshold_is_strict(detector):
    detector.update_map(_cluster(POINTS_THRESHOLD))
    detector.add_overgrown_tree_data(OverGrowthTreeData(_pose(), True, 100))
    assert detector.overgrowth_detection() is False
    assert detector.tree_data_list()[0].is_overgrown is False


def test_start_and_end_timestamps_span_overgrown_poses(detector):
    detector.update_map(np.vstack([_cluster(12), _cluster(12, x=5.0)]))
    detector.add_overgrown_tree_data(OverGrowthTreeData(_pose(), False, 100))
    detector.add_overgrown_tree_data(OverGrowthTreeData(_pose(x=20.0), False, 150))
    detector.add_overgrown_tree_data(OverGrowthTreeData(_pose(x=5.0), False, 200))
    assert detector.overgrowth_detection() is True
    flags = [t.is_overgrown for t in detector.tree_data_list()]
    assert flags == [True, False, True]
    assert detector.overgrown_start_timestamp() == 100
    assert detector.overgrown_end_timestamp() == 200
    assert len(detector.overgrown_points()) == 24


def test_box_height_limits(detector):
    detector.update_map(np.vstack([_cluster(12, height=2.9)]))
    detector.add_overgrown_tree_data(OverGrowthTreeData(_pose(), False, 1))
    assert detector.overgrowth_detection() is True
    detector.clear_overgrown_data()
    detector.update_map(np.vstack([_cluster(12, height=3.1), _cluster(12, height=-0.1)]))
    detector.add_overgrown_tree_data(OverGrowthTreeData(_pose(), False, 1))
    assert detector.overgrowth_detection() is False


def test_box_follows_pose_rotation(detector):
    points = np.tile([0.9, 0.0, BOX_BASE + 0.4], (12, 1))
    detector.update_map(points)
    detector.add_overgrown_tree_data(OverGrowthTreeData(_pose(), False, 1))
    detector.add_overgrown_tree_data(OverGrowthTreeData(_pose(yaw=math.pi / 2), False, 2))
    assert detector.overgrowth_detection() is True
    assert [t.is_overgrown for t in detector.tree_data_list()] == [True, False]


def test_detection_without_map_finds_nothing(detector):
    detector.add_overgrown_tree_data(OverGrowthTreeData(_pose(), False, 1))
    assert detector.overgrowth_detection() is False


def test_clear_resets_everything(detector):
    detector.update_map(_cluster(20))
    detector.add_overgrown_tree_data(OverGrowthTreeData(_pose(), False, 7))
    detector.overgrowth_detection()
    detector.clear_overgrown_data()
    assert detector.tree_data_list() == []
    assert len(detector.overgrown_points()) == 0
    assert detector.overgrown_start_timestamp() == 0
    assert detector.overgrown_end_timestamp() == 0


def test_tree_data_list_is_a_copy(detector):
    detector.add_overgrown_tree_data(OverGrowthTreeData(_pose(), False, 3))
    copy = detector.tree_data_list()
    copy[0].is_overgrown = True
    copy.clear()
    listed = detector.tree_data_list()
    assert len(listed) == 1
    assert listed[0].is_overgrown is False


def test_distance_yaw_difference_with_extrinsic_yaw(detector):
    yaw = 45.0 * math.pi / 180.0
    distance, yaw_diff = detector.distance_yaw_difference(np.eye(4), _pose(yaw=yaw))
    assert distance == pytest.approx(0.0)
    assert yaw_diff == pytest.approx(yaw)
    assert abs(yaw_diff) > ANGLE_THRESHOLD


def test_distance_yaw_difference_translation(detector):
    distance, yaw_diff = detector.distance_yaw_difference(_pose(), _pose(x=3.0, y=4.0))
    assert distance == pytest.approx(5.0)
    assert yaw_diff == pytest.approx(0.0)
    assert distance > DETECTION_BOX_LENGTH


def test_distance_yaw_difference_wraps(detector):
    first = _pose(yaw=math.radians(170.0))
    second = _pose(yaw=math.radians(-170.0))
    _, yaw_diff = detector.distance_yaw_difference(first, second)
    assert yaw_diff == pytest.approx(math.radians(20.0))


def test_lidar_flip_is_a_half_turn(detector):
    flip = np.diag([-1.0, -1.0, 1.0, 1.0])
    _, yaw_diff = detector.distance_yaw_difference(np.eye(4), flip)
    assert abs(yaw_diff) == pytest.approx(math.pi)


def test_bad_pose_shape_is_rejected(detector):
    with pytest.raises(ValueError):
        detector.distance_yaw_difference(np.eye(3), np.eye(4))