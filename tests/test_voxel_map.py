import math

import numpy as np
import pytest

from kisslam.geometry import SE3
from kisslam.voxel_map import VoxelBlock, VoxelHashMap


def _grid(offset=(2.0, 2.0, 2.0), spacing=0.3, n=4):
    axis = np.arange(n) * spacing
    xs, ys, zs = np.meshgrid(axis, axis, axis, indexing="ij")
    return np.stack([xs.ravel(), ys.ravel(), zs.ravel()], axis=1) + np.asarray(offset)


def test_voxel_block_respects_capacity():
    block = VoxelBlock([np.zeros(3)], num_points=2)
    block.add_point([1.0, 0.0, 0.0])
    block.add_point([2.0, 0.0, 0.0])
    assert len(block.points) == 2
    assert np.allclose(block.points[1], [1.0, 0.0, 0.0])


def test_invalid_voxel_size_raises():
    with pytest.raises(ValueError):
        VoxelHashMap(0.0, 10.0, 5)


def test_add_points_groups_by_voxel_and_caps():
    vmap = VoxelHashMap(1.0, 100.0, 2)
    vmap.add_points([[0.1, 0.1, 0.1], [0.2, 0.2, 0.2], [0.3, 0.3, 0.3], [1.5, 0.0, 0.0]])
    assert len(vmap) == 2
    assert len(vmap.point_cloud()) == 3


def test_voxel_index_truncates_toward_zero():
    vmap = VoxelHashMap(1.0, 100.0, 10)
    vmap.add_points([[-0.5, 0.0, 0.0], [0.5, 0.0, 0.0]])
    assert len(vmap) == 1


def test_empty_and_clear():
    vmap = VoxelHashMap(1.0, 100.0, 10)
    assert vmap.empty()
    vmap.add_points(_grid())
    assert not vmap.empty()
    vmap.clear()
    assert vmap.empty()
    assert vmap.point_cloud().shape == (0, 3)


def test_point_cloud_round_trip():
    pts = _grid()
    vmap = VoxelHashMap(0.1, 100.0, 10)
    vmap.add_points(pts)
    out = vmap.point_cloud()
    assert sorted(map(tuple, out)) == sorted(map(tuple, pts))


def test_closest_neighbor_on_empty_map():
    vmap = VoxelHashMap(1.0, 100.0, 10)
    neighbor, d2 = vmap.closest_neighbor([0.0, 0.0, 0.0])
    assert neighbor is None
    assert d2 == math.inf


def test_closest_neighbor_finds_stored_point():
    pts = _grid()
    vmap = VoxelHashMap(1.0, 100.0, 100)
    vmap.add_points(pts)
    neighbor, d2 = vmap.closest_neighbor(pts[5])
    assert np.allclose(neighbor, pts[5])
    assert d2 == 0.0


def test_closest_neighbor_with_residual_is_consistent():
    pts = _grid()
    vmap = VoxelHashMap(1.0, 100.0, 100)
    vmap.add_points(pts)
    query = pts[10] + np.array([0.01, -0.02, 0.03])
    neighbor, d2, residual = vmap.closest_neighbor_with_residual(query)
    assert np.allclose(neighbor, pts[10])
    assert np.allclose(residual, query - neighbor)
    assert d2 == pytest.approx(float(residual @ residual))


def test_correspondences_filter_by_distance():
    pts = _grid()
    vmap = VoxelHashMap(1.0, 100.0, 100)
    vmap.add_points(pts)
    queries = np.array([pts[0] + [0.01, 0.0, 0.0], pts[0] + [0.0, 0.0, -0.9]])
    for method in (vmap.get_correspondences, vmap.get_correspondences_fused):
        source, target = method(queries, 0.1)
        assert source.shape == (1, 3)
        assert np.allclose(source[0], queries[0])
        assert np.allclose(target[0], pts[0])


def test_correspondences_of_no_points():
    vmap = VoxelHashMap(1.0, 100.0, 100)
    vmap.add_points(_grid())
    source, target = vmap.get_correspondences([], 1.0)
    assert source.shape == (0, 3)
    assert target.shape == (0, 3)


def test_align_on_empty_map_is_identity():
    vmap = VoxelHashMap(1.0, 100.0, 100)
    estimate = vmap.align(_grid(), 1.0, 0.1)
    assert np.allclose(estimate.matrix(), np.eye(4))


def test_align_recovers_pure_translation():
    pts = _grid()
    vmap = VoxelHashMap(1.0, 100.0, 100)
    vmap.add_points(pts)
    shift = np.array([0.02, -0.01, 0.015])
    estimate = vmap.align(pts + shift, 1.0, 0.1)
    assert np.allclose(estimate.translation, -shift, atol=1e-8)
    assert np.allclose(estimate.rotation, np.eye(3), atol=1e-8)


def test_align_of_matching_points_is_identity():
    pts = _grid()
    vmap = VoxelHashMap(1.0, 100.0, 100)
    vmap.add_points(pts)
    estimate = vmap.align(pts, 1.0, 0.1)
    assert np.allclose(estimate.matrix(), np.eye(4), atol=1e-12)


def test_compute_cost_of_exact_points_counts_them():
    pts = _grid()
    vmap = VoxelHashMap(1.0, 100.0, 100)
    vmap.add_points(pts)
    assert vmap.compute_cost(pts, 1.0, 0.1) == pytest.approx(len(pts))


def test_compute_cost_drops_with_misalignment():
    pts = _grid()
    vmap = VoxelHashMap(1.0, 100.0, 100)
    vmap.add_points(pts)
    aligned = vmap.compute_cost(pts, 1.0, 0.1)
    shifted = vmap.compute_cost(pts + 0.05, 1.0, 0.1)
    assert shifted < aligned


def test_remove_points_far_from_location():
    vmap = VoxelHashMap(1.0, 5.0, 10)
    vmap.add_points([[1.0, 0.0, 0.0], [20.0, 0.0, 0.0]])
    vmap.remove_points_far_from_location([0.0, 0.0, 0.0])
    cloud = vmap.point_cloud()
    assert cloud.shape == (1, 3)
    assert np.allclose(cloud[0], [1.0, 0.0, 0.0])


def test_update_with_pose_transforms_and_crops():
    vmap = VoxelHashMap(1.0, 5.0, 10)
    pose = SE3(translation=[100.0, 0.0, 0.0])
    vmap.update_with_pose([[1.0, 0.0, 0.0]], pose)
    assert np.allclose(vmap.point_cloud(), [[101.0, 0.0, 0.0]])
    vmap.update([[0.0, 0.0, 0.0]], [0.0, 0.0, 0.0])
    assert np.allclose(vmap.point_cloud(), [[0.0, 0.0, 0.0]])


def test_update_with_identity_matches_update():
    pts = _grid()
    a = VoxelHashMap(0.5, 50.0, 10)
    b = VoxelHashMap(0.5, 50.0, 10)
    a.update(pts, [0.0, 0.0, 0.0])
    b.update_with_pose(pts, SE3.identity())
    assert np.allclose(a.point_cloud(), b.point_cloud())