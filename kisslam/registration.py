"""Point-to-point ICP of a scan against a voxel map."""

from __future__ import annotations

import numpy as np

from kisslam.geometry import SE3
from kisslam.voxel_map import VoxelHashMap

MAX_NUM_ITERATIONS = 500
ESTIMATION_THRESHOLD = 0.0001


def _points(frame) -> np.ndarray:
    return np.asarray(frame, dtype=float).reshape(-1, 3)


def _icp(
    source: np.ndarray,
    voxel_map: VoxelHashMap,
    max_correspondence_distance: float,
    kernel: float,
) -> SE3:
    """Run the ICP loop on already-transformed points; return the accumulated correction."""
    t_icp = SE3.identity()
    for _ in range(MAX_NUM_ITERATIONS):
        estimation = voxel_map.align(source, max_correspondence_distance, kernel)
        source = estimation.apply(source)
        t_icp = estimation * t_icp
        if float(np.linalg.norm(estimation.log())) < ESTIMATION_THRESHOLD:
            break
    return t_icp


def register_frame(
    frame,
    voxel_map: VoxelHashMap,
    initial_guess: SE3,
    max_correspondence_distance: float,
    kernel: float,
) -> SE3:
    """Pose that aligns ``frame`` to ``voxel_map``, starting from ``initial_guess``.

    An empty map yields the initial guess unchanged. The input frame is not modified.
    """
    if voxel_map.empty():
        return initial_guess
    source = initial_guess.apply(_points(frame))
    t_icp = _icp(source, voxel_map, max_correspondence_distance, kernel)
    return t_icp * initial_guess


def register_frame_with_cost(
    frame,
    voxel_map: VoxelHashMap,
    initial_guess: SE3,
    max_correspondence_distance: float,
    kernel: float,
) -> tuple[SE3, float]:
    """Like :func:`register_frame`, also returning the robust cost of the final alignment.

    The cost is the sum of kernel weights of the frame points, placed at the final
    pose, that have a map point within ``max_correspondence_distance``. An empty
    map yields the initial guess and a cost of zero.
    """
    if voxel_map.empty():
        return initial_guess, 0.0
    points = _points(frame)
    t_icp = _icp(initial_guess.apply(points), voxel_map, max_correspondence_distance, kernel)
    final_pose = t_icp * initial_guess
    cost = voxel_map.compute_cost(final_pose.apply(points), max_correspondence_distance, kernel)
    return final_pose, cost