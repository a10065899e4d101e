"""Trajectory accuracy metrics: KITTI sequence error and absolute trajectory error."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from kisslam.geometry import SE3, rotation_angle

SEGMENT_LENGTHS = (100.0, 200.0, 300.0, 400.0, 500.0, 600.0, 700.0, 800.0)
STEP_SIZE = 10


@dataclass(frozen=True)
class _SegmentError:
    first_frame: int
    r_err: float
    t_err: float
    length: float
    speed: float


def _matrices(poses) -> List[np.ndarray]:
    result = []
    for pose in poses:
        m = pose.matrix() if isinstance(pose, SE3) else np.asarray(pose, dtype=float)
        if m.shape != (4, 4):
            raise ValueError(f"poses must be 4x4 matrices, got shape {m.shape}")
        result.append(m)
    return result


def _trajectory_distances(poses: Sequence[np.ndarray]) -> List[float]:
    dist = [0.0]
    for previous, current in zip(poses, poses[1:]):
        dist.append(dist[-1] + float(np.linalg.norm(previous[:3, 3] - current[:3, 3])))
    return dist


def _last_frame_from_segment_length(
    dist: Sequence[float], first_frame: int, length: float
) -> Optional[int]:
    target = dist[first_frame] + length
    return next((i for i in range(first_frame, len(dist)) if dist[i] > target), None)


def _rotation_error(pose_error: np.ndarray) -> float:
    d = 0.5 * (pose_error[0, 0] + pose_error[1, 1] + pose_error[2, 2] - 1.0)
    return math.acos(max(min(d, 1.0), -1.0))


def _translation_error(pose_error: np.ndarray) -> float:
    return float(np.linalg.norm(pose_error[:3, 3]))


def _sequence_errors(poses_gt, poses_result) -> List[_SegmentError]:
    dist = _trajectory_distances(poses_gt)
    errors = []
    for first_frame in range(0, len(poses_gt), STEP_SIZE):
        for length in SEGMENT_LENGTHS:
            last_frame = _last_frame_from_segment_length(dist, first_frame, length)
            if last_frame is None:
                continue
            delta_gt = np.linalg.inv(poses_gt[first_frame]) @ poses_gt[last_frame]
            delta_result = np.linalg.inv(poses_result[first_frame]) @ poses_result[last_frame]
            pose_error = np.linalg.inv(delta_result) @ delta_gt
            num_frames = float(last_frame - first_frame + 1)
            errors.append(
                _SegmentError(
                    first_frame,
                    _rotation_error(pose_error) / length,
                    _translation_error(pose_error) / length,
                    length,
                    length / (0.1 * num_frames),
                )
            )
    return errors


def _check_same_length(poses_gt, poses_result) -> None:
    if len(poses_gt) != len(poses_result):
        raise ValueError(
            f"different number of poses in ground truth ({len(poses_gt)}) "
            f"and estimate ({len(poses_result)})"
        )


def sequence_error(poses_gt, poses_result) -> tuple[float, float]:
    """KITTI relative error: translation in percent and rotation in degrees per 100 m.

    Segments of 100 to 800 m are taken every 10 frames of the ground truth.
    Raises ``ValueError`` when no segment is long enough.
    """
    gt = _matrices(poses_gt)
    result = _matrices(poses_result)
    _check_same_length(gt, result)
    errors = _sequence_errors(gt, result)
    if not errors:
        raise ValueError("trajectory is too short for any evaluation segment")
    t_err = sum(e.t_err for e in errors)
    r_err = sum(e.r_err for e in errors)
    avg_trans_error = 100.0 * (t_err / len(errors))
    avg_rot_error = 100.0 * (r_err / len(errors)) / 3.14 * 180.0
    return float(np.float32(avg_trans_error)), float(np.float32(avg_rot_error))


def _umeyama(source: np.ndarray, target: np.ndarray) -> np.ndarray:
    """Rigid transform (no scaling) mapping ``source`` columns onto ``target`` columns."""
    n = source.shape[1]
    mean_src = source.mean(axis=1)
    mean_dst = target.mean(axis=1)
    src_demean = source - mean_src[:, None]
    dst_demean = target - mean_dst[:, None]
    sigma = dst_demean @ src_demean.T / n
    u, _, vt = np.linalg.svd(sigma)
    s = np.eye(3)
    if np.linalg.det(u) * np.linalg.det(vt) < 0.0:
        s[2, 2] = -1.0
    rotation = u @ s @ vt
    transform = np.eye(4)
    transform[:3, :3] = rotation
    transform[:3, 3] = mean_dst - rotation @ mean_src
    return transform


def absolute_trajectory_error(poses_gt, poses_result) -> tuple[float, float]:
    """RMSE of rotation (radians) and translation after rigidly aligning the estimate."""
    gt = _matrices(poses_gt)
    result = _matrices(poses_result)
    _check_same_length(gt, result)
    if not gt:
        raise ValueError("at least one pose is required")
    source = np.stack([m[:3, 3] for m in result], axis=1)
    target = np.stack([m[:3, 3] for m in gt], axis=1)
    t_align = _umeyama(source, target)
    ate_rot = 0.0
    ate_trans = 0.0
    for ground_truth, estimate_raw in zip(gt, result):
        estimate = t_align @ estimate_raw
        delta_r = ground_truth[:3, :3] @ estimate[:3, :3].T
        delta_t = ground_truth[:3, 3] - delta_r @ estimate[:3, 3]
        theta = rotation_angle(delta_r)
        ate_rot += theta * theta
        ate_trans += float(delta_t @ delta_t)
    ate_rot /= len(gt)
    ate_trans /= len(gt)
    return float(np.float32(math.sqrt(ate_rot))), float(np.float32(math.sqrt(ate_trans)))