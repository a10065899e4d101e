import numpy as np
import pytest

from kisslam.deskew import deskew_scan
from kisslam.geometry import SE3

FRAME = np.array([[1.0, 2.0, 3.0], [-4.0, 0.5, 1.0], [10.0, -3.0, 0.2]])
MOTION = SE3.exp([0.4, -0.1, 0.05, 0.02, -0.03, 0.2])


def test_identity_motion_leaves_frame_unchanged():
    out = deskew_scan(FRAME, [0.0, 0.3, 1.0], SE3.identity(), SE3.identity())
    np.testing.assert_allclose(out, FRAME)


def test_mid_timestamp_leaves_points_unchanged():
    out = deskew_scan(FRAME, [0.5, 0.5, 0.5], SE3.identity(), MOTION)
    np.testing.assert_allclose(out, FRAME, atol=1e-12)


def test_pure_translation_scales_with_time():
    d = np.array([1.0, -2.0, 0.5])
    finish = SE3(None, d)
    stamps = np.array([0.0, 0.25, 1.0])
    out = deskew_scan(FRAME, stamps, SE3.identity(), finish)
    np.testing.assert_allclose(out - FRAME, (stamps - 0.5)[:, None] * d, atol=1e-12)


def test_full_step_applies_whole_relative_motion():
    start = SE3.exp([1.0, 0.0, 0.0, 0.0, 0.0, 0.3])
    finish = start * MOTION
    out = deskew_scan(FRAME, [1.5, 1.5, 1.5], start, finish)
    np.testing.assert_allclose(out, MOTION.apply(FRAME), atol=1e-9)


def test_result_does_not_depend_on_common_offset():
    offset = SE3.exp([3.0, 1.0, -2.0, 0.1, 0.2, -0.4])
    stamps = [0.1, 0.6, 0.9]
    a = deskew_scan(FRAME, stamps, SE3.identity(), MOTION)
    b = deskew_scan(FRAME, stamps, offset, offset * MOTION)
    np.testing.assert_allclose(a, b, atol=1e-9)


def test_mismatched_timestamps_raise():
    with pytest.raises(ValueError):
        deskew_scan(FRAME, [0.1, 0.2], SE3.identity(), MOTION)


def test_empty_frame():
    out = deskew_scan([], [], SE3.identity(), MOTION)
    assert out.shape == (0, 3)