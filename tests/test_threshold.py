import math

import pytest

from kisslam.geometry import SE3, euler_to_matrix
from kisslam.threshold import AdaptiveThreshold


def test_initial_threshold_without_motion():
    threshold = AdaptiveThreshold(2.0, 0.1, 100.0)
    assert threshold.compute_threshold() == 2.0
    assert threshold.num_samples == 0


def test_small_deviation_is_ignored():
    threshold = AdaptiveThreshold(2.0, 0.1, 100.0)
    threshold.update_model_deviation(SE3(None, [0.05, 0.0, 0.0]))
    assert threshold.compute_threshold() == 2.0
    assert threshold.num_samples == 0


def test_translation_deviation_sets_threshold():
    threshold = AdaptiveThreshold(2.0, 0.1, 100.0)
    threshold.update_model_deviation(SE3(None, [3.0, 0.0, 0.0]))
    assert threshold.compute_threshold() == pytest.approx(3.0)
    assert threshold.num_samples == 1


def test_repeated_deviation_keeps_accumulating():
    threshold = AdaptiveThreshold(2.0, 0.1, 100.0)
    threshold.update_model_deviation(SE3(None, [0.0, 3.0, 0.0]))
    first = threshold.compute_threshold()
    second = threshold.compute_threshold()
    assert first == pytest.approx(second)
    assert threshold.num_samples == 2


def test_rotation_deviation_scaled_by_range():
    threshold = AdaptiveThreshold(2.0, 0.1, 10.0)
    threshold.update_model_deviation(SE3(euler_to_matrix(0.0, 0.0, math.pi / 3), None))
    assert threshold.compute_threshold() == pytest.approx(10.0)


def test_threshold_is_root_mean_square_between_samples():
    threshold = AdaptiveThreshold(2.0, 0.1, 100.0)
    threshold.update_model_deviation(SE3(None, [3.0, 0.0, 0.0]))
    low = threshold.compute_threshold()
    threshold.update_model_deviation(SE3(None, [0.0, 0.0, 4.0]))
    mixed = threshold.compute_threshold()
    assert low < mixed < 4.0
    threshold.update_model_deviation(SE3.identity())
    assert threshold.compute_threshold() == pytest.approx(mixed)
    assert threshold.num_samples == 2