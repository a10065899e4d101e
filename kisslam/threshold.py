"""Adaptive correspondence threshold driven by the motion-model error."""

from __future__ import annotations

import math
from dataclasses import dataclass, field

from kisslam.geometry import SE3, rotation_angle


def _model_error(model_deviation: SE3, max_range: float) -> float:
    theta = rotation_angle(model_deviation.rotation)
    delta_rot = 2.0 * max_range * math.sin(theta / 2.0)
    delta_trans = math.sqrt(sum(float(v) ** 2 for v in model_deviation.translation))
    return delta_trans + delta_rot


@dataclass
class AdaptiveThreshold:
    """Running estimate of how far the motion prediction deviates from registration."""

    initial_threshold: float
    min_motion_th: float
    max_range: float
    model_error_sse2: float = 0.0
    num_samples: int = 0
    model_deviation: SE3 = field(default_factory=SE3.identity)

    def update_model_deviation(self, current_deviation: SE3) -> None:
        """Record the latest deviation from the prediction model."""
        self.model_deviation = current_deviation

    def compute_threshold(self) -> float:
        """Fold in the current deviation and return the threshold used in registration."""
        model_error = _model_error(self.model_deviation, self.max_range)
        if model_error > self.min_motion_th:
            self.model_error_sse2 += model_error * model_error
            self.num_samples += 1
        if self.num_samples < 1:
            return self.initial_threshold
        return math.sqrt(self.model_error_sse2 / self.num_samples)