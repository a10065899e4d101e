"""Rigid-body transforms, rotations and Euler-angle helpers."""

from __future__ import annotations

import math

import numpy as np

_TAYLOR_EPS = 1e-6
_LOG_EPS = 1e-10


def _vector(value, size: int, name: str) -> np.ndarray:
    arr = np.asarray(value, dtype=float)
    if arr.shape != (size,):
        raise ValueError(f"{name} must have {size} components, got shape {arr.shape}")
    return arr


def _rotation(value) -> np.ndarray:
    arr = np.asarray(value, dtype=float)
    if arr.shape != (3, 3):
        raise ValueError(f"rotation must be a 3x3 matrix, got shape {arr.shape}")
    return arr


def hat(vector) -> np.ndarray:
    """Skew-symmetric matrix such that ``hat(v) @ w == cross(v, w)``."""
    x, y, z = _vector(vector, 3, "vector")
    return np.array([[0.0, -z, y], [z, 0.0, -x], [-y, x, 0.0]])


def quaternion_to_matrix(quaternion) -> np.ndarray:
    """Rotation matrix of a quaternion given as ``(w, x, y, z)``; the quaternion is normalised."""
    q = _vector(quaternion, 4, "quaternion")
    norm = np.linalg.norm(q)
    if norm == 0.0:
        raise ValueError("cannot build a rotation from a zero quaternion")
    w, x, y, z = q / norm
    return np.array(
        [
            [1.0 - 2.0 * (y * y + z * z), 2.0 * (x * y - w * z), 2.0 * (x * z + w * y)],
            [2.0 * (x * y + w * z), 1.0 - 2.0 * (x * x + z * z), 2.0 * (y * z - w * x)],
            [2.0 * (x * z - w * y), 2.0 * (y * z + w * x), 1.0 - 2.0 * (x * x + y * y)],
        ]
    )


def matrix_to_quaternion(rotation) -> np.ndarray:
    """Unit quaternion ``(w, x, y, z)`` with ``w >= 0`` for a rotation matrix."""
    r = _rotation(rotation)
    diagonal_sum = float(r[0, 0] + r[1, 1] + r[2, 2])
    if diagonal_sum > 0.0:
        s = math.sqrt(diagonal_sum + 1.0) * 2.0
        q = [0.25 * s, (r[2, 1] - r[1, 2]) / s, (r[0, 2] - r[2, 0]) / s, (r[1, 0] - r[0, 1]) / s]
    elif r[0, 0] > r[1, 1] and r[0, 0] > r[2, 2]:
        s = math.sqrt(max(1.0 + r[0, 0] - r[1, 1] - r[2, 2], 0.0)) * 2.0
        q = [(r[2, 1] - r[1, 2]) / s, 0.25 * s, (r[0, 1] + r[1, 0]) / s, (r[0, 2] + r[2, 0]) / s]
    elif r[1, 1] > r[2, 2]:
        s = math.sqrt(max(1.0 + r[1, 1] - r[0, 0] - r[2, 2], 0.0)) * 2.0
        q = [(r[0, 2] - r[2, 0]) / s, (r[0, 1] + r[1, 0]) / s, 0.25 * s, (r[1, 2] + r[2, 1]) / s]
    else:
        s = math.sqrt(max(1.0 + r[2, 2] - r[0, 0] - r[1, 1], 0.0)) * 2.0
        q = [(r[1, 0] - r[0, 1]) / s, (r[0, 2] + r[2, 0]) / s, (r[1, 2] + r[2, 1]) / s, 0.25 * s]
    quat = np.asarray(q, dtype=float)
    quat /= np.linalg.norm(quat)
    if quat[0] < 0.0:
        quat = -quat
    return quat


def rotation_angle(rotation) -> float:
    """Angle in ``[0, pi]`` of the axis-angle form of a rotation matrix."""
    q = matrix_to_quaternion(rotation)
    return 2.0 * math.atan2(float(np.linalg.norm(q[1:])), abs(float(q[0])))


def euler_to_matrix(roll: float, pitch: float, yaw: float) -> np.ndarray:
    """Rotation ``Rz(yaw) @ Ry(pitch) @ Rx(roll)``."""
    cr, sr = math.cos(roll), math.sin(roll)
    cp, sp = math.cos(pitch), math.sin(pitch)
    cy, sy = math.cos(yaw), math.sin(yaw)
    rx = np.array([[1.0, 0.0, 0.0], [0.0, cr, -sr], [0.0, sr, cr]])
    ry = np.array([[cp, 0.0, sp], [0.0, 1.0, 0.0], [-sp, 0.0, cp]])
    rz = np.array([[cy, -sy, 0.0], [sy, cy, 0.0], [0.0, 0.0, 1.0]])
    return rz @ ry @ rx


def matrix_to_euler(rotation) -> tuple[float, float, float]:
    """``(roll, pitch, yaw)`` of a rotation built as ``Rz(yaw) @ Ry(pitch) @ Rx(roll)``."""
    r = _rotation(rotation)
    roll = math.atan2(r[2, 1], r[2, 2])
    pitch = math.asin(max(-1.0, min(1.0, -r[2, 0])))
    yaw = math.atan2(r[1, 0], r[0, 0])
    return roll, pitch, yaw


def affine_from_translation_euler(x, y, z, roll, pitch, yaw) -> np.ndarray:
    """Homogeneous 4x4 transform from a translation and Euler angles."""
    matrix = np.eye(4)
    matrix[:3, :3] = euler_to_matrix(roll, pitch, yaw)
    matrix[:3, 3] = (x, y, z)
    return matrix


def translation_euler_from_affine(matrix) -> tuple[float, float, float, float, float, float]:
    """``(x, y, z, roll, pitch, yaw)`` of a homogeneous transform."""
    m = np.asarray(matrix, dtype=float)
    if m.shape not in ((4, 4), (3, 4)):
        raise ValueError(f"expected a 4x4 or 3x4 transform, got shape {m.shape}")
    roll, pitch, yaw = matrix_to_euler(m[:3, :3])
    x, y, z = (float(v) for v in m[:3, 3])
    return x, y, z, roll, pitch, yaw


def _so3_exp(omega: np.ndarray) -> np.ndarray:
    theta = float(np.linalg.norm(omega))
    k = hat(omega)
    if theta < _LOG_EPS:
        return np.eye(3) + k + 0.5 * (k @ k)
    return (
        np.eye(3)
        + (math.sin(theta) / theta) * k
        + ((1.0 - math.cos(theta)) / (theta * theta)) * (k @ k)
    )


def _so3_log(rotation: np.ndarray) -> np.ndarray:
    q = matrix_to_quaternion(rotation)
    w, vec = float(q[0]), q[1:]
    n = float(np.linalg.norm(vec))
    if n < _LOG_EPS:
        two_atan = 2.0 / w - (2.0 / 3.0) * (n * n) / (w * w * w)
    elif abs(w) < _LOG_EPS:
        two_atan = math.pi / n
    else:
        two_atan = 2.0 * math.atan(n / w) / n
    return two_atan * vec


def _left_jacobian(omega: np.ndarray) -> np.ndarray:
    theta = float(np.linalg.norm(omega))
    k = hat(omega)
    if theta < _TAYLOR_EPS:
        return np.eye(3) + 0.5 * k + (k @ k) / 6.0
    t2 = theta * theta
    return (
        np.eye(3)
        + ((1.0 - math.cos(theta)) / t2) * k
        + ((theta - math.sin(theta)) / (t2 * theta)) * (k @ k)
    )


def _left_jacobian_inverse(omega: np.ndarray) -> np.ndarray:
    theta = float(np.linalg.norm(omega))
    k = hat(omega)
    if theta < _TAYLOR_EPS:
        return np.eye(3) - 0.5 * k + (k @ k) / 12.0
    coeff = (1.0 - theta * math.sin(theta) / (2.0 * (1.0 - math.cos(theta)))) / (theta * theta)
    return np.eye(3) - 0.5 * k + coeff * (k @ k)


class SE3:
    """A rigid transform: rotation matrix plus translation."""

    __slots__ = ("_rotation", "_translation")

    def __init__(self, rotation=None, translation=None):
        rot = np.eye(3) if rotation is None else _rotation(rotation).copy()
        trans = np.zeros(3) if translation is None else _vector(translation, 3, "translation").copy()
        rot.flags.writeable = False
        trans.flags.writeable = False
        self._rotation = rot
        self._translation = trans

    @property
    def rotation(self) -> np.ndarray:
        return self._rotation

    @property
    def translation(self) -> np.ndarray:
        return self._translation

    @classmethod
    def identity(cls) -> "SE3":
        return cls()

    @classmethod
    def exp(cls, xi) -> "SE3":
        """Exponential map of a twist ``(tx, ty, tz, wx, wy, wz)``."""
        twist = _vector(xi, 6, "twist")
        upsilon, omega = twist[:3], twist[3:]
        return cls(_so3_exp(omega), _left_jacobian(omega) @ upsilon)

    @classmethod
    def from_quaternion(cls, quaternion, translation) -> "SE3":
        """Build from a ``(w, x, y, z)`` quaternion (normalised) and a translation."""
        return cls(quaternion_to_matrix(quaternion), translation)

    @classmethod
    def from_matrix(cls, matrix) -> "SE3":
        """Build from a 4x4 (or 3x4) homogeneous matrix; the rotation is re-orthonormalised."""
        m = np.asarray(matrix, dtype=float)
        if m.shape not in ((4, 4), (3, 4)):
            raise ValueError(f"expected a 4x4 or 3x4 transform, got shape {m.shape}")
        rotation = quaternion_to_matrix(matrix_to_quaternion(m[:3, :3]))
        return cls(rotation, m[:3, 3])

    def log(self) -> np.ndarray:
        """Twist ``(tx, ty, tz, wx, wy, wz)`` whose exponential is this transform."""
        omega = _so3_log(self._rotation)
        upsilon = _left_jacobian_inverse(omega) @ self._translation
        return np.concatenate([upsilon, omega])

    def inverse(self) -> "SE3":
        rt = self._rotation.T
        return SE3(rt, -(rt @ self._translation))

    def __mul__(self, other):
        if not isinstance(other, SE3):
            return NotImplemented
        return SE3(
            self._rotation @ other._rotation,
            self._rotation @ other._translation + self._translation,
        )

    def apply(self, points) -> np.ndarray:
        """Transform one point of shape (3,) or many of shape (N, 3)."""
        pts = np.asarray(points, dtype=float)
        if pts.shape[-1:] != (3,):
            raise ValueError(f"points must have three coordinates, got shape {pts.shape}")
        return pts @ self._rotation.T + self._translation

    def quaternion(self) -> np.ndarray:
        """Rotation as a unit quaternion ``(w, x, y, z)``."""
        return matrix_to_quaternion(self._rotation)

    def matrix(self) -> np.ndarray:
        """Homogeneous 4x4 matrix."""
        m = np.eye(4)
        m[:3, :3] = self._rotation
        m[:3, 3] = self._translation
        return m

    def __repr__(self) -> str:
        return f"SE3(rotation={self._rotation.tolist()}, translation={self._translation.tolist()})"