"""Voxel hash map used as the local map for scan-to-map registration."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np

from kisslam.geometry import SE3, hat

Voxel = Tuple[int, int, int]

# Squared distance below which the early-exit neighbour search stops looking.
_EARLY_EXIT_DISTANCE2 = 0.05 * 0.05


def _point(value) -> np.ndarray:
    arr = np.asarray(value, dtype=float)
    if arr.shape != (3,):
        raise ValueError(f"a point must have three coordinates, got shape {arr.shape}")
    return arr


def _points(values) -> np.ndarray:
    return np.asarray(values, dtype=float).reshape(-1, 3)


def _square(x: float) -> float:
    return x * x


@dataclass
class VoxelBlock:
    """Points stored in one voxel, capped at ``num_points``."""

    points: List[np.ndarray] = field(default_factory=list)
    num_points: int = 20

    def add_point(self, point) -> None:
        """Store the point unless the block is already full."""
        if len(self.points) < self.num_points:
            self.points.append(_point(point).copy())


class VoxelHashMap:
    """Sparse voxel grid holding a bounded number of points per voxel."""

    def __init__(self, voxel_size: float, max_distance: float, max_points_per_voxel: int):
        if voxel_size <= 0:
            raise ValueError("voxel_size must be positive")
        self.voxel_size = float(voxel_size)
        self.max_distance = float(max_distance)
        self.max_points_per_voxel = int(max_points_per_voxel)
        self._map: Dict[Voxel, VoxelBlock] = {}

    def _voxel_of(self, point: np.ndarray) -> Voxel:
        i, j, k = (int(v) for v in point / self.voxel_size)
        return i, j, k

    def _neighbor_voxels(self, kx: int, ky: int, kz: int) -> Iterable[VoxelBlock]:
        for i in range(kx - 1, kx + 2):
            for j in range(ky - 1, ky + 2):
                for k in range(kz - 1, kz + 2):
                    block = self._map.get((i, j, k))
                    if block is not None:
                        yield block

    def _nearest(self, point: np.ndarray) -> Tuple[Optional[np.ndarray], float]:
        """Exhaustive nearest neighbour over the 27 surrounding voxels."""
        closest: Optional[np.ndarray] = None
        closest_d2 = math.inf
        for block in self._neighbor_voxels(*self._voxel_of(point)):
            for neighbor in block.points:
                d2 = float(np.sum((neighbor - point) ** 2))
                if d2 < closest_d2:
                    closest, closest_d2 = neighbor, d2
        return closest, closest_d2

    def closest_neighbor(self, point) -> Tuple[Optional[np.ndarray], float]:
        """Closest stored point and its squared distance.

        The search stops at the first point closer than 5 cm. Returns
        ``(None, inf)`` when no point lies in the surrounding voxels.
        """
        p = _point(point)
        closest: Optional[np.ndarray] = None
        closest_d2 = math.inf
        for block in self._neighbor_voxels(*self._voxel_of(p)):
            for neighbor in block.points:
                d2 = float(np.sum((neighbor - p) ** 2))
                if d2 < closest_d2:
                    closest, closest_d2 = neighbor, d2
                    if closest_d2 < _EARLY_EXIT_DISTANCE2:
                        return closest.copy(), closest_d2
        return (None if closest is None else closest.copy()), closest_d2

    def closest_neighbor_with_residual(
        self, point
    ) -> Tuple[Optional[np.ndarray], float, Optional[np.ndarray]]:
        """Closest stored point, its squared distance and the residual ``point - neighbor``."""
        p = _point(point)
        k = p * (1.0 / self.voxel_size)
        kx, ky, kz = (int(v) for v in k)
        closest: Optional[np.ndarray] = None
        closest_d2 = math.inf
        residual: Optional[np.ndarray] = None
        for block in self._neighbor_voxels(kx, ky, kz):
            for neighbor in block.points:
                r = p - neighbor
                d2 = float(np.dot(r, r))
                if d2 < closest_d2:
                    closest, closest_d2, residual = neighbor, d2, r
        if closest is None:
            return None, closest_d2, None
        return closest.copy(), closest_d2, residual

    def _collect(self, points, max_distance: float, search) -> Tuple[np.ndarray, np.ndarray]:
        source: List[np.ndarray] = []
        target: List[np.ndarray] = []
        for p in _points(points):
            neighbor = search(p)
            if neighbor is None:
                continue
            if float(np.linalg.norm(neighbor - p)) < max_distance:
                source.append(p)
                target.append(neighbor)
        return _points(source), _points(target)

    def get_correspondences(
        self, points, max_correspondence_distance: float
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Pairs ``(source, target)`` of query points and their exact nearest map points."""
        return self._collect(
            points, max_correspondence_distance, lambda p: self._nearest(p)[0]
        )

    def get_correspondences_fused(
        self, points, max_correspondence_distance: float
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Like :meth:`get_correspondences` but using the early-exit neighbour search."""
        return self._collect(
            points, max_correspondence_distance, lambda p: self.closest_neighbor(p)[0]
        )

    def align(self, points, max_correspondence_distance: float, kernel: float) -> SE3:
        """One robust Gauss-Newton step aligning ``points`` to the map.

        Correspondences farther than ``max_correspondence_distance`` are ignored;
        the rest are weighted by ``kernel^2 / (kernel + d^2)^2``.
        """
        jtj = np.zeros((6, 6))
        jtr = np.zeros(6)
        max_d2 = _square(max_correspondence_distance)
        for p in _points(points):
            _, d2, residual = self.closest_neighbor_with_residual(p)
            if residual is None or not d2 < max_d2:
                continue
            jacobian = np.hstack([np.eye(3), -hat(p)])
            weight = _square(kernel) / _square(kernel + d2)
            jtj += weight * (jacobian.T @ jacobian)
            jtr += weight * (jacobian.T @ residual)
        try:
            x = np.linalg.solve(jtj, -jtr)
        except np.linalg.LinAlgError:
            x = np.linalg.lstsq(jtj, -jtr, rcond=None)[0]
        return SE3.exp(x)

    def compute_cost(self, points, max_correspondence_distance: float, kernel: float) -> float:
        """Sum of robust weights of the points that have a correspondence."""
        max_d2 = _square(max_correspondence_distance)
        total = 0.0
        for p in _points(points):
            _, d2, _ = self.closest_neighbor_with_residual(p)
            if d2 < max_d2:
                total += _square(kernel) / _square(kernel + d2)
        return total

    def clear(self) -> None:
        self._map.clear()

    def empty(self) -> bool:
        return not self._map

    def __len__(self) -> int:
        """Number of occupied voxels."""
        return len(self._map)

    def update(self, points, origin) -> None:
        """Add points and drop voxels too far from ``origin``."""
        self.add_points(points)
        self.remove_points_far_from_location(origin)

    def update_with_pose(self, points, pose: SE3) -> None:
        """Transform points by ``pose``, add them and crop around the pose position."""
        transformed = pose.apply(_points(points))
        self.update(transformed, pose.translation)

    def add_points(self, points) -> None:
        for p in _points(points):
            voxel = self._voxel_of(p)
            block = self._map.get(voxel)
            if block is not None:
                block.add_point(p)
            else:
                self._map[voxel] = VoxelBlock([p.copy()], self.max_points_per_voxel)

    def remove_points_far_from_location(self, origin) -> None:
        """Drop every voxel whose first point is farther than ``max_distance`` from ``origin``."""
        o = _point(origin)
        max_d2 = self.max_distance * self.max_distance
        far = [
            voxel
            for voxel, block in self._map.items()
            if float(np.sum((block.points[0] - o) ** 2)) > max_d2
        ]
        for voxel in far:
            del self._map[voxel]

    def point_cloud(self) -> np.ndarray:
        """All stored points as an ``(N, 3)`` array."""
        return _points([p for block in self._map.values() for p in block.points])