"""Geometry primitives for dispersive prism ray tracing.

Example:
    >>> import numpy as np
    >>> from prism_core.geometry import ray_plane_intersection
    >>> hit = ray_plane_intersection(np.array([0.0, 0.0, 1.0]), np.array([0.0, 0.0, -1.0]), np.array([0.0, 0.0, 1.0]), np.zeros(3))
    >>> np.allclose(hit.point, np.array([0.0, 0.0, 0.0]))
    True
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

import numpy as np
from numpy.typing import NDArray

Vec3 = NDArray[np.float64]
GEOM_EPS = 1e-12
PARALLEL_EPS = 1e-8


@dataclass(frozen=True)
class Hit:
    t: float
    point: Vec3


def normalize(v: Vec3, eps: float = GEOM_EPS) -> Vec3:
    vv = np.asarray(v, dtype=float)
    n = np.linalg.norm(vv)
    if n < eps:
        raise ValueError("Cannot normalize near-zero vector")
    return vv / n


def ray_triangles_intersection(
    origin: Vec3,
    direction: Vec3,
    v0: NDArray[np.float64],
    v1: NDArray[np.float64],
    v2: NDArray[np.float64],
    min_distance: float = 0.01,
    eps: float = PARALLEL_EPS,
) -> NDArray[np.float64]:
    """Möller–Trumbore against N triangles at once.

    ``v0``, ``v1`` and ``v2`` are (N,3) vertex arrays. Returns an (N,) array of
    hit parameters with ``inf`` wherever the triangle is rejected (near-parallel,
    outside the barycentric range, or not beyond ``min_distance``).
    """

    o = np.asarray(origin, dtype=float)
    d = np.asarray(direction, dtype=float)
    a = np.atleast_2d(np.asarray(v0, dtype=float))
    e1 = np.atleast_2d(np.asarray(v1, dtype=float)) - a
    e2 = np.atleast_2d(np.asarray(v2, dtype=float)) - a

    h = np.cross(d, e2)
    det = np.einsum("ij,ij->i", e1, h)
    ok = np.abs(det) >= eps
    with np.errstate(divide="ignore", invalid="ignore"):
        inv = np.where(ok, 1.0 / np.where(ok, det, 1.0), 0.0)
        s = o - a
        u = inv * np.einsum("ij,ij->i", s, h)
        q = np.cross(s, e1)
        v = inv * (q @ d)
        t = inv * np.einsum("ij,ij->i", e2, q)
    ok &= (u >= 0.0) & (u <= 1.0)
    ok &= (v >= 0.0) & (u + v <= 1.0)
    ok &= t > float(min_distance)
    return np.where(ok, t, np.inf)


def ray_triangle_intersection(
    origin: Vec3,
    direction: Vec3,
    v0: Vec3,
    v1: Vec3,
    v2: Vec3,
    min_distance: float = 0.01,
) -> Optional[Hit]:
    t = float(ray_triangles_intersection(origin, direction, v0, v1, v2, min_distance=min_distance)[0])
    if not np.isfinite(t):
        return None
    return Hit(t=t, point=np.asarray(origin, dtype=float) + t * np.asarray(direction, dtype=float))


def triangle_normals(v0: NDArray[np.float64], v1: NDArray[np.float64], v2: NDArray[np.float64]) -> NDArray[np.float64]:
    """Unit normals from winding, shape (N,3)."""

    n = np.cross(np.asarray(v1, dtype=float) - v0, np.asarray(v2, dtype=float) - v0)
    norms = np.linalg.norm(n, axis=1, keepdims=True)
    if np.any(norms < GEOM_EPS):
        raise ValueError("Degenerate triangle with zero area")
    return n / norms


def ray_plane_intersection(
    origin: Vec3,
    direction: Vec3,
    normal: Vec3,
    point: Vec3,
    min_distance: float = 0.01,
    eps: float = PARALLEL_EPS,
) -> Optional[Hit]:
    """Compute ray-plane intersection for t > min_distance."""

    o = np.asarray(origin, dtype=float)
    d = normalize(np.asarray(direction, dtype=float))
    n = normalize(np.asarray(normal, dtype=float))
    denom = float(np.dot(d, n))
    if abs(denom) < eps:
        return None
    t = float(np.dot(np.asarray(point, dtype=float) - o, n) / denom)
    if t <= min_distance:
        return None
    return Hit(t=t, point=o + t * d)


def reflect_direction(direction: Vec3, normal: Vec3) -> Vec3:
    """Specularly reflect a direction around the given unit normal."""

    d = normalize(np.asarray(direction, dtype=float))
    n = normalize(np.asarray(normal, dtype=float))
    return normalize(d - 2.0 * float(np.dot(d, n)) * n)


@dataclass(frozen=True)
class SpatialBounds:
    """Axis-aligned simulation box; rays starting outside it are terminated."""

    min_x: float = -50.0
    max_x: float = 100.0
    min_y: float = -20.0
    max_y: float = 50.0
    min_z: float = -50.0
    max_z: float = 60.0

    def __post_init__(self) -> None:
        if self.min_x >= self.max_x or self.min_y >= self.max_y or self.min_z >= self.max_z:
            raise ValueError(f"Empty spatial bounds: {self}")

    @property
    def lower(self) -> Vec3:
        return np.array([self.min_x, self.min_y, self.min_z], dtype=float)

    @property
    def upper(self) -> Vec3:
        return np.array([self.max_x, self.max_y, self.max_z], dtype=float)

    def contains(self, point: Vec3) -> bool:
        p = np.asarray(point, dtype=float)
        return bool(np.all(p >= self.lower) and np.all(p <= self.upper))

    def distance_to_edge(self, origin: Vec3, direction: Vec3) -> float:
        """Smallest positive distance along the ray to any of the six boundary planes."""

        o = np.asarray(origin, dtype=float)
        d = np.asarray(direction, dtype=float)
        best = np.inf
        for axis in range(3):
            if d[axis] == 0.0:
                continue
            for bound in (self.lower[axis], self.upper[axis]):
                t = float((bound - o[axis]) / d[axis])
                if t > 0.0:
                    best = min(best, t)
        return float(best)

    def to_dict(self) -> dict[str, float]:
        return {
            "min_x": self.min_x,
            "max_x": self.max_x,
            "min_y": self.min_y,
            "max_y": self.max_y,
            "min_z": self.min_z,
            "max_z": self.max_z,
        }


def path_length(points: Iterable[Vec3]) -> float:
    pts = [np.asarray(p, dtype=float) for p in points]
    if len(pts) < 2:
        return 0.0
    return float(sum(np.linalg.norm(pts[i + 1] - pts[i]) for i in range(len(pts) - 1)))
