"""Convex triangulated solids, opaque blockers and the backdrop plane.

Solids hold world-space triangles. Moving or rotating a solid produces a new
solid with recomputed triangles; tracing code never sees transforms.

Example:
    >>> import numpy as np
    >>> from prism_core.rays import Ray
    >>> from prism_core.solids import triangular_prism
    >>> prism = triangular_prism(side_length=5.0, height=8.0, position=(0.0, 0.0, 0.0))
    >>> hit = prism.intersect(Ray(np.array([-10.0, 0.5, -0.2]), np.array([1.0, 0.0, 0.0])))
    >>> hit.entering
    True
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
import math
from typing import Literal, Optional, Sequence

import numpy as np
from numpy.typing import NDArray
from scipy.spatial.transform import Rotation

from prism_core.geometry import Vec3, ray_triangles_intersection, triangle_normals
from prism_core.glass import BK7, SF11, GlassMaterial
from prism_core.rays import Ray, RayHit, make_hit

SolidKind = Literal["splitter", "director"]

# Vertex indices of an extruded equilateral triangle, outward winding.
_PRISM_FACES = ((0, 1, 2), (3, 5, 4), (0, 3, 4), (0, 4, 1), (0, 2, 5), (0, 5, 3), (1, 4, 5), (1, 5, 2))


def validate_closed_convex(vertices: NDArray[np.float64], normals: NDArray[np.float64], tol: float = 1e-6) -> None:
    """Raise ValueError unless the triangles bound a closed convex solid with outward normals.

    Closure: area-weighted face normals sum to zero. Orientation: every face
    normal points away from the vertex centroid. Convexity: no vertex lies in
    front of any face plane.
    """

    tri = np.asarray(vertices, dtype=float)
    e = np.cross(tri[:, 1] - tri[:, 0], tri[:, 2] - tri[:, 0])
    areas = 0.5 * np.linalg.norm(e, axis=1)
    total = float(np.sum(areas))
    scale = float(np.max(np.ptp(tri.reshape(-1, 3), axis=0)))
    if total <= 0.0 or scale <= 0.0:
        raise ValueError("Solid has no surface area")

    residual = np.linalg.norm(np.sum(areas[:, None] * normals, axis=0))
    if residual > tol * total:
        raise ValueError(f"Solid is not closed (area-weighted normal residual {residual:.3e})")

    pts = tri.reshape(-1, 3)
    centroid = pts.mean(axis=0)
    face_centres = tri.mean(axis=1)
    if np.any(np.einsum("ij,ij->i", normals, face_centres - centroid) <= 0.0):
        raise ValueError("Solid has inward-facing triangles")

    # signed distance of every vertex to every face plane
    sd = np.einsum("fk,fpk->fp", normals, pts[None, :, :] - tri[:, 0, None, :])
    if np.any(sd > tol * scale):
        raise ValueError("Solid is not convex")


@dataclass(frozen=True, eq=False)
class TriangleMesh:
    """World-space triangle set, shape (N,3,3), with unit outward normals from winding."""

    vertices: NDArray[np.float64]
    name: str = ""
    validate: bool = True
    normals: NDArray[np.float64] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        tri = np.array(self.vertices, dtype=float)
        if tri.ndim != 3 or tri.shape[1:] != (3, 3) or len(tri) < 4:
            raise ValueError(f"Expected (N>=4,3,3) triangle array, got shape {tri.shape}")
        tri.setflags(write=False)
        normals = triangle_normals(tri[:, 0], tri[:, 1], tri[:, 2])
        normals.setflags(write=False)
        object.__setattr__(self, "vertices", tri)
        object.__setattr__(self, "normals", normals)
        if self.validate:
            validate_closed_convex(tri, normals)

    @property
    def centroid(self) -> Vec3:
        return self.vertices.reshape(-1, 3).mean(axis=0)

    def closure_error(self) -> float:
        e = np.cross(self.vertices[:, 1] - self.vertices[:, 0], self.vertices[:, 2] - self.vertices[:, 0])
        areas = 0.5 * np.linalg.norm(e, axis=1)
        return float(np.linalg.norm(np.sum(areas[:, None] * self.normals, axis=0)) / np.sum(areas))

    def intersect(self, ray: Ray, min_distance: float = 0.01) -> Optional[RayHit]:
        """Nearest crossing beyond ``min_distance``."""

        t = ray_triangles_intersection(
            ray.origin,
            ray.direction,
            self.vertices[:, 0],
            self.vertices[:, 1],
            self.vertices[:, 2],
            min_distance=min_distance,
        )
        i = int(np.argmin(t))
        if not np.isfinite(t[i]):
            return None
        return make_hit(ray.at(t[i]), self.normals[i], float(t[i]), ray.direction)

    def transformed(self, rotation_y: float = 0.0, translation: Sequence[float] | None = None):
        """Copy rotated about +Y through the centroid, then translated."""

        c = self.centroid
        tri = Rotation.from_euler("y", rotation_y).apply(self.vertices.reshape(-1, 3) - c) + c
        if translation is not None:
            tri = tri + np.asarray(translation, dtype=float)
        return replace(self, vertices=tri.reshape(-1, 3, 3))


@dataclass(frozen=True, eq=False)
class OpticalSolid(TriangleMesh):
    material: GlassMaterial = BK7
    kind: SolidKind = "splitter"
    target_wavelength: float | None = None


@dataclass(frozen=True, eq=False)
class OpaqueBlocker(TriangleMesh):
    """Absorbs every ray that touches it."""


@dataclass(frozen=True, eq=False)
class Backdrop:
    normal: Vec3 = field(default_factory=lambda: np.array([-1.0, 0.0, 0.0]))
    point: Vec3 = field(default_factory=lambda: np.array([35.0, 0.0, 5.0]))

    def __post_init__(self) -> None:
        n = np.asarray(self.normal, dtype=float)
        nn = np.linalg.norm(n)
        if nn == 0:
            raise ValueError("Backdrop normal cannot be zero")
        object.__setattr__(self, "normal", n / nn)
        object.__setattr__(self, "point", np.asarray(self.point, dtype=float))

    def intersect(self, ray: Ray, min_distance: float = 0.01) -> Optional[RayHit]:
        return ray.intersect_plane(self.normal, self.point, min_distance=min_distance)


def _place(local: NDArray[np.float64], position: Sequence[float], rotation_y: float) -> NDArray[np.float64]:
    pts = Rotation.from_euler("y", rotation_y).apply(local.reshape(-1, 3)) + np.asarray(position, dtype=float)
    return pts.reshape(-1, 3, 3)


def triangular_prism_triangles(
    side_length: float,
    height: float,
    position: Sequence[float] = (0.0, 0.0, 0.0),
    rotation_y: float = 0.0,
) -> NDArray[np.float64]:
    """Equilateral prism extruded along Y, centred on ``position``.

    In the local frame the apex vertex sits on +Z and the base edge is
    parallel to X.
    """

    s = float(side_length)
    hh = 0.5 * float(height)
    h = s * math.sqrt(3.0) / 2.0
    base = [(0.0, 2.0 * h / 3.0), (-s / 2.0, -h / 3.0), (s / 2.0, -h / 3.0)]
    verts = np.array([(x, -hh, z) for x, z in base] + [(x, hh, z) for x, z in base], dtype=float)
    local = np.array([[verts[a], verts[b], verts[c]] for a, b, c in _PRISM_FACES], dtype=float)
    return _place(local, position, rotation_y)


def box_triangles(
    width: float,
    height: float,
    depth: float,
    position: Sequence[float] = (0.0, 0.0, 0.0),
    rotation_y: float = 0.0,
) -> NDArray[np.float64]:
    """Axis-aligned box (X width, Y height, Z depth) as 12 outward triangles."""

    half = np.array([width, height, depth], dtype=float) / 2.0
    axes = np.eye(3)
    faces = []
    # (normal axis, sign, u axis, v axis) with u x v along the outward normal
    for k, sign, iu, iv in ((0, 1, 1, 2), (0, -1, 2, 1), (1, 1, 2, 0), (1, -1, 0, 2), (2, 1, 0, 1), (2, -1, 1, 0)):
        c = sign * half[k] * axes[k]
        u = half[iu] * axes[iu]
        v = half[iv] * axes[iv]
        p00, p10, p11, p01 = c - u - v, c + u - v, c + u + v, c - u + v
        faces.append([p00, p10, p11])
        faces.append([p00, p11, p01])
    return _place(np.asarray(faces, dtype=float), position, rotation_y)


def triangular_prism(
    side_length: float,
    height: float,
    position: Sequence[float] = (0.0, 0.0, 0.0),
    rotation_y: float = 0.0,
    material: GlassMaterial = BK7,
    kind: SolidKind = "splitter",
    target_wavelength: float | None = None,
    name: str = "prism",
) -> OpticalSolid:
    return OpticalSolid(
        vertices=triangular_prism_triangles(side_length, height, position, rotation_y),
        name=name,
        material=material,
        kind=kind,
        target_wavelength=target_wavelength,
    )


def rectangular_block(
    width: float,
    height: float,
    depth: float,
    position: Sequence[float] = (0.0, 0.0, 0.0),
    rotation_y: float = 0.0,
    material: GlassMaterial = BK7,
    name: str = "block",
) -> OpticalSolid:
    """Glass slab with parallel faces."""

    return OpticalSolid(vertices=box_triangles(width, height, depth, position, rotation_y), name=name, material=material)


def splitter_prism(position: Sequence[float], material: GlassMaterial = SF11, rotation_y: float = 0.0) -> OpticalSolid:
    return triangular_prism(5.0, 8.0, position, rotation_y, material=material, kind="splitter", name="splitter")


def director_prism(
    position: Sequence[float],
    target_wavelength: float,
    material: GlassMaterial = BK7,
    rotation_y: float = 0.0,
) -> OpticalSolid:
    return triangular_prism(
        4.5,
        10.0,
        position,
        rotation_y,
        material=material,
        kind="director",
        target_wavelength=target_wavelength,
        name=f"director_{int(round(target_wavelength))}nm",
    )


def wall(
    position: Sequence[float] = (0.0, 5.0, 0.0),
    width: float = 2.0,
    height: float = 10.0,
    depth: float = 2.0,
    rotation_y: float = 0.0,
) -> OpaqueBlocker:
    return OpaqueBlocker(vertices=box_triangles(width, height, depth, position, rotation_y), name="wall")
