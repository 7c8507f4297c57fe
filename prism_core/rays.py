"""Ray, ray-hit and traced-path data structures.

Example:
    >>> import numpy as np
    >>> from prism_core.rays import Ray
    >>> r = Ray(origin=np.zeros(3), direction=np.array([2.0, 0.0, 0.0]), wavelength=589.0)
    >>> np.allclose(r.direction, np.array([1.0, 0.0, 0.0]))
    True
    >>> hit = r.intersect_plane(np.array([-1.0, 0.0, 0.0]), np.array([5.0, 0.0, 0.0]))
    >>> round(hit.distance, 6), hit.entering
    (5.0, True)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional, Sequence

import numpy as np

from prism_core.geometry import Vec3, normalize, ray_plane_intersection, ray_triangle_intersection, triangle_normals

INTENSITY_TOL = 1e-9


@dataclass(frozen=True)
class RayHit:
    """Surface crossing.

    ``normal`` always faces the incoming ray (``normal . direction < 0``).
    ``entering`` is True when the surface's own (winding/outward) normal
    opposed the ray, i.e. the ray crosses from the outside in.
    """

    point: Vec3
    normal: Vec3
    distance: float
    entering: bool


@dataclass(frozen=True)
class Ray:
    origin: Vec3
    direction: Vec3
    wavelength: float = 550.0
    intensity: float = 1.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "origin", np.asarray(self.origin, dtype=float))
        object.__setattr__(self, "direction", normalize(np.asarray(self.direction, dtype=float)))
        if not float(self.wavelength) > 0.0:
            raise ValueError(f"Wavelength must be positive, got {self.wavelength}")
        intensity = float(self.intensity)
        if intensity < -INTENSITY_TOL or intensity > 1.0 + INTENSITY_TOL:
            raise ValueError(f"Intensity must lie in [0, 1], got {intensity}")
        object.__setattr__(self, "wavelength", float(self.wavelength))
        object.__setattr__(self, "intensity", float(np.clip(intensity, 0.0, 1.0)))

    def at(self, t: float) -> Vec3:
        return self.origin + float(t) * self.direction

    def with_intensity(self, intensity: float) -> "Ray":
        return Ray(origin=self.origin, direction=self.direction, wavelength=self.wavelength, intensity=intensity)

    def intersect_triangle(self, v0: Vec3, v1: Vec3, v2: Vec3, min_distance: float = 0.01) -> Optional[RayHit]:
        hit = ray_triangle_intersection(self.origin, self.direction, v0, v1, v2, min_distance=min_distance)
        if hit is None:
            return None
        n = triangle_normals(np.atleast_2d(v0), np.atleast_2d(v1), np.atleast_2d(v2))[0]
        return make_hit(hit.point, n, hit.t, self.direction)

    def intersect_plane(self, normal: Vec3, point: Vec3, min_distance: float = 0.01) -> Optional[RayHit]:
        hit = ray_plane_intersection(self.origin, self.direction, normal, point, min_distance=min_distance)
        if hit is None:
            return None
        return make_hit(hit.point, normalize(normal), hit.t, self.direction)


def make_hit(point: Vec3, surface_normal: Vec3, distance: float, direction: Vec3) -> RayHit:
    """Build a RayHit, flipping the surface normal to face the ray."""

    n = np.asarray(surface_normal, dtype=float)
    entering = float(np.dot(n, direction)) < 0.0
    return RayHit(
        point=np.asarray(point, dtype=float),
        normal=n if entering else -n,
        distance=float(distance),
        entering=entering,
    )


def white_light_bundle(
    origin: Vec3,
    direction: Vec3,
    wavelengths: Sequence[float],
    intensity: float = 1.0,
) -> list[Ray]:
    """One ray per wavelength sample sharing ``intensity`` evenly."""

    if len(wavelengths) == 0:
        return []
    share = float(intensity) / len(wavelengths)
    return [Ray(origin=origin, direction=direction, wavelength=float(wl), intensity=share) for wl in wavelengths]


HitType = Literal["solid", "blocker", "backdrop", "escaped"]
Termination = Literal["backdrop", "absorbed", "escaped", "out_of_bounds", "trapped", "branched", "bounce_limit", "faded"]


@dataclass(frozen=True, eq=False)
class RaySegment:
    """Straight piece of a path; ``ray`` is the ray state at ``start``."""

    start: Vec3
    end: Vec3
    ray: Ray
    hit_type: HitType
    element_index: int | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", np.asarray(self.start, dtype=float))
        object.__setattr__(self, "end", np.asarray(self.end, dtype=float))

    @property
    def length(self) -> float:
        return float(np.linalg.norm(self.end - self.start))


@dataclass(frozen=True, eq=False)
class RayPath:
    segments: tuple[RaySegment, ...]
    final_position: Vec3 | None
    wavelength: float
    intensity: float
    termination: Termination

    @property
    def points(self) -> list[Vec3]:
        if not self.segments:
            return []
        return [self.segments[0].start] + [s.end for s in self.segments]

    def to_record(self) -> dict:
        return {
            "wavelength": self.wavelength,
            "intensity": self.intensity,
            "termination": self.termination,
            "final_position": None if self.final_position is None else np.asarray(self.final_position, dtype=float).tolist(),
            "segments": [
                {
                    "start": s.start.tolist(),
                    "end": s.end.tolist(),
                    "hit_type": s.hit_type,
                    "element_index": -1 if s.element_index is None else int(s.element_index),
                    "intensity": s.ray.intensity,
                }
                for s in self.segments
            ],
        }
