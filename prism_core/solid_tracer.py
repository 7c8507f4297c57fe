"""Entry, internal-reflection and exit sequence of one ray through one solid.

Example:
    >>> import numpy as np
    >>> from prism_core.rays import Ray
    >>> from prism_core.solids import rectangular_block
    >>> from prism_core.solid_tracer import trace_through_solid
    >>> block = rectangular_block(4.0, 4.0, 4.0)
    >>> out = trace_through_solid(block, Ray(np.array([-10.0, 0.3, 0.2]), np.array([1.0, 0.0, 0.0]), 589.0))
    >>> out.status, len(out.exit_rays), len(out.internal_segments)
    ('exited', 1, 1)
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Literal, Optional

from prism_core.geometry import Vec3
from prism_core.rays import Ray, RaySegment
from prism_core.refraction import attempt_tir_reflection, reflect_ray, refract_ray
from prism_core.solids import OpticalSolid

logger = logging.getLogger(__name__)

SolidTraceStatus = Literal["exited", "trapped", "missed", "bounce_limit", "rejected"]


@dataclass
class SolidTrace:
    """Rays leaving the solid plus the internal segments walked to get there.

    Status meanings: ``exited`` a refracted exit ray was produced;
    ``trapped`` the TIR cap was reached; ``missed`` the ray found no face;
    ``bounce_limit`` the iteration cap ran out; ``rejected`` the entry face
    refused transmission.
    """

    exit_rays: list[Ray] = field(default_factory=list)
    internal_segments: list[RaySegment] = field(default_factory=list)
    status: SolidTraceStatus = "missed"
    tir_count: int = 0


def trace_through_solid(
    solid: OpticalSolid,
    ray: Ray,
    max_bounces: int = 16,
    max_tir: int = 6,
    min_distance: float = 0.01,
    split_reflections: bool = False,
    min_branch_intensity: float = 0.0,
    solid_index: Optional[int] = None,
) -> SolidTrace:
    """Trace ``ray`` (arriving from outside) through ``solid``.

    With ``split_reflections`` the Fresnel reflection off the entry face is
    returned as an extra exit ray, after the transmitted one.
    """

    out = SolidTrace()
    current = ray
    inside = False
    face_point: Vec3 | None = None
    ghost: Ray | None = None

    for _ in range(max_bounces):
        hit = solid.intersect(current, min_distance=min_distance)
        if hit is None:
            out.status = "missed"
            break

        if not inside:
            refracted = refract_ray(current, hit, None, solid.material)
            if refracted is None:
                out.status = "rejected"
                break
            if split_reflections:
                reflected = reflect_ray(current, hit, None, solid.material)
                if reflected.intensity > 0.0 and reflected.intensity >= min_branch_intensity:
                    ghost = reflected
            current = refracted
            face_point = hit.point
            inside = True
            continue

        out.internal_segments.append(
            RaySegment(start=face_point, end=hit.point, ray=current, hit_type="solid", element_index=solid_index)
        )
        refracted = refract_ray(current, hit, solid.material, None)
        if refracted is not None:
            out.exit_rays.append(refracted)
            out.status = "exited"
            break
        if out.tir_count >= max_tir:
            out.status = "trapped"
            logger.debug("ray %.1f nm trapped in %s after %d TIR bounces", ray.wavelength, solid.name, out.tir_count)
            break
        out.tir_count += 1
        current = attempt_tir_reflection(current, hit)
        face_point = hit.point
    else:
        out.status = "bounce_limit"

    if ghost is not None:
        out.exit_rays.append(ghost)
    return out
