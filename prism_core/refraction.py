"""Refraction, Fresnel reflectance and prism deviation utilities.

Normals handed to these functions face the incoming ray (the convention of
:class:`prism_core.rays.RayHit`): on entry that is the outward face normal,
on exit the outward normal negated.

Example:
    >>> import numpy as np
    >>> from prism_core.refraction import fresnel_reflectance, snell_refract
    >>> round(fresnel_reflectance(1.0, 1.0, 1.5), 6)
    0.04
    >>> d = np.array([np.sin(np.radians(45.0)), 0.0, np.cos(np.radians(45.0))])
    >>> snell_refract(d, np.array([0.0, 0.0, -1.0]), 1.5, 1.0) is None
    True
"""

from __future__ import annotations

import math
from typing import Optional

import numpy as np

from prism_core.geometry import Vec3, normalize, reflect_direction
from prism_core.glass import GlassMaterial, medium_index, refractive_index, sellmeier_derivative
from prism_core.rays import Ray, RayHit

REFRACT_OFFSET = 0.05
TIR_LOSS = 0.01


def snell_refract(incident: Vec3, normal: Vec3, n1: float, n2: float) -> Optional[Vec3]:
    """Refracted unit direction, or None under total internal reflection."""

    d = normalize(incident)
    n = normalize(normal)
    cos_i = -float(np.dot(n, d))
    if cos_i < 0.0:
        n = -n
        cos_i = -cos_i
    eta = float(n1) / float(n2)
    sin2_t = eta * eta * (1.0 - cos_i * cos_i)
    if sin2_t > 1.0:
        return None
    cos_t = math.sqrt(1.0 - sin2_t)
    return normalize(eta * d + (eta * cos_i - cos_t) * n)


def fresnel_reflectance(cos_i: float, n1: float, n2: float) -> float:
    """Unpolarized reflectance (mean of s and p); exactly 1.0 beyond the critical angle."""

    ci = min(abs(float(cos_i)), 1.0)
    eta = float(n1) / float(n2)
    sin2_t = eta * eta * (1.0 - ci * ci)
    if sin2_t > 1.0:
        return 1.0
    ct = math.sqrt(1.0 - sin2_t)
    rs = ((n1 * ci - n2 * ct) / (n1 * ci + n2 * ct)) ** 2
    rp = ((n1 * ct - n2 * ci) / (n1 * ct + n2 * ci)) ** 2
    return float(np.clip(0.5 * (rs + rp), 0.0, 1.0))


def reflect(incident: Vec3, normal: Vec3) -> Vec3:
    return reflect_direction(incident, normal)


def critical_angle(n1: float, n2: float) -> Optional[float]:
    """TIR onset angle going from n1 into n2; None when n1 <= n2."""

    if n1 <= n2:
        return None
    return math.asin(n2 / n1)


def _interface_indices(
    ray: Ray,
    from_material: Optional[GlassMaterial],
    to_material: Optional[GlassMaterial],
) -> tuple[float, float]:
    return medium_index(from_material, ray.wavelength), medium_index(to_material, ray.wavelength)


def refract_ray(
    ray: Ray,
    hit: RayHit,
    from_material: Optional[GlassMaterial],
    to_material: Optional[GlassMaterial],
    offset: float = REFRACT_OFFSET,
) -> Optional[Ray]:
    """Transmit ``ray`` across the interface at ``hit``.

    ``None`` material means air. The returned ray carries the Fresnel
    transmittance and starts ``offset`` past the surface along its new
    direction; None signals TIR and leaves the reflection to the caller.
    """

    n1, n2 = _interface_indices(ray, from_material, to_material)
    direction = snell_refract(ray.direction, hit.normal, n1, n2)
    if direction is None:
        return None
    cos_i = abs(float(np.dot(hit.normal, ray.direction)))
    transmittance = 1.0 - fresnel_reflectance(cos_i, n1, n2)
    return Ray(
        origin=hit.point + offset * direction,
        direction=direction,
        wavelength=ray.wavelength,
        intensity=ray.intensity * transmittance,
    )


def reflect_ray(
    ray: Ray,
    hit: RayHit,
    from_material: Optional[GlassMaterial],
    to_material: Optional[GlassMaterial],
    offset: float = REFRACT_OFFSET,
) -> Ray:
    """Fresnel-reflected partner of :func:`refract_ray` (intensity scaled by R)."""

    n1, n2 = _interface_indices(ray, from_material, to_material)
    cos_i = abs(float(np.dot(hit.normal, ray.direction)))
    direction = reflect(ray.direction, hit.normal)
    return Ray(
        origin=hit.point + offset * direction,
        direction=direction,
        wavelength=ray.wavelength,
        intensity=ray.intensity * fresnel_reflectance(cos_i, n1, n2),
    )


def attempt_tir_reflection(ray: Ray, hit: RayHit, loss: float = TIR_LOSS, offset: float = REFRACT_OFFSET) -> Ray:
    """Mirror ``ray`` about the surface at ``hit`` with a small internal-surface loss.

    Shared by the solid-local tracer and the scene orchestrator's trapped-ray
    recovery.
    """

    direction = reflect(ray.direction, hit.normal)
    return Ray(
        origin=hit.point + offset * direction,
        direction=direction,
        wavelength=ray.wavelength,
        intensity=ray.intensity * (1.0 - loss),
    )


def minimum_deviation(apex_rad: float, wavelength_nm: float, material: GlassMaterial, n_medium: float = 1.0) -> float:
    """Deviation at the symmetric pass, 2 asin(n sin(A/2)) - A; pi if no ray gets through."""

    n = refractive_index(wavelength_nm, material) / float(n_medium)
    s = n * math.sin(0.5 * apex_rad)
    if s > 1.0:
        return math.pi
    return 2.0 * math.asin(s) - apex_rad


def angular_dispersion(apex_rad: float, wavelength_nm: float, material: GlassMaterial) -> float:
    """d(deviation)/d(lambda) at minimum deviation, in rad/nm."""

    n = refractive_index(wavelength_nm, material)
    half = math.sin(0.5 * apex_rad)
    arg = 1.0 - n * n * half * half
    if arg <= 0.0:
        return math.inf
    return sellmeier_derivative(wavelength_nm, material) * 2.0 * half / math.sqrt(arg)


def dispersion_spread(apex_rad: float, wavelength1_nm: float, wavelength2_nm: float, material: GlassMaterial) -> float:
    return abs(minimum_deviation(apex_rad, wavelength2_nm, material) - minimum_deviation(apex_rad, wavelength1_nm, material))
