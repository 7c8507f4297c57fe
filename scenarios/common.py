"""Shared scenario helpers: aiming rays at prism faces and white-light bundles."""

from __future__ import annotations

import math
from typing import Sequence

import numpy as np
from scipy.spatial.transform import Rotation

from prism_core.geometry import normalize
from prism_core.glass import AIR_INDEX, GlassMaterial, refractive_index
from prism_core.rays import Ray, RayPath, white_light_bundle
from prism_core.spectrum import spectrum_samples
from prism_core.tracer import TraceConfig

LIGHT_SOURCE_SAMPLES = 12
LIGHT_SOURCE_STANDOFF = 3.0


def default_config(**overrides) -> TraceConfig:
    return TraceConfig(**overrides)


def heading(angle_deg: float) -> np.ndarray:
    """Unit direction in the x-z plane, ``angle_deg`` measured from +x toward +z."""

    a = math.radians(angle_deg)
    return np.array([math.cos(a), 0.0, math.sin(a)], dtype=float)


def face_point(
    side_length: float,
    position: Sequence[float],
    rotation_y: float,
    fraction_from_apex: float = 0.5,
    y_offset: float = 0.7,
    face: str = "left",
) -> np.ndarray:
    """World point on a side face of :func:`prism_core.solids.triangular_prism`.

    ``fraction_from_apex`` runs from the apex edge (0) to the base edge (1).
    """

    s = float(side_length)
    h = s * math.sqrt(3.0) / 2.0
    sign = -1.0 if face == "left" else 1.0
    f = float(fraction_from_apex)
    local = np.array([sign * f * s / 2.0, float(y_offset), 2.0 * h / 3.0 - f * h], dtype=float)
    return Rotation.from_euler("y", rotation_y).apply(local) + np.asarray(position, dtype=float)


def min_deviation_rotation(material: GlassMaterial, wavelength_nm: float, heading_deg: float = 0.0) -> float:
    """Prism rotation_y (radians) putting a ray of the given heading on its symmetric pass.

    The prism is the equilateral one from :func:`prism_core.solids.triangular_prism`,
    entered through its left face.
    """

    n_rel = refractive_index(wavelength_nm, material) / AIR_INDEX
    theta1 = math.asin(min(1.0, n_rel * math.sin(math.radians(30.0))))
    return theta1 - math.radians(30.0) - math.radians(heading_deg)


def white_light_rays(
    target: Sequence[float],
    direction: Sequence[float],
    samples: int = LIGHT_SOURCE_SAMPLES,
    distance: float = 20.0,
) -> list[Ray]:
    """Equal-share rays over 400-680 nm, launched ``distance`` before ``target``."""

    d = normalize(np.asarray(direction, dtype=float))
    origin = np.asarray(target, dtype=float) - distance * d
    return white_light_bundle(origin, d, spectrum_samples(samples))


def light_source_rays(position: Sequence[float], direction: Sequence[float], samples: int = LIGHT_SOURCE_SAMPLES) -> list[Ray]:
    """Rays as emitted by a lamp body at ``position`` (launched just past its face)."""

    d = normalize(np.asarray(direction, dtype=float))
    return white_light_bundle(np.asarray(position, dtype=float) + LIGHT_SOURCE_STANDOFF * d, d, spectrum_samples(samples))


def paths_to_records(paths: list[RayPath]) -> list[dict]:
    return [p.to_record() for p in paths]
