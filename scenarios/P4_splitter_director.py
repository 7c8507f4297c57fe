"""P4 dense-flint splitter fanning white light into a crown director prism.

The director is mirrored (entered through its right face) so it bends its
target colour back toward the backdrop. Entry-face reflections are traced as
separate branches.
"""

from __future__ import annotations

from dataclasses import replace
import math
from typing import Any

from analysis.dispersion import deviation_at_incidence
from prism_core.glass import AIR_INDEX, BK7, SF11, refractive_index
from prism_core.rays import RayPath
from prism_core.solids import director_prism, splitter_prism
from prism_core.tracer import Scene, TraceConfig, trace_rays
from scenarios.common import face_point, heading, min_deviation_rotation, white_light_rays

SPLITTER_POSITION = (0.0, 5.0, 0.0)
SPLITTER_SIDE = 5.0
DIRECTOR_SIDE = 4.5
DESIGN_WAVELENGTH_NM = 550.0
APEX = math.radians(60.0)
BEAM_Y_OFFSET = 0.7


def _theta1(material, wavelength_nm: float) -> float:
    n_rel = refractive_index(wavelength_nm, material) / AIR_INDEX
    return math.asin(min(1.0, n_rel * 0.5))


def incoming_heading_deg() -> float:
    dev = 2.0 * _theta1(SF11, DESIGN_WAVELENGTH_NM) - APEX
    return 0.5 * math.degrees(dev)


def splitter_rotation() -> float:
    return min_deviation_rotation(SF11, DESIGN_WAVELENGTH_NM, incoming_heading_deg())


def fan_heading_deg(wavelength_nm: float) -> float:
    """Heading of the splitter's exit ray for ``wavelength_nm``."""

    theta_i = _theta1(SF11, DESIGN_WAVELENGTH_NM)
    n_rel = refractive_index(wavelength_nm, SF11) / AIR_INDEX
    return incoming_heading_deg() - math.degrees(deviation_at_incidence(APEX, theta_i, n_rel))


def mirrored_director_rotation(target_wavelength_nm: float, heading_deg: float) -> float:
    """rotation_y for a director entered through its right face on the symmetric pass."""

    return -math.radians(150.0) - _theta1(BK7, target_wavelength_nm) - math.radians(heading_deg)


def build_scene(target_wavelength_nm: float = 535.0, distance: float = 12.0) -> Scene:
    rot_s = splitter_rotation()
    splitter = splitter_prism(SPLITTER_POSITION, rotation_y=rot_s)
    exit_point = face_point(SPLITTER_SIDE, SPLITTER_POSITION, rot_s, y_offset=BEAM_Y_OFFSET, face="right")
    psi = fan_heading_deg(target_wavelength_nm)
    aim = exit_point + distance * heading(psi)
    rot_d = mirrored_director_rotation(target_wavelength_nm, psi)
    offset = face_point(DIRECTOR_SIDE, (0.0, 0.0, 0.0), rot_d, y_offset=BEAM_Y_OFFSET, face="right")
    director = director_prism(aim - offset, target_wavelength_nm, rotation_y=rot_d)
    return Scene(solids=(splitter, director))


def build_sweep_params() -> list[dict[str, Any]]:
    return [{"target_wavelength_nm": wl, "distance": 12.0} for wl in (450.0, 535.0, 620.0)]


def run_case(params: dict[str, Any], config: TraceConfig | None = None, samples: int = 12) -> list[RayPath]:
    cfg = replace(config or TraceConfig(), split_reflections=True)
    scene = build_scene(float(params.get("target_wavelength_nm", 535.0)), float(params.get("distance", 12.0)))
    target = face_point(SPLITTER_SIDE, SPLITTER_POSITION, splitter_rotation(), y_offset=BEAM_Y_OFFSET)
    return trace_rays(scene, white_light_rays(target, heading(incoming_heading_deg()), samples), cfg)
