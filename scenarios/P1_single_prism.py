"""P1 single equilateral prism on its minimum-deviation pass."""

from __future__ import annotations

import math
from typing import Any

from prism_core.glass import AIR_INDEX, get_material
from prism_core.rays import RayPath
from prism_core.refraction import minimum_deviation
from prism_core.solids import triangular_prism
from prism_core.tracer import Scene, TraceConfig, trace_rays
from scenarios.common import face_point, heading, min_deviation_rotation, white_light_rays

PRISM_POSITION = (0.0, 5.0, 0.0)
SIDE_LENGTH = 5.0
HEIGHT = 8.0
APEX = math.radians(60.0)


def incoming_heading_deg(material_name: str, design_wavelength_nm: float) -> float:
    """Tilt the beam up by half the deviation so the exit beam heads down by the other half."""

    return 0.5 * math.degrees(minimum_deviation(APEX, design_wavelength_nm, get_material(material_name), n_medium=AIR_INDEX))


def build_scene(material_name: str = "BK7", design_wavelength_nm: float = 589.0, heading_deg: float = 0.0) -> Scene:
    glass = get_material(material_name)
    rot = min_deviation_rotation(glass, design_wavelength_nm, heading_deg)
    return Scene(solids=(triangular_prism(SIDE_LENGTH, HEIGHT, PRISM_POSITION, rot, material=glass),))


def build_sweep_params() -> list[dict[str, Any]]:
    return [{"material": m, "design_wavelength_nm": 589.0} for m in ("BK7", "F2", "SF11")]


def run_case(params: dict[str, Any], config: TraceConfig | None = None, samples: int = 12) -> list[RayPath]:
    material = str(params.get("material", "BK7"))
    wl = float(params.get("design_wavelength_nm", 589.0))
    hd = incoming_heading_deg(material, wl)
    rot = min_deviation_rotation(get_material(material), wl, hd)
    scene = build_scene(material, wl, hd)
    target = face_point(SIDE_LENGTH, PRISM_POSITION, rot)
    return trace_rays(scene, white_light_rays(target, heading(hd), samples), config)
