"""P3 equilateral prism used as a reflector: normal entry, TIR off the base, normal exit."""

from __future__ import annotations

import math
from typing import Any

from prism_core.glass import get_material
from prism_core.rays import RayPath
from prism_core.solids import triangular_prism
from prism_core.tracer import Scene, TraceConfig, trace_rays
from scenarios.common import face_point, heading, white_light_rays

PRISM_POSITION = (20.0, 5.0, 0.0)
SIDE_LENGTH = 5.0
HEIGHT = 8.0
# ray heading +x meets the left face along its inward normal
ROTATION_Y = math.radians(-30.0)
ENTRY_FRACTION = 0.75


def build_scene(material_name: str = "BK7") -> Scene:
    prism = triangular_prism(SIDE_LENGTH, HEIGHT, PRISM_POSITION, ROTATION_Y, material=get_material(material_name))
    return Scene(solids=(prism,))


def build_sweep_params() -> list[dict[str, Any]]:
    return [{"material": m} for m in ("BK7", "F2", "SF11")]


def run_case(params: dict[str, Any], config: TraceConfig | None = None, samples: int = 12) -> list[RayPath]:
    scene = build_scene(str(params.get("material", "BK7")))
    target = face_point(SIDE_LENGTH, PRISM_POSITION, ROTATION_Y, fraction_from_apex=ENTRY_FRACTION)
    return trace_rays(scene, white_light_rays(target, heading(0.0), samples), config)
