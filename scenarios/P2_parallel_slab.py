"""P2 tilted glass slab: exit beam parallel to the incident beam, laterally shifted."""

from __future__ import annotations

import math
from typing import Any

import numpy as np

from prism_core.glass import get_material
from prism_core.rays import RayPath
from prism_core.solids import rectangular_block
from prism_core.tracer import Scene, TraceConfig, trace_rays
from scenarios.common import heading, white_light_rays

SLAB_POSITION = (10.0, 5.0, 0.0)


def build_scene(material_name: str = "BK7", rotation_deg: float = 30.0, thickness: float = 3.0) -> Scene:
    slab = rectangular_block(thickness, 8.0, 6.0, SLAB_POSITION, math.radians(rotation_deg), material=get_material(material_name))
    return Scene(solids=(slab,))


def build_sweep_params() -> list[dict[str, Any]]:
    return [{"material": m, "rotation_deg": r} for m in ("BK7", "SF11") for r in (15.0, 30.0, 45.0)]


def run_case(params: dict[str, Any], config: TraceConfig | None = None, samples: int = 12) -> list[RayPath]:
    scene = build_scene(str(params.get("material", "BK7")), float(params.get("rotation_deg", 30.0)))
    target = np.asarray(SLAB_POSITION, dtype=float) + np.array([0.0, 0.7, 0.3])
    return trace_rays(scene, white_light_rays(target, heading(0.0), samples), config)
