"""P5 opaque wall either in the beam (absorbed) or beside it (beam reaches the backdrop)."""

from __future__ import annotations

from typing import Any

from prism_core.rays import RayPath
from prism_core.solids import wall
from prism_core.tracer import Scene, TraceConfig, trace_rays
from scenarios.common import heading, white_light_rays


def build_scene(wall_z: float = 0.0) -> Scene:
    return Scene(blockers=(wall(position=(15.0, 5.0, wall_z)),))


def build_sweep_params() -> list[dict[str, Any]]:
    return [{"wall_z": z} for z in (0.0, 0.8, 4.0)]


def run_case(params: dict[str, Any], config: TraceConfig | None = None, samples: int = 12) -> list[RayPath]:
    scene = build_scene(float(params.get("wall_z", 0.0)))
    return trace_rays(scene, white_light_rays((0.0, 5.7, 0.0), heading(0.0), samples), config)
