"""Scene-level optical tracer: solids, blockers, backdrop and branching.

``trace_ray`` is a pure function of (scene, ray, config) that returns the
finished path plus any child rays spawned by a branching event;
``trace_rays`` owns the FIFO work queue. ``OpticalSystem`` is the mutable
holder used by interactive callers.

Example:
    >>> import numpy as np
    >>> from prism_core.rays import Ray
    >>> from prism_core.tracer import Scene, TraceConfig, trace
    >>> paths = trace(Scene(), [Ray(np.array([0.0, 5.0, 5.0]), np.array([1.0, 0.0, 0.0]), 550.0)])
    >>> paths[0].termination, np.allclose(paths[0].final_position, [35.0, 5.0, 5.0])
    ('backdrop', True)
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field, replace
import logging
from typing import Iterable, Literal, Optional, Sequence

import numpy as np

from prism_core.geometry import SpatialBounds, Vec3
from prism_core.rays import Ray, RayHit, RayPath, RaySegment, Termination
from prism_core.refraction import attempt_tir_reflection
from prism_core.solid_tracer import trace_through_solid
from prism_core.solids import Backdrop, OpaqueBlocker, OpticalSolid

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TraceConfig:
    max_bounces: int = 16
    min_intensity: float = 0.01
    max_tir: int = 6
    max_rays: int = 5000
    hit_epsilon: float = 0.01
    tir_epsilon: float = 0.001
    escape_draw_limit: float = 50.0
    out_of_bounds_draw_length: float = 2.0
    split_reflections: bool = False
    bounds: SpatialBounds = field(default_factory=SpatialBounds)
    backdrop: Backdrop = field(default_factory=Backdrop)

    def __post_init__(self) -> None:
        for name in ("max_bounces", "max_tir", "max_rays"):
            if int(getattr(self, name)) < 0:
                raise ValueError(f"{name} must be non-negative")
        if not 0.0 <= self.min_intensity <= 1.0:
            raise ValueError("min_intensity must lie in [0, 1]")
        if self.hit_epsilon <= 0.0 or self.tir_epsilon <= 0.0:
            raise ValueError("intersection epsilons must be positive")

    def to_dict(self) -> dict:
        return {
            "max_bounces": self.max_bounces,
            "min_intensity": self.min_intensity,
            "max_tir": self.max_tir,
            "max_rays": self.max_rays,
            "hit_epsilon": self.hit_epsilon,
            "tir_epsilon": self.tir_epsilon,
            "split_reflections": self.split_reflections,
            "bounds": self.bounds.to_dict(),
            "backdrop": {"normal": self.backdrop.normal.tolist(), "point": self.backdrop.point.tolist()},
        }


@dataclass(frozen=True)
class Scene:
    """Frozen scene snapshot; elements are addressed by their index."""

    solids: tuple[OpticalSolid, ...] = ()
    blockers: tuple[OpaqueBlocker, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "solids", tuple(self.solids))
        object.__setattr__(self, "blockers", tuple(self.blockers))


@dataclass(frozen=True)
class _Nearest:
    kind: Literal["solid", "blocker"]
    index: int
    hit: RayHit


def _nearest_element(scene: Scene, ray: Ray, visited: set[int], config: TraceConfig) -> Optional[_Nearest]:
    """Closest solid or blocker, or None when nothing is hit or the backdrop comes first."""

    best: Optional[_Nearest] = None
    for i, solid in enumerate(scene.solids):
        if i in visited:
            continue
        hit = solid.intersect(ray, min_distance=config.hit_epsilon)
        if hit is not None and (best is None or hit.distance < best.hit.distance):
            best = _Nearest("solid", i, hit)
    for i, blocker in enumerate(scene.blockers):
        hit = blocker.intersect(ray, min_distance=config.hit_epsilon)
        if hit is not None and (best is None or hit.distance < best.hit.distance):
            best = _Nearest("blocker", i, hit)
    if best is None:
        return None
    backdrop = config.backdrop.intersect(ray, min_distance=config.hit_epsilon)
    if backdrop is not None and backdrop.distance < best.hit.distance:
        return None
    return best


def _finish(
    segments: list[RaySegment],
    final_position: Vec3 | None,
    ray: Ray,
    intensity: float,
    termination: Termination,
) -> RayPath:
    logger.debug("%.1f nm path ended: %s after %d segments", ray.wavelength, termination, len(segments))
    return RayPath(
        segments=tuple(segments),
        final_position=None if final_position is None else np.asarray(final_position, dtype=float),
        wavelength=ray.wavelength,
        intensity=float(intensity),
        termination=termination,
    )


def _recover_trapped(solid: OpticalSolid, ray: Ray, config: TraceConfig) -> Optional[Ray]:
    hit = solid.intersect(ray, min_distance=config.tir_epsilon)
    # the same solid was just entered, so only a grazing ray can miss here
    if hit is None:
        return None
    return attempt_tir_reflection(ray, hit)


def trace_ray(scene: Scene, ray: Ray, config: TraceConfig | None = None) -> tuple[RayPath, list[Ray]]:
    """Trace one ray to termination.

    Returns the path and the child rays produced when a solid emits more
    than one exit ray; the path ends at that solid and the children are left
    for the caller to trace.
    """

    cfg = config or TraceConfig()
    segments: list[RaySegment] = []
    visited: set[int] = set()
    current = ray
    bounces = 0

    while bounces < cfg.max_bounces and current.intensity >= cfg.min_intensity:
        if not cfg.bounds.contains(current.origin):
            segments.append(RaySegment(current.origin, current.at(cfg.out_of_bounds_draw_length), current, "escaped"))
            return _finish(segments, None, current, 0.0, "out_of_bounds"), []

        nearest = _nearest_element(scene, current, visited, cfg)
        if nearest is None:
            backdrop = cfg.backdrop.intersect(current, min_distance=cfg.hit_epsilon)
            if backdrop is not None and cfg.bounds.contains(backdrop.point):
                segments.append(RaySegment(current.origin, backdrop.point, current, "backdrop"))
                return _finish(segments, backdrop.point, current, current.intensity, "backdrop"), []
            edge = cfg.bounds.distance_to_edge(current.origin, current.direction)
            if not np.isfinite(edge):
                edge = cfg.escape_draw_limit
            segments.append(RaySegment(current.origin, current.at(min(edge, cfg.escape_draw_limit)), current, "escaped"))
            return _finish(segments, None, current, 0.0, "escaped"), []

        hit = nearest.hit
        segments.append(RaySegment(current.origin, hit.point, current, nearest.kind, nearest.index))
        if nearest.kind == "blocker":
            return _finish(segments, hit.point, current, 0.0, "absorbed"), []

        solid = scene.solids[nearest.index]
        visited.add(nearest.index)
        inner = trace_through_solid(
            solid,
            current,
            max_bounces=cfg.max_bounces,
            max_tir=cfg.max_tir,
            min_distance=cfg.hit_epsilon,
            split_reflections=cfg.split_reflections,
            min_branch_intensity=cfg.min_intensity,
            solid_index=nearest.index,
        )
        segments.extend(inner.internal_segments)

        if not inner.exit_rays:
            recovered = _recover_trapped(solid, current, cfg)
            if recovered is None:
                return _finish(segments, hit.point, current, current.intensity, "trapped"), []
            current = recovered
        elif len(inner.exit_rays) > 1:
            return _finish(segments, hit.point, current, current.intensity, "branched"), list(inner.exit_rays)
        else:
            current = inner.exit_rays[0]
            visited.discard(nearest.index)
        bounces += 1

    backdrop = cfg.backdrop.intersect(current, min_distance=cfg.hit_epsilon)
    if backdrop is not None:
        segments.append(RaySegment(current.origin, backdrop.point, current, "backdrop"))
        return _finish(segments, backdrop.point, current, current.intensity, "backdrop"), []
    termination: Termination = "bounce_limit" if bounces >= cfg.max_bounces else "faded"
    return _finish(segments, None, current, current.intensity, termination), []


def trace_rays(scene: Scene, rays: Iterable[Ray], config: TraceConfig | None = None) -> list[RayPath]:
    """Trace a batch FIFO, including branched children, up to ``max_rays`` paths."""

    cfg = config or TraceConfig()
    queue: deque[Ray] = deque(rays)
    paths: list[RayPath] = []
    while queue and len(paths) < cfg.max_rays:
        path, children = trace_ray(scene, queue.popleft(), cfg)
        paths.append(path)
        queue.extend(children)
    if queue:
        logger.warning("ray budget of %d exhausted; %d queued rays dropped", cfg.max_rays, len(queue))
    return paths


def trace(scene: Scene, rays: Iterable[Ray], config: TraceConfig | None = None) -> list[RayPath]:
    return trace_rays(scene, rays, config)


class OpticalSystem:
    """Mutable scene holder that re-traces only after a change.

    Every mutator raises ``needs_update``; :meth:`update` clears it.
    """

    def __init__(
        self,
        solids: Sequence[OpticalSolid] = (),
        blockers: Sequence[OpaqueBlocker] = (),
        config: TraceConfig | None = None,
    ) -> None:
        self._solids: list[OpticalSolid] = list(solids)
        self._blockers: list[OpaqueBlocker] = list(blockers)
        self._rays: list[Ray] = []
        self._paths: list[RayPath] = []
        self.config = config or TraceConfig()
        self.needs_update = True

    @property
    def solids(self) -> tuple[OpticalSolid, ...]:
        return tuple(self._solids)

    @property
    def blockers(self) -> tuple[OpaqueBlocker, ...]:
        return tuple(self._blockers)

    @property
    def paths(self) -> list[RayPath]:
        return list(self._paths)

    def set_solids(self, solids: Sequence[OpticalSolid]) -> None:
        self._solids = list(solids)
        self.needs_update = True

    def add_solid(self, solid: OpticalSolid) -> None:
        if not any(s is solid for s in self._solids):
            self._solids.append(solid)
            self.needs_update = True

    def remove_solid(self, solid: OpticalSolid) -> None:
        for i, s in enumerate(self._solids):
            if s is solid:
                del self._solids[i]
                self.needs_update = True
                return

    def replace_solid(self, index: int, solid: OpticalSolid) -> None:
        self._solids[index] = solid
        self.needs_update = True

    def set_blockers(self, blockers: Sequence[OpaqueBlocker]) -> None:
        self._blockers = list(blockers)
        self.needs_update = True

    def add_blocker(self, blocker: OpaqueBlocker) -> None:
        if not any(b is blocker for b in self._blockers):
            self._blockers.append(blocker)
            self.needs_update = True

    def set_backdrop(self, normal: Vec3, point: Vec3) -> None:
        self.config = replace(self.config, backdrop=Backdrop(normal=normal, point=point))
        self.needs_update = True

    def set_bounds(self, **limits: float) -> None:
        """Override some of the six bound limits, e.g. ``set_bounds(max_x=80.0)``."""

        self.config = replace(self.config, bounds=replace(self.config.bounds, **limits))
        self.needs_update = True

    def set_rays(self, rays: Sequence[Ray]) -> None:
        self._rays = list(rays)
        self.needs_update = True

    def snapshot(self) -> Scene:
        return Scene(solids=tuple(self._solids), blockers=tuple(self._blockers))

    def trace_ray(self, ray: Ray) -> RayPath:
        path, _ = trace_ray(self.snapshot(), ray, self.config)
        return path

    def trace_rays(self, rays: Sequence[Ray]) -> list[RayPath]:
        return trace_rays(self.snapshot(), rays, self.config)

    def update(self) -> list[RayPath]:
        """Re-trace the stored rays if anything changed since the last call."""

        if self.needs_update:
            self._paths = self.trace_rays(self._rays)
            self.needs_update = False
        return list(self._paths)
