"""Summaries and sanity checks over traced ray paths."""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Sequence

import numpy as np

from prism_core.rays import RayPath

UNIT_TOL = 1e-9
INTENSITY_TOL = 1e-12


def backdrop_endpoints(paths: Sequence[RayPath]) -> list[dict[str, Any]]:
    """Endpoints that reached the backdrop, with wavelength and intensity."""

    out = []
    for p in paths:
        if p.termination == "backdrop" and p.final_position is not None:
            out.append({"position": np.asarray(p.final_position, dtype=float), "wavelength": p.wavelength, "intensity": p.intensity})
    return out


def intensity_budget(paths: Sequence[RayPath]) -> dict[str, dict[str, float]]:
    """Path count and summed final intensity per termination kind."""

    out: dict[str, dict[str, float]] = defaultdict(lambda: {"count": 0.0, "intensity": 0.0})
    for p in paths:
        out[p.termination]["count"] += 1
        out[p.termination]["intensity"] += float(p.intensity)
    return dict(out)


def spectral_spread(paths: Sequence[RayPath]) -> dict[str, Any]:
    """Intensity-weighted backdrop centroid per wavelength and the widest separation between them."""

    groups: dict[float, list[dict[str, Any]]] = defaultdict(list)
    for e in backdrop_endpoints(paths):
        groups[round(float(e["wavelength"]), 6)].append(e)
    centroids: dict[float, np.ndarray] = {}
    for wl, entries in sorted(groups.items()):
        w = np.asarray([e["intensity"] for e in entries], dtype=float)
        pos = np.asarray([e["position"] for e in entries], dtype=float)
        if float(np.sum(w)) > 0.0:
            centroids[wl] = np.average(pos, axis=0, weights=w)
        else:
            centroids[wl] = pos.mean(axis=0)
    spread = 0.0
    keys = list(centroids)
    for i in range(len(keys)):
        for j in range(i + 1, len(keys)):
            spread = max(spread, float(np.linalg.norm(centroids[keys[i]] - centroids[keys[j]])))
    return {"centroids": {k: v.tolist() for k, v in centroids.items()}, "max_separation": spread}


def check_path_invariants(paths: Sequence[RayPath], gap_tol: float = 0.11) -> list[str]:
    """Return human-readable violations; an empty list means all paths are consistent.

    Checks intensity range and monotonicity along segments, unit ray
    directions, and that consecutive segments join up to within ``gap_tol``
    (refraction offsets the new origin slightly past the surface).
    """

    issues: list[str] = []
    for k, p in enumerate(paths):
        if not -INTENSITY_TOL <= p.intensity <= 1.0 + INTENSITY_TOL:
            issues.append(f"path {k}: final intensity {p.intensity} outside [0, 1]")
        prev_int = None
        for i, s in enumerate(p.segments):
            if abs(float(np.linalg.norm(s.ray.direction)) - 1.0) > UNIT_TOL:
                issues.append(f"path {k} segment {i}: non-unit direction")
            if prev_int is not None and s.ray.intensity > prev_int + INTENSITY_TOL:
                issues.append(f"path {k} segment {i}: intensity rose {prev_int} -> {s.ray.intensity}")
            prev_int = s.ray.intensity
            if i > 0:
                gap = float(np.linalg.norm(s.start - p.segments[i - 1].end))
                if gap > gap_tol:
                    issues.append(f"path {k} segment {i}: gap {gap:.4f} to previous segment")
    return issues
