"""Prism dispersion diagnostics.

Closed-form minimum deviation (via :mod:`prism_core.refraction`) next to a
numeric search over incidence angle, so either can be checked against the
other and against traced paths.

Example:
    >>> import math
    >>> from prism_core.glass import BK7
    >>> from analysis.dispersion import dispersion_table
    >>> rows = dispersion_table(math.radians(60.0), BK7)
    >>> [r["wavelength"] for r in rows][:3]
    [400.0, 450.0, 490.0]
    >>> rows[0]["deviation"] > rows[-1]["deviation"]
    True
"""

from __future__ import annotations

import math
from typing import Any, Sequence

import numpy as np
from scipy.optimize import minimize_scalar

from prism_core.geometry import Vec3, normalize
from prism_core.glass import GlassMaterial, refractive_index
from prism_core.refraction import minimum_deviation

DEFAULT_TABLE_WAVELENGTHS = (400.0, 450.0, 490.0, 535.0, 580.0, 620.0, 680.0)


def dispersion_table(
    apex_rad: float,
    material: GlassMaterial,
    wavelengths: Sequence[float] = DEFAULT_TABLE_WAVELENGTHS,
) -> list[dict[str, float]]:
    rows = []
    for wl in wavelengths:
        dev = minimum_deviation(apex_rad, wl, material)
        rows.append(
            {
                "wavelength": float(wl),
                "refractive_index": refractive_index(wl, material),
                "deviation": dev,
                "deviation_deg": math.degrees(dev),
            }
        )
    return rows


def deviation_at_incidence(apex_rad: float, theta_i: float, n: float) -> float:
    """Total deviation of a ray hitting the first face at ``theta_i``; NaN if it cannot exit."""

    s2 = math.sin(theta_i) / n
    if abs(s2) > 1.0:
        return math.nan
    theta3 = apex_rad - math.asin(s2)
    s4 = n * math.sin(theta3)
    if abs(s4) > 1.0:
        return math.nan
    return theta_i + math.asin(s4) - apex_rad


def minimum_deviation_incidence(apex_rad: float, n: float) -> float:
    """Incidence angle of the symmetric (minimum-deviation) pass."""

    return math.asin(min(1.0, n * math.sin(0.5 * apex_rad)))


def numeric_minimum_deviation(apex_rad: float, n: float) -> dict[str, Any]:
    """Minimise deviation over incidence angle with ``scipy.optimize.minimize_scalar``."""

    grazing = apex_rad - math.asin(min(1.0, 1.0 / n))
    lo = math.asin(min(1.0, n * math.sin(grazing))) if grazing > 0.0 else 0.0
    hi = 0.5 * math.pi
    if lo >= hi:
        return {"theta_i": math.nan, "deviation": math.nan, "success": False}

    def objective(theta: float) -> float:
        d = deviation_at_incidence(apex_rad, theta, n)
        return math.pi if math.isnan(d) else d

    res = minimize_scalar(objective, bounds=(lo + 1e-9, hi - 1e-9), method="bounded", options={"xatol": 1e-10})
    return {"theta_i": float(res.x), "deviation": float(res.fun), "success": bool(res.success)}


def deviation_angle(direction_in: Vec3, direction_out: Vec3) -> float:
    """Angle between incoming and outgoing directions in radians."""

    a = normalize(np.asarray(direction_in, dtype=float))
    b = normalize(np.asarray(direction_out, dtype=float))
    return float(np.arccos(np.clip(np.dot(a, b), -1.0, 1.0)))
