"""Optical glass catalogue and Sellmeier dispersion.

The Sellmeier relation is evaluated in micrometres:
n^2(lambda) = 1 + sum_i B_i lambda^2 / (lambda^2 - C_i).

Example:
    >>> from prism_core.glass import BK7, refractive_index
    >>> round(refractive_index(587.56, BK7), 4)
    1.5168
    >>> refractive_index(400.0, BK7) > refractive_index(700.0, BK7)
    True
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

AIR_INDEX = 1.0003


@dataclass(frozen=True)
class GlassMaterial:
    """Immutable Sellmeier glass; shared by every solid made of it."""

    name: str
    b1: float
    b2: float
    b3: float
    c1: float
    c2: float
    c3: float
    nd: float

    def refractive_index(self, wavelength_nm: float) -> float:
        return refractive_index(wavelength_nm, self)

    def coefficients(self) -> dict[str, float]:
        return {"B1": self.b1, "B2": self.b2, "B3": self.b3, "C1": self.c1, "C2": self.c2, "C3": self.c3}


BK7 = GlassMaterial(
    name="BK7 (Borosilicate Crown)",
    b1=1.03961212,
    b2=0.231792344,
    b3=1.01046945,
    c1=0.00600069867,
    c2=0.0200179144,
    c3=103.560653,
    nd=1.5168,
)
SF11 = GlassMaterial(
    name="SF11 (Dense Flint)",
    b1=1.73759695,
    b2=0.313747346,
    b3=1.89878101,
    c1=0.013188707,
    c2=0.0623068142,
    c3=155.23629,
    nd=1.7847,
)
F2 = GlassMaterial(
    name="F2 (Flint)",
    b1=1.34533359,
    b2=0.209073176,
    b3=0.937357162,
    c1=0.00997743871,
    c2=0.0470450767,
    c3=111.886764,
    nd=1.6200,
)
NBK7 = GlassMaterial(
    name="N-BK7 (Modern Borosilicate)",
    b1=BK7.b1,
    b2=BK7.b2,
    b3=BK7.b3,
    c1=BK7.c1,
    c2=BK7.c2,
    c3=BK7.c3,
    nd=1.5168,
)

GLASS_MATERIALS: dict[str, GlassMaterial] = {"BK7": BK7, "SF11": SF11, "F2": F2, "NBK7": NBK7}


def get_material(name: str) -> GlassMaterial:
    """Look up a catalogue glass by key, e.g. ``"sf11"`` or ``"N-BK7"``."""

    key = str(name).strip().upper().replace("-", "")
    if key not in GLASS_MATERIALS:
        raise KeyError(f"Unknown glass {name!r}; known: {', '.join(sorted(GLASS_MATERIALS))}")
    return GLASS_MATERIALS[key]


def refractive_index(wavelength_nm: float, material: GlassMaterial) -> float:
    lam2 = (float(wavelength_nm) / 1000.0) ** 2
    n2 = (
        1.0
        + material.b1 * lam2 / (lam2 - material.c1)
        + material.b2 * lam2 / (lam2 - material.c2)
        + material.b3 * lam2 / (lam2 - material.c3)
    )
    return float(np.sqrt(n2))


def medium_index(material: Optional[GlassMaterial], wavelength_nm: float) -> float:
    """Index of a glass, or of air when ``material`` is None."""

    if material is None:
        return AIR_INDEX
    return refractive_index(wavelength_nm, material)


def sellmeier_derivative(wavelength_nm: float, material: GlassMaterial, h: float = 0.1) -> float:
    """Central-difference dn/dlambda in 1/nm."""

    lo = refractive_index(wavelength_nm - h, material)
    hi = refractive_index(wavelength_nm + h, material)
    return (hi - lo) / (2.0 * h)


def cauchy_index(wavelength_nm: float, a: float, b: float, c: float = 0.0) -> float:
    """Two/three-term Cauchy approximation, lambda in micrometres."""

    lam = float(wavelength_nm) / 1000.0
    return a + b / lam**2 + c / lam**4
