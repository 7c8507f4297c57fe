"""Visible-spectrum sampling and display colours for wavelengths.

Example:
    >>> from prism_core.spectrum import spectrum_samples, wavelength_to_hex
    >>> [round(w) for w in spectrum_samples(3)]
    [400, 540, 680]
    >>> wavelength_to_hex(650.0)
    '#ff0000'
"""

from __future__ import annotations

from dataclasses import dataclass
import math
from typing import Iterable, Optional

import numpy as np

SPECTRUM_MIN_NM = 400.0
SPECTRUM_MAX_NM = 680.0
DISPLAY_GAMMA = 0.8

RGB = tuple[int, int, int]


@dataclass(frozen=True)
class SpectralColor:
    wavelength: float
    rgb: RGB
    name: str

    @property
    def hex(self) -> str:
        return rgb_to_hex(self.rgb)


@dataclass(frozen=True)
class ColorGroup:
    name: str
    min_wavelength: float
    max_wavelength: float
    center_wavelength: float
    rgb: RGB

    def contains(self, wavelength_nm: float) -> bool:
        return self.min_wavelength <= wavelength_nm <= self.max_wavelength

    def samples(self, count: int) -> list[float]:
        return [float(x) for x in np.linspace(self.min_wavelength, self.max_wavelength, count)]


COLOR_GROUPS: dict[str, ColorGroup] = {
    "warm": ColorGroup("Warm", 580.0, 680.0, 620.0, (255, 100, 50)),
    "green": ColorGroup("Green", 490.0, 580.0, 535.0, (50, 255, 100)),
    "cool": ColorGroup("Cool", 400.0, 490.0, 450.0, (100, 100, 255)),
}

_BANDS = ((400.0, "Violet"), (460.0, "Blue"), (490.0, "Cyan"), (530.0, "Green"), (580.0, "Yellow"), (610.0, "Orange"), (660.0, "Red"))


def _hue(wl: float) -> tuple[float, float, float]:
    if 380.0 <= wl < 440.0:
        return (440.0 - wl) / 60.0, 0.0, 1.0
    if 440.0 <= wl < 490.0:
        return 0.0, (wl - 440.0) / 50.0, 1.0
    if 490.0 <= wl < 510.0:
        return 0.0, 1.0, (510.0 - wl) / 20.0
    if 510.0 <= wl < 580.0:
        return (wl - 510.0) / 70.0, 1.0, 0.0
    if 580.0 <= wl < 645.0:
        return 1.0, (645.0 - wl) / 65.0, 0.0
    if 645.0 <= wl <= 700.0:
        return 1.0, 0.0, 0.0
    return 0.0, 0.0, 0.0


def _edge_falloff(wl: float) -> float:
    if 380.0 <= wl < 420.0:
        return 0.3 + 0.7 * (wl - 380.0) / 40.0
    if 420.0 <= wl <= 700.0:
        return 1.0
    if 700.0 < wl <= 780.0:
        return 0.3 + 0.7 * (780.0 - wl) / 80.0
    return 0.0


def wavelength_to_rgb(wavelength_nm: float) -> RGB:
    """Approximate display colour (0-255 channels) of a spectral line."""

    wl = float(wavelength_nm)
    factor = _edge_falloff(wl)
    return tuple(int(math.floor(255.0 * (c * factor) ** DISPLAY_GAMMA + 0.5)) for c in _hue(wl))  # type: ignore[return-value]


def rgb_to_hex(rgb: RGB) -> str:
    return "#" + "".join(f"{int(c):02x}" for c in rgb)


def wavelength_to_hex(wavelength_nm: float) -> str:
    return rgb_to_hex(wavelength_to_rgb(wavelength_nm))


def spectrum_samples(count: int, min_nm: float = SPECTRUM_MIN_NM, max_nm: float = SPECTRUM_MAX_NM) -> list[float]:
    if count < 1:
        return []
    if count == 1:
        return [0.5 * (min_nm + max_nm)]
    return [float(x) for x in np.linspace(min_nm, max_nm, count)]


def spectral_bands(count: int = 7) -> list[SpectralColor]:
    return [SpectralColor(wl, wavelength_to_rgb(wl), name) for wl, name in _BANDS[: max(0, count)]]


def color_group_for_wavelength(wavelength_nm: float) -> Optional[ColorGroup]:
    for group in COLOR_GROUPS.values():
        if group.contains(wavelength_nm):
            return group
    return None


def mix_colors(colors: Iterable[RGB]) -> RGB:
    """Additive mix, clamped per channel."""

    total = np.zeros(3, dtype=int)
    for c in colors:
        total += np.asarray(c, dtype=int)
    r, g, b = (int(x) for x in np.minimum(total, 255))
    return r, g, b
