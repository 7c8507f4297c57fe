"""Plot configuration for trace diagnostic figures."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal


@dataclass(frozen=True)
class PlotConfig:
    scenario_id: str | None = None
    case_id: str | None = None
    projection: Literal["xz", "xy", "zy"] = "xz"
    min_path_intensity: float = 0.0
    max_paths: int = 400
    apex_deg: float = 60.0
    glasses: tuple[str, ...] = ("BK7", "F2", "SF11")
    wavelength_min_nm: float = 380.0
    wavelength_max_nm: float = 780.0
