"""Diagnostic figures for traced prism datasets.

Every figure is written as ``<name>.png`` and ``<name>.pdf`` into the output
directory; figures that have nothing to show leave a ``<name>.SKIPPED.txt``.
"""

from __future__ import annotations

import math
from pathlib import Path
from typing import Any

import matplotlib.pyplot as plt
import numpy as np

from analysis.dispersion import dispersion_table
from plots.plot_config import PlotConfig
from prism_core.glass import get_material, refractive_index
from prism_core.spectrum import wavelength_to_hex

_AXES = {"xz": (0, 2), "xy": (0, 1), "zy": (2, 1)}
_AXIS_NAMES = "xyz"


def _ensure_dir(out_dir: str | Path) -> Path:
    p = Path(out_dir)
    p.mkdir(parents=True, exist_ok=True)
    return p


def _save(fig: plt.Figure, out: Path, name: str) -> None:
    fig.tight_layout()
    fig.savefig(out / f"{name}.png", dpi=180)
    fig.savefig(out / f"{name}.pdf")
    plt.close(fig)


def _write_skip(out: Path, name: str, reason: str) -> None:
    (out / f"{name}.SKIPPED.txt").write_text(reason + "\n", encoding="utf-8")


def _scope_cases(data: dict[str, Any], config: PlotConfig) -> list[tuple[str, str, dict[str, Any]]]:
    out = []
    for sid, sc in data.get("scenarios", {}).items():
        if config.scenario_id is not None and sid != config.scenario_id:
            continue
        for cid, case in sc.get("cases", {}).items():
            if config.case_id is not None and cid != config.case_id:
                continue
            out.append((sid, cid, case))
    return out


def _select_case(data: dict[str, Any], config: PlotConfig) -> tuple[str, str, dict[str, Any]] | None:
    scope = _scope_cases(data, config)
    if not scope:
        return None
    # most backdrop hits, then most paths
    def score(item: tuple[str, str, dict[str, Any]]) -> tuple[int, int]:
        paths = item[2]["paths"]
        return sum(1 for p in paths if p["termination"] == "backdrop"), len(paths)

    return max(scope, key=score)


def _visible_paths(paths: list[dict[str, Any]], config: PlotConfig) -> list[dict[str, Any]]:
    kept = [p for p in paths if p["segments"] and max(s["intensity"] for s in p["segments"]) >= config.min_path_intensity]
    return kept[: config.max_paths]


def plot_dispersion_curves(out: Path, config: PlotConfig) -> None:
    wl = np.linspace(config.wavelength_min_nm, config.wavelength_max_nm, 200)
    apex = math.radians(config.apex_deg)
    fig, axs = plt.subplots(1, 2, figsize=(10, 4))
    for name in config.glasses:
        glass = get_material(name)
        axs[0].plot(wl, [refractive_index(w, glass) for w in wl], label=name)
        rows = dispersion_table(apex, glass, wavelengths=wl.tolist())
        axs[1].plot(wl, [r["deviation_deg"] for r in rows], label=name)
    axs[0].set_ylabel("n")
    axs[1].set_ylabel(f"minimum deviation [deg], apex {config.apex_deg:g} deg")
    for ax in axs:
        ax.set_xlabel("wavelength [nm]")
        ax.grid(True, alpha=0.3)
        ax.legend()
    _save(fig, out, "D0_dispersion_curves")


def plot_backdrop_hits(data: dict[str, Any], out: Path, config: PlotConfig) -> None:
    sel = _select_case(data, config)
    hits = []
    if sel is not None:
        hits = [p for p in sel[2]["paths"] if p["termination"] == "backdrop" and p["final_position"] is not None]
    if not hits:
        _write_skip(out, "D1_backdrop_hits", "no path reached the backdrop")
        return
    sid, cid, _ = sel
    pos = np.asarray([p["final_position"] for p in hits], dtype=float)
    inten = np.asarray([p["intensity"] for p in hits], dtype=float)
    colors = [wavelength_to_hex(p["wavelength"]) for p in hits]
    fig, ax = plt.subplots(figsize=(6, 5))
    ax.set_facecolor("#111111")
    size = 20.0 + 200.0 * inten / max(float(np.max(inten)), 1e-12)
    ax.scatter(pos[:, 2], pos[:, 1], c=colors, s=size, edgecolors="none", alpha=0.9)
    ax.set_title(f"Backdrop hits [{sid}/{cid}]")
    ax.set_xlabel("z")
    ax.set_ylabel("y")
    ax.grid(True, alpha=0.2)
    _save(fig, out, "D1_backdrop_hits")


def plot_paths_projection(data: dict[str, Any], out: Path, config: PlotConfig) -> None:
    sel = _select_case(data, config)
    if sel is None or not sel[2]["paths"]:
        _write_skip(out, "D2_path_projection", "no traced paths")
        return
    sid, cid, case = sel
    i, j = _AXES[config.projection]
    fig, ax = plt.subplots(figsize=(8, 5))
    ax.set_facecolor("#111111")
    for p in _visible_paths(case["paths"], config):
        color = wavelength_to_hex(p["wavelength"])
        for s in p["segments"]:
            a = float(np.clip(s["intensity"] * 4.0, 0.1, 1.0))
            ls = "--" if s["hit_type"] == "escaped" else "-"
            ax.plot([s["start"][i], s["end"][i]], [s["start"][j], s["end"][j]], ls, color=color, alpha=a, lw=1.0)
    ax.set_title(f"Ray paths, {config.projection} projection [{sid}/{cid}]")
    ax.set_xlabel(_AXIS_NAMES[i])
    ax.set_ylabel(_AXIS_NAMES[j])
    ax.set_aspect("equal", adjustable="datalim")
    _save(fig, out, "D2_path_projection")


def plot_termination_budget(data: dict[str, Any], out: Path, config: PlotConfig) -> None:
    totals: dict[str, float] = {}
    for sid, cid, case in _scope_cases(data, config):
        for p in case["paths"]:
            totals[p["termination"]] = totals.get(p["termination"], 0.0) + float(p["intensity"])
    if not totals:
        _write_skip(out, "D3_termination_budget", "no traced paths")
        return
    names = sorted(totals)
    fig, ax = plt.subplots(figsize=(6, 4))
    ax.bar(names, [totals[k] for k in names], color="tab:blue")
    ax.set_ylabel("summed final intensity")
    ax.set_title("Intensity by termination")
    ax.grid(True, axis="y", alpha=0.3)
    _save(fig, out, "D3_termination_budget")


def generate_all_plots(data: dict[str, Any], out_dir: str | Path, config: PlotConfig | None = None) -> Path:
    cfg = config or PlotConfig()
    out = _ensure_dir(out_dir)
    plot_dispersion_curves(out, cfg)
    plot_backdrop_hits(data, out, cfg)
    plot_paths_projection(data, out, cfg)
    plot_termination_budget(data, out, cfg)
    return out
