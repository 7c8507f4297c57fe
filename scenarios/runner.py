"""Scenario sweep runner with HDF5 export, diagnostic plots and a validation report.

Example:
    python -m scenarios.runner --output outputs/prism_dataset.h5 --scenarios P1,P3
"""

from __future__ import annotations

import argparse
import logging
import math
from pathlib import Path
import shlex
import sys
from typing import Any

from analysis.dispersion import dispersion_table, numeric_minimum_deviation
from analysis.path_stats import check_path_invariants, intensity_budget, spectral_spread
from plots.diagnostics import generate_all_plots
from plots.plot_config import PlotConfig
from prism_core.glass import GLASS_MATERIALS, refractive_index
from prism_core.spectrum import spectrum_samples
from prism_core.tracer import TraceConfig
from prism_io.hdf5_io import git_meta, save_trace_dataset, self_test_meta_roundtrip
from scenarios import P1_single_prism, P2_parallel_slab, P3_tir_prism, P4_splitter_director, P5_wall_block
from scenarios.common import paths_to_records

logger = logging.getLogger("scenarios.runner")

SCENARIOS = {
    "P1": P1_single_prism,
    "P2": P2_parallel_slab,
    "P3": P3_tir_prism,
    "P4": P4_splitter_director,
    "P5": P5_wall_block,
}


def _parse_scenarios(text: str | None) -> list[str]:
    if not text or text.strip().lower() == "all":
        return list(SCENARIOS)
    ids = [x.strip().upper() for x in text.split(",") if x.strip()]
    unknown = [x for x in ids if x not in SCENARIOS]
    if unknown:
        raise ValueError(f"Unknown scenario id(s): {', '.join(unknown)}; known: {', '.join(SCENARIOS)}")
    return ids


def build_dataset(config: TraceConfig, samples: int = 12, scenario_ids: list[str] | None = None) -> tuple[dict[str, Any], dict[str, Any]]:
    """Trace every sweep case; returns (dataset, per-case summary)."""

    data: dict[str, Any] = {
        "meta": {"config": config.to_dict(), "spectrum_nm": spectrum_samples(samples)},
        "scenarios": {},
    }
    summary: dict[str, Any] = {}
    for sid in scenario_ids or list(SCENARIOS):
        mod = SCENARIOS[sid]
        cases: dict[str, Any] = {}
        for i, params in enumerate(mod.build_sweep_params()):
            paths = mod.run_case(params, config=config, samples=samples)
            issues = check_path_invariants(paths)
            if issues:
                logger.warning("%s/%d: %d path invariant violations, first: %s", sid, i, len(issues), issues[0])
            cases[str(i)] = {"params": params, "paths": paths_to_records(paths)}
            summary[f"{sid}/{i}"] = {
                "params": params,
                "n_paths": len(paths),
                "budget": intensity_budget(paths),
                "spread": spectral_spread(paths)["max_separation"],
                "violations": issues,
            }
            logger.info("%s/%d traced %d paths", sid, i, len(paths))
        data["scenarios"][sid] = {"cases": cases}
    data["meta"]["invariant_report"] = {k: len(v["violations"]) for k, v in summary.items()}
    return data, summary


def dispersion_checks(apex_deg: float = 60.0, wavelength_nm: float = 589.0) -> list[dict[str, Any]]:
    """Closed-form vs numeric minimum deviation for every catalogue glass."""

    apex = math.radians(apex_deg)
    rows = []
    for key, glass in GLASS_MATERIALS.items():
        closed = dispersion_table(apex, glass, wavelengths=[wavelength_nm])[0]
        numeric = numeric_minimum_deviation(apex, refractive_index(wavelength_nm, glass))
        rows.append(
            {
                "glass": key,
                "n": closed["refractive_index"],
                "closed_form_deg": closed["deviation_deg"],
                "numeric_deg": math.degrees(numeric["deviation"]),
                "abs_err_deg": abs(closed["deviation_deg"] - math.degrees(numeric["deviation"])),
            }
        )
    return rows


def write_report(path: str | Path, summary: dict[str, Any], dispersion_rows: list[dict[str, Any]], meta_ok: bool) -> Path:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    lines = ["# Prism trace validation report", ""]
    lines.append(f"- HDF5 meta round-trip: {'PASS' if meta_ok else 'FAIL'}")
    total_viol = sum(len(v["violations"]) for v in summary.values())
    lines.append(f"- path invariant violations: {total_viol}")
    lines.append("")
    lines.append("## Minimum deviation at 589 nm (apex 60 deg)")
    lines.append("")
    lines.append("| glass | n | closed form [deg] | numeric [deg] | abs err [deg] |")
    lines.append("|---|---|---|---|---|")
    for r in dispersion_rows:
        lines.append(f"| {r['glass']} | {r['n']:.5f} | {r['closed_form_deg']:.4f} | {r['numeric_deg']:.4f} | {r['abs_err_deg']:.2e} |")
    lines.append("")
    lines.append("## Cases")
    lines.append("")
    lines.append("| case | params | paths | backdrop I | absorbed n | escaped n | spread | violations |")
    lines.append("|---|---|---|---|---|---|---|---|")
    for key, s in summary.items():
        b = s["budget"]
        backdrop_i = b.get("backdrop", {}).get("intensity", 0.0)
        absorbed_n = int(b.get("absorbed", {}).get("count", 0))
        escaped_n = int(b.get("escaped", {}).get("count", 0) + b.get("out_of_bounds", {}).get("count", 0))
        lines.append(
            f"| {key} | `{s['params']}` | {s['n_paths']} | {backdrop_i:.4f} | {absorbed_n} | {escaped_n} | {s['spread']:.3f} | {len(s['violations'])} |"
        )
    p.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return p


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--output", type=str, default="outputs/prism_dataset.h5")
    parser.add_argument("--plots-dir", type=str, default="outputs/plots")
    parser.add_argument("--report", type=str, default="outputs/validation_report.md")
    parser.add_argument("--scenarios", type=str, default="all")
    parser.add_argument("--samples", type=int, default=12)
    parser.add_argument("--max-bounces", type=int, default=16)
    parser.add_argument("--max-tir", type=int, default=6)
    parser.add_argument("--max-rays", type=int, default=5000)
    parser.add_argument("--min-intensity", type=float, default=0.01)
    parser.add_argument("--split-reflections", dest="split_reflections", action="store_true")
    parser.add_argument("--no-split-reflections", dest="split_reflections", action="store_false")
    parser.add_argument("--plot-scenario", type=str, default=None)
    parser.add_argument("--plot-case", type=str, default=None)
    parser.add_argument("--projection", type=str, default="xz", choices=["xz", "xy", "zy"])
    parser.add_argument("--no-plots", action="store_true")
    parser.add_argument("--release-mode", action="store_true")
    parser.add_argument("--log-level", type=str, default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.set_defaults(split_reflections=False)
    args = parser.parse_args()

    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if bool(args.release_mode):
        _, dirty_now = git_meta()
        if dirty_now:
            raise SystemExit("release-mode failed: git working tree is dirty. Commit/stash changes and rerun.")

    try:
        scenario_ids = _parse_scenarios(args.scenarios)
        config = TraceConfig(
            max_bounces=args.max_bounces,
            min_intensity=args.min_intensity,
            max_tir=args.max_tir,
            max_rays=args.max_rays,
            split_reflections=bool(args.split_reflections),
        )
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc

    data, summary = build_dataset(config, samples=max(1, int(args.samples)), scenario_ids=scenario_ids)
    data["meta"]["cmdline"] = " ".join(shlex.quote(a) for a in sys.argv)

    out_h5 = save_trace_dataset(args.output, data)
    meta_ok = self_test_meta_roundtrip(out_h5, expected_meta={"cmdline": data["meta"]["cmdline"], "config": data["meta"]["config"]})
    if not meta_ok:
        raise SystemExit(f"HDF5 meta round-trip failed for {out_h5}")
    logger.info("wrote %s", out_h5)

    if not args.no_plots:
        plot_config = PlotConfig(scenario_id=args.plot_scenario, case_id=args.plot_case, projection=args.projection)
        out_plots = generate_all_plots(data, args.plots_dir, plot_config)
        logger.info("plots in %s", out_plots)

    report = write_report(args.report, summary, dispersion_checks(), meta_ok)
    logger.info("report %s", report)


if __name__ == "__main__":
    main()
