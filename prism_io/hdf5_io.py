"""HDF5 schema for traced prism ray-path datasets.

Layout::

    /meta                      attrs: schema_version, git_commit, git_dirty, cmdline, config_json, ...
    /scenarios/<sid>/cases/<cid>/params          JSON string
    /scenarios/<sid>/cases/<cid>/paths/...       flat per-path and per-segment arrays

Paths of a case are packed CSR-style: ``segment_offsets[i]:segment_offsets[i+1]``
indexes the segment arrays of path ``i``. A missing final position is stored
as NaN.

Example:
    >>> from prism_io.hdf5_io import save_trace_dataset, load_trace_dataset
    >>> data = {"meta": {"config": {"max_bounces": 16}}, "scenarios": {"P1": {"cases": {"0": {"params": {}, "paths": []}}}}}
    >>> _ = save_trace_dataset('/tmp/prism_demo.h5', data)
    >>> load_trace_dataset('/tmp/prism_demo.h5')['meta']['schema_version']
    'v1'
"""

from __future__ import annotations

from datetime import datetime, timezone
import json
from pathlib import Path
import subprocess
from typing import Any

import h5py
import numpy as np

SCHEMA_VERSION = "v1"
REQUIRED_META_ATTRS = (
    "schema_version",
    "git_commit",
    "git_dirty",
    "cmdline",
    "config_json",
)
META_COMPARE_KEYS = ("schema_version", "git_commit", "git_dirty", "cmdline", "config")


def git_meta() -> tuple[str, bool]:
    """Best-effort git commit/dirty metadata."""

    try:
        commit = subprocess.check_output(["git", "rev-parse", "HEAD"], stderr=subprocess.DEVNULL, text=True).strip()
    except (OSError, subprocess.CalledProcessError):
        commit = "unknown"
    try:
        status = subprocess.check_output(["git", "status", "--porcelain"], stderr=subprocess.DEVNULL, text=True)
        dirty = bool(status.strip())
    except (OSError, subprocess.CalledProcessError):
        dirty = True
    return commit, dirty


def _write_string_array(group: h5py.Group, name: str, values: list[str]) -> None:
    dt = h5py.string_dtype(encoding="utf-8")
    group.create_dataset(name, data=np.asarray(values, dtype=object), dtype=dt)


def _read_string_array(group: h5py.Group, name: str) -> list[str]:
    if name not in group:
        return []
    return [x.decode("utf-8") if isinstance(x, bytes) else str(x) for x in group[name][:]]


def _json_dumps_canonical(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


def _json_loads_safe(text: str, fallback: Any) -> Any:
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        return fallback


def _attr_str(value: Any) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else str(value)


def _require_meta_attrs(meta_g: h5py.Group) -> None:
    missing = [k for k in REQUIRED_META_ATTRS if k not in meta_g.attrs]
    if missing:
        raise ValueError("Missing required meta attrs: " + ", ".join(missing))


def _write_paths(p_g: h5py.Group, paths: list[dict[str, Any]]) -> None:
    n = len(paths)
    offsets = np.zeros(n + 1, dtype=np.int64)
    for i, rec in enumerate(paths):
        offsets[i + 1] = offsets[i] + len(rec.get("segments", []))
    segs = [s for rec in paths for s in rec.get("segments", [])]

    final = np.full((n, 3), np.nan, dtype=float)
    for i, rec in enumerate(paths):
        if rec.get("final_position") is not None:
            final[i] = np.asarray(rec["final_position"], dtype=float)

    p_g.create_dataset("wavelength", data=np.asarray([rec.get("wavelength", np.nan) for rec in paths], dtype=float))
    p_g.create_dataset("intensity", data=np.asarray([rec.get("intensity", 0.0) for rec in paths], dtype=float))
    p_g.create_dataset("final_position", data=final)
    _write_string_array(p_g, "termination", [str(rec.get("termination", "")) for rec in paths])
    p_g.create_dataset("segment_offsets", data=offsets)
    p_g.create_dataset("segment_start", data=np.asarray([s["start"] for s in segs], dtype=float).reshape(-1, 3))
    p_g.create_dataset("segment_end", data=np.asarray([s["end"] for s in segs], dtype=float).reshape(-1, 3))
    p_g.create_dataset("segment_intensity", data=np.asarray([s.get("intensity", np.nan) for s in segs], dtype=float))
    p_g.create_dataset("segment_element", data=np.asarray([s.get("element_index", -1) for s in segs], dtype=np.int32))
    _write_string_array(p_g, "segment_hit_type", [str(s["hit_type"]) for s in segs])


def _read_paths(p_g: h5py.Group) -> list[dict[str, Any]]:
    wl = np.asarray(p_g["wavelength"][:], dtype=float)
    intensity = np.asarray(p_g["intensity"][:], dtype=float)
    final = np.asarray(p_g["final_position"][:], dtype=float).reshape(-1, 3)
    term = _read_string_array(p_g, "termination")
    offsets = np.asarray(p_g["segment_offsets"][:], dtype=np.int64)
    start = np.asarray(p_g["segment_start"][:], dtype=float).reshape(-1, 3)
    end = np.asarray(p_g["segment_end"][:], dtype=float).reshape(-1, 3)
    seg_int = np.asarray(p_g["segment_intensity"][:], dtype=float)
    elem = np.asarray(p_g["segment_element"][:], dtype=np.int32)
    hit = _read_string_array(p_g, "segment_hit_type")

    out = []
    for i in range(len(wl)):
        segs = [
            {
                "start": start[j].tolist(),
                "end": end[j].tolist(),
                "hit_type": hit[j],
                "element_index": int(elem[j]),
                "intensity": float(seg_int[j]),
            }
            for j in range(int(offsets[i]), int(offsets[i + 1]))
        ]
        out.append(
            {
                "wavelength": float(wl[i]),
                "intensity": float(intensity[i]),
                "termination": term[i] if i < len(term) else "",
                "final_position": final[i].tolist() if np.all(np.isfinite(final[i])) else None,
                "segments": segs,
            }
        )
    return out


def save_trace_dataset(path: str | Path, data: dict[str, Any]) -> Path:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    src_meta = dict(data.get("meta", {}))
    git_commit, git_dirty = git_meta()

    with h5py.File(p, "w") as f:
        meta = f.create_group("meta")
        meta.attrs["created_at"] = str(src_meta.get("created_at", datetime.now(timezone.utc).isoformat()))
        meta.attrs["schema_version"] = str(src_meta.get("schema_version", SCHEMA_VERSION))
        meta.attrs["git_commit"] = str(src_meta.get("git_commit", git_commit))
        meta.attrs["git_dirty"] = bool(src_meta.get("git_dirty", git_dirty))
        meta.attrs["cmdline"] = str(src_meta.get("cmdline", ""))
        meta.attrs["config_json"] = _json_dumps_canonical(src_meta.get("config", {}))
        meta.attrs["spectrum_json"] = _json_dumps_canonical(list(src_meta.get("spectrum_nm", [])))
        meta.attrs["invariant_report_json"] = _json_dumps_canonical(src_meta.get("invariant_report", {}))

        sc_root = f.create_group("scenarios")
        for scenario_id, scenario in data.get("scenarios", {}).items():
            cases_g = sc_root.create_group(str(scenario_id)).create_group("cases")
            for case_id, case in scenario.get("cases", {}).items():
                c_g = cases_g.create_group(str(case_id))
                c_g.create_dataset("params", data=_json_dumps_canonical(case.get("params", {})))
                _write_paths(c_g.create_group("paths"), list(case.get("paths", [])))
    return p


def load_trace_dataset(path: str | Path) -> dict[str, Any]:
    out: dict[str, Any] = {"meta": {}, "scenarios": {}}
    with h5py.File(path, "r") as f:
        meta_g = f["meta"]
        _require_meta_attrs(meta_g)
        config_json = _attr_str(meta_g.attrs["config_json"])
        spectrum_json = _attr_str(meta_g.attrs.get("spectrum_json", "[]"))
        report_json = _attr_str(meta_g.attrs.get("invariant_report_json", "{}"))
        out["meta"] = {
            "created_at": _attr_str(meta_g.attrs.get("created_at", "")),
            "schema_version": _attr_str(meta_g.attrs["schema_version"]),
            "git_commit": _attr_str(meta_g.attrs["git_commit"]),
            "git_dirty": bool(meta_g.attrs["git_dirty"]),
            "cmdline": _attr_str(meta_g.attrs["cmdline"]),
            "config_json": config_json,
            "config": _json_loads_safe(config_json, {}),
            "spectrum_nm": _json_loads_safe(spectrum_json, []),
            "invariant_report": _json_loads_safe(report_json, {}),
        }

        for scenario_id, sc_g in f["scenarios"].items():
            sc: dict[str, Any] = {"cases": {}}
            for case_id, c_g in sc_g["cases"].items():
                raw = c_g["params"][()]
                params = _json_loads_safe(_attr_str(raw), {})
                sc["cases"][case_id] = {"params": params, "paths": _read_paths(c_g["paths"])}
            out["scenarios"][scenario_id] = sc
    return out


def self_test_meta_roundtrip(path: str | Path, expected_meta: dict[str, Any] | None = None) -> bool:
    """Validate the meta contract and packed path arrays after save/load.

    Checks:
    - required attrs exist and decode
    - optional expected_meta matches loaded meta on stable keys
    - segment offsets are consistent with the segment arrays
    """

    try:
        loaded = load_trace_dataset(path)
    except (OSError, KeyError, ValueError):
        return False
    meta = loaded["meta"]
    if expected_meta is not None:
        for k in META_COMPARE_KEYS:
            if k in expected_meta and meta.get(k) != expected_meta[k]:
                return False

    with h5py.File(path, "r") as f:
        for sc_g in f["scenarios"].values():
            for c_g in sc_g["cases"].values():
                p_g = c_g["paths"]
                n = p_g["wavelength"].shape[0]
                offsets = np.asarray(p_g["segment_offsets"][:])
                n_seg = p_g["segment_start"].shape[0]
                if offsets.shape != (n + 1,) or int(offsets[0]) != 0 or int(offsets[-1]) != n_seg:
                    return False
                if np.any(np.diff(offsets) < 0):
                    return False
                for name in ("segment_end", "segment_intensity", "segment_element", "segment_hit_type"):
                    if p_g[name].shape[0] != n_seg:
                        return False
                if p_g["final_position"].shape != (n, 3) or p_g["termination"].shape[0] != n:
                    return False
    return True
