#!/usr/bin/env python3
"""
Plot time-series from the JSONL trace written by sim/paint_sim.py.

Each line is one flat telemetry row:
{"tick": 1, "time_s": 0.5, "process_state": "PUMPING_BASE", "white_tank_l": 250.0, ...}

This script:
- loads the trace
- builds one plot per numeric/boolean column
- builds a few combined views (tank levels, pump pressures, pump flows)
- plots the process state as a step series

Usage:
  python build_graphics.py --trace out/paint_trace.jsonl --outdir out/plots

Notes:
- Uses matplotlib only (no seaborn).
- No fixed colors.
"""
from __future__ import annotations

import argparse
import json
import os
from typing import Any, Dict, List

import matplotlib.pyplot as plt

PROCESS_STATES = ["IDLE", "PUMPING_BASE", "WAITING_FOR_RECOVERY", "MIXING", "EMPTYING", "ERROR_STATE"]

SKIP_COLUMNS = {"tick", "time_s"}


# ----------------------------
# Helpers
# ----------------------------
def load_jsonl(path: str) -> List[Dict[str, Any]]:
    rows: List[Dict[str, Any]] = []
    if not path or not os.path.exists(path):
        return rows

    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                obj = json.loads(line)
            except json.JSONDecodeError:
                continue
            if not isinstance(obj, dict) or not isinstance(obj.get("time_s"), (int, float)):
                continue
            rows.append(obj)
    return rows


def ensure_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)


def is_number(x: Any) -> bool:
    return isinstance(x, (int, float)) and not isinstance(x, bool)


def downsample(rows: List[Dict[str, Any]], max_points: int) -> List[Dict[str, Any]]:
    if len(rows) <= max_points:
        return rows
    step = max(1, len(rows) // max_points)
    return rows[::step]


def plot_series(ts: List[float], ys: List[float], title: str, outpath: str) -> None:
    plt.figure()
    plt.plot(ts, ys)
    plt.title(title)
    plt.xlabel("time_s")
    plt.ylabel(title)
    plt.tight_layout()
    plt.savefig(outpath, dpi=150)
    plt.close()


def plot_step_series(ts: List[float], ys: List[int], title: str, outpath: str, labels: List[str] | None = None) -> None:
    plt.figure()
    plt.step(ts, ys, where="post")
    plt.title(title)
    plt.xlabel("time_s")
    if labels:
        plt.yticks(range(len(labels)), labels)
    else:
        plt.ylabel(title)
    plt.tight_layout()
    plt.savefig(outpath, dpi=150)
    plt.close()


def plot_combo(rows: List[Dict[str, Any]], name: str, columns: List[str], outpath: str) -> bool:
    ts = [float(r["time_s"]) for r in rows]
    drawn = False
    plt.figure()
    for col in columns:
        vals = [r.get(col) for r in rows]
        if not all(is_number(v) for v in vals):
            continue
        plt.plot(ts, [float(v) for v in vals], label=col)
        drawn = True
    if drawn:
        plt.title(name)
        plt.xlabel("time_s")
        plt.legend()
        plt.tight_layout()
        plt.savefig(outpath, dpi=150)
    plt.close()
    return drawn


# ----------------------------
# Main
# ----------------------------
def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--trace", default="out/paint_trace.jsonl", help="JSONL trace path")
    ap.add_argument("--outdir", default="out/plots", help="Where to save PNG plots")
    ap.add_argument("--max-points", type=int, default=5000, help="Cap points per metric (simple downsample)")
    args = ap.parse_args()

    rows = load_jsonl(args.trace)
    if not rows:
        print("No data found. Check the JSONL path.")
        return

    rows.sort(key=lambda r: r["time_s"])
    rows = downsample(rows, args.max_points)
    ensure_dir(args.outdir)

    ts = [float(r["time_s"]) for r in rows]
    made = 0

    for col in rows[0]:
        if col in SKIP_COLUMNS:
            continue
        vals = [r.get(col) for r in rows]
        outpath = os.path.join(args.outdir, f"{col}.png")

        if all(isinstance(v, bool) for v in vals):
            plot_step_series(ts, [1 if v else 0 for v in vals], col, outpath)
            made += 1
        elif all(is_number(v) for v in vals):
            plot_series(ts, [float(v) for v in vals], col, outpath)
            made += 1
        # string columns (pump states, recipe) are not plotted on their own

    # process state as an ordinal step series
    states = [r.get("process_state") for r in rows]
    if all(s in PROCESS_STATES for s in states):
        ys = [PROCESS_STATES.index(s) for s in states]
        plot_step_series(ts, ys, "process_state", os.path.join(args.outdir, "process_state.png"), PROCESS_STATES)
        made += 1

    combos = 0
    combos += plot_combo(
        rows,
        "Tank levels",
        ["white_tank_l", "blue_tank_l", "black_tank_l", "mixer_level_l"],
        os.path.join(args.outdir, "combo_tank_levels.png"),
    )
    combos += plot_combo(
        rows,
        "Pump pressures",
        ["white_pressure_psi", "blue_pressure_psi", "black_pressure_psi"],
        os.path.join(args.outdir, "combo_pressures.png"),
    )
    combos += plot_combo(
        rows,
        "Pump flows",
        ["white_flow_lpm", "blue_flow_lpm", "black_flow_lpm"],
        os.path.join(args.outdir, "combo_flows.png"),
    )

    print(f"Plots saved to: {os.path.abspath(args.outdir)} (generated {made} metric plots + {combos} combo plots)")


if __name__ == "__main__":
    main()
