#!/usr/bin/env python3
# paint_sim.py

import argparse
import json
import logging
import os
import signal
import time
from datetime import datetime
from typing import Optional

from paintplant.plant.commands import load_command_file
from paintplant.plant.controller import BatchController, ControllerConfig
from paintplant.plant.report import render_report
from paintplant.plant.simulation import PlantSimulator, SimulatorConfig


# ============================================================
# Helpers
# ============================================================
def ensure_dir_for_file(path: str) -> None:
    d = os.path.dirname(os.path.abspath(path))
    if d and not os.path.exists(d):
        os.makedirs(d, exist_ok=True)


def log(msg: str) -> None:
    ts = datetime.now().strftime("%H:%M:%S")
    print(f"[{ts}] {msg}", flush=True)


class CommandFileWatcher:
    """Re-applies the operator command file whenever its mtime changes."""

    def __init__(self, controller: BatchController, path: str):
        self.controller = controller
        self.path = path
        self._mtime: Optional[float] = None

    def poll(self) -> None:
        try:
            mtime = os.path.getmtime(self.path)
        except OSError as e:
            log(f"[CMD] cannot stat {self.path}: {e}")
            return
        if mtime == self._mtime:
            return
        self._mtime = mtime

        result = load_command_file(self.controller, self.path)
        log(f"[CMD] applied {result.applied} command(s) from {self.path}")
        for err in result.errors:
            log(f"[CMD] rejected {err}")


# ============================================================
# Main
# ============================================================
def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Paint batching plant simulator + JSONL trace")
    p.add_argument("--commands", default=None, help="operator command file (KEY = VALUE lines)")
    p.add_argument("--watch", action="store_true", help="re-apply the command file when it changes")
    p.add_argument("--dt", type=float, default=0.5, help="simulation step, seconds")
    p.add_argument("--ticks", type=int, default=0, help="run exactly N ticks (0 = run until idle)")
    p.add_argument("--idle-stop", type=float, default=5.0, help="stop after this many idle simulated seconds")
    p.add_argument("--max-ticks", type=int, default=100_000)
    p.add_argument("--report-every", type=int, default=0, help="print a status report every N ticks")
    p.add_argument("--out", default="out/paint_trace.jsonl")
    p.add_argument("--realtime", action="store_true", help="sleep dt between ticks")
    p.add_argument("--log-level", default="WARNING")
    return p.parse_args()


def run() -> int:
    args = parse_args()
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.WARNING), format="%(levelname)s %(name)s: %(message)s")

    controller = BatchController(ControllerConfig())
    sim = PlantSimulator(controller, SimulatorConfig(dt_s=args.dt))

    watcher = CommandFileWatcher(controller, args.commands) if args.commands else None
    if watcher is not None:
        watcher.poll()

    stop = {"flag": False}

    def _h(*_):
        stop["flag"] = True

    signal.signal(signal.SIGINT, _h)

    ensure_dir_for_file(args.out)
    log(f"[MAIN] dt={args.dt}s out={os.path.abspath(args.out)}")

    idle_for = 0.0
    ticks = 0
    with open(args.out, "w", encoding="utf-8") as f:
        while not stop["flag"] and ticks < args.max_ticks:
            if watcher is not None and args.watch:
                watcher.poll()

            sim.step(args.dt)
            ticks += 1
            f.write(json.dumps(sim.history[-1], ensure_ascii=False) + "\n")

            for msg in controller.drain_events():
                log(f"[EVT] {msg}")

            if args.report_every and ticks % args.report_every == 0:
                print(render_report(sim.snapshot(), controller.last_message), flush=True)

            if args.ticks:
                if ticks >= args.ticks:
                    break
            else:
                if controller.current_process_state == "ERROR_STATE":
                    log("[MAIN] controller in ERROR_STATE, stopping")
                    break
                idle = (
                    controller.current_process_state == "IDLE"
                    and not controller.batch_in_progress
                    and controller.start_command == "OFF"
                )
                idle_for = idle_for + args.dt if idle else 0.0
                if idle_for >= args.idle_stop:
                    log(f"[MAIN] idle for {args.idle_stop:.1f}s, stopping")
                    break

            if args.realtime:
                time.sleep(args.dt)

    print(render_report(sim.snapshot(), controller.last_message), flush=True)
    log(f"[MAIN] {ticks} ticks, {sim.time_s:.1f}s simulated")
    return 1 if controller.current_process_state == "ERROR_STATE" else 0


def main() -> None:
    raise SystemExit(run())


if __name__ == "__main__":
    main()
