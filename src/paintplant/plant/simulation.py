# plant/simulation.py
from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, List

from .controller import BatchController
from .state import COLOR_ORDER, PlantState


@dataclass
class SimulatorConfig:
    dt_s: float = 0.5
    max_history: int = 2000


class PlantSimulator:
    """External driver: owns the simulated clock and a bounded telemetry history."""

    def __init__(self, controller: BatchController | None = None, cfg: SimulatorConfig | None = None):
        self.controller = controller or BatchController()
        self.cfg = cfg or SimulatorConfig()

        self.time_s: float = 0.0
        self.tick_n: int = 0
        self.history: Deque[Dict[str, Any]] = deque(maxlen=self.cfg.max_history)

    def step(self, dt: float | None = None) -> None:
        dt = self.cfg.dt_s if dt is None else float(dt)
        if dt <= 0:
            return

        self.controller.update(dt)

        self.time_s += dt
        self.tick_n += 1
        self.history.append(self.row())

    def run_ticks(self, n: int, dt: float | None = None) -> int:
        for _ in range(max(0, int(n))):
            self.step(dt)
        return max(0, int(n))

    def run_until_idle(self, idle_s: float = 5.0, dt: float | None = None, max_ticks: int = 100_000) -> int:
        """
        Step until the plant has been idle (IDLE, no batch, start command OFF)
        for idle_s simulated seconds, or the controller is in ERROR_STATE,
        or max_ticks ran out. Returns ticks executed.
        """
        dt = self.cfg.dt_s if dt is None else float(dt)
        if dt <= 0:
            return 0

        idle_for = 0.0
        ticks = 0
        while ticks < max_ticks:
            self.step(dt)
            ticks += 1

            c = self.controller
            if c.current_process_state == "ERROR_STATE":
                break
            if c.current_process_state == "IDLE" and not c.batch_in_progress and c.start_command == "OFF":
                idle_for += dt
                if idle_for >= idle_s:
                    break
            else:
                idle_for = 0.0
        return ticks

    def snapshot(self) -> PlantState:
        state = self.controller.snapshot()
        state.time_s = self.time_s
        return state

    def row(self) -> Dict[str, Any]:
        """Flat telemetry row for the dashboard and the JSONL trace."""
        s = self.snapshot()
        r: Dict[str, Any] = {
            "tick": self.tick_n,
            "time_s": round(s.time_s, 3),
            "process_state": s.process_state,
            "batch_in_progress": s.batch_in_progress,
            "recipe": s.selected_recipe,
            "start_command": s.start_command,
            "current_color": s.current_color,
            "mixer_level_l": s.mixer_tank.level_liters,
            "mixer_motor_on": s.mixer.motor_on,
            "mixing_s": s.mixer.mixing_duration_s,
            "lsl401": s.mixer.low_level_switch,
        }
        for color in COLOR_ORDER:
            key = color.lower()
            pump = s.pumps[color]
            prog = s.progress[color]
            r[f"{key}_tank_l"] = s.tanks[color].level_liters
            r[f"{key}_pump_status"] = pump.status
            r[f"{key}_pump_state"] = pump.state
            r[f"{key}_flow_lpm"] = pump.flow_lpm
            r[f"{key}_pressure_psi"] = pump.pressure_psi
            r[f"{key}_pumped_l"] = prog.pumped_liters
            r[f"{key}_target_l"] = prog.target_liters
        return r

    def history_rows(self) -> List[Dict[str, Any]]:
        return list(self.history)
