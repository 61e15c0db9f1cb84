# plant/controller.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .errors import InvalidArgument
from .process.plant_process import PaintPlant, PlantConfig
from .recipes import DEFAULT_RECIPES, Recipe, matches_batch_size, recipe_targets, recipe_total, resolve_recipe_name
from .state import (
    COLOR_ORDER,
    EPS,
    Color,
    ColorProgress,
    OnOff,
    PlantState,
    ProcessState,
    ValveStatus,
)

logger = logging.getLogger(__name__)


@dataclass
class ControllerConfig:
    # =========================
    # Batch
    # =========================
    batch_size_liters: float = 150.0
    default_recipe: str = "Celeste"
    recipes: Dict[str, Recipe] = field(default_factory=lambda: {k: dict(v) for k, v in DEFAULT_RECIPES.items()})

    # =========================
    # Mixing / emptying
    # =========================
    mixing_time_s: float = 30.0
    drain_rate_pct_per_s: float = 4.0       # % of mixer tank capacity per second

    eps: float = EPS

    # =========================
    # Equipment
    # =========================
    plant: PlantConfig = field(default_factory=PlantConfig)


class BatchController:
    """
    Batch process state machine:
      IDLE -> PUMPING_BASE -> MIXING -> EMPTYING -> IDLE
      PUMPING_BASE <-> WAITING_FOR_RECOVERY (pump faults mid-task)
      any -> ERROR_STATE (no automatic exit)

    update(dt) runs the plant physics first, then one state-machine step.
    Operational faults live in pump state + event log, never raised.
    """

    def __init__(self, cfg: ControllerConfig | None = None):
        self.cfg = cfg or ControllerConfig()

        self._events: List[str] = []
        self.last_message: str = ""

        self.plant = PaintPlant(self.cfg.plant, event_sink=self._log)

        self.current_process_state: ProcessState = "IDLE"
        self.selected_recipe: str = resolve_recipe_name(self.cfg.default_recipe, self.cfg.recipes)
        self.start_command: OnOff = "OFF"
        self.batch_in_progress: bool = False
        self.current_pumping_color: Optional[Color] = None

        # per base color bookkeeping
        self._targets: Dict[str, float] = {c: 0.0 for c in COLOR_ORDER}
        self._pumped: Dict[str, float] = {c: 0.0 for c in COLOR_ORDER}
        self._needs_completion: Dict[str, bool] = {c: False for c in COLOR_ORDER}
        self._run_time_s: Dict[str, float] = {c: 0.0 for c in COLOR_ORDER}

        # last logged "why not" messages, to log only on change
        self._start_block_reason: Optional[str] = None
        self._wait_reason: Optional[str] = None
        self._drain_hold_logged: bool = False

        self._update_recipes()
        self._log(
            f"System initialized. Initial state: {self.current_process_state}, Recipe: {self.selected_recipe}, StartCmd: {self.start_command}"
        )

    # ======================================================
    # Event log
    # ======================================================
    def _log(self, message: str, level: int = logging.INFO) -> None:
        self._events.append(message)
        self.last_message = message
        logger.log(level, message)

    def record_event(self, message: str, level: int = logging.INFO) -> None:
        """Append an externally produced message (command layer, drivers)."""
        self._log(message, level)

    @property
    def events(self) -> List[str]:
        return list(self._events)

    def drain_events(self) -> List[str]:
        out, self._events = self._events, []
        return out

    def clear_events(self) -> None:
        self._events.clear()

    # ======================================================
    # Commands
    # ======================================================
    def select_recipe(self, name: str) -> bool:
        if self.batch_in_progress:
            self._log(f"Cannot change recipe to {name} while a batch is in progress.", logging.WARNING)
            return False

        self.selected_recipe = resolve_recipe_name(name, self.cfg.recipes)
        self._log(f"Selected recipe changed to: {self.selected_recipe}")
        self._update_recipes()
        return True

    def set_start_command(self, command: OnOff) -> None:
        command = str(command).strip().upper()
        if command not in ("ON", "OFF"):
            raise InvalidArgument(f"Start command must be ON or OFF, got {command!r}")
        self._log(f"System received Start/Stop Command: {command}")
        self.start_command = command  # type: ignore[assignment]
        if command == "OFF":
            self._start_block_reason = None

    def set_valve(self, name: str, status: ValveStatus) -> None:
        status = str(status).strip().upper()  # type: ignore[assignment]
        if status == "CLOSE":
            status = "CLOSED"
        valve = self.plant.set_valve(name, status)
        self._log(f"Valve {valve.name} set to {valve.get_status()}")

    # ======================================================
    # Queries
    # ======================================================
    def _check_color(self, color: str) -> str:
        if color not in COLOR_ORDER:
            raise InvalidArgument(f"Unknown base color: {color!r}")
        return color

    def target_liters(self, color: Color) -> float:
        return self._targets[self._check_color(color)]

    def pumped_liters(self, color: Color) -> float:
        return self._pumped[self._check_color(color)]

    def run_time_seconds(self, color: Color) -> float:
        return self._run_time_s[self._check_color(color)]

    def requires_completion(self, color: Color) -> bool:
        return self._needs_completion[self._check_color(color)]

    def snapshot(self) -> PlantState:
        p = self.plant
        return PlantState(
            process_state=self.current_process_state,
            batch_in_progress=self.batch_in_progress,
            selected_recipe=self.selected_recipe,
            start_command=self.start_command,
            current_color=self.current_pumping_color,
            tanks={c: p.tanks[c].snapshot() for c in COLOR_ORDER},
            mixer_tank=p.mixer_tank.snapshot(),
            pumps={c: p.pumps[c].snapshot() for c in COLOR_ORDER},
            progress={
                c: ColorProgress(
                    target_liters=self._targets[c],
                    pumped_liters=self._pumped[c],
                    run_time_s=self._run_time_s[c],
                    requires_completion=self._needs_completion[c],
                )
                for c in COLOR_ORDER
            },
            mixer=p.mixer.snapshot(p.low_level_status),
            valves={name: v.get_status() for name, v in p.valves.items()},
        )

    # ======================================================
    # Recipes
    # ======================================================
    def _update_recipes(self) -> bool:
        targets = recipe_targets(self.cfg.recipes[self.selected_recipe])
        if not matches_batch_size(targets, self.cfg.batch_size_liters, self.cfg.eps):
            self._enter_error(
                f"Recipe for {self.selected_recipe} sums to {recipe_total(targets):.2f}L "
                f"but target batch size is {self.cfg.batch_size_liters:.2f}L"
            )
            return False

        self._targets = targets
        self._log(
            f"Recipes updated for: {self.selected_recipe}. Targets (L) - "
            + ", ".join(f"{c}: {targets[c]:.2f}" for c in COLOR_ORDER)
        )
        return True

    # ======================================================
    # MAIN ENTRY
    # ======================================================
    def update(self, dt: float) -> None:
        if dt <= 0:
            return

        # 1) physics: flow switches, pumps, mixer timer, low-level switch
        self.plant.step(dt)

        # 2) process rules
        state = self.current_process_state
        if state == "IDLE":
            self._handle_idle()
        elif state == "PUMPING_BASE":
            self._handle_pumping(dt)
        elif state == "WAITING_FOR_RECOVERY":
            self._handle_waiting_for_recovery(dt)
        elif state == "MIXING":
            self._handle_mixing()
        elif state == "EMPTYING":
            self._handle_emptying(dt)
        elif state == "ERROR_STATE":
            # stays here until an operator intervenes
            pass
        else:
            self._enter_error(f"Unknown process state encountered: {state}")

    # ======================================================
    # IDLE
    # ======================================================
    def _start_blocker(self) -> Optional[str]:
        if self.batch_in_progress:
            return "A batch is already in progress."
        if self.plant.low_level_status != "ALARM":
            return "Mixer is not empty (LSL401 not in ALARM)."
        for color in COLOR_ORDER:
            target = self._targets[color]
            tank = self.plant.tanks[color]
            if target > self.cfg.eps and tank.current_level_liters < target:
                return (
                    f"Insufficient {color} base in {tank.name} "
                    f"({tank.current_level_liters:.2f}L < {target:.2f}L)."
                )
        return None

    def _handle_idle(self) -> None:
        if self.start_command != "ON":
            return

        reason = self._start_blocker()
        if reason is not None:
            if reason != self._start_block_reason:
                self._log(f"Cannot start new batch: {reason}", logging.WARNING)
                self._start_block_reason = reason
            return

        self._start_block_reason = None
        self._start_new_batch()
        # the command is consumed; the operator re-toggles for the next batch
        self.start_command = "OFF"
        self._log("Start command processed and consumed for new batch.")

    def _start_new_batch(self) -> None:
        self._log(f"Starting new batch for recipe: {self.selected_recipe}")

        for color in COLOR_ORDER:
            self._pumped[color] = 0.0
            self._needs_completion[color] = False
            self._run_time_s[color] = 0.0
        self.current_pumping_color = None
        self._wait_reason = None

        if not self._update_recipes():
            return

        for color in COLOR_ORDER:
            if self._targets[color] > self.cfg.eps:
                self.plant.pumps[color].assign_task()

        self.batch_in_progress = True
        self._set_state("PUMPING_BASE")

    # ======================================================
    # PUMPING_BASE
    # ======================================================
    def _task_done(self, color: str) -> bool:
        return self._pumped[color] >= self._targets[color] - self.cfg.eps

    def _next_color(self) -> Optional[Color]:
        for color in COLOR_ORDER:
            if self._targets[color] > self.cfg.eps and not self._task_done(color) and not self._needs_completion[color]:
                return color  # type: ignore[return-value]
        return None

    def _poll_recovered(self) -> None:
        for color in COLOR_ORDER:
            pump = self.plant.pumps[color]
            if self._needs_completion[color] and not pump.is_faulted:
                self._log(f"PUMPING_BASE: Pump {pump.name} for {color} has recovered. Clearing recovery flag.")
                self._needs_completion[color] = False

    def _check_component_failures(self) -> None:
        for color in COLOR_ORDER:
            pump = self.plant.pumps[color]
            if not pump.is_faulted:
                continue
            if color == self.current_pumping_color and not self._needs_completion[color]:
                self._mark_for_recovery(color, "failed during its operation")
            elif pump.status == "ON":
                self._log(f"PUMP ALERT: Pump {pump.name} for {color} is in fault. Ensuring it's stopped.")
                pump.stop()

    def _mark_for_recovery(self, color: Color, why: str) -> None:
        pump = self.plant.pumps[color]
        self._log(f"PUMP FAIL: Pump {pump.name} for {color} {why}. Marking for recovery.", logging.WARNING)
        self._needs_completion[color] = True
        pump.stop()
        if self.current_pumping_color == color:
            self.current_pumping_color = None

    def _handle_pumping(self, dt: float) -> None:
        # start_command OFF does not abort a batch in progress
        self._poll_recovered()
        self._check_component_failures()

        color = self.current_pumping_color
        if color is None or self._task_done(color):
            color = self._next_color()
            self.current_pumping_color = color
            if color is not None:
                self._log(f"PUMPING_BASE: Next base to pump: {color}")

        # only the active line may run
        for other, pump in self.plant.pumps.items():
            if other != color and pump.status == "ON":
                pump.stop()

        if color is None:
            self._finish_or_wait()
            return

        self._pump_color(color, dt)

    def _pump_color(self, color: Color, dt: float) -> None:
        p = self.plant
        pump = p.pumps[color]
        tank = p.tanks[color]
        eps = self.cfg.eps

        needed = self._targets[color] - self._pumped[color]
        if needed <= eps:
            pump.finish_task()
            self.current_pumping_color = None
            return

        if tank.current_level_liters <= eps:
            pump.stop()
            self._enter_error(f"Source tank {tank.name} is empty. Cannot pump {color}")
            return

        for valve in (p.discharge_valves[color], p.suction_valves[color]):
            if not valve.is_open:
                valve.open()
                self._log(f"System automatically opened {valve.name} for pumping {color}.")
        pump.start()

        if pump.is_delivering:
            mixer_space = p.mixer_tank.free_space_liters
            if mixer_space <= eps:
                pump.stop()
                self._enter_error(f"Mixer tank is full, cannot add more liquid while pumping {color}")
                return

            amount = (pump.flow_rate_lpm / 60.0) * dt
            amount = min(amount, needed, tank.current_level_liters, mixer_space)

            p.transfer(color, amount)
            self._pumped[color] += amount
            self._run_time_s[color] += dt

            if self._task_done(color):
                self._log(f"PUMPING_BASE: Target reached for {color}. Stopping pump {pump.name}")
                pump.finish_task()
                self.current_pumping_color = None

        elif pump.is_faulted and not self._needs_completion[color]:
            self._mark_for_recovery(color, "entered fault during operation")

    def _finish_or_wait(self) -> None:
        eps = self.cfg.eps
        remaining = [c for c in COLOR_ORDER if self._targets[c] > eps and not self._task_done(c)]

        if not remaining:
            self._log("PUMPING_BASE: All bases pumped to target. Transitioning to MIXING.")
            self.plant.stop_all_pumps()
            mixer = self.plant.mixer
            mixer.set_target_mixing_time(self.cfg.mixing_time_s)
            mixer.start_motor()
            self._set_state("MIXING")
        elif any(self._needs_completion[c] for c in remaining):
            self._log("PUMPING_BASE: Waiting for pump recovery. No active base.")
            self._wait_reason = None
            self._set_state("WAITING_FOR_RECOVERY")
        else:
            self._enter_error("Pumping not complete, but no available pump or recovery path")

    # ======================================================
    # WAITING_FOR_RECOVERY
    # ======================================================
    def _handle_waiting_for_recovery(self, dt: float) -> None:
        if not self.batch_in_progress:
            self._log("WAITING_FOR_RECOVERY: Batch no longer in progress. Transitioning to IDLE.")
            self._set_state("IDLE")
            return

        p = self.plant
        still_faulted: List[str] = []

        for color in COLOR_ORDER:
            if not self._needs_completion[color]:
                continue
            pump = p.pumps[color]

            # a low-flow latch is only re-evaluated on a run attempt, and only with both valves open
            if pump.stopped_due_to_low_flow and p.suction_valves[color].is_open and p.discharge_valves[color].is_open:
                pump.start()

            if pump.is_faulted:
                still_faulted.append(f"{pump.name} ({pump.state})")
            else:
                self._log(f"WAITING_FOR_RECOVERY: {pump.name} recovered. {color} can resume.")
                self._needs_completion[color] = False

        if self._next_color() is not None or not still_faulted:
            if still_faulted:
                self._log("WAITING_FOR_RECOVERY: Resuming recovered bases while other pumps stay in fault.")
            else:
                self._log("WAITING_FOR_RECOVERY: All pumps recovered. Transitioning to PUMPING_BASE.")
            self._wait_reason = None
            self._set_state("PUMPING_BASE")
            self._handle_pumping(dt)
            return

        # nothing to pump yet: only a pending restart attempt may stay commanded on
        for color in COLOR_ORDER:
            pump = p.pumps[color]
            if pump.status == "ON" and not self._needs_completion[color]:
                pump.stop()

        reason = ", ".join(still_faulted)
        if reason != self._wait_reason:
            self._log(f"WAITING_FOR_RECOVERY: Pumps still in fault: {reason}. Holding state.")
            self._wait_reason = reason

    # ======================================================
    # MIXING
    # ======================================================
    def _handle_mixing(self) -> None:
        mixer = self.plant.mixer
        if mixer.motor_on:
            return

        self._log(
            f"Mixing complete (Duration: {mixer.current_mixing_duration_s:.1f}s). Starting to empty mixer."
        )
        self._set_state("EMPTYING")
        self._drain_hold_logged = False
        if not mixer.drain_valve.is_open:
            mixer.drain_valve.open()
            self._log(f"System automatically opened {mixer.drain_valve.name} for emptying.")

    # ======================================================
    # EMPTYING
    # ======================================================
    def _handle_emptying(self, dt: float) -> None:
        tank = self.plant.mixer_tank
        drain = self.plant.drain_valve
        eps = self.cfg.eps

        if tank.current_level_liters > eps:
            if not drain.is_open:
                if not self._drain_hold_logged:
                    self._log(f"EMPTYING: {drain.name} is closed. Holding until it is opened.", logging.WARNING)
                    self._drain_hold_logged = True
                return
            self._drain_hold_logged = False
            rate_lps = tank.capacity_liters * self.cfg.drain_rate_pct_per_s / 100.0
            tank.remove_liquid(rate_lps * dt)

        if tank.current_level_liters <= eps:
            tank.remove_liquid(tank.current_level_liters)
            if drain.is_open:
                drain.close()
                self._log(f"System automatically closed {drain.name} as mixer is empty.")
            self._log("Mixer empty. Batch complete. System transitioning to IDLE.")
            self.batch_in_progress = False
            self._set_state("IDLE")

    # ======================================================
    # ERROR_STATE
    # ======================================================
    def _enter_error(self, message: str) -> None:
        if self.current_process_state != "ERROR_STATE" or not self.last_message.startswith(f"ERROR: {message}"):
            self._log(f"ERROR: {message}. System entering ERROR_STATE.", logging.ERROR)
        self.current_process_state = "ERROR_STATE"
        self.batch_in_progress = False
        self.current_pumping_color = None
        self.plant.stop_all_pumps()
        self.plant.mixer.stop_motor()

    def _set_state(self, new_state: ProcessState) -> None:
        if new_state != self.current_process_state:
            logger.debug("process state %s -> %s", self.current_process_state, new_state)
        self.current_process_state = new_state
