# plant/process/pump.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from ..errors import InvalidArgument
from ..state import PumpState, PumpStateEnum, PumpStatus
from .sensor import Sensor
from .valve import Valve

logger = logging.getLogger(__name__)

EventSink = Callable[[str], None]


@dataclass
class PumpConfig:
    # =========================
    # Hydraulics
    # =========================
    nominal_flow_lpm: float = 100.0
    operating_pressure_psi: float = 33.0
    operating_settle_psi_per_s: float = 40.0   # slew toward operating pressure

    # =========================
    # Protection thresholds
    # =========================
    high_pressure_trip_psi: float = 50.0       # > trip -> STOPPED_HIGH_PRESSURE
    restart_pressure_psi: float = 20.0         # < restart -> latch may clear

    # =========================
    # Pressure dynamics (dt-aware)
    # =========================
    deadhead_ramp_psi_per_s: float = 10.0      # discharge closed while running
    deadhead_cap_psi: float = 60.0
    relief_decay_psi_per_s: float = 20.0       # after overpressure stop, discharge open


class Pump:
    """
    Centrifugal pump between a suction and a discharge valve.

    Per-tick order (update):
      1) trip checks while ON (flow switch ALARM, pressure > trip)
      2) latch recovery while commanded ON
      3) normal operation (valves decide flow/pressure)
      4) OFF-state pressure behaviour
      5) pressure transmitter sync

    The flow switch is an input; the pump never writes it.
    """

    def __init__(
        self,
        name: str,
        suction_valve: Valve,
        discharge_valve: Valve,
        pressure_transmitter: Sensor,
        flow_switch: Sensor,
        cfg: PumpConfig | None = None,
        event_sink: Optional[EventSink] = None,
    ):
        if not name:
            raise InvalidArgument("Pump name cannot be empty")
        if pressure_transmitter.sensor_type != "PRESSURE_TRANSMITTER":
            raise InvalidArgument(f"Pressure transmitter for pump '{name}' is not of type PRESSURE_TRANSMITTER")
        if flow_switch.sensor_type != "FLOW_SWITCH":
            raise InvalidArgument(f"Flow switch for pump '{name}' is not of type FLOW_SWITCH")

        self.name = name
        self.cfg = cfg or PumpConfig()
        self.suction_valve = suction_valve
        self.discharge_valve = discharge_valve
        self.pressure_transmitter = pressure_transmitter
        self.flow_switch = flow_switch
        self._sink = event_sink

        self.status: PumpStatus = "OFF"
        self.state: PumpStateEnum = "STOPPED_LOW_PRESSURE"
        self.flow_rate_lpm: float = 0.0
        self.pressure_psi: float = 0.0
        # low flow seen in the same tick as an overpressure trip
        self.low_flow_pending: bool = False

        self.pressure_transmitter.set_pressure_psi(self.pressure_psi)

    # ======================================================
    # Derived flags
    # ======================================================
    @property
    def stopped_due_to_overpressure(self) -> bool:
        return self.state == "STOPPED_HIGH_PRESSURE"

    @property
    def stopped_due_to_low_flow(self) -> bool:
        return self.state == "STOPPED_FLOW_ALARM"

    @property
    def is_faulted(self) -> bool:
        return self.state in ("STOPPED_HIGH_PRESSURE", "STOPPED_FLOW_ALARM")

    @property
    def is_delivering(self) -> bool:
        return self.status == "ON" and self.state == "RUNNING" and self.flow_rate_lpm > 0.0

    # ======================================================
    # Commands
    # ======================================================
    def start(self) -> None:
        # a finished task stays finished until a new task is assigned
        if self.state == "STOPPED_TARGET_REACHED":
            return
        if self.status != "ON":
            self._event(f"[{self.name}] START command.")
        self.status = "ON"

    def stop(self) -> None:
        if self.status == "ON":
            self._event(f"[{self.name}] STOP command.")
        self.status = "OFF"
        self.flow_rate_lpm = 0.0
        if self.state == "RUNNING":
            self.state = "STOPPED_LOW_PRESSURE"

    def assign_task(self) -> None:
        """Re-arm a pump whose previous task reached target."""
        if self.state == "STOPPED_TARGET_REACHED":
            self.state = "STOPPED_LOW_PRESSURE"

    def valves_changed(self) -> None:
        # a closed line valve stops the flow at once, pressure follows on the next update
        if not (self.suction_valve.is_open and self.discharge_valve.is_open):
            self.flow_rate_lpm = 0.0

    def finish_task(self) -> None:
        self.stop()
        if not self.is_faulted:
            self.state = "STOPPED_TARGET_REACHED"

    # ======================================================
    # MAIN STEP
    # ======================================================
    def update(self, dt: float) -> None:
        if dt <= 0:
            return

        self._check_trips()

        if self.status == "ON":
            self._evaluate_recovery()

        if self.status == "ON" and self.state == "RUNNING":
            self._run(dt)
        elif self.status == "OFF":
            self._apply_off(dt)

        self.pressure_transmitter.set_pressure_psi(self.pressure_psi)

    # ======================================================
    # 1) trips
    # ======================================================
    def _check_trips(self) -> None:
        if self.status != "ON":
            return

        low_flow = self.flow_switch.get_flow_status() == "ALARM"
        high_pressure = self.pressure_psi > self.cfg.high_pressure_trip_psi

        if low_flow:
            self._event(f"[{self.name}] ALARM: Low flow detected. Stopping pump.")
        if high_pressure:
            self._event(
                f"[{self.name}] ALARM: Overpressure detected "
                f"(>{self.cfg.high_pressure_trip_psi:.0f} PSI). Stopping pump."
            )

        # overpressure wins when both fire in the same tick
        if high_pressure:
            self._trip("STOPPED_HIGH_PRESSURE")
            self.low_flow_pending = low_flow
        elif low_flow:
            self._trip("STOPPED_FLOW_ALARM")

    def _trip(self, reason: PumpStateEnum) -> None:
        self.status = "OFF"
        self.flow_rate_lpm = 0.0
        self.state = reason
        self.low_flow_pending = False

    # ======================================================
    # 2) recovery while commanded ON
    # ======================================================
    def _evaluate_recovery(self) -> None:
        cfg = self.cfg

        if self.state == "STOPPED_LOW_PRESSURE":
            self.state = "RUNNING"
            return

        if self.state == "STOPPED_HIGH_PRESSURE":
            if self.pressure_psi >= cfg.restart_pressure_psi:
                self.status = "OFF"
                self.flow_rate_lpm = 0.0
                return
            if not self.low_flow_pending:
                self._event(f"[{self.name}] Overpressure condition cleared. Restarting.")
                self.state = "RUNNING"
                return
            self._event(f"[{self.name}] Overpressure condition cleared.")
            # the low-flow trip from the same tick is still owed a check
            self.state = "STOPPED_FLOW_ALARM"
            self.low_flow_pending = False

        if self.state == "STOPPED_FLOW_ALARM":
            flow_ok = self.flow_switch.get_flow_status() == "NORMAL"
            if flow_ok and self.discharge_valve.is_open and self.pressure_psi < cfg.restart_pressure_psi:
                self._event(f"[{self.name}] Low flow condition cleared, pressure normal. Restarting.")
                self.state = "RUNNING"
            else:
                # latched: refuse the run command
                self.status = "OFF"
                self.flow_rate_lpm = 0.0

    # ======================================================
    # 3) normal operation
    # ======================================================
    def _run(self, dt: float) -> None:
        cfg = self.cfg

        if self.suction_valve.is_open and self.discharge_valve.is_open:
            self.flow_rate_lpm = cfg.nominal_flow_lpm
            self.pressure_psi = self._slew_to(
                current=self.pressure_psi,
                target=cfg.operating_pressure_psi,
                slew_per_s=cfg.operating_settle_psi_per_s,
                dt=dt,
            )
        elif not self.discharge_valve.is_open:
            # dead-headed: pressure builds toward the trip
            self.flow_rate_lpm = 0.0
            self.pressure_psi = min(cfg.deadhead_cap_psi, self.pressure_psi + cfg.deadhead_ramp_psi_per_s * dt)
        else:
            # suction closed: starving, the flow switch will catch it
            self.flow_rate_lpm = 0.0

    # ======================================================
    # 4) OFF state
    # ======================================================
    def _apply_off(self, dt: float) -> None:
        cfg = self.cfg
        self.flow_rate_lpm = 0.0

        if self.state == "STOPPED_HIGH_PRESSURE":
            if self.discharge_valve.is_open:
                self.pressure_psi = max(0.0, self.pressure_psi - cfg.relief_decay_psi_per_s * dt)
            if self.pressure_psi < cfg.restart_pressure_psi:
                self._event(f"[{self.name}] Overpressure condition resolved (pressure < {cfg.restart_pressure_psi:.0f} PSI).")
                low_flow = self.low_flow_pending or self.flow_switch.get_flow_status() == "ALARM"
                self.state = "STOPPED_FLOW_ALARM" if low_flow else "STOPPED_LOW_PRESSURE"
                self.low_flow_pending = False
            return

        # low-flow latch and plain OFF behave the same: open discharge releases pressure
        if self.discharge_valve.is_open:
            self.pressure_psi = 0.0

    @staticmethod
    def _slew_to(current: float, target: float, slew_per_s: float, dt: float) -> float:
        max_step = abs(slew_per_s) * dt
        delta = target - current
        if abs(delta) <= max_step:
            return target
        return current + (max_step if delta > 0 else -max_step)

    def _event(self, msg: str) -> None:
        if self._sink is not None:
            self._sink(msg)
        else:
            logger.info(msg)

    def snapshot(self) -> PumpState:
        return PumpState(
            name=self.name,
            status=self.status,
            state=self.state,
            flow_lpm=self.flow_rate_lpm,
            pressure_psi=self.pressure_psi,
            stopped_due_to_overpressure=self.stopped_due_to_overpressure,
            stopped_due_to_low_flow=self.stopped_due_to_low_flow,
            flow_switch=self.flow_switch.get_flow_status(),
            suction_valve=self.suction_valve.get_status(),
            discharge_valve=self.discharge_valve.get_status(),
        )
