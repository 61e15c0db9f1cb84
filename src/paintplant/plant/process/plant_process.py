# plant/process/plant_process.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from ..errors import InvalidArgument
from ..state import COLOR_ORDER, EPS, Color, SwitchStatus, ValveStatus
from .mixer import Mixer
from .pump import Pump, PumpConfig
from .sensor import Sensor
from .tank import Tank
from .valve import Valve


@dataclass
class PlantConfig:
    # =========================
    # Base tanks (T201..T203)
    # =========================
    base_tank_capacity_liters: float = 1000.0
    base_tank_initial_liters: float = 250.0

    # =========================
    # Mixer tank (M401)
    # =========================
    mixer_tank_capacity_liters: float = 200.0
    mixer_tank_initial_liters: float = 0.0

    # =========================
    # Pumps / valves
    # =========================
    pump: PumpConfig = field(default_factory=PumpConfig)
    initial_valve_status: ValveStatus = "OPEN"


# line number per base color: P201 White, P202 Blue, P203 Black
LINE_NUMBERS: Dict[str, int] = {"White": 201, "Blue": 202, "Black": 203}

MIXER_DRAIN = "V401_DRAIN"

# short names accepted from operators / command files
VALVE_ALIASES: Dict[str, str] = {
    "V201": "V201_D",
    "V202": "V202_D",
    "V203": "V203_D",
    "V401": MIXER_DRAIN,
}


class PaintPlant:
    """
    Component arena: every tank, valve, sensor, pump and the mixer, keyed by
    stable names. Holds the physics half of a tick; no batch rules here.
    """

    def __init__(self, cfg: PlantConfig | None = None, event_sink: Optional[Callable[[str], None]] = None):
        self.cfg = cfg or PlantConfig()
        cfg = self.cfg

        self.tanks: Dict[str, Tank] = {}
        self.valves: Dict[str, Valve] = {}
        self.suction_valves: Dict[str, Valve] = {}
        self.discharge_valves: Dict[str, Valve] = {}
        self.pressure_transmitters: Dict[str, Sensor] = {}
        self.flow_switches: Dict[str, Sensor] = {}
        self.pumps: Dict[str, Pump] = {}

        for color in COLOR_ORDER:
            n = LINE_NUMBERS[color]

            self.tanks[color] = Tank(f"T{n}_{color}", cfg.base_tank_capacity_liters, cfg.base_tank_initial_liters)

            sv = Valve(f"V{n}_S", cfg.initial_valve_status)
            dv = Valve(f"V{n}_D", cfg.initial_valve_status)
            self.valves[sv.name] = sv
            self.valves[dv.name] = dv
            self.suction_valves[color] = sv
            self.discharge_valves[color] = dv

            pt = Sensor(f"PT{n}", "PRESSURE_TRANSMITTER")
            fs = Sensor(f"FS{n}", "FLOW_SWITCH")
            self.pressure_transmitters[color] = pt
            self.flow_switches[color] = fs

            self.pumps[color] = Pump(f"P{n}_{color}", sv, dv, pt, fs, cfg=cfg.pump, event_sink=event_sink)

        self.mixer_tank = Tank("M401_MixerTank", cfg.mixer_tank_capacity_liters, cfg.mixer_tank_initial_liters)
        self.valves[MIXER_DRAIN] = Valve(MIXER_DRAIN, cfg.initial_valve_status)
        self.mixer = Mixer("M401_Mixer", self.mixer_tank, self.valves[MIXER_DRAIN], event_sink=event_sink)

        self.low_level_switch = Sensor("LSL401", "FLOW_SWITCH")
        self._update_low_level_switch()

    # ======================================================
    # Lookup
    # ======================================================
    def valve(self, name: str) -> Valve:
        key = name.strip().upper()
        key = VALVE_ALIASES.get(key, key)
        if key not in self.valves:
            raise InvalidArgument(f"Unknown valve name: {name!r}")
        return self.valves[key]

    def set_valve(self, name: str, status: ValveStatus) -> Valve:
        valve = self.valve(name)
        valve.set_status(status)
        for pump in self.pumps.values():
            if valve in (pump.suction_valve, pump.discharge_valve):
                pump.valves_changed()
        return valve

    @property
    def drain_valve(self) -> Valve:
        return self.valves[MIXER_DRAIN]

    @property
    def low_level_status(self) -> SwitchStatus:
        return self.low_level_switch.get_flow_status()

    # ======================================================
    # MAIN STEP (physics only)
    # ======================================================
    def step(self, dt: float) -> None:
        if dt <= 0:
            return

        for color in COLOR_ORDER:
            self._evaluate_flow_switch(color)
            self.pumps[color].update(dt)

        self.mixer.update(dt)
        self._update_low_level_switch()

    def _evaluate_flow_switch(self, color: Color) -> None:
        # suction-side switch: a running pump with no liquid reaching it
        pump = self.pumps[color]
        starving = pump.status == "ON" and not self.suction_valves[color].is_open
        self.flow_switches[color].set_flow_status("ALARM" if starving else "NORMAL")

    def _update_low_level_switch(self) -> None:
        empty = self.mixer_tank.current_level_liters <= EPS
        self.low_level_switch.set_flow_status("ALARM" if empty else "NORMAL")

    # ======================================================
    # Actions used by the controller
    # ======================================================
    def transfer(self, color: Color, liters: float) -> None:
        self.tanks[color].remove_liquid(liters)
        self.mixer_tank.add_liquid(liters)

    def stop_all_pumps(self) -> None:
        for pump in self.pumps.values():
            pump.stop()
