from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Literal, Optional


ValveStatus = Literal["OPEN", "CLOSED"]
SwitchStatus = Literal["NORMAL", "ALARM"]
PumpStatus = Literal["ON", "OFF"]
OnOff = Literal["ON", "OFF"]
SensorType = Literal["FLOW_SWITCH", "PRESSURE_TRANSMITTER", "LEVEL_TRANSMITTER"]
LevelStatus = Literal["EMPTY", "LOW", "NORMAL_LEVEL", "HIGH"]

# one tagged variant instead of independent fault booleans
PumpStateEnum = Literal[
    "RUNNING",
    "STOPPED_LOW_PRESSURE",     # idle, may be started
    "STOPPED_HIGH_PRESSURE",    # overpressure latch
    "STOPPED_FLOW_ALARM",       # low-flow latch
    "STOPPED_TARGET_REACHED",   # task done, needs a new task to re-arm
]

ProcessState = Literal[
    "IDLE",
    "PUMPING_BASE",
    "MIXING",
    "EMPTYING",
    "ERROR_STATE",
    "WAITING_FOR_RECOVERY",
]

Color = Literal["White", "Blue", "Black"]

# fixed pumping priority
COLOR_ORDER: tuple = ("White", "Blue", "Black")

EPS = 1e-6


# default clamp function
def clamp(x: float, lo: float, hi: float) -> float:
    return lo if x < lo else hi if x > hi else x


# ======================================================
# Read-only snapshots (query surface)
# ======================================================
@dataclass
class TankState:
    name: str = ""
    capacity_liters: float = 0.0
    level_liters: float = 0.0
    level_pct: float = 0.0          # derived
    level_status: LevelStatus = "EMPTY"


@dataclass
class PumpState:
    name: str = ""
    status: PumpStatus = "OFF"
    state: PumpStateEnum = "STOPPED_LOW_PRESSURE"

    # Hydraulics
    flow_lpm: float = 0.0
    pressure_psi: float = 0.0

    # Latches
    stopped_due_to_overpressure: bool = False
    stopped_due_to_low_flow: bool = False

    flow_switch: SwitchStatus = "NORMAL"
    suction_valve: ValveStatus = "OPEN"
    discharge_valve: ValveStatus = "OPEN"


@dataclass
class ColorProgress:
    target_liters: float = 0.0
    pumped_liters: float = 0.0
    run_time_s: float = 0.0
    requires_completion: bool = False


@dataclass
class MixerState:
    name: str = ""
    motor_on: bool = False
    mixing_duration_s: float = 0.0
    target_mixing_time_s: float = 0.0
    low_level_switch: SwitchStatus = "ALARM"
    drain_valve: ValveStatus = "OPEN"


@dataclass
class PlantState:
    time_s: float = 0.0

    process_state: ProcessState = "IDLE"
    batch_in_progress: bool = False
    selected_recipe: str = ""
    start_command: OnOff = "OFF"
    current_color: Optional[Color] = None

    # base tanks keyed by color, plus the mixer tank
    tanks: Dict[str, TankState] = field(default_factory=dict)
    mixer_tank: TankState = field(default_factory=TankState)

    pumps: Dict[str, PumpState] = field(default_factory=dict)
    progress: Dict[str, ColorProgress] = field(default_factory=dict)

    mixer: MixerState = field(default_factory=MixerState)
    valves: Dict[str, ValveStatus] = field(default_factory=dict)
