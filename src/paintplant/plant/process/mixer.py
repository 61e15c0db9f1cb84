# plant/process/mixer.py
from __future__ import annotations

import logging
from typing import Callable, Optional

from ..errors import InvalidArgument
from ..state import MixerState, SwitchStatus
from .tank import Tank
from .valve import Valve

logger = logging.getLogger(__name__)


class Mixer:
    """
    Timed agitator on the mixing tank.
    - dt drives the timer; the motor stops itself at the target time.
    - duration is kept after stop for reporting, reset on the next start.
    """

    def __init__(
        self,
        name: str,
        tank: Tank,
        drain_valve: Valve,
        target_mixing_time_s: float = 0.0,
        event_sink: Optional[Callable[[str], None]] = None,
    ):
        if not name:
            raise InvalidArgument("Mixer name cannot be empty")

        self.name = name
        self.tank = tank
        self.drain_valve = drain_valve
        self._sink = event_sink

        self.motor_on: bool = False
        self.target_mixing_time_s: float = 0.0
        self.current_mixing_duration_s: float = 0.0

        if target_mixing_time_s > 0:
            self.target_mixing_time_s = float(target_mixing_time_s)

    def set_target_mixing_time(self, seconds: float) -> None:
        if seconds <= 0:
            logger.warning("[%s] Invalid target mixing time: %ss. Not set.", self.name, seconds)
            return
        self.target_mixing_time_s = float(seconds)

    def start_motor(self) -> None:
        if self.target_mixing_time_s <= 0:
            logger.warning("[%s] Target mixing time not set or invalid. Motor not started.", self.name)
            return
        self.motor_on = True
        self.current_mixing_duration_s = 0.0
        self._event(f"[{self.name}] Motor started. Target mixing time: {self.target_mixing_time_s:.1f}s.")

    def stop_motor(self) -> None:
        if self.motor_on:
            self._event(f"[{self.name}] Motor stopped. Mixing duration: {self.current_mixing_duration_s:.1f}s.")
        self.motor_on = False

    def update(self, dt: float) -> None:
        if dt <= 0 or not self.motor_on:
            return

        self.current_mixing_duration_s += dt
        if self.current_mixing_duration_s >= self.target_mixing_time_s:
            self.current_mixing_duration_s = self.target_mixing_time_s
            self.stop_motor()

    def _event(self, msg: str) -> None:
        if self._sink is not None:
            self._sink(msg)
        else:
            logger.info(msg)

    def snapshot(self, low_level_switch: SwitchStatus) -> MixerState:
        return MixerState(
            name=self.name,
            motor_on=self.motor_on,
            mixing_duration_s=self.current_mixing_duration_s,
            target_mixing_time_s=self.target_mixing_time_s,
            low_level_switch=low_level_switch,
            drain_valve=self.drain_valve.get_status(),
        )
