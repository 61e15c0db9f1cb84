# plant/process/tank.py
from __future__ import annotations

from ..errors import InvalidArgument
from ..state import LevelStatus, TankState, clamp
from .sensor import Sensor


class Tank:
    """Bounded reservoir. Level is clamped to [0, capacity] on every change."""

    LOW_LEVEL_FRACTION = 0.05

    def __init__(self, name: str, capacity_liters: float, level_liters: float = 0.0):
        if not name:
            raise InvalidArgument("Tank name cannot be empty")
        if capacity_liters <= 0:
            raise InvalidArgument(f"Tank capacity must be positive ({name}: {capacity_liters})")

        self.name = name
        self.capacity_liters = float(capacity_liters)
        self.level_transmitter = Sensor(f"{name}_LT", "LEVEL_TRANSMITTER")

        self.current_level_liters = clamp(float(level_liters), 0.0, self.capacity_liters)
        self.level_transmitter.set_level_liters(self.current_level_liters)

    def add_liquid(self, amount_liters: float) -> None:
        if amount_liters < 0:
            return
        self.current_level_liters = min(self.capacity_liters, self.current_level_liters + amount_liters)
        self.level_transmitter.set_level_liters(self.current_level_liters)

    def remove_liquid(self, amount_liters: float) -> None:
        if amount_liters < 0:
            return
        self.current_level_liters = max(0.0, self.current_level_liters - amount_liters)
        self.level_transmitter.set_level_liters(self.current_level_liters)

    @property
    def free_space_liters(self) -> float:
        return self.capacity_liters - self.current_level_liters

    @property
    def level_pct(self) -> float:
        return 100.0 * self.current_level_liters / self.capacity_liters

    def get_level_status(self) -> LevelStatus:
        if self.current_level_liters == 0.0:
            return "EMPTY"
        if self.current_level_liters / self.capacity_liters < self.LOW_LEVEL_FRACTION:
            return "LOW"
        return "NORMAL_LEVEL"

    def snapshot(self) -> TankState:
        return TankState(
            name=self.name,
            capacity_liters=self.capacity_liters,
            level_liters=self.current_level_liters,
            level_pct=self.level_pct,
            level_status=self.get_level_status(),
        )
