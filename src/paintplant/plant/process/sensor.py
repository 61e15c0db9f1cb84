# plant/process/sensor.py
from __future__ import annotations

from ..errors import InvalidArgument, TypeMismatch
from ..state import SensorType, SwitchStatus


class Sensor:
    """
    Typed transducer. Each getter/setter pair belongs to one SensorType:
    - FLOW_SWITCH: flow status NORMAL/ALARM
    - PRESSURE_TRANSMITTER: pressure (psi)
    - LEVEL_TRANSMITTER: level (liters)
    Using the wrong pair raises TypeMismatch.
    """

    TYPES = ("FLOW_SWITCH", "PRESSURE_TRANSMITTER", "LEVEL_TRANSMITTER")

    def __init__(self, name: str, sensor_type: SensorType):
        if not name:
            raise InvalidArgument("Sensor name cannot be empty")
        if sensor_type not in self.TYPES:
            raise InvalidArgument(f"Unknown sensor type for {name}: {sensor_type!r}")

        self.name = name
        self.sensor_type: SensorType = sensor_type

        self._flow_status: SwitchStatus = "NORMAL"
        self._pressure_psi: float = 0.0
        self._level_liters: float = 0.0

    def _require(self, expected: SensorType, what: str) -> None:
        if self.sensor_type != expected:
            raise TypeMismatch(
                f"Attempted to access {what} on sensor {self.name} of type {self.sensor_type}"
            )

    # ---- flow switch ----
    def set_flow_status(self, status: SwitchStatus) -> None:
        self._require("FLOW_SWITCH", "flow status")
        if status not in ("NORMAL", "ALARM"):
            raise InvalidArgument(f"Invalid switch status for {self.name}: {status!r}")
        self._flow_status = status

    def get_flow_status(self) -> SwitchStatus:
        self._require("FLOW_SWITCH", "flow status")
        return self._flow_status

    # ---- pressure transmitter ----
    def set_pressure_psi(self, pressure: float) -> None:
        self._require("PRESSURE_TRANSMITTER", "pressure")
        self._pressure_psi = float(pressure)

    def get_pressure_psi(self) -> float:
        self._require("PRESSURE_TRANSMITTER", "pressure")
        return self._pressure_psi

    # ---- level transmitter ----
    def set_level_liters(self, level: float) -> None:
        self._require("LEVEL_TRANSMITTER", "level")
        self._level_liters = float(level)

    def get_level_liters(self) -> float:
        self._require("LEVEL_TRANSMITTER", "level")
        return self._level_liters

    def __repr__(self) -> str:
        return f"Sensor({self.name!r}, {self.sensor_type!r})"
