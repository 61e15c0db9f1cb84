# plant/process/valve.py
from __future__ import annotations

from ..errors import InvalidArgument
from ..state import ValveStatus


class Valve:

    def __init__(self, name: str, status: ValveStatus = "OPEN"):
        if not name:
            raise InvalidArgument("Valve name cannot be empty")
        if status not in ("OPEN", "CLOSED"):
            raise InvalidArgument(f"Invalid valve status for {name}: {status!r}")
        self.name = name
        self._status: ValveStatus = status

    def open(self) -> None:
        self._status = "OPEN"

    def close(self) -> None:
        self._status = "CLOSED"

    def set_status(self, status: ValveStatus) -> None:
        if status == "OPEN":
            self.open()
        elif status == "CLOSED":
            self.close()
        else:
            raise InvalidArgument(f"Invalid valve status for {self.name}: {status!r}")

    def get_status(self) -> ValveStatus:
        return self._status

    @property
    def is_open(self) -> bool:
        return self._status == "OPEN"

    def __repr__(self) -> str:
        return f"Valve({self.name!r}, {self._status!r})"
