from __future__ import annotations


class InvalidArgument(ValueError):
    """Bad construction argument (capacity, identity, wiring)."""


class TypeMismatch(TypeError):
    """Sensor accessor used on a sensor of another type."""
