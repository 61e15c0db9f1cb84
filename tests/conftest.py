"""
Shared fixtures for the paint plant tests: controller/simulator factories
and a tick helper that steps until a condition holds.
"""

from typing import Callable

import pytest

from paintplant.plant.controller import BatchController, ControllerConfig
from paintplant.plant.process.plant_process import PlantConfig
from paintplant.plant.simulation import PlantSimulator, SimulatorConfig

DT = 0.5


@pytest.fixture
def make_controller() -> Callable[..., BatchController]:
    """Factory: make_controller(mixer_tank_capacity_liters=100, recipes={...})."""

    def _make(recipes=None, default_recipe="Celeste", **plant_kwargs) -> BatchController:
        cfg = ControllerConfig(default_recipe=default_recipe, plant=PlantConfig(**plant_kwargs))
        if recipes is not None:
            cfg.recipes = recipes
        return BatchController(cfg)

    return _make


@pytest.fixture
def controller(make_controller) -> BatchController:
    return make_controller()


@pytest.fixture
def simulator(controller) -> PlantSimulator:
    return PlantSimulator(controller, SimulatorConfig(dt_s=DT))


@pytest.fixture
def run_until():
    """Step a controller until predicate(controller) is true; returns ticks used."""

    def _run(controller: BatchController, predicate, dt: float = DT, max_ticks: int = 5000) -> int:
        for n in range(1, max_ticks + 1):
            controller.update(dt)
            if predicate(controller):
                return n
        raise AssertionError(
            f"condition not reached after {max_ticks} ticks (state={controller.current_process_state})"
        )

    return _run


@pytest.fixture
def started(controller, run_until) -> BatchController:
    """Controller with a Celeste batch accepted and pumping."""
    controller.set_start_command("ON")
    run_until(controller, lambda c: c.current_process_state == "PUMPING_BASE")
    return controller
