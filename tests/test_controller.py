import pytest

from paintplant.plant.errors import InvalidArgument

DT = 0.5


def in_state(name):
    return lambda c: c.current_process_state == name


# ----------------------------
# Construction / commands
# ----------------------------
def test_initial_state(controller):
    assert controller.current_process_state == "IDLE"
    assert controller.selected_recipe == "Celeste"
    assert controller.start_command == "OFF"
    assert not controller.batch_in_progress
    assert controller.target_liters("White") == pytest.approx(75.0)
    assert controller.target_liters("Black") == 0.0
    assert controller.plant.low_level_status == "ALARM"
    assert any("System initialized" in e for e in controller.events)


def test_select_recipe_accepts_aliases(controller):
    assert controller.select_recipe("AzMarino")
    assert controller.selected_recipe == "Marino"
    assert controller.target_liters("Black") == pytest.approx(100.0)
    assert controller.target_liters("White") == 0.0


def test_select_unknown_recipe_raises(controller):
    with pytest.raises(InvalidArgument):
        controller.select_recipe("Verde")


def test_unknown_color_and_valve_raise(controller):
    with pytest.raises(InvalidArgument):
        controller.pumped_liters("Red")
    with pytest.raises(InvalidArgument):
        controller.set_valve("V999", "OPEN")


def test_set_valve_accepts_aliases(controller):
    controller.set_valve("V201", "CLOSED")
    assert controller.plant.valves["V201_D"].get_status() == "CLOSED"
    controller.set_valve("v401", "close")
    assert controller.plant.drain_valve.get_status() == "CLOSED"


def test_start_command_must_be_on_or_off(controller):
    with pytest.raises(InvalidArgument):
        controller.set_start_command("MAYBE")


def test_update_ignores_non_positive_dt(controller):
    controller.set_start_command("ON")
    controller.update(0.0)
    assert controller.current_process_state == "IDLE"
    assert controller.start_command == "ON"


# ----------------------------
# Full batch
# ----------------------------
def test_celeste_batch_end_to_end(controller, run_until):
    controller.set_start_command("ON")
    controller.update(DT)

    assert controller.current_process_state == "PUMPING_BASE"
    assert controller.batch_in_progress
    assert controller.start_command == "OFF"

    run_until(controller, in_state("MIXING"))
    p = controller.plant
    assert controller.pumped_liters("White") == pytest.approx(75.0)
    assert controller.pumped_liters("Blue") == pytest.approx(75.0)
    assert controller.pumped_liters("Black") == 0.0
    assert controller.run_time_seconds("White") == pytest.approx(45.0)
    assert controller.run_time_seconds("Blue") == pytest.approx(45.0)
    assert p.mixer_tank.current_level_liters == pytest.approx(150.0)
    assert p.tanks["White"].current_level_liters == pytest.approx(175.0)
    assert p.tanks["Blue"].current_level_liters == pytest.approx(175.0)
    assert p.tanks["Black"].current_level_liters == pytest.approx(250.0)
    assert all(pump.status == "OFF" for pump in p.pumps.values())
    assert p.mixer.motor_on

    ticks = run_until(controller, in_state("EMPTYING"))
    assert ticks * DT == pytest.approx(30.0)
    assert p.mixer.current_mixing_duration_s == pytest.approx(30.0)
    assert p.drain_valve.is_open

    run_until(controller, in_state("IDLE"))
    assert not controller.batch_in_progress
    assert p.mixer_tank.current_level_liters == 0.0
    assert p.drain_valve.get_status() == "CLOSED"

    # no new batch without a fresh start command
    for _ in range(10):
        controller.update(DT)
    assert controller.current_process_state == "IDLE"
    assert p.mixer_tank.current_level_liters == 0.0


def test_marino_pumps_only_its_colors(make_controller, run_until):
    c = make_controller(default_recipe="Marino")
    c.set_start_command("ON")
    run_until(c, in_state("MIXING"))
    assert c.pumped_liters("White") == 0.0
    assert c.pumped_liters("Blue") == pytest.approx(50.0)
    assert c.pumped_liters("Black") == pytest.approx(100.0)
    assert c.plant.tanks["White"].current_level_liters == pytest.approx(250.0)


def test_pumping_follows_color_priority(started, run_until):
    run_until(started, lambda c: c.current_pumping_color is not None)
    assert started.current_pumping_color == "White"
    run_until(started, lambda c: c.current_pumping_color == "Blue")
    assert started.pumped_liters("White") == pytest.approx(75.0)


def test_mixer_level_stays_within_capacity(started, run_until):
    mixer = started.plant.mixer_tank
    run_until(started, lambda c: not c.batch_in_progress)
    assert 0.0 <= mixer.current_level_liters <= mixer.capacity_liters


def test_second_batch_after_restart_command(controller, run_until):
    controller.set_start_command("ON")
    run_until(controller, lambda c: c.current_process_state == "IDLE" and not c.batch_in_progress)
    controller.set_start_command("ON")
    run_until(controller, in_state("MIXING"))
    assert controller.pumped_liters("White") == pytest.approx(75.0)
    assert controller.plant.tanks["White"].current_level_liters == pytest.approx(100.0)


# ----------------------------
# Start gating
# ----------------------------
def test_start_blocked_while_mixer_not_empty(controller):
    controller.plant.mixer_tank.add_liquid(10.0)
    controller.set_start_command("ON")
    for _ in range(5):
        controller.update(DT)

    assert controller.current_process_state == "IDLE"
    assert controller.start_command == "ON"
    blocked = [e for e in controller.events if e.startswith("Cannot start new batch")]
    assert len(blocked) == 1


def test_start_blocked_on_insufficient_inventory(make_controller):
    c = make_controller(base_tank_initial_liters=50.0)
    c.set_start_command("ON")
    c.update(DT)
    assert c.current_process_state == "IDLE"
    assert any("Insufficient White base" in e for e in c.events)


def test_recipe_change_rejected_during_batch(started):
    assert not started.select_recipe("Marino")
    assert started.selected_recipe == "Celeste"
    assert started.target_liters("White") == pytest.approx(75.0)
    assert any("while a batch is in progress" in e for e in started.events)


def test_start_off_does_not_abort_batch(started, run_until):
    started.set_start_command("OFF")
    run_until(started, in_state("MIXING"))
    assert started.batch_in_progress


# ----------------------------
# Error state
# ----------------------------
def test_recipe_not_matching_batch_size_enters_error(make_controller):
    recipes = {
        "Celeste": {"White": 75.0, "Blue": 75.0},
        "Odd": {"White": 100.0, "Blue": 10.0},
    }
    c = make_controller(recipes=recipes)
    c.select_recipe("Odd")
    assert c.current_process_state == "ERROR_STATE"
    assert not c.batch_in_progress


def test_error_state_has_no_automatic_exit(make_controller):
    c = make_controller(recipes={"Celeste": {"White": 10.0}})
    assert c.current_process_state == "ERROR_STATE"
    c.set_start_command("ON")
    for _ in range(10):
        c.update(DT)
    assert c.current_process_state == "ERROR_STATE"


def test_mixer_overflow_enters_error(make_controller, run_until):
    c = make_controller(mixer_tank_capacity_liters=100.0)
    c.set_start_command("ON")
    run_until(c, in_state("ERROR_STATE"))

    assert c.plant.mixer_tank.current_level_liters == pytest.approx(100.0)
    assert c.pumped_liters("Blue") == pytest.approx(25.0)
    assert all(p.status == "OFF" for p in c.plant.pumps.values())
    assert any("Mixer tank is full" in e for e in c.events)


def test_empty_source_tank_mid_batch_enters_error(started, run_until):
    run_until(started, lambda c: c.pumped_liters("White") > 10.0)
    started.plant.tanks["White"].remove_liquid(1000.0)
    run_until(started, in_state("ERROR_STATE"))
    assert not started.batch_in_progress
    assert any("Source tank T201_White is empty" in e for e in started.events)


# ----------------------------
# Fault recovery
# ----------------------------
def test_overpressure_fault_recovers_and_keeps_progress(started, run_until):
    c = started
    run_until(c, lambda c: c.pumped_liters("White") >= 30.0)

    c.plant.pumps["White"].pressure_psi = 55.0
    c.update(DT)
    assert c.requires_completion("White")
    assert c.plant.pumps["White"].stopped_due_to_overpressure
    at_fault = c.pumped_liters("White")
    assert 30.0 <= at_fault < 75.0

    # a flagged line is not re-lined up, so the closed discharge traps the pressure
    c.set_valve("V201_D", "CLOSED")

    # other colors keep going, then the controller waits
    run_until(c, in_state("WAITING_FOR_RECOVERY"))
    assert c.pumped_liters("Blue") == pytest.approx(75.0)
    assert c.pumped_liters("White") == pytest.approx(at_fault)

    for _ in range(10):
        c.update(DT)
    assert c.current_process_state == "WAITING_FOR_RECOVERY"
    assert c.plant.pumps["White"].stopped_due_to_overpressure

    c.set_valve("V201_D", "OPEN")
    run_until(c, in_state("MIXING"))
    assert c.pumped_liters("White") == pytest.approx(75.0)
    assert not c.requires_completion("White")
    assert c.plant.mixer_tank.current_level_liters == pytest.approx(150.0)


def test_low_flow_fault_needs_suction_reopened(started, run_until):
    c = started
    run_until(c, lambda c: c.pumped_liters("White") >= 20.0)

    c.set_valve("V201_S", "CLOSED")
    run_until(c, lambda c: c.requires_completion("White"))
    assert c.plant.pumps["White"].stopped_due_to_low_flow

    run_until(c, in_state("WAITING_FOR_RECOVERY"))
    for _ in range(10):
        c.update(DT)
    assert c.current_process_state == "WAITING_FOR_RECOVERY"
    assert c.plant.pumps["White"].stopped_due_to_low_flow

    c.set_valve("V201_S", "OPEN")
    run_until(c, in_state("MIXING"))
    assert c.pumped_liters("White") == pytest.approx(75.0)


def test_recovered_pump_resumes_while_another_stays_faulted(started, run_until):
    c = started
    white, blue = c.plant.pumps["White"], c.plant.pumps["Blue"]
    run_until(c, lambda c: c.pumped_liters("White") >= 10.0)

    c.set_valve("V201_S", "CLOSED")
    c.update(DT)
    assert white.stopped_due_to_low_flow
    assert c.requires_completion("White")

    run_until(c, lambda c: c.pumped_liters("Blue") >= 10.0)
    blue.pressure_psi = 55.0
    c.update(DT)
    assert blue.stopped_due_to_overpressure
    assert c.current_process_state == "WAITING_FOR_RECOVERY"
    c.set_valve("V202_D", "CLOSED")

    white_at_fault = c.pumped_liters("White")
    tank_at_fault = c.plant.tanks["White"].current_level_liters
    for _ in range(6):
        c.update(DT)
    assert c.current_process_state == "WAITING_FOR_RECOVERY"
    assert c.pumped_liters("White") == pytest.approx(white_at_fault)

    c.set_valve("V201_S", "OPEN")
    run_until(c, lambda c: c.pumped_liters("White") > white_at_fault, max_ticks=10)
    assert c.current_process_state == "PUMPING_BASE"
    assert c.current_pumping_color == "White"
    assert not c.requires_completion("White")
    assert c.requires_completion("Blue")
    assert c.plant.tanks["White"].current_level_liters < tank_at_fault

    # White finishes, then the controller goes back to waiting on Blue
    run_until(c, in_state("WAITING_FOR_RECOVERY"))
    assert c.pumped_liters("White") == pytest.approx(75.0)
    assert c.plant.tanks["White"].current_level_liters == pytest.approx(175.0)
    assert white.status == "OFF"
    assert white.flow_rate_lpm == 0.0
    assert blue.stopped_due_to_overpressure

    c.set_valve("V202_D", "OPEN")
    run_until(c, in_state("MIXING"))
    assert c.pumped_liters("Blue") == pytest.approx(75.0)


def test_recovered_pump_without_remaining_work_is_not_left_running(started, run_until):
    c = started
    black, blue = c.plant.pumps["Black"], c.plant.pumps["Blue"]
    run_until(c, lambda c: c.pumped_liters("Blue") >= 10.0)

    blue.pressure_psi = 55.0
    c.update(DT)
    c.set_valve("V202_D", "CLOSED")
    assert c.current_process_state == "WAITING_FOR_RECOVERY"

    # Black has no share in Celeste, so nothing may keep it running
    black.start()
    c.update(DT)
    assert c.current_process_state == "WAITING_FOR_RECOVERY"
    assert black.status == "OFF"
    assert black.flow_rate_lpm == 0.0


def test_overpressure_with_suction_closed_latches_low_flow_after_relief(started, run_until):
    c = started
    white = c.plant.pumps["White"]
    run_until(c, lambda c: c.pumped_liters("White") >= 10.0)

    white.pressure_psi = 55.0
    c.set_valve("V201_S", "CLOSED")
    c.update(DT)
    assert white.stopped_due_to_overpressure
    assert c.requires_completion("White")

    run_until(c, lambda c: not white.stopped_due_to_overpressure, max_ticks=10)
    assert white.stopped_due_to_low_flow
    assert white.pressure_psi < 20.0

    run_until(c, in_state("WAITING_FOR_RECOVERY"))
    c.set_valve("V201_S", "OPEN")
    run_until(c, in_state("MIXING"))
    assert c.pumped_liters("White") == pytest.approx(75.0)


def test_closed_valves_are_opened_when_pumping_starts(controller, run_until):
    controller.set_valve("V202_S", "CLOSED")
    controller.set_start_command("ON")
    run_until(controller, lambda c: c.current_pumping_color == "Blue")
    assert controller.plant.valves["V202_S"].is_open
    assert any("automatically opened V202_S" in e for e in controller.events)


def test_discharge_closed_mid_run_is_reopened_next_tick(started, run_until):
    c = started
    run_until(c, lambda c: c.pumped_liters("White") >= 10.0)

    c.set_valve("V201_D", "CLOSED")
    c.clear_events()
    c.update(DT)
    assert c.plant.valves["V201_D"].is_open
    assert any("automatically opened V201_D" in e for e in c.events)
    assert c.plant.pumps["White"].status == "ON"
    assert not c.plant.pumps["White"].is_faulted

    run_until(c, in_state("MIXING"))
    assert c.pumped_liters("White") == pytest.approx(75.0)
    assert not c.requires_completion("White")


@pytest.mark.parametrize("valve", ["V201_S", "V201_D"])
def test_closing_a_line_valve_stops_flow_at_once(started, run_until, valve):
    c = started
    run_until(c, lambda c: c.plant.pumps["White"].is_delivering)

    c.set_valve(valve, "CLOSED")
    snap = c.snapshot()
    assert snap.valves[valve] == "CLOSED"
    assert snap.pumps["White"].flow_lpm == 0.0
    assert snap.pumps["Blue"].flow_lpm == 0.0


# ----------------------------
# Emptying
# ----------------------------
def test_emptying_holds_while_drain_closed(controller, run_until):
    controller.set_start_command("ON")
    run_until(controller, in_state("EMPTYING"))
    controller.update(DT)
    controller.set_valve("V401_DRAIN", "CLOSED")
    level = controller.plant.mixer_tank.current_level_liters

    for _ in range(5):
        controller.update(DT)
    assert controller.current_process_state == "EMPTYING"
    assert controller.plant.mixer_tank.current_level_liters == pytest.approx(level)

    controller.set_valve("V401", "OPEN")
    run_until(controller, in_state("IDLE"))
    assert controller.plant.mixer_tank.current_level_liters == 0.0


# ----------------------------
# Event log / snapshot
# ----------------------------
def test_drain_events_returns_and_clears(controller):
    controller.set_start_command("ON")
    events = controller.drain_events()
    assert "System received Start/Stop Command: ON" in events
    assert controller.events == []


def test_snapshot_reflects_progress(started, run_until):
    run_until(started, lambda c: c.pumped_liters("White") > 5.0)
    s = started.snapshot()
    assert s.process_state == "PUMPING_BASE"
    assert s.current_color == "White"
    assert s.pumps["White"].status == "ON"
    assert s.pumps["White"].state == "RUNNING"
    assert s.progress["White"].target_liters == pytest.approx(75.0)
    assert s.progress["White"].pumped_liters == pytest.approx(started.pumped_liters("White"))
    assert s.valves["V401_DRAIN"] == "OPEN"
    assert s.mixer.low_level_switch == "NORMAL"
