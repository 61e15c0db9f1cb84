# plant/report.py
from __future__ import annotations

from typing import List, Optional

from .process.plant_process import LINE_NUMBERS
from .state import COLOR_ORDER, PlantState


def render_report(state: PlantState, last_message: Optional[str] = None) -> str:
    """Multi-section plain-text status report built from a snapshot."""
    out: List[str] = []
    add = out.append

    batch = "Batch In Progress" if state.batch_in_progress else "No Batch"
    add("--- System Status Report ---")
    add(f"Time: {state.time_s:.2f}s")
    add(f"Process State: {state.process_state} ({batch})")
    add(f"Selected Recipe: {state.selected_recipe}")
    add(f"Start Command Input: {state.start_command}")
    if state.current_color:
        add(f"Pumping: {state.current_color}")

    add("")
    add("--- Base Tanks ---")
    for color in COLOR_ORDER:
        t = state.tanks[color]
        add(f"{t.name}: {t.level_liters:.2f} L ({t.level_pct:.2f}%) [{t.level_status}]")

    m = state.mixer
    mt = state.mixer_tank
    add("")
    add("--- Mixer ---")
    add(f"{m.name} (Tank: {mt.name}): {mt.level_liters:.2f} L ({mt.level_pct:.2f}%)")
    add(
        f"Motor: {'ON' if m.motor_on else 'OFF'}, "
        f"Mix Duration: {m.mixing_duration_s:.2f}s / {m.target_mixing_time_s:.2f}s"
    )
    add(f"LSL401 (Low Level): {m.low_level_switch}")

    add("")
    add("--- All Key Valves ---")
    for name in sorted(state.valves):
        add(f"{name}: {state.valves[name]}")

    add("")
    add("--- Pumps & Associated Sensors ---")
    for color in COLOR_ORDER:
        p = state.pumps[color]
        prog = state.progress[color]
        n = LINE_NUMBERS[color]

        line = f"{p.name} ({color}): {p.status} [{p.state}], Flow: {p.flow_lpm:.2f} LPM, Pressure: {p.pressure_psi:.2f} PSI"
        if prog.requires_completion:
            line += " [RECOVERY_NEEDED]"
        add(line)
        add(f"  PT (PT{n}): {p.pressure_psi:.2f} PSI, FS (FS{n}): {p.flow_switch}")
        if p.stopped_due_to_low_flow:
            add("  FAULT: Stopped due to Low Flow")
        if p.stopped_due_to_overpressure:
            add("  FAULT: Stopped due to Overpressure")
        add(
            f"  Recipe Target: {prog.target_liters:.2f}L, Pumped this batch: {prog.pumped_liters:.2f}L, "
            f"Total RunTime: {prog.run_time_s:.2f}s"
        )

    if last_message:
        add("")
        add(f"LAST MESSAGE/ERROR: {last_message}")

    add("--- End of Report ---")
    return "\n".join(out) + "\n"
