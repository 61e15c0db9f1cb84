# app.py (Streamlit): control panel for the paint batching plant
from __future__ import annotations

import time
import pandas as pd
import streamlit as st

from paintplant.plant.controller import BatchController, ControllerConfig
from paintplant.plant.report import render_report
from paintplant.plant.simulation import PlantSimulator, SimulatorConfig
from paintplant.plant.state import COLOR_ORDER


# ======================================================
# INIT
# ======================================================
st.set_page_config(page_title="Paint Batching Plant", layout="wide")


def new_simulator() -> PlantSimulator:
    return PlantSimulator(BatchController(ControllerConfig()), SimulatorConfig())


if "sim" not in st.session_state:
    st.session_state.sim = new_simulator()
    st.session_state.running = False
    st.session_state.dt = 0.5
    st.session_state.tick_s = 0.25
    st.session_state.events = []

sim: PlantSimulator = st.session_state.sim
controller: BatchController = sim.controller


def sim_step(dt: float):
    sim.step(dt)
    st.session_state.events.extend(controller.drain_events())
    st.session_state.events = st.session_state.events[-200:]


# ======================================================
# SIDEBAR CONTROLS
# ======================================================
st.sidebar.title("Controls")

st.session_state.dt = st.sidebar.slider("dt (simulation step, seconds)", 0.1, 5.0, float(st.session_state.dt), 0.1)
st.session_state.tick_s = st.sidebar.slider("UI refresh (seconds)", 0.05, 2.0, float(st.session_state.tick_s), 0.05)

c1, c2, c3 = st.sidebar.columns(3)
if c1.button("Step once"):
    sim_step(st.session_state.dt)

if c2.button("Step 10"):
    for _ in range(10):
        sim_step(st.session_state.dt)

if c3.button("Reset"):
    st.session_state.sim = new_simulator()
    st.session_state.events = []
    st.rerun()

st.session_state.running = st.sidebar.toggle("Running", value=st.session_state.running)

st.sidebar.divider()

# recipe + start command
st.sidebar.subheader("Batch")
recipes = list(controller.cfg.recipes)
recipe_val = st.sidebar.selectbox(
    "Recipe", recipes, index=recipes.index(controller.selected_recipe), disabled=controller.batch_in_progress
)
if recipe_val != controller.selected_recipe and not controller.batch_in_progress:
    controller.select_recipe(recipe_val)

if st.sidebar.button("START (ON)", disabled=controller.batch_in_progress):
    controller.set_start_command("ON")
if st.sidebar.button("Start command OFF"):
    controller.set_start_command("OFF")

st.sidebar.divider()

# valve overrides
st.sidebar.subheader("Valves")
for name, valve in controller.plant.valves.items():
    is_open = st.sidebar.checkbox(name, value=valve.is_open)
    if is_open != valve.is_open:
        controller.set_valve(name, "OPEN" if is_open else "CLOSED")


# ======================================================
# MAIN UI
# ======================================================
s = sim.snapshot()
st.title("Paint Batching Plant: Simulation (Streamlit)")

a, b, c, d, e = st.columns(5)
a.metric("time_s", f"{s.time_s:.1f}")
b.metric("process_state", s.process_state)
c.metric("recipe", s.selected_recipe)
d.metric("start_command", s.start_command)
e.metric("pumping", s.current_color or "-")

st.divider()

# Base tanks + pumps
cols = st.columns(len(COLOR_ORDER))
for col, color in zip(cols, COLOR_ORDER):
    tank = s.tanks[color]
    pump = s.pumps[color]
    prog = s.progress[color]
    with col:
        st.subheader(f"{color} line")
        c1, c2 = st.columns(2)
        c1.metric(tank.name, f"{tank.level_liters:.1f} L")
        c2.metric("level_pct", f"{tank.level_pct:.1f}%")
        c1, c2, c3 = st.columns(3)
        c1.metric(pump.name, pump.status)
        c2.metric("flow_lpm", f"{pump.flow_lpm:.1f}")
        c3.metric("pressure_psi", f"{pump.pressure_psi:.1f}")
        st.write(f"state: **{pump.state}**, FS: **{pump.flow_switch}**")
        st.progress(min(1.0, prog.pumped_liters / prog.target_liters) if prog.target_liters > 0 else 0.0)
        st.write(f"{prog.pumped_liters:.1f} / {prog.target_liters:.1f} L, run {prog.run_time_s:.1f}s")
        if prog.requires_completion:
            st.warning("Recovery needed")

st.divider()

# Mixer
st.subheader("Mixer")
c1, c2, c3, c4 = st.columns(4)
c1.metric("level", f"{s.mixer_tank.level_liters:.1f} L")
c2.metric("motor", "ON" if s.mixer.motor_on else "OFF")
c3.metric("mixing", f"{s.mixer.mixing_duration_s:.1f} / {s.mixer.target_mixing_time_s:.0f} s")
c4.metric("LSL401", s.mixer.low_level_switch)

st.divider()

# History
if len(sim.history) > 5:
    st.subheader("History")
    df = pd.DataFrame(sim.history_rows()).set_index("time_s")
    st.line_chart(df[["white_tank_l", "blue_tank_l", "black_tank_l", "mixer_level_l"]])
    st.line_chart(df[["white_pressure_psi", "blue_pressure_psi", "black_pressure_psi"]])
    st.dataframe(df.tail(30), use_container_width=True)

with st.expander("Events", expanded=True):
    for msg in reversed(st.session_state.events[-50:]):
        st.text(msg)

with st.expander("Status report"):
    st.code(render_report(s, controller.last_message))

# ======================================================
# LOOP
# ======================================================
if st.session_state.running:
    sim_step(st.session_state.dt)
    time.sleep(st.session_state.tick_s)
    st.rerun()
