"""
Courier Task Sequencer - Route Dashboard
========================================

Dashboard for inspecting the optimized visiting order of an assignment.

Features:
- Current vs optimized metrics
- Stop-by-stop schedule table with waits and late stops
- pydeck map with the optimized path

Run:
    streamlit run app.py
"""

import os
import sys
from datetime import date, datetime, time
from typing import Dict, List, Any

import pandas as pd
import pydeck as pdk
import streamlit as st

# Ensure sequencer is importable
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from sequencer import config, utils
from sequencer.dataset import load_repository
from sequencer.models import Task
from sequencer.sequencing import SequencingEngine
from sequencer.service import AssignmentTaskService

# =============================================================================
# PAGE CONFIG
# =============================================================================

st.set_page_config(
    page_title="Courier Task Sequencer",
    page_icon="🧭",
    layout="wide",
    initial_sidebar_state="expanded"
)

STATUS_COLORS: Dict[str, List[int]] = {
    "PENDING": [251, 191, 36],
    "IN_PROGRESS": [59, 130, 246],
    "ARRIVED": [59, 130, 246],
    "DELAYED": [239, 68, 68],
}
LATE_COLOR = [239, 68, 68]


# =============================================================================
# DATA
# =============================================================================

@st.cache_data(show_spinner=False)
def list_assignments(path: str) -> List[str]:
    service = AssignmentTaskService(load_repository(path))
    return [a.assignment_id for a in service.get_assignments()]


def build_service(path: str, start_time: datetime) -> AssignmentTaskService:
    """Fresh in-memory service per run; urgency projected from ``start_time``."""
    repository = load_repository(path, start_time.date())
    return AssignmentTaskService(repository, engine=SequencingEngine(now=lambda: start_time))


def schedule_frame(service: AssignmentTaskService, tasks: List[Task], start_time: datetime) -> pd.DataFrame:
    """One row per stop of the simulated run."""
    rows: List[Dict[str, Any]] = []
    for stop in service.engine.estimate_schedule(tasks, start_time):
        task = stop.task
        rows.append({
            "#": stop.position,
            "Task": task.task_id,
            "Type": task.task_type.value,
            "Address": task.address or "-",
            "Window": f"{utils.hhmm(task.start_time_window)}-{utils.hhmm(task.end_time_window)}",
            "Travel (min)": stop.travel_minutes,
            "Arrive": utils.hhmm(stop.arrival),
            "Wait (min)": stop.wait_minutes,
            "Depart": utils.hhmm(stop.departure),
            "Late": "⚠️" if stop.late else "",
        })
    return pd.DataFrame(rows)


# =============================================================================
# MAP HELPERS
# =============================================================================

def stop_layer(service: AssignmentTaskService, tasks: List[Task], start_time: datetime) -> pdk.Layer:
    data = []
    for stop in service.engine.estimate_schedule(tasks, start_time):
        task = stop.task
        if task.location is None:
            continue
        status = task.status.value if task.status else "PENDING"
        data.append({
            "position": [task.location.longitude, task.location.latitude],
            "color": LATE_COLOR if stop.late else STATUS_COLORS.get(status, [148, 163, 184]),
            "label": f"{stop.position}. {task.task_id} ({task.task_type.value}) {utils.hhmm(stop.arrival)}",
        })
    return pdk.Layer(
        "ScatterplotLayer",
        data,
        get_position="position",
        get_fill_color="color",
        get_radius=120,
        pickable=True,
        stroked=True,
        filled=True,
        line_width_min_pixels=1,
    )


def path_layer(tasks: List[Task]) -> pdk.Layer:
    path = [[t.location.longitude, t.location.latitude] for t in tasks if t.location is not None]
    return pdk.Layer(
        "PathLayer",
        [{"path": path, "label": "optimized route"}],
        get_path="path",
        get_color=[16, 185, 129],
        width_min_pixels=3,
        pickable=False,
    )


# =============================================================================
# SIDEBAR
# =============================================================================

st.sidebar.markdown("## 🎛️ Configuration")
st.sidebar.markdown("---")

dataset = st.sidebar.text_input("Dataset", value=config.DEFAULT_DATASET)
if not os.path.exists(dataset):
    st.sidebar.error(f"Dataset not found: {dataset}")
    st.stop()

try:
    assignment_ids = list_assignments(dataset)
except ValueError as e:
    st.sidebar.error(f"Failed to load data: {e}")
    st.stop()

assignment_id = st.sidebar.selectbox("Assignment", assignment_ids)
run_start = st.sidebar.time_input("Run start", value=time(17, 0))
config.AVG_SPEED_KMH = st.sidebar.slider(
    "Average speed (km/h)", min_value=10.0, max_value=60.0, value=30.0, step=5.0
)
config.URGENCY_WINDOW_MINS = st.sidebar.slider(
    "Urgency window (min)", min_value=0, max_value=180, value=60, step=15
)

# =============================================================================
# MAIN
# =============================================================================

start_time = datetime.combine(date.today(), run_start)
service = build_service(dataset, start_time)
assignment = service.get_assignment(assignment_id)
current = assignment.active_tasks
optimized = service.preview_optimal_sequence(assignment_id)

st.title("🧭 Courier Task Sequencer")
st.write(
    f"**Assignment {assignment_id}**, courier {assignment.courier_id or '-'}: "
    f"{len(current)} active of {len(assignment.tasks)} tasks"
)

current_summary = service.engine.summarize(current, start_time)
optimized_summary = service.engine.summarize(optimized, start_time)

col1, col2, col3, col4 = st.columns(4)
col1.metric(
    "Distance",
    f"{optimized_summary.distance_km:.2f} km",
    f"{optimized_summary.distance_km - current_summary.distance_km:+.2f} km",
    delta_color="inverse",
)
col2.metric(
    "Total Time",
    utils.format_time_duration(optimized_summary.travel_time_min),
    f"{optimized_summary.travel_time_min - current_summary.travel_time_min:+d} min",
    delta_color="inverse",
)
col3.metric("Feasible (optimized)", "yes" if optimized_summary.feasible else "no")
col4.metric("Feasible (current)", "yes" if current_summary.feasible else "no")

st.markdown("#### Comparison")
st.dataframe(
    pd.DataFrame({
        "Current": current_summary.to_dict(),
        "Optimized": optimized_summary.to_dict(),
    }),
    use_container_width=True,
)

st.markdown("#### Optimized Schedule")
st.dataframe(schedule_frame(service, optimized, start_time), use_container_width=True, hide_index=True)

located = [t for t in optimized if t.location is not None]
if located:
    center_lat = sum(t.location.latitude for t in located) / len(located)
    center_lng = sum(t.location.longitude for t in located) / len(located)
    view_state = pdk.ViewState(latitude=center_lat, longitude=center_lng, zoom=11)
    st.pydeck_chart(pdk.Deck(
        layers=[path_layer(optimized), stop_layer(service, optimized, start_time)],
        initial_view_state=view_state,
        tooltip={"text": "{label}"},
    ))
else:
    st.info("No task in this assignment has a location to draw.")

if st.button("Apply optimized order"):
    service.optimize_assignment(assignment_id)
    numbered = [t for t in service.get_tasks_ordered_by_sequence(assignment_id) if t.is_active]
    st.success(" → ".join(f"{t.sequence}:{t.task_id}" for t in numbered))
