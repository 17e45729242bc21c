from datetime import date, datetime

import pandas as pd
import plotly.express as px
import streamlit as st
from prometheus_client import Counter, Summary, start_http_server
from streamlit_calendar import calendar

from dayplan.clock import minutes_to_time
from dayplan.config import load_config
from dayplan.models import CalendarEntry, ConfigError
from dayplan.normalize import parse_event_lines
from dayplan.scheduler import generate_plan


# ✅ Create metrics only once
if "PLAN_TIME" not in st.session_state:
    st.session_state.PLAN_TIME = Summary(
        "daily_plan_generation_seconds",
        "Time spent generating the daily plan",
    )
PLAN_TIME = st.session_state.PLAN_TIME

if "RESOLUTION_COUNTER" not in st.session_state:
    st.session_state.RESOLUTION_COUNTER = Counter(
        "daily_plan_conflict_resolutions_total",
        "Conflict resolutions applied, by action",
        ["action"],
    )
RESOLUTION_COUNTER = st.session_state.RESOLUTION_COUNTER

# ✅ Start metrics server only once
if "metrics_started" not in st.session_state:
    start_http_server(8000)
    st.session_state.metrics_started = True


# Session State Setup
if "calendar_entries" not in st.session_state:
    st.session_state.calendar_entries = []  # list[CalendarEntry]

if "plan" not in st.session_state:
    st.session_state.plan = None

if "config" not in st.session_state:
    try:
        st.session_state.config = load_config()
    except ConfigError as exc:
        st.session_state.config = None
        st.session_state.config_error = str(exc)


# Sidebar: Inputs
st.sidebar.title("Daily Plan")

plan_day = st.sidebar.date_input("Day", value=date.today())
cfg = st.session_state.config

if cfg is None:
    st.sidebar.error(f"Config error: {st.session_state.config_error}")
else:
    st.sidebar.write(
        f"Active hours {minutes_to_time(cfg.day_start)}–{minutes_to_time(cfg.day_end)}, "
        f"{len(cfg.routines)} routines"
    )

# Add Calendar Entry
st.sidebar.subheader("Add Calendar Entry")
with st.sidebar.form("entry_form"):
    ce_title = st.text_input("Title", key="ce_title")
    ce_start = st.time_input("Start", key="ce_start")
    ce_end = st.time_input("End", key="ce_end")
    ce_source = st.text_input("Source", value="events", key="ce_source")
    add_entry = st.form_submit_button("Add Entry")
    if add_entry:
        if ce_title and ce_end > ce_start:
            tz = cfg.timezone if cfg else "Asia/Tokyo"
            st.session_state.calendar_entries.append(
                CalendarEntry(
                    title=ce_title,
                    start=pd.Timestamp(datetime.combine(plan_day, ce_start)).tz_localize(tz).isoformat(),
                    end=pd.Timestamp(datetime.combine(plan_day, ce_end)).tz_localize(tz).isoformat(),
                    source_id=ce_source or "events",
                )
            )
        else:
            st.sidebar.error("Please enter a title and ensure end > start")

st.sidebar.subheader("Event Log")
event_log_text = st.sidebar.text_area(
    "Checklist lines (- [ ] HH:MM-HH:MM Title)", "", height=160,
)


# Main: Generate Plan
st.title("Daily Plan")

if st.session_state.calendar_entries:
    st.markdown("### Calendar Entries")
    st.dataframe(pd.DataFrame([{
        "title": e.title,
        "start": e.start,
        "end": e.end,
        "source": e.source_id,
    } for e in st.session_state.calendar_entries]))

if st.button("Generate Plan") and cfg is not None:
    local_events = parse_event_lines(event_log_text, "planning")
    with PLAN_TIME.time():
        plan = generate_plan(
            plan_day,
            cfg,
            calendar_entries=st.session_state.calendar_entries,
            local_events=local_events,
        )
    for r in plan.resolutions:
        RESOLUTION_COUNTER.labels(action=r.action).inc()
    st.session_state.plan = plan


plan = st.session_state.plan
if plan is not None:
    st.markdown("## Day View")
    frame = plan.timeline_frame()

    def kind_color(kind):
        return "#7f7f7f" if kind == "confirmed" else "#1f77b4"

    events = [{
        "title": row["label"],
        "start": row["start"].isoformat(),
        "end": row["end"].isoformat(),
        "color": kind_color(row["kind"]),
    } for _, row in frame.iterrows()]
    events += [{
        "title": item.label,
        "start": plan.day.isoformat(),
        "allDay": True,
        "color": "#2ca02c",
    } for item in plan.all_day]

    cal_options = {
        "initialView": "timeGridDay",
        "initialDate": plan.day.isoformat(),
        "slotMinTime": "06:00:00",
        "slotMaxTime": "24:00:00",
        "allDaySlot": True,
        "nowIndicator": True,
    }
    calendar(events=events, options=cal_options, key="calendar")

    if not frame.empty:
        fig = px.timeline(frame, x_start="start", x_end="end", y="kind", color="kind",
                          hover_name="label")
        st.plotly_chart(fig, use_container_width=True)

    col1, col2 = st.columns(2)
    with col1:
        st.markdown("### Free Slots")
        st.dataframe(pd.DataFrame([f.to_dict() for f in plan.free_slots]))
    with col2:
        st.markdown("### Ratio Routines")
        if plan.ratio_report:
            st.dataframe(pd.DataFrame([r.to_dict() for r in plan.ratio_report]))
        else:
            st.write("No ratio routines configured.")

    st.markdown("### Conflict Resolutions")
    if plan.resolutions:
        st.dataframe(pd.DataFrame([r.to_dict() for r in plan.resolutions]))
    else:
        st.write("No overlaps between sources.")

    warnings = plan.run_log.warnings()
    if warnings:
        st.markdown("### Warnings")
        for w in warnings:
            st.warning(f"{w.category}: {w.message}")
else:
    st.info("Add some entries and click **Generate Plan** to see the day.")
