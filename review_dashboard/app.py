# review_dashboard/app.py
import sys
import os
from datetime import date

import streamlit as st

# Add project root to the Python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from llmeval.models.enums import ExportFormat
from llmeval.services import exporter
from llmeval.services.auth_gate import LoginThrottle, TeacherAuthGate
from llmeval.services.interaction_logger import InteractionLogger
from llmeval.services.preferences_service import PreferencesStore
from llmeval.utils.config import settings
from review_dashboard.queries import (
    dashboard_login,
    filter_entries,
    get_interaction_history,
    get_session_ids,
    get_user_ids,
    load_entries,
)

# --- Page Config ---
st.set_page_config(layout="wide", page_title="Student Conversations")

# --- Shared Services ---
@st.cache_resource
def get_interaction_logger():
    """One reader per dashboard process; nothing is written from here."""
    return InteractionLogger(settings.logs_directory, user_id=settings.student_user_id, read_only=True)

@st.cache_resource
def get_preferences_store():
    return PreferencesStore(settings.preferences_path)

@st.cache_resource
def get_login_throttle():
    # Shared by every browser session of this process, so a reload does not reset it.
    return LoginThrottle(settings.max_login_attempts, settings.login_lockout_seconds)

interaction_logger = get_interaction_logger()
login_throttle = get_login_throttle()
preferences = get_preferences_store().preferences

# The gate lives for one browser session; a reload starts locked.
if "auth_gate" not in st.session_state:
    # Expiry is checked against the clock on every rerun, so no background timer is needed.
    st.session_state.auth_gate = TeacherAuthGate(
        settings.teacher_password_hash, settings.auth_timeout_seconds, timer_factory=None
    )
gate: TeacherAuthGate = st.session_state.auth_gate

# --- Login ---
if not gate.is_authenticated:
    gate.request_access()
    st.title("🔑 Teacher Access")
    with st.form("login"):
        password = st.text_input("Password", type="password")
        submitted = st.form_submit_button("Login")
    if submitted:
        error = dashboard_login(gate, login_throttle, password)
        if error is None:
            st.rerun()
        st.error(error)
    st.stop()

gate.record_activity()

# --- Header ---
st.title("Student Conversations")
header_bits = []
if preferences.teacher_name:
    header_bits.append(f"Teacher: {preferences.teacher_name}")
if preferences.school_name:
    header_bits.append(preferences.school_name)
header_bits.append(preferences.student_age_range)
st.caption(" • ".join(header_bits))
if preferences.system_message:
    st.markdown(f"**AI Instructions:** {preferences.system_message}")

# --- Sidebar ---
st.sidebar.title("Filters")
days = interaction_logger.available_log_days() or [interaction_logger.today()]
selected_day: date = st.sidebar.selectbox("Day", options=days, format_func=lambda d: d.isoformat())

if st.sidebar.button("Refresh"):
    st.rerun()
if st.sidebar.button("Logout"):
    gate.logout()
    st.rerun()

result = load_entries(interaction_logger, selected_day)

if result.error is not None:
    st.error(f"The conversation log exists but could not be read: {result.error}", icon="⚠️")
    if st.button("Retry"):
        st.rerun()
    st.stop()

if result.is_empty:
    st.info("No conversations yet. Student conversations will appear here.")
    st.stop()

session_choice = st.sidebar.selectbox("Session", options=["All"] + get_session_ids(result.entries))
user_choice = st.sidebar.selectbox("Student", options=["All"] + get_user_ids(result.entries))
status_choice = st.sidebar.multiselect("Status", options=["COMPLETE", "CANCELLED", "ERRORED"])

entries = filter_entries(
    result.entries,
    session_id=None if session_choice == "All" else session_choice,
    user_id=None if user_choice == "All" else user_choice,
    statuses=status_choice,
)

# --- Summary ---
summary = exporter.summarize(entries)
cols = st.columns(5)
cols[0].metric("Conversations", summary["total"])
cols[1].metric("Completed", summary["completed"])
cols[2].metric("Cancelled", summary["cancelled"])
cols[3].metric("Errored", summary["errored"])
cols[4].metric("Avg tokens/sec", f"{summary['average_tokens_per_second']:.1f}")

table_tab, detail_tab, export_tab = st.tabs(["History", "Conversations", "Export"])

with table_tab:
    st.dataframe(get_interaction_history(entries), width='stretch', hide_index=True)

with detail_tab:
    for index, entry in enumerate(entries, start=1):
        label = f"Conversation #{index} • {entry.timestamp.astimezone():%H:%M} • {entry.status.value}"
        with st.expander(label):
            st.markdown(f"**Student:** {entry.user_id}  \n**Session:** `{entry.session_id}`")
            st.markdown(f"**Q:** {entry.user_prompt}")
            st.markdown(f"**A:** {entry.display_response}")
            st.caption(f"{entry.generation_stats.tokens_per_second:.0f} tokens/sec • {entry.model_info}")

with export_tab:
    for fmt in ExportFormat:
        st.download_button(
            label=f"Download {fmt.value.upper()}",
            data=exporter.export(entries, fmt),
            file_name=exporter.export_filename(fmt, selected_day),
            mime=exporter.MEDIA_TYPES[fmt],
            key=f"download_{fmt.value}",
        )
