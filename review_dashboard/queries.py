# review_dashboard/queries.py
from dataclasses import dataclass, field
from typing import List, Optional

import pandas as pd

from llmeval.models.log import LogEntry
from llmeval.services.auth_gate import LoginThrottle, TeacherAuthGate, attempt_login
from llmeval.services.exporter import sort_newest_first, status_label
from llmeval.services.interaction_logger import BaseInteractionLogger
from llmeval.utils.errors import LogReadError

HISTORY_COLUMNS = [
    "Timestamp", "Student", "Session", "Status", "Question", "Response",
    "Tokens/sec", "Prompt Tokens", "Response Tokens", "Processing Time (s)",
]


@dataclass
class LoadResult:
    """Outcome of one load: entries (newest first) or the read error to show with a retry."""
    entries: List[LogEntry] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return self.error is None and not self.entries


def load_entries(interaction_logger: BaseInteractionLogger, day=None) -> LoadResult:
    """Reads the day's log. An unreadable file becomes an error message, not an exception."""
    try:
        entries = interaction_logger.get_all_log_entries(day)
    except LogReadError as e:
        return LoadResult(error=str(e))
    return LoadResult(entries=sort_newest_first(entries))


def filter_entries(entries: List[LogEntry], session_id: str | None = None, user_id: str | None = None,
                   statuses: List[str] | None = None) -> List[LogEntry]:
    """Applies the sidebar filters; None or empty means no filter."""
    result = entries
    if session_id:
        result = [e for e in result if e.session_id == session_id]
    if user_id:
        result = [e for e in result if e.user_id == user_id]
    if statuses:
        result = [e for e in result if status_label(e) in statuses]
    return result


def get_session_ids(entries: List[LogEntry]) -> list[str]:
    """Session ids in order of most recent activity."""
    seen: dict[str, None] = {}
    for entry in sort_newest_first(entries):
        seen.setdefault(entry.session_id, None)
    return list(seen)


def get_user_ids(entries: List[LogEntry]) -> list[str]:
    return sorted({e.user_id for e in entries})


def get_interaction_history(entries: List[LogEntry]) -> pd.DataFrame:
    """Builds the history table shown to the teacher."""
    if not entries:
        return pd.DataFrame(columns=HISTORY_COLUMNS)

    data = {
        "Timestamp": [e.timestamp.astimezone().strftime('%Y-%m-%d %H:%M:%S') for e in entries],
        "Student": [e.user_id for e in entries],
        "Session": [e.session_id[:8] for e in entries],
        "Status": [status_label(e) for e in entries],
        "Question": [e.user_prompt for e in entries],
        "Response": [e.display_response for e in entries],
        "Tokens/sec": [round(e.generation_stats.tokens_per_second, 1) for e in entries],
        "Prompt Tokens": [e.generation_stats.prompt_tokens for e in entries],
        "Response Tokens": [e.generation_stats.response_tokens for e in entries],
        "Processing Time (s)": [round(e.generation_stats.processing_time, 2) for e in entries],
    }
    return pd.DataFrame(data, columns=HISTORY_COLUMNS)


def dashboard_login(gate: TeacherAuthGate, throttle: LoginThrottle, password: str) -> Optional[str]:
    """Runs one login attempt for the dashboard. Returns the error to show, or None on success."""
    result = attempt_login(gate, throttle, password)
    if result.authenticated:
        return None
    if result.retry_after is not None:
        return f"Too many failed attempts. Try again in {int(result.retry_after) + 1} seconds."
    return "Wrong password"
