# llmeval/models/enums.py
from enum import Enum

class InteractionStatus(str, Enum):
    """How a generation attempt ended."""
    COMPLETE = "complete"
    CANCELLED = "cancelled"
    ERRORED = "errored"

class GateState(str, Enum):
    """States of the teacher access gate."""
    LOCKED = "locked"
    PROMPT_VISIBLE = "prompt_visible"
    AUTHENTICATED = "authenticated"

class ExportFormat(str, Enum):
    CSV = "csv"
    HTML = "html"
    JSON = "json"
    TEXT = "text"
