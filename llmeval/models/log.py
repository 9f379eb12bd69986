# Data model for teacher log records (one JSON object per line on disk)
# llmeval/models/log.py
from datetime import datetime, timezone
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from llmeval.models.enums import InteractionStatus

# Markers older logs embedded in the response text. They are only read, never written.
CANCELLED_MARKER = "[GENERATION CANCELLED"
CANCELLED_EMPTY_TEXT = "[GENERATION CANCELLED - No response generated]"
CANCELLED_PARTIAL_TEXT = "[GENERATION CANCELLED - Response incomplete]"
FAILED_PREFIX = "Failed: "
ERROR_MARKER = "[Error: "


def infer_status_from_text(response: str) -> InteractionStatus:
    """Recovers the outcome of a record written before the status field existed."""
    if CANCELLED_MARKER in response:
        return InteractionStatus.CANCELLED
    if response.startswith(FAILED_PREFIX) or ERROR_MARKER in response:
        return InteractionStatus.ERRORED
    return InteractionStatus.COMPLETE


class GenerationStats(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, allow_inf_nan=False)

    tokens_per_second: float = Field(0.0, ge=0, alias="tokensPerSecond")
    prompt_tokens: int = Field(0, ge=0, alias="promptTokens")
    response_tokens: int = Field(0, ge=0, alias="responseTokens")
    processing_time: float = Field(0.0, ge=0, alias="processingTime") # seconds


class LogEntry(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, protected_namespaces=())

    timestamp: datetime
    session_id: str = Field(alias="sessionId")
    user_id: str = Field(alias="userId")
    user_prompt: str = Field(alias="userPrompt")
    model_response: str = Field(alias="modelResponse")
    model_info: str = Field(alias="modelInfo")
    generation_stats: GenerationStats = Field(default_factory=GenerationStats, alias="generationStats")
    status: InteractionStatus = InteractionStatus.COMPLETE
    error_reason: str | None = Field(None, alias="errorReason")

    @model_validator(mode="before")
    @classmethod
    def fill_legacy_status(cls, data):
        if isinstance(data, dict) and "status" not in data:
            response = data.get("modelResponse", data.get("model_response"))
            if isinstance(response, str):
                data = dict(data)
                data["status"] = infer_status_from_text(response)
        return data

    @field_validator("timestamp")
    @classmethod
    def assume_utc(cls, value: datetime) -> datetime:
        # Records without an offset were written in UTC.
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def is_complete(self) -> bool:
        return self.status == InteractionStatus.COMPLETE

    @property
    def display_response(self) -> str:
        """Response text with the human-readable outcome marker appended."""
        text = self.model_response
        if self.status == InteractionStatus.CANCELLED:
            if CANCELLED_MARKER in text:
                return text
            if not text:
                return CANCELLED_EMPTY_TEXT
            return f"{text}\n\n{CANCELLED_PARTIAL_TEXT}"
        if self.status == InteractionStatus.ERRORED:
            if text.startswith(FAILED_PREFIX) or ERROR_MARKER in text:
                return text
            reason = self.error_reason or "unknown error"
            if not text:
                return f"{FAILED_PREFIX}{reason}"
            return f"{text}\n\n{ERROR_MARKER}{reason}]"
        return text

    def to_json_line(self) -> str:
        return self.model_dump_json(by_alias=True) + "\n"

    @classmethod
    def from_json_line(cls, line: str) -> "LogEntry":
        return cls.model_validate_json(line)
