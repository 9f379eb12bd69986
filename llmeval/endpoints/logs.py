# Teacher-only read-back, filtering and export of the interaction log
# llmeval/endpoints/logs.py
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import Response
from pydantic import BaseModel

from llmeval.dependencies import get_interaction_logger, require_teacher
from llmeval.models.enums import ExportFormat
from llmeval.models.log import LogEntry
from llmeval.services import exporter
from llmeval.services.interaction_logger import BaseInteractionLogger

router = APIRouter(
    dependencies=[Depends(require_teacher)]
)

class LogSummary(BaseModel):
    total: int
    completed: int
    cancelled: int
    errored: int
    average_tokens_per_second: float
    total_prompt_tokens: int
    total_response_tokens: int
    sessions: int
    users: int

class LogFileInfo(BaseModel):
    path: str | None
    day: date

@router.get("/", response_model=List[LogEntry])
async def list_log_entries(
    day: Optional[date] = None,
    interaction_logger: BaseInteractionLogger = Depends(get_interaction_logger),
):
    """All entries for the day, most recent first."""
    entries = await run_in_threadpool(interaction_logger.get_all_log_entries, day)
    return exporter.sort_newest_first(entries)

@router.get("/sessions/{session_id}", response_model=List[LogEntry])
async def list_session_entries(
    session_id: str,
    day: Optional[date] = None,
    interaction_logger: BaseInteractionLogger = Depends(get_interaction_logger),
):
    entries = await run_in_threadpool(interaction_logger.get_log_entries_for_session, session_id, day)
    return exporter.sort_newest_first(entries)

@router.get("/users/{user_id}", response_model=List[LogEntry])
async def list_user_entries(
    user_id: str,
    day: Optional[date] = None,
    interaction_logger: BaseInteractionLogger = Depends(get_interaction_logger),
):
    entries = await run_in_threadpool(interaction_logger.get_log_entries_for_user, user_id, day)
    return exporter.sort_newest_first(entries)

@router.get("/summary", response_model=LogSummary)
async def log_summary(
    day: Optional[date] = None,
    interaction_logger: BaseInteractionLogger = Depends(get_interaction_logger),
):
    entries = await run_in_threadpool(interaction_logger.get_all_log_entries, day)
    return LogSummary(**exporter.summarize(entries))

@router.get("/days", response_model=List[date])
async def list_log_days(interaction_logger: BaseInteractionLogger = Depends(get_interaction_logger)):
    return await run_in_threadpool(interaction_logger.available_log_days)

@router.get("/file", response_model=LogFileInfo)
async def log_file_location(
    day: Optional[date] = None,
    interaction_logger: BaseInteractionLogger = Depends(get_interaction_logger),
):
    day = day or interaction_logger.today()
    path = interaction_logger.get_log_file_path(day)
    return LogFileInfo(path=str(path) if path is not None else None, day=day)

@router.get("/export")
async def export_log(
    format: ExportFormat = Query(ExportFormat.CSV),
    day: Optional[date] = None,
    interaction_logger: BaseInteractionLogger = Depends(get_interaction_logger),
):
    """Downloads the day's entries, newest first, as CSV, HTML, JSON or plain text."""
    entries = await run_in_threadpool(interaction_logger.get_all_log_entries, day)
    body = exporter.export(exporter.sort_newest_first(entries), format)
    filename = exporter.export_filename(format, day or interaction_logger.today())
    return Response(
        content=body,
        media_type=exporter.MEDIA_TYPES[format],
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
