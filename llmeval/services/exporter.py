# Derived views over teacher log entries: CSV, HTML report, JSON and plain text
# llmeval/services/exporter.py
import csv
import html
import io
import json
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Sequence

from llmeval.models.enums import ExportFormat, InteractionStatus
from llmeval.models.log import LogEntry

CSV_HEADER = [
    "Timestamp", "User", "Question", "Response", "Status",
    "Tokens_Per_Second", "Prompt_Tokens", "Response_Tokens", "Processing_Time",
]

MEDIA_TYPES = {
    ExportFormat.CSV: "text/csv",
    ExportFormat.HTML: "text/html",
    ExportFormat.JSON: "application/json",
    ExportFormat.TEXT: "text/plain",
}

FILE_EXTENSIONS = {
    ExportFormat.CSV: "csv",
    ExportFormat.HTML: "html",
    ExportFormat.JSON: "json",
    ExportFormat.TEXT: "txt",
}


def sort_newest_first(entries: Iterable[LogEntry]) -> List[LogEntry]:
    return sorted(entries, key=lambda e: e.timestamp, reverse=True)


def status_label(entry: LogEntry) -> str:
    return entry.status.value.upper()


def _single_line(text: str) -> str:
    return text.replace("\r\n", " ").replace("\n", " ").replace("\r", " ")


def _format_time(value: datetime) -> str:
    return value.astimezone().strftime("%Y-%m-%d %H:%M:%S")


def summarize(entries: Sequence[LogEntry]) -> Dict[str, Any]:
    """Counts by outcome plus the average generation speed of completed answers."""
    completed = [e for e in entries if e.status == InteractionStatus.COMPLETE]
    cancelled = [e for e in entries if e.status == InteractionStatus.CANCELLED]
    errored = [e for e in entries if e.status == InteractionStatus.ERRORED]
    average_tps = (
        sum(e.generation_stats.tokens_per_second for e in completed) / len(completed)
        if completed else 0.0
    )
    return {
        "total": len(entries),
        "completed": len(completed),
        "cancelled": len(cancelled),
        "errored": len(errored),
        "average_tokens_per_second": average_tps,
        "total_prompt_tokens": sum(e.generation_stats.prompt_tokens for e in entries),
        "total_response_tokens": sum(e.generation_stats.response_tokens for e in entries),
        "sessions": len({e.session_id for e in entries}),
        "users": len({e.user_id for e in entries}),
    }


def to_csv(entries: Sequence[LogEntry]) -> str:
    buffer = io.StringIO()
    csv.writer(buffer, lineterminator="\n").writerow(CSV_HEADER)
    # Strings are always quoted (quotes doubled); numbers are written bare.
    writer = csv.writer(buffer, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n")
    for entry in entries:
        stats = entry.generation_stats
        writer.writerow([
            entry.timestamp.isoformat(),
            _single_line(entry.user_id),
            _single_line(entry.user_prompt),
            _single_line(entry.display_response),
            status_label(entry),
            round(stats.tokens_per_second, 2),
            stats.prompt_tokens,
            stats.response_tokens,
            round(stats.processing_time, 3),
        ])
    return buffer.getvalue()


def to_json(entries: Sequence[LogEntry]) -> str:
    payload = [entry.model_dump(mode="json", by_alias=True) for entry in entries]
    return json.dumps(payload, indent=2, ensure_ascii=False)


def to_text(entries: Sequence[LogEntry], title: str = "Student Conversations") -> str:
    lines = [
        title,
        f"Generated: {_format_time(datetime.now(timezone.utc))}",
        f"Entries: {len(entries)}",
        "",
    ]
    for index, entry in enumerate(entries, start=1):
        stats = entry.generation_stats
        lines.extend([
            f"=== Conversation #{index} ===",
            f"Time: {_format_time(entry.timestamp)}",
            f"Student: {entry.user_id}",
            f"Session: {entry.session_id}",
            f"Status: {status_label(entry)}",
            f"Model: {entry.model_info}",
            f"Question: {entry.user_prompt}",
            f"Response: {entry.display_response}",
            (f"Stats: {stats.tokens_per_second:.1f} tokens/s, {stats.prompt_tokens} prompt tokens, "
             f"{stats.response_tokens} response tokens, {stats.processing_time:.2f}s"),
            "",
        ])
    return "\n".join(lines)


_HTML_STYLE = """
body { font-family: -apple-system, Helvetica, Arial, sans-serif; margin: 2em; color: #222; }
table.summary { border-collapse: collapse; margin-bottom: 2em; }
table.summary th, table.summary td { border: 1px solid #ccc; padding: 6px 12px; text-align: left; }
.card { border: 1px solid #ddd; border-radius: 8px; padding: 1em; margin-bottom: 1em; }
.card.cancelled { border-left: 6px solid #e0a000; }
.card.errored { border-left: 6px solid #c0392b; }
.card.complete { border-left: 6px solid #27ae60; }
.meta { color: #666; font-size: 0.85em; }
.question { color: #1e7d32; white-space: pre-wrap; }
.answer { color: #1a4f9c; white-space: pre-wrap; }
"""


def _html_card(index: int, entry: LogEntry) -> str:
    stats = entry.generation_stats
    esc = html.escape
    return (
        f'<div class="card {entry.status.value}">\n'
        f"  <h3>Conversation #{index} <small>{esc(status_label(entry))}</small></h3>\n"
        f'  <p class="meta">{esc(_format_time(entry.timestamp))} | Student: {esc(entry.user_id)}'
        f" | Session: {esc(entry.session_id[:8])}</p>\n"
        f'  <p class="question"><strong>Q:</strong> {esc(entry.user_prompt)}</p>\n'
        f'  <p class="answer"><strong>A:</strong> {esc(entry.display_response)}</p>\n'
        f'  <p class="meta">{stats.tokens_per_second:.1f} tokens/s | {stats.prompt_tokens} prompt tokens'
        f" | {stats.response_tokens} response tokens | {stats.processing_time:.2f}s"
        f" | {esc(entry.model_info)}</p>\n"
        f"</div>"
    )


def to_html(entries: Sequence[LogEntry], title: str = "Student Conversations") -> str:
    summary = summarize(entries)
    esc = html.escape
    rows = [
        ("Total conversations", summary["total"]),
        ("Completed", summary["completed"]),
        ("Cancelled", summary["cancelled"]),
        ("Errored", summary["errored"]),
        ("Average tokens/sec (completed)", f"{summary['average_tokens_per_second']:.1f}"),
    ]
    summary_rows = "\n".join(f"<tr><th>{esc(label)}</th><td>{value}</td></tr>" for label, value in rows)
    cards = "\n".join(_html_card(i, e) for i, e in enumerate(entries, start=1))
    if not entries:
        cards = "<p>No conversations yet.</p>"
    return (
        "<!DOCTYPE html>\n"
        '<html lang="en">\n<head>\n<meta charset="utf-8">\n'
        f"<title>{esc(title)}</title>\n<style>{_HTML_STYLE}</style>\n</head>\n<body>\n"
        f"<h1>{esc(title)}</h1>\n"
        f'<p class="meta">Generated {esc(_format_time(datetime.now(timezone.utc)))}</p>\n'
        f'<table class="summary">\n{summary_rows}\n</table>\n'
        f"{cards}\n"
        "</body>\n</html>\n"
    )


def export(entries: Sequence[LogEntry], fmt: ExportFormat) -> str:
    fmt = ExportFormat(fmt)
    if fmt == ExportFormat.CSV:
        return to_csv(entries)
    if fmt == ExportFormat.HTML:
        return to_html(entries)
    if fmt == ExportFormat.JSON:
        return to_json(entries)
    return to_text(entries)


def export_filename(fmt: ExportFormat, day: date) -> str:
    return f"teacher_log_{day.isoformat()}.{FILE_EXTENSIONS[ExportFormat(fmt)]}"
