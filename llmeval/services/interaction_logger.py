# Append-only record of every student/model exchange, readable in bulk for teacher review
# llmeval/services/interaction_logger.py
import getpass
import math
import os
import queue
import stat
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional

from pydantic import ValidationError

from llmeval.models.enums import InteractionStatus
from llmeval.models.log import GenerationStats, LogEntry
from llmeval.utils.errors import LogReadError, LogWriteError
from llmeval.utils.logger import logger

LOG_FILE_PREFIX = "teacher_log_"
LOG_FILE_SUFFIX = ".jsonl"

_STOP = object()


def default_user_id() -> str:
    """Name of the OS account running the chat app, a coarse stand-in for the student."""
    try:
        name = getpass.getuser()
    except (KeyError, OSError) as e:
        logger.warning(f"Could not determine OS user name ({e}); using a random id.")
        return str(uuid.uuid4())
    return name or str(uuid.uuid4())


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def log_file_name(day: date) -> str:
    return f"{LOG_FILE_PREFIX}{day.isoformat()}{LOG_FILE_SUFFIX}"


def _clamp_stat(name: str, value, cast):
    """Non-finite, negative or non-numeric statistics are recorded as zero."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        number = math.nan
    if not math.isfinite(number) or number < 0:
        logger.warning(f"Recording {name}={value!r} as 0.")
        return cast(0)
    return cast(number)


class BaseInteractionLogger(ABC):
    """Session bookkeeping and the public read/write API shared by every logger."""

    def __init__(self, user_id: Optional[str] = None, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or _utc_now
        self._user_id = user_id or default_user_id()
        self._session_id = str(uuid.uuid4())
        self._last_timestamp: Optional[datetime] = None
        # Guards timestamp assignment and enqueueing so call order, timestamp order
        # and file order all agree.
        self._submit_lock = threading.Lock()

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def user_id(self) -> str:
        return self._user_id

    def start_new_session(self) -> str:
        with self._submit_lock:
            self._session_id = str(uuid.uuid4())
        logger.info(f"Started new logging session: {self._session_id}")
        return self._session_id

    def today(self) -> date:
        return self._clock().astimezone().date()

    def _next_timestamp(self) -> datetime:
        now = self._clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        if self._last_timestamp is not None and now < self._last_timestamp:
            now = self._last_timestamp
        self._last_timestamp = now
        return now

    def log_interaction(
        self,
        user_prompt: str,
        model_response: str,
        model_info: str,
        tokens_per_second: float = 0.0,
        prompt_tokens: int = 0,
        response_tokens: int = 0,
        processing_time: float = 0.0,
        status: InteractionStatus = InteractionStatus.COMPLETE,
        error_reason: Optional[str] = None,
    ) -> None:
        """Records one exchange. Never raises; failures go to the diagnostic log."""
        try:
            stats = GenerationStats(
                tokens_per_second=_clamp_stat("tokens_per_second", tokens_per_second, float),
                prompt_tokens=_clamp_stat("prompt_tokens", prompt_tokens, int),
                response_tokens=_clamp_stat("response_tokens", response_tokens, int),
                processing_time=_clamp_stat("processing_time", processing_time, float),
            )
            with self._submit_lock:
                entry = LogEntry(
                    timestamp=self._next_timestamp(),
                    session_id=self._session_id,
                    user_id=self._user_id,
                    user_prompt=user_prompt,
                    model_response=model_response,
                    model_info=model_info,
                    generation_stats=stats,
                    status=status,
                    error_reason=error_reason,
                )
                self._submit(entry)
        except ValidationError as e:
            logger.error(f"Failed to build log entry: {e}")
        except Exception as e:
            logger.exception(f"Failed to queue log entry: {e}")

    def get_all_log_entries(self, day: Optional[date] = None) -> List[LogEntry]:
        """All decodable entries of the given (default: current) day, in file order."""
        return self._read_entries(day or self.today())

    def get_log_entries_for_session(self, session_id: str, day: Optional[date] = None) -> List[LogEntry]:
        return [e for e in self.get_all_log_entries(day) if e.session_id == session_id]

    def get_log_entries_for_user(self, user_id: str, day: Optional[date] = None) -> List[LogEntry]:
        return [e for e in self.get_all_log_entries(day) if e.user_id == user_id]

    @abstractmethod
    def _submit(self, entry: LogEntry) -> None:
        """Hands a built entry to storage. Called with the submit lock held."""

    @abstractmethod
    def _read_entries(self, day: date) -> List[LogEntry]:
        ...

    @abstractmethod
    def get_log_file_path(self, day: Optional[date] = None) -> Optional[Path]:
        ...

    @abstractmethod
    def available_log_days(self) -> List[date]:
        ...

    def flush(self) -> None:
        """Blocks until every submitted entry has been stored."""

    def close(self) -> None:
        self.flush()


class InteractionLogger(BaseInteractionLogger):
    """JSON-Lines logger writing one hidden, owner-only file per calendar day.

    All appends go through one FIFO queue drained by a single writer thread.
    A `read_only` logger never creates or changes files and drops anything logged to it.
    """

    def __init__(self, log_dir, user_id: Optional[str] = None, clock: Optional[Callable[[], datetime]] = None,
                 read_only: bool = False):
        super().__init__(user_id=user_id, clock=clock)
        self.log_dir = Path(log_dir)
        self.read_only = read_only
        self._queue: "queue.Queue" = queue.Queue()
        self._file_lock = threading.Lock()
        self._worker: Optional[threading.Thread] = None
        self._worker_lock = threading.Lock()
        self._secured_paths: set = set()
        self._closed = False

        if read_only:
            logger.info(f"Teacher log opened read-only at {self.log_dir}")
            return

        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Failed to create teacher log directory {self.log_dir}: {e}")
        else:
            with self._file_lock:
                self._secure_file(self.get_log_file_path())

        logger.info(f"Teacher logging initialized for session: {self.session_id}")

    # --- Paths ---

    def get_log_file_path(self, day: Optional[date] = None) -> Path:
        return self.log_dir / log_file_name(day or self.today())

    def available_log_days(self) -> List[date]:
        days = []
        if not self.log_dir.is_dir():
            return days
        for path in self.log_dir.glob(f"{LOG_FILE_PREFIX}*{LOG_FILE_SUFFIX}"):
            stamp = path.name[len(LOG_FILE_PREFIX):-len(LOG_FILE_SUFFIX)]
            try:
                days.append(date.fromisoformat(stamp))
            except ValueError:
                logger.debug(f"Ignoring unrecognised file in log directory: {path.name}")
        return sorted(days, reverse=True)

    # --- File security ---

    def _secure_file(self, path: Path) -> None:
        """Creates the file if needed, restricts it to the owner and hides it. Idempotent."""
        try:
            fd = os.open(path, os.O_CREAT | os.O_APPEND | os.O_WRONLY, 0o600)
            os.close(fd)
            os.chmod(path, 0o600)
            _mark_hidden(path)
        except OSError as e:
            logger.error(f"Failed to set secure permissions on {path}: {e}")
            return
        self._secured_paths.add(path)

    # --- Write path ---

    def _submit(self, entry: LogEntry) -> None:
        if self.read_only:
            logger.error(f"Teacher log is read-only; dropping entry for session {entry.session_id}")
            return
        if self._closed:
            logger.error(f"Teacher logger is closed; dropping entry for session {entry.session_id}")
            return
        self._queue.put(entry)
        self._ensure_worker()

    def _ensure_worker(self) -> None:
        with self._worker_lock:
            if self._worker is None or not self._worker.is_alive():
                self._worker = threading.Thread(target=self._drain, name="teacher-log-writer", daemon=True)
                self._worker.start()

    def _drain(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self._append(item)
            except LogWriteError as e:
                logger.error(f"Failed to write log entry: {e}")
            except Exception as e:
                logger.exception(f"Unexpected error writing log entry: {e}")
            finally:
                self._queue.task_done()

    def _append(self, entry: LogEntry) -> None:
        path = self.get_log_file_path(entry.timestamp.astimezone().date())
        try:
            line = entry.to_json_line()
        except (ValueError, TypeError) as e:
            raise LogWriteError(path, f"encoding failed: {e}") from e

        try:
            with self._file_lock:
                if path not in self._secured_paths:
                    self._secure_file(path)
                with open(path, "a", encoding="utf-8") as handle:
                    handle.write(line)
        except OSError as e:
            raise LogWriteError(path, str(e)) from e
        logger.debug(f"Logged interaction for session: {entry.session_id}")

    def flush(self) -> None:
        self._queue.join()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        with self._worker_lock:
            worker = self._worker
        if worker is not None and worker.is_alive():
            self._queue.put(_STOP)
            worker.join()
        logger.info(f"Teacher logging closed for session: {self.session_id}")

    # --- Read path ---

    def _read_entries(self, day: date) -> List[LogEntry]:
        path = self.get_log_file_path(day)
        try:
            with self._file_lock:
                with open(path, "rb") as handle:
                    content = handle.read()
        except FileNotFoundError:
            return []
        except OSError as e:
            raise LogReadError(path, str(e)) from e

        entries: List[LogEntry] = []
        for line_number, line in enumerate(content.split(b"\n"), start=1):
            if not line.strip():
                continue
            try:
                entries.append(LogEntry.from_json_line(line))
            except ValueError as e:
                logger.warning(f"Skipping undecodable line {line_number} in {path.name}: {e}")
        return entries


class InMemoryInteractionLogger(BaseInteractionLogger):
    """Keeps entries in a list. For tests and hosts without persistent storage."""

    def __init__(self, user_id: Optional[str] = None, clock: Optional[Callable[[], datetime]] = None):
        super().__init__(user_id=user_id, clock=clock)
        self._entries: List[LogEntry] = []
        self._entries_lock = threading.Lock()

    def _submit(self, entry: LogEntry) -> None:
        with self._entries_lock:
            self._entries.append(entry)

    def _read_entries(self, day: date) -> List[LogEntry]:
        with self._entries_lock:
            return [e for e in self._entries if e.timestamp.astimezone().date() == day]

    def get_log_file_path(self, day: Optional[date] = None) -> Optional[Path]:
        return None

    def available_log_days(self) -> List[date]:
        with self._entries_lock:
            days = {e.timestamp.astimezone().date() for e in self._entries}
        return sorted(days, reverse=True)


def _mark_hidden(path: Path) -> None:
    """Hides the file from normal browsing where the platform has such an attribute.

    Linux has none, so there the file is only protected by its 0600 mode; the default
    storage root (~/.local/share) is already inside a dot-directory.
    """
    if hasattr(os, "chflags") and hasattr(stat, "UF_HIDDEN"):
        flags = os.stat(path).st_flags
        if not flags & stat.UF_HIDDEN:
            os.chflags(path, flags | stat.UF_HIDDEN)
    elif os.name == "nt":
        import ctypes

        file_attribute_hidden = 0x02
        kernel32 = ctypes.windll.kernel32
        attrs = kernel32.GetFileAttributesW(str(path))
        if attrs != -1 and not attrs & file_attribute_hidden:
            kernel32.SetFileAttributesW(str(path), attrs | file_attribute_hidden)
