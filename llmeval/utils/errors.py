# llmeval/utils/errors.py
from pathlib import Path


class LogReadError(Exception):
    """The log file exists but could not be opened or read.

    A missing log file is not an error; it means no entries yet.
    """

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Could not read teacher log at {path}: {reason}")


class LogWriteError(Exception):
    """An entry could not be encoded or appended.

    Raised inside the writer only; the logger records it and never lets it reach callers.
    """

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Could not append to teacher log at {path}: {reason}")
