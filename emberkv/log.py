"""Log records and the exception type that carries one."""

from __future__ import annotations

import enum
import inspect
import threading
from datetime import datetime, timezone


class Level(enum.IntEnum):
    """Severity of a log record."""

    info = 0
    warn = 1
    error = 2
    fatal = 3


class Log:
    """A single log record with its origin, time and thread."""

    def __init__(
        self,
        level: Level,
        text: str,
        *,
        file: str | None = None,
        line: int | None = None,
        column: int = 0,
        function: str | None = None,
        timestamp: datetime | None = None,
        thread_id: int | None = None,
    ) -> None:
        self.level = Level(level)
        self.text = text
        if file is None or line is None or function is None:
            frame = inspect.currentframe()
            caller = frame.f_back if frame is not None else None
            try:
                if caller is not None:
                    code = caller.f_code
                    file = code.co_filename if file is None else file
                    line = caller.f_lineno if line is None else line
                    function = code.co_name if function is None else function
            finally:
                del frame, caller
        self.file = file or ""
        self.line = line or 0
        self.column = column
        self.function = function or ""
        self.timestamp = timestamp if timestamp is not None else datetime.now(timezone.utc)
        self.thread_id = thread_id if thread_id is not None else threading.get_ident()

    def __repr__(self) -> str:
        return f"Log({self.level.name}, {self.text!r})"

    def to_string(self) -> str:
        """Render the record as one line ending in a newline."""
        stamp = self.timestamp.strftime("%Y-%m-%d %H:%M:%S.%f")
        return (
            f"{self.level.name} {stamp} {self.thread_id} "
            f"{self.file}:{self.line}:{self.column}:{self.function} {self.text}\n"
        )

    def to_bytes(self) -> bytes:
        """Render the record as UTF-8 bytes."""
        return self.to_string().encode("utf-8")


class LoggedError(Exception):
    """An error that carries the log record describing it."""

    def __init__(self, log: Log) -> None:
        super().__init__(log.to_string())
        self.log = log