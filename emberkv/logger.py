"""Buffered log file writer."""

from __future__ import annotations

import os

from .log import Level, Log, LoggedError


class Logger:
    """Collects log records and appends them to a file on demand."""

    def __init__(self, path: str | os.PathLike) -> None:
        self.path = os.fspath(path)
        try:
            descriptor = os.open(self.path, os.O_CREAT | os.O_WRONLY | os.O_APPEND, 0o600)
        except OSError as error:
            raise LoggedError(Log(Level.fatal, error.strerror or str(error))) from error
        os.close(descriptor)
        self._logs: list[Log] = []

    def push(self, log: Log) -> None:
        """Queue a record for the next flush."""
        self._logs.append(log)

    def is_writable(self) -> bool:
        """Whether there are queued records to write."""
        return bool(self._logs)

    def flush(self) -> int:
        """Append all queued records to the file and return the byte count written."""
        data = b"".join(log.to_bytes() for log in self._logs)
        try:
            with open(self.path, "ab") as file:
                file.write(data)
        except OSError as error:
            raise LoggedError(Log(Level.error, error.strerror or str(error))) from error
        self._logs.clear()
        return len(data)