"""The set of numbered databases, command dispatch and append-only persistence."""

from __future__ import annotations

import os
import struct
import threading
from typing import Callable

from .answer import Answer
from .context import Context
from .database import Database, _stoul
from .log import Level, Log, LoggedError
from .reply import Reply, ReplyType

DATABASE_COUNT = 16
DEFAULT_PATH = "dump.aof"

_SIZE = struct.Struct("<Q")

_Handler = Callable[[Database, str], Reply]

# Command word -> (handler, whether the statement is recorded in the append-only log).
_COMMANDS: dict[str, tuple[_Handler, bool]] = {
    "FLUSHDB": (lambda database, _: database.flushdb(), True),
    "DEL": (Database.delete, True),
    "EXISTS": (Database.exists, False),
    "RENAME": (Database.rename, True),
    "RENAMENX": (Database.renamenx, True),
    "TYPE": (Database.type, False),
    "SET": (Database.set, True),
    "GET": (Database.get, False),
    "GETRANGE": (Database.getrange, False),
    "GETBIT": (Database.getbit, False),
    "MGET": (Database.mget, False),
    "SETBIT": (Database.setbit, True),
    "SETNX": (Database.setnx, True),
    "SETRANGE": (Database.setrange, True),
    "STRLEN": (Database.strlen, False),
    "MSET": (Database.mset, True),
    "MSETNX": (Database.msetnx, True),
    "INCR": (Database.incr, True),
    "INCRBY": (Database.incrby, True),
    "DECR": (Database.decr, True),
    "DECRBY": (Database.decrby, True),
    "APPEND": (Database.append, True),
    "HDEL": (Database.hdel, True),
    "HEXISTS": (Database.hexists, False),
    "HGET": (Database.hget, False),
    "HGETALL": (Database.hgetall, False),
    "HINCRBY": (Database.hincrby, True),
    "HKEYS": (Database.hkeys, False),
    "HLEN": (Database.hlen, False),
    "HSET": (Database.hset, True),
    "HVALS": (Database.hvals, False),
    "LINDEX": (Database.lindex, False),
    "LLEN": (Database.llen, False),
    "LPOP": (Database.lpop, True),
    "LPUSH": (Database.lpush, True),
    "LPUSHX": (Database.lpushx, True),
}


def _empty_snapshot() -> bytes:
    return _SIZE.pack(0) * DATABASE_COUNT


def _describe(error: OSError) -> str:
    return error.strerror or str(error)


def create_file(path: str | os.PathLike = DEFAULT_PATH) -> str:
    """Create the persistence file if needed, seeding an empty one with an empty snapshot."""
    path = os.fspath(path)
    flags = os.O_CREAT | os.O_WRONLY | os.O_APPEND | getattr(os, "O_SYNC", 0)
    try:
        descriptor = os.open(path, flags, 0o600)
    except OSError as error:
        raise LoggedError(Log(Level.fatal, _describe(error))) from error
    try:
        if os.fstat(descriptor).st_size == 0:
            view = memoryview(_empty_snapshot())
            while view:
                view = view[os.write(descriptor, view):]
    except OSError as error:
        raise LoggedError(Log(Level.fatal, _describe(error))) from error
    finally:
        os.close(descriptor)
    return path


def _read_sized(data: bytes, position: int) -> tuple[bytes, int]:
    if len(data) - position < _SIZE.size:
        raise ValueError("persistence file: size is truncated")
    (size,) = _SIZE.unpack_from(data, position)
    position += _SIZE.size
    if len(data) - position < size:
        raise ValueError("persistence file: record is truncated")
    return data[position:position + size], position + size


def _ok() -> Reply:
    return Reply(ReplyType.status, "OK")


class DatabaseManager:
    """Routes statements to the databases and batches changes for the persistence file."""

    def __init__(self, path: str | os.PathLike = DEFAULT_PATH) -> None:
        self.path = os.fspath(path)
        self._lock = threading.RLock()
        self._aof_buffer = bytearray()
        self._write_buffer = b""
        self._seconds = 0
        self._write_count = 0
        self._databases = [Database(index) for index in range(DATABASE_COUNT)]
        try:
            with open(self.path, "rb") as file:
                data = file.read()
        except FileNotFoundError:
            data = b""
        if data:
            self._load(data)

    def _load(self, data: bytes) -> None:
        position = 0
        for index in range(DATABASE_COUNT):
            body, position = _read_sized(data, position)
            self._databases[index] = Database(index, body)

        context = Context()
        while position < len(data):
            statement, position = _read_sized(data, position)
            self._run(context, Answer.from_bytes(statement), recording=False)

    def query(self, context: Context, answer: Answer) -> Reply:
        """Execute one statement for a client and return the reply."""
        return self._run(context, answer, recording=True)

    def _run(self, context: Context, answer: Answer, recording: bool) -> Reply:
        database_index = context.database_index
        command, _, statement = answer.statement.partition(" ")

        record = False
        if command == "MULTI":
            context.is_transaction = True
            reply = _ok()
        elif command == "EXEC":
            reply = self._exec(context, recording)
        elif command == "DISCARD":
            context.is_transaction = False
            context.clear_answers()
            reply = _ok()
        elif context.is_transaction:
            context.add_answer(answer)
            reply = Reply(ReplyType.status, "QUEUED")
        elif command == "FLUSHALL":
            with self._lock:
                for database in self._databases:
                    database.flushdb()
            reply = _ok()
        elif command == "SELECT":
            context.database_index = _stoul(statement)
            reply = _ok()
            record = True
        elif command == "MOVE":
            reply = self._databases[database_index].move(self._databases, statement)
            record = True
        elif command in _COMMANDS:
            handler, record = _COMMANDS[command]
            reply = handler(self._databases[database_index], statement)
        else:
            reply = Reply(ReplyType.nil, 0)

        reply.database_index = context.database_index
        reply.is_transaction = context.is_transaction

        if record and recording:
            self._record(answer.serialize())
        return reply

    def _exec(self, context: Context, recording: bool) -> Reply:
        context.is_transaction = False
        answers = list(context.answers)
        replies = [self._run(context, answer, recording) for answer in answers]
        context.clear_answers()
        return Reply(ReplyType.array, replies)

    def _record(self, statement: bytes) -> None:
        with self._lock:
            self._aof_buffer += _SIZE.pack(len(statement))
            self._aof_buffer += statement
            self._write_count += 1

    def _serialize(self) -> bytes:
        return b"".join(database.serialize() for database in self._databases)

    def is_writable(self) -> bool:
        """Advance the one-second clock and stage a snapshot or the pending log for writing."""
        self._seconds += 1
        with self._lock:
            if self._write_buffer:
                return False
            if (
                (self._seconds >= 900 and self._write_count > 1)
                or (self._seconds >= 300 and self._write_count > 10)
                or (self._seconds >= 60 and self._write_count > 10000)
            ):
                self._seconds = 0
                self._aof_buffer.clear()
                self._write_count = 0
                self._write_buffer = self._serialize()
                return True
            if self._aof_buffer:
                self._write_buffer = bytes(self._aof_buffer)
                self._aof_buffer.clear()
                return True
        return False

    def can_truncate(self) -> bool:
        """Whether the staged data is a fresh snapshot that replaces the file."""
        return self._seconds == 0 and bool(self._write_buffer)

    def write(self) -> int:
        """Write the staged data, replacing the file for a snapshot; return the byte count."""
        mode = "wb" if self.can_truncate() else "ab"
        try:
            with open(self.path, mode) as file:
                file.write(self._write_buffer)
        except OSError as error:
            raise LoggedError(Log(Level.error, _describe(error))) from error
        return len(self._write_buffer)

    def wrote(self) -> None:
        """Drop the staged data once it has been written."""
        self._write_buffer = b""