"""One numbered keyspace and the key and string commands it answers."""

from __future__ import annotations

import re
import struct
from contextlib import ExitStack
from typing import Sequence

from .containers import (
    WRONG_INTEGER,
    WRONG_TYPE,
    HashListCommands,
    _is_integer,
    _pairs,
    _split_once,
    _stol,
    _words,
)
from .entry import Entry, EntryType
from .reply import Reply, ReplyType
from .skiplist import SkipList

OK = "OK"

_SIZE = struct.Struct("<Q")
_ULONG_MAX = 2**64 - 1
_LEADING_UNSIGNED = re.compile(r"[ \t\n\v\f\r]*\+?([0-9]+)", re.ASCII)

_TYPE_NAMES = {
    EntryType.string: "string",
    EntryType.hash: "hash",
    EntryType.list: "list",
    EntryType.set: "set",
    EntryType.sorted_set: "zset",
}


def _stoul(text: str) -> int:
    """Parse the leading unsigned integer of text, as a 64-bit value."""
    match = _LEADING_UNSIGNED.match(text)
    if match is None:
        raise ValueError(f"not an unsigned integer: {text!r}")
    value = int(match.group(1))
    if value > _ULONG_MAX:
        raise OverflowError(f"integer out of range: {text!r}")
    return value


def _integer(value: int) -> Reply:
    return Reply(ReplyType.integer, value)


def _status(text: str) -> Reply:
    return Reply(ReplyType.status, text)


def _string(value: str) -> Reply:
    return Reply(ReplyType.string, value)


def _nil() -> Reply:
    return Reply(ReplyType.nil, 0)


def _error(message: str) -> Reply:
    return Reply(ReplyType.error, message)


class Database(HashListCommands):
    """A keyspace holding entries in key order; commands take the text after the command word."""

    def __init__(self, index: int, data: bytes = b"") -> None:
        super().__init__()
        self.index = index
        self.skip_list = SkipList.from_bytes(data)

    def serialize(self) -> bytes:
        """Encode the keyspace as its size followed by its entries."""
        with self.lock:
            body = self.skip_list.serialize()
        return _SIZE.pack(len(body)) + body

    def flushdb(self) -> Reply:
        """Remove every key."""
        with self.lock:
            self.skip_list.clear()
        return _status(OK)

    def delete(self, statement: str) -> Reply:
        """Remove the given keys and count those that existed."""
        keys = _words(statement)
        with self.lock:
            count = sum(1 for key in keys if self.skip_list.erase(key))
        return _integer(count)

    def exists(self, statement: str) -> Reply:
        """Count how many of the given keys exist; repeats count again."""
        keys = _words(statement)
        with self.lock:
            count = sum(1 for key in keys if self.skip_list.find(key) is not None)
        return _integer(count)

    def move(self, databases: Sequence[Database], statement: str) -> Reply:
        """Move a key to another database if it is absent there."""
        key, target_text = _split_once(statement)
        target = databases[_stoul(target_text)]
        success = False
        with ExitStack() as stack:
            for database in sorted({id(self): self, id(target): target}.values(), key=id):
                stack.enter_context(database.lock)
            entry = self.skip_list.find(key)
            if entry is not None and target.skip_list.find(key) is None:
                self.skip_list.erase(key)
                target.skip_list.insert(entry)
                success = True
        return _integer(1 if success else 0)

    def rename(self, statement: str) -> Reply:
        """Give a key a new name, replacing whatever held that name."""
        key, new_key = _split_once(statement)
        with self.lock:
            entry = self.skip_list.find(key)
            if entry is None:
                return _error("ERR no such key")
            self.skip_list.erase(key)
            entry.key = new_key
            self.skip_list.insert(entry)
        return _status(OK)

    def renamenx(self, statement: str) -> Reply:
        """Rename a key only when the new name is free."""
        key, new_key = _split_once(statement)
        success = False
        with self.lock:
            entry = self.skip_list.find(key)
            if entry is not None and self.skip_list.find(new_key) is None:
                self.skip_list.erase(key)
                entry.key = new_key
                self.skip_list.insert(entry)
                success = True
        return _integer(1 if success else 0)

    def type(self, statement: str) -> Reply:
        """Name the kind of value stored under a key, or none."""
        with self.lock:
            entry = self.skip_list.find(statement)
            name = "none" if entry is None else _TYPE_NAMES[entry.type]
        return _status(name)

    def set(self, statement: str) -> Reply:
        """Store a string value under a key."""
        key, value = _split_once(statement)
        entry = Entry(key, value)
        with self.lock:
            self.skip_list.insert(entry)
        return _status(OK)

    def get(self, statement: str) -> Reply:
        """Return the string stored under a key, or nil."""
        with self.lock:
            entry = self.skip_list.find(statement)
            if entry is None:
                return _nil()
            if entry.type is not EntryType.string:
                return _error(WRONG_TYPE)
            return _string(entry.value)

    def getrange(self, statement: str) -> Reply:
        """Return the substring between two inclusive offsets; negatives count from the end."""
        key, rest = _split_once(statement)
        start_text, end_text = _split_once(rest)
        start = _stol(start_text)
        end = _stol(end_text)
        value = ""
        with self.lock:
            entry = self.skip_list.find(key)
            if entry is not None:
                if entry.type is not EntryType.string:
                    return _error(WRONG_TYPE)
                text = entry.value
                size = len(text)
                if start < 0:
                    start += size
                start = max(start, 0)
                if end < 0:
                    end += size
                end = min(end + 1, size)
                if start < size and end > 0 and start < end:
                    value = text[start:end]
        return _string(value)

    def getbit(self, statement: str) -> Reply:
        """Return the bit at an offset of a string; past the end it reads as 0."""
        key, offset_text = _split_once(statement)
        offset = _stoul(offset_text)
        bit = 0
        with self.lock:
            entry = self.skip_list.find(key)
            if entry is not None:
                if entry.type is not EntryType.string:
                    return _error(WRONG_TYPE)
                index = offset // 8
                if index < len(entry.value):
                    bit = ord(entry.value[index]) >> offset % 8 & 1
        return _integer(bit)

    def mget(self, statement: str) -> Reply:
        """Return the strings of several keys; missing or non-string keys give nil."""
        keys = _words(statement)
        replies = []
        with self.lock:
            for key in keys:
                entry = self.skip_list.find(key)
                if entry is not None and entry.type is EntryType.string:
                    replies.append(_string(entry.value))
                else:
                    replies.append(_nil())
        return Reply(ReplyType.array, replies)

    def setbit(self, statement: str) -> Reply:
        """Set or clear the bit at an offset, growing the string; return the old bit."""
        key, rest = _split_once(statement)
        offset_text, value_text = _split_once(rest)
        offset = _stoul(offset_text)
        index, mask = offset // 8, 1 << offset % 8
        turn_on = value_text == "1"
        old_bit = 0
        with self.lock:
            entry = self.skip_list.find(key)
            if entry is None:
                code = mask if turn_on else 0
                self.skip_list.insert(Entry(key, "\0" * index + chr(code)))
            elif entry.type is not EntryType.string:
                return _error(WRONG_TYPE)
            else:
                text = entry.value
                if index >= len(text):
                    text = text.ljust(index + 1, "\0")
                code = ord(text[index])
                old_bit = 1 if code & mask else 0
                code = code | mask if turn_on else code & ~mask
                entry.value = text[:index] + chr(code) + text[index + 1:]
        return _integer(old_bit)

    def setnx(self, statement: str) -> Reply:
        """Store a string only when the key is free."""
        key, value = _split_once(statement)
        success = False
        with self.lock:
            if self.skip_list.find(key) is None:
                self.skip_list.insert(Entry(key, value))
                success = True
        return _integer(1 if success else 0)

    def setrange(self, statement: str) -> Reply:
        """Overwrite part of a string from an offset, padding with NUL; return the new length."""
        key, rest = _split_once(statement)
        offset_text, value = _split_once(rest)
        offset = _stoul(offset_text)
        with self.lock:
            entry = self.skip_list.find(key)
            if entry is None:
                new_value = "\0" * offset + value
                self.skip_list.insert(Entry(key, new_value))
                return _integer(len(new_value))
            if entry.type is not EntryType.string:
                return _error(WRONG_TYPE)
            text = entry.value.ljust(offset, "\0")
            entry.value = text[:offset] + value + text[offset + len(value):]
            return _integer(len(entry.value))

    def strlen(self, statement: str) -> Reply:
        """Return the length of a string, 0 for a missing key."""
        with self.lock:
            entry = self.skip_list.find(statement)
            if entry is None:
                return _integer(0)
            if entry.type is not EntryType.string:
                return _error(WRONG_TYPE)
            return _integer(len(entry.value))

    def mset(self, statement: str) -> Reply:
        """Store several key/value pairs."""
        entries = [Entry(key, value) for key, value in _pairs(statement)]
        with self.lock:
            for entry in entries:
                self.skip_list.insert(entry)
        return _status(OK)

    def msetnx(self, statement: str) -> Reply:
        """Store several pairs only if none of the keys exists; return how many were stored."""
        entries = [Entry(key, value) for key, value in _pairs(statement)]
        with self.lock:
            if any(self.skip_list.find(entry.key) is not None for entry in entries):
                entries = []
            for entry in entries:
                self.skip_list.insert(entry)
        return _integer(len(entries))

    def incr(self, statement: str) -> Reply:
        """Add one to an integer string."""
        return self._crement(statement, 1, True)

    def incrby(self, statement: str) -> Reply:
        """Add an amount to an integer string."""
        key, amount_text = _split_once(statement)
        return self._crement(key, _stol(amount_text), True)

    def decr(self, statement: str) -> Reply:
        """Subtract one from an integer string."""
        return self._crement(statement, 1, False)

    def decrby(self, statement: str) -> Reply:
        """Subtract an amount from an integer string."""
        key, amount_text = _split_once(statement)
        return self._crement(key, _stol(amount_text), False)

    def append(self, statement: str) -> Reply:
        """Append to a string, creating it if needed; return the new length."""
        key, value = _split_once(statement)
        with self.lock:
            entry = self.skip_list.find(key)
            if entry is None:
                self.skip_list.insert(Entry(key, value))
                return _integer(len(value))
            if entry.type is not EntryType.string:
                return _error(WRONG_TYPE)
            entry.value += value
            return _integer(len(entry.value))

    def _crement(self, key: str, amount: int, is_plus: bool) -> Reply:
        # A missing key is created holding the amount itself, whatever the direction.
        with self.lock:
            entry = self.skip_list.find(key)
            if entry is None:
                number = amount
                self.skip_list.insert(Entry(key, str(number)))
                return _integer(number)
            if entry.type is not EntryType.string:
                return _error(WRONG_TYPE)
            if not _is_integer(entry.value):
                return _error(WRONG_INTEGER)
            current = _stol(entry.value)
            number = current + amount if is_plus else current - amount
            entry.value = str(number)
            return _integer(number)