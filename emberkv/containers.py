"""Hash and list commands over a skip list of entries."""

from __future__ import annotations

import re
import threading
from collections import deque
from typing import Iterator, Optional

from .entry import Entry, EntryType
from .reply import Reply, ReplyType
from .skiplist import SkipList

WRONG_TYPE = "WRONGTYPE Operation against a key holding the wrong kind of value"
WRONG_INTEGER = "ERR value is not an integer or out of range"

_LONG_MIN = -(2**63)
_LONG_MAX = 2**63 - 1
_LEADING_INTEGER = re.compile(r"[ \t\n\v\f\r]*([+-]?[0-9]+)", re.ASCII)


def _stol(text: str) -> int:
    """Parse the leading signed integer of text, as a 64-bit value."""
    match = _LEADING_INTEGER.match(text)
    if match is None:
        raise ValueError(f"not an integer: {text!r}")
    value = int(match.group(1))
    if not _LONG_MIN <= value <= _LONG_MAX:
        raise OverflowError(f"integer out of range: {text!r}")
    return value


def _is_integer(text: str) -> bool:
    try:
        _stol(text)
    except ValueError:
        return False
    return True


def _split_once(statement: str) -> tuple[str, str]:
    """Split at the first space; without one, both halves are the whole statement."""
    space = statement.find(" ")
    if space < 0:
        return statement, statement
    return statement[:space], statement[space + 1:]


def _words(text: str) -> list[str]:
    return text.split(" ") if text else []


def _pairs(text: str) -> Iterator[tuple[str, str]]:
    """Yield space separated (first, second) pairs until the text runs out."""
    while text:
        space = text.find(" ")
        if space < 0:
            first = text
        else:
            first, text = text[:space], text[space + 1:]
        space = text.find(" ")
        if space < 0:
            second, text = text, ""
        else:
            second, text = text[:space], text[space + 1:]
        yield first, second


def _integer(value: int) -> Reply:
    return Reply(ReplyType.integer, value)


def _string(value: str) -> Reply:
    return Reply(ReplyType.string, value)


def _nil() -> Reply:
    return Reply(ReplyType.nil, 0)


def _error(message: str) -> Reply:
    return Reply(ReplyType.error, message)


def _array(replies: list[Reply]) -> Reply:
    return Reply(ReplyType.array, replies)


class HashListCommands:
    """Hash and list commands; each takes the statement after the command word."""

    def __init__(self) -> None:
        self.skip_list = SkipList()
        self.lock = threading.RLock()

    def _find(self, key: str) -> Optional[Entry]:
        return self.skip_list.find(key)

    def hdel(self, statement: str) -> Reply:
        """Remove fields from a hash and count those that existed."""
        key, rest = _split_once(statement)
        fields = _words(rest)
        with self.lock:
            entry = self._find(key)
            if entry is None:
                return _integer(0)
            if entry.type is not EntryType.hash:
                return _error(WRONG_TYPE)
            removed = [name for name in fields if entry.value.pop(name, None) is not None]
        return _integer(len(removed))

    def hexists(self, statement: str) -> Reply:
        """Report 1 if the field exists in the hash, else 0."""
        key, name = _split_once(statement)
        with self.lock:
            entry = self._find(key)
            if entry is None:
                return _integer(0)
            if entry.type is not EntryType.hash:
                return _error(WRONG_TYPE)
            return _integer(1 if name in entry.value else 0)

    def hget(self, statement: str) -> Reply:
        """Return the value of a hash field, or nil."""
        key, name = _split_once(statement)
        with self.lock:
            entry = self._find(key)
            if entry is None:
                return _nil()
            if entry.type is not EntryType.hash:
                return _error(WRONG_TYPE)
            if name not in entry.value:
                return _nil()
            return _string(entry.value[name])

    def hgetall(self, statement: str) -> Reply:
        """Return fields and values of a hash, interleaved."""
        with self.lock:
            entry = self._find(statement)
            if entry is None:
                return _array([])
            if entry.type is not EntryType.hash:
                return _error(WRONG_TYPE)
            replies = [
                reply
                for name, value in entry.value.items()
                for reply in (_string(name), _string(value))
            ]
        return _array(replies)

    def hincrby(self, statement: str) -> Reply:
        """Add an integer to a hash field, creating hash and field as needed."""
        key, rest = _split_once(statement)
        name, amount_text = _split_once(rest)
        amount = _stol(amount_text)
        with self.lock:
            entry = self._find(key)
            if entry is None:
                value = str(amount)
                self.skip_list.insert(Entry(key, {name: value}))
            elif entry.type is not EntryType.hash:
                return _error(WRONG_TYPE)
            elif name in entry.value:
                current = entry.value[name]
                if not _is_integer(current):
                    return _error(WRONG_INTEGER)
                value = str(_stol(current) + amount)
                entry.value[name] = value
            else:
                value = str(amount)
                entry.value[name] = value
        return _integer(_stol(value))

    def hkeys(self, statement: str) -> Reply:
        """Return the field names of a hash."""
        with self.lock:
            entry = self._find(statement)
            if entry is None:
                return _array([])
            if entry.type is not EntryType.hash:
                return _error(WRONG_TYPE)
            return _array([_string(name) for name in entry.value])

    def hlen(self, statement: str) -> Reply:
        """Return the number of fields in a hash."""
        with self.lock:
            entry = self._find(statement)
            if entry is None:
                return _integer(0)
            if entry.type is not EntryType.hash:
                return _error(WRONG_TYPE)
            return _integer(len(entry.value))

    def hset(self, statement: str) -> Reply:
        """Set field/value pairs in a hash and count the fields newly added."""
        key, rest = _split_once(statement)
        pairs = list(_pairs(rest))
        with self.lock:
            entry = self._find(key)
            if entry is None:
                new_hash: dict[str, str] = {}
                for name, value in pairs:
                    new_hash.setdefault(name, value)
                self.skip_list.insert(Entry(key, new_hash))
                return _integer(len(new_hash))
            if entry.type is not EntryType.hash:
                return _error(WRONG_TYPE)
            added = 0
            for name, value in pairs:
                if name not in entry.value:
                    added += 1
                entry.value[name] = value
        return _integer(added)

    def hvals(self, statement: str) -> Reply:
        """Return the values of a hash."""
        with self.lock:
            entry = self._find(statement)
            if entry is None:
                return _array([])
            if entry.type is not EntryType.hash:
                return _error(WRONG_TYPE)
            return _array([_string(value) for value in entry.value.values()])

    def lindex(self, statement: str) -> Reply:
        """Return the list element at an index; negative indexes count from the end."""
        key, index_text = _split_once(statement)
        index = _stol(index_text)
        with self.lock:
            entry = self._find(key)
            if entry is None:
                return _nil()
            if entry.type is not EntryType.list:
                return _error(WRONG_TYPE)
            size = len(entry.value)
            if index < 0:
                index += size
            if not 0 <= index < size:
                return _nil()
            return _string(entry.value[index])

    def llen(self, statement: str) -> Reply:
        """Return the length of a list."""
        with self.lock:
            entry = self._find(statement)
            if entry is None:
                return _integer(0)
            if entry.type is not EntryType.list:
                return _error(WRONG_TYPE)
            return _integer(len(entry.value))

    def lpop(self, statement: str) -> Reply:
        """Remove and return the first element of a list; an empty element reads as nil."""
        value = ""
        with self.lock:
            entry = self._find(statement)
            if entry is not None:
                if entry.type is not EntryType.list:
                    return _error(WRONG_TYPE)
                if entry.value:
                    value = entry.value.popleft()
        return _string(value) if value else _nil()

    def lpush(self, statement: str) -> Reply:
        """Push elements onto the head of a list, creating it if needed."""
        key, rest = _split_once(statement)
        elements = _words(rest)
        with self.lock:
            entry = self._find(key)
            if entry is None:
                new_list: deque[str] = deque()
                new_list.extendleft(elements)
                self.skip_list.insert(Entry(key, new_list))
                return _integer(len(new_list))
            if entry.type is not EntryType.list:
                return _error(WRONG_TYPE)
            entry.value.extendleft(elements)
            return _integer(len(entry.value))

    def lpushx(self, statement: str) -> Reply:
        """Push elements onto the head of an existing list only."""
        key, rest = _split_once(statement)
        elements = _words(rest)
        with self.lock:
            entry = self._find(key)
            if entry is None:
                return _integer(0)
            if entry.type is not EntryType.list:
                return _error(WRONG_TYPE)
            entry.value.extendleft(elements)
            return _integer(len(entry.value))