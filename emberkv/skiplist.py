"""Ordered key index built as a probabilistic skip list."""

from __future__ import annotations

import random
import struct
from typing import Iterator, Optional

from .entry import Entry

_MAX_LEVEL = 32
_SIZE = struct.Struct("<Q")


class _Node:
    __slots__ = ("entry", "forward")

    def __init__(self, entry: Optional[Entry], height: int) -> None:
        self.entry = entry
        self.forward: list[Optional[_Node]] = [None] * height


class SkipList:
    """Entries kept in key order with expected logarithmic lookup."""

    def __init__(self) -> None:
        self._head = _Node(None, _MAX_LEVEL)
        self._level = 1
        self._size = 0
        self._random = random.Random()

    @classmethod
    def from_bytes(cls, data: bytes) -> SkipList:
        """Rebuild a skip list from a sequence of size-prefixed entries."""
        data = bytes(data)
        skip_list = cls()
        position = 0
        while position < len(data):
            if len(data) - position < _SIZE.size:
                raise ValueError("entry size is truncated")
            (size,) = _SIZE.unpack_from(data, position)
            position += _SIZE.size
            if len(data) - position < size:
                raise ValueError("entry is truncated")
            skip_list.insert(Entry.from_bytes(data[position:position + size]))
            position += size
        return skip_list

    def _random_height(self) -> int:
        height = 1
        while height < _MAX_LEVEL and self._random.getrandbits(1) == 0:
            height += 1
        return height

    def _predecessors(self, key: str) -> list[_Node]:
        update = [self._head] * _MAX_LEVEL
        node = self._head
        for level in reversed(range(self._level)):
            while (following := node.forward[level]) is not None and following.entry.key < key:
                node = following
            update[level] = node
        return update

    def find(self, key: str) -> Optional[Entry]:
        """Return the entry stored under key, or None."""
        node = self._head
        for level in reversed(range(self._level)):
            while (following := node.forward[level]) is not None and following.entry.key < key:
                node = following
        candidate = node.forward[0]
        if candidate is not None and candidate.entry.key == key:
            return candidate.entry
        return None

    def insert(self, entry: Entry) -> None:
        """Store entry under its key, replacing any entry already there."""
        key = entry.key
        update = self._predecessors(key)
        candidate = update[0].forward[0]
        if candidate is not None and candidate.entry.key == key:
            candidate.entry = entry
            return

        height = self._random_height()
        self._level = max(self._level, height)
        node = _Node(entry, height)
        for level in range(height):
            node.forward[level] = update[level].forward[level]
            update[level].forward[level] = node
        self._size += 1

    def erase(self, key: str) -> bool:
        """Remove the entry under key; report whether one was there."""
        update = self._predecessors(key)
        candidate = update[0].forward[0]
        if candidate is None or candidate.entry.key != key:
            return False

        for level, following in enumerate(candidate.forward):
            update[level].forward[level] = following
        while self._level > 1 and self._head.forward[self._level - 1] is None:
            self._level -= 1
        self._size -= 1
        return True

    def clear(self) -> None:
        """Remove every entry."""
        self._head.forward = [None] * _MAX_LEVEL
        self._level = 1
        self._size = 0

    def serialize(self) -> bytes:
        """Encode all entries in key order, each prefixed by its size."""
        parts = []
        for entry in self:
            encoded = entry.serialize()
            parts.append(_SIZE.pack(len(encoded)))
            parts.append(encoded)
        return b"".join(parts)

    def __iter__(self) -> Iterator[Entry]:
        node = self._head.forward[0]
        while node is not None:
            yield node.entry
            node = node.forward[0]

    def __len__(self) -> int:
        return self._size