"""Keyed values of the five supported kinds and their binary form."""

from __future__ import annotations

import enum
import struct
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Optional

_TYPE = struct.Struct("<B")
_SIZE = struct.Struct("<Q")
_SCORE = struct.Struct("<d")


class EntryType(enum.IntEnum):
    """Kind of value an entry holds."""

    string = 0
    hash = 1
    list = 2
    set = 3
    sorted_set = 4


@dataclass(frozen=True, order=True)
class SortedSetElement:
    """A member of a sorted set; members are ordered and told apart by score alone."""

    key: str = field(compare=False)
    score: float


def _encode(text: str) -> bytes:
    return text.encode("utf-8", errors="surrogateescape")


def _decode(data: bytes) -> str:
    return data.decode("utf-8", errors="surrogateescape")


class _Reader:
    """Sequential reader over a byte string that rejects truncated input."""

    def __init__(self, data: bytes) -> None:
        self._data = data
        self._position = 0

    def __bool__(self) -> bool:
        return self._position < len(self._data)

    def take(self, count: int) -> bytes:
        end = self._position + count
        if end > len(self._data):
            raise ValueError("entry data is truncated")
        chunk = self._data[self._position:end]
        self._position = end
        return chunk

    def rest(self) -> bytes:
        return self.take(len(self._data) - self._position)

    def unpack(self, layout: struct.Struct) -> Any:
        (value,) = layout.unpack(self.take(layout.size))
        return value

    def text(self) -> str:
        return _decode(self.take(self.unpack(_SIZE)))


def _infer_type(value: Any) -> EntryType:
    if isinstance(value, str):
        return EntryType.string
    if isinstance(value, dict):
        return EntryType.hash
    if isinstance(value, (deque, list, tuple)):
        return EntryType.list
    if isinstance(value, (set, frozenset)):
        if any(isinstance(element, SortedSetElement) for element in value):
            return EntryType.sorted_set
        return EntryType.set
    raise TypeError(f"unsupported entry value: {type(value).__name__}")


def _normalise(value: Any, entry_type: EntryType) -> Any:
    if entry_type is EntryType.string:
        if not isinstance(value, str):
            raise TypeError("a string entry needs a str value")
        return value
    if entry_type is EntryType.hash:
        return dict(value)
    if entry_type is EntryType.list:
        return deque(value)
    if entry_type is EntryType.set:
        return set(value)
    elements: set[SortedSetElement] = set()
    for element in value:
        if not isinstance(element, SortedSetElement):
            raise TypeError("a sorted set entry needs SortedSetElement members")
        elements.add(element)
    return elements


@dataclass
class Entry:
    """A key together with its value and the kind of that value."""

    key: str
    value: Any = ""
    type: Optional[EntryType] = None

    def __post_init__(self) -> None:
        entry_type = _infer_type(self.value) if self.type is None else EntryType(self.type)
        self.type = entry_type
        self.value = _normalise(self.value, entry_type)

    @classmethod
    def from_bytes(cls, data: bytes) -> Entry:
        """Decode an entry from its binary form."""
        reader = _Reader(bytes(data))
        entry_type = EntryType(reader.unpack(_TYPE))
        key = reader.text()

        value: Any
        if entry_type is EntryType.string:
            value = _decode(reader.rest())
        elif entry_type is EntryType.hash:
            value = {}
            while reader:
                field_name = reader.text()
                value[field_name] = reader.text()
        elif entry_type is EntryType.list:
            value = deque()
            while reader:
                value.append(reader.text())
        elif entry_type is EntryType.set:
            value = set()
            while reader:
                value.add(reader.text())
        else:
            value = set()
            while reader:
                member = reader.text()
                value.add(SortedSetElement(member, reader.unpack(_SCORE)))

        return cls(key, value, entry_type)

    def serialize(self) -> bytes:
        """Encode the entry: type byte, sized key, then the value."""
        key = _encode(self.key)
        parts = [_TYPE.pack(int(self.type)), _SIZE.pack(len(key)), key]

        if self.type is EntryType.string:
            parts.append(_encode(self.value))
        elif self.type is EntryType.hash:
            for field_name, field_value in self.value.items():
                parts.extend(_sized(field_name))
                parts.extend(_sized(field_value))
        elif self.type in (EntryType.list, EntryType.set):
            for element in self.value:
                parts.extend(_sized(element))
        else:
            for element in sorted(self.value):
                parts.extend(_sized(element.key))
                parts.append(_SCORE.pack(element.score))

        return b"".join(parts)


def _sized(text: str) -> tuple[bytes, bytes]:
    encoded = _encode(text)
    return _SIZE.pack(len(encoded)), encoded