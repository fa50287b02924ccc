"""Server replies and their binary wire format."""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass
from typing import Union

_HEADER = struct.Struct("<QBB")
_INTEGER = struct.Struct("<q")
_SIZE = struct.Struct("<Q")

ReplyValue = Union[int, str, "list[Reply]"]


class ReplyType(enum.IntEnum):
    """Kind of value a reply carries."""

    nil = 0
    integer = 1
    error = 2
    status = 3
    string = 4
    array = 5


_TEXT_TYPES = (ReplyType.error, ReplyType.status, ReplyType.string)


@dataclass
class Reply:
    """A typed reply tagged with the client's database index and transaction state."""

    type: ReplyType
    value: ReplyValue = 0
    database_index: int = 0
    is_transaction: bool = False

    @classmethod
    def from_bytes(cls, data: bytes) -> Reply:
        """Decode a reply from its wire form."""
        data = bytes(data)
        if len(data) < _HEADER.size:
            raise ValueError("reply is shorter than its header")
        database_index, is_transaction, type_code = _HEADER.unpack_from(data)
        reply_type = ReplyType(type_code)
        body = data[_HEADER.size:]

        value: ReplyValue
        if reply_type is ReplyType.nil:
            value = 0
        elif reply_type is ReplyType.integer:
            if len(body) < _INTEGER.size:
                raise ValueError("integer reply is truncated")
            (value,) = _INTEGER.unpack_from(body)
        elif reply_type in _TEXT_TYPES:
            value = body.decode("utf-8", errors="surrogateescape")
        else:
            value = list(_decode_array(body))

        return cls(reply_type, value, database_index, bool(is_transaction))

    def serialize(self) -> bytes:
        """Encode the reply for the wire."""
        header = _HEADER.pack(self.database_index, int(self.is_transaction), int(self.type))
        if self.type is ReplyType.nil:
            return header
        if self.type is ReplyType.integer:
            try:
                return header + _INTEGER.pack(self.value)
            except struct.error as error:
                raise ValueError(f"integer out of range: {self.value!r}") from error
        if self.type in _TEXT_TYPES:
            return header + self.value.encode("utf-8", errors="surrogateescape")
        parts = [header]
        for reply in self.value:
            encoded = reply.serialize()
            parts.append(_SIZE.pack(len(encoded)))
            parts.append(encoded)
        return b"".join(parts)


def _decode_array(body: bytes):
    position = 0
    while position < len(body):
        if len(body) - position < _SIZE.size:
            raise ValueError("array element size is truncated")
        (size,) = _SIZE.unpack_from(body, position)
        position += _SIZE.size
        if len(body) - position < size:
            raise ValueError("array element is truncated")
        yield Reply.from_bytes(body[position:position + size])
        position += size