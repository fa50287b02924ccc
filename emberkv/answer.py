"""A client statement sent to the server."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class Answer:
    """A raw command line as typed by a client."""

    statement: str

    @classmethod
    def from_bytes(cls, data: bytes) -> Answer:
        """Decode a statement from its wire form."""
        return cls(bytes(data).decode("utf-8", errors="surrogateescape"))

    def serialize(self) -> bytes:
        """Encode the statement for the wire."""
        return self.statement.encode("utf-8", errors="surrogateescape")