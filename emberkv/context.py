"""Per-client session state."""

from __future__ import annotations

from dataclasses import dataclass, field

from .answer import Answer


@dataclass
class Context:
    """Selected database, transaction flag and queued statements of one client."""

    database_index: int = 0
    is_transaction: bool = False
    answers: list[Answer] = field(default_factory=list)

    def add_answer(self, answer: Answer) -> None:
        """Queue a statement for a pending transaction."""
        self.answers.append(answer)

    def clear_answers(self) -> None:
        """Drop all queued statements."""
        self.answers.clear()