from __future__ import annotations

import itertools
import uuid
from dataclasses import dataclass
from typing import NewType, Union

ConversationId = NewType("ConversationId", int)
UserId = NewType("UserId", int)

# Shared process-wide so temp ids never repeat.
_sequence = itertools.count(1)


@dataclass(frozen=True, slots=True)
class TemporaryId:
    """Identity of a message the server has not assigned an id to yet.

    ``local`` ids belong to sends from this client; the others are given to
    live copies the server pushed before storing them.
    """

    token: str
    local: bool = True

    def __str__(self) -> str:
        return f"{'tmp' if self.local else 'live'}:{self.token}"


@dataclass(frozen=True, slots=True)
class ConfirmedId:
    """Server-assigned identity."""

    value: int | str

    def __str__(self) -> str:
        return str(self.value)


MessageId = Union[TemporaryId, ConfirmedId]


def new_temp_id(*, local: bool = True) -> TemporaryId:
    return TemporaryId(f"{next(_sequence)}-{uuid.uuid4().hex[:12]}", local=local)
