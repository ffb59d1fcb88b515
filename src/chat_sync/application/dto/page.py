from __future__ import annotations

from dataclasses import dataclass, field

from chat_sync.domain.entities.message import Message


@dataclass(frozen=True, slots=True)
class Page:
    """One page of history as returned by the transport.

    ``cursor`` marks the newest message of the page (forward boundary),
    ``next_cursor`` continues towards older messages and is ``None`` once
    the beginning of the conversation has been reached.
    """

    messages: list[Message] = field(default_factory=list)
    cursor: str | None = None
    next_cursor: str | None = None
