from __future__ import annotations

from typing import Protocol, Sequence

from chat_sync.domain.entities.message import Message
from chat_sync.domain.value_objects.enums import NoticeKind
from chat_sync.domain.value_objects.ids import ConfirmedId, TemporaryId


class Renderer(Protocol):
    def on_messages_changed(self, messages: Sequence[Message]) -> None: ...

    def on_identity_migrated(self, old_id: TemporaryId, new_id: ConfirmedId) -> None: ...

    def on_scroll_anchor_adjust(self, delta: int) -> None:
        """``delta`` is the number of messages prepended above the anchor."""
        ...

    def on_notice(self, kind: NoticeKind, text: str) -> None: ...
