from __future__ import annotations

from typing import Protocol

from chat_sync.application.dto.page import Page
from chat_sync.domain.entities.message import Message
from chat_sync.domain.value_objects.ids import ConfirmedId, ConversationId


class Transport(Protocol):
    """Request/response side of the messaging API.

    Every method raises ``TransportError`` on failure.
    """

    async def fetch_page(
        self,
        conversation_id: ConversationId,
        cursor: str | None = None,
    ) -> Page: ...

    async def send_message(
        self,
        conversation_id: ConversationId,
        content: str,
    ) -> Message | None: ...

    async def mark_read(self, message_id: ConfirmedId) -> None: ...
