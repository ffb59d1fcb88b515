from __future__ import annotations

from typing import Any, AsyncIterator, Protocol

from chat_sync.domain.value_objects.ids import ConversationId


class LiveSource(Protocol):
    def subscribe(self, conversation_id: ConversationId) -> AsyncIterator[dict[str, Any]]:
        """Yield raw update payloads until the connection ends.

        Raises ``TransportError`` when the connection cannot be established
        or breaks.
        """
        ...
