from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from chat_sync.domain.value_objects.enums import DeliveryState
from chat_sync.domain.value_objects.ids import (
    ConfirmedId,
    ConversationId,
    MessageId,
    TemporaryId,
    UserId,
)


@dataclass(frozen=True, slots=True)
class Message:
    id: MessageId
    conversation_id: ConversationId
    sender_id: UserId
    receiver_id: UserId
    content: str
    timestamp: datetime
    read: bool = False
    delivery_state: DeliveryState = DeliveryState.SENT
    client_id: TemporaryId | None = None

    @property
    def is_confirmed(self) -> bool:
        return isinstance(self.id, ConfirmedId)


@dataclass(frozen=True, slots=True)
class PendingMessage:
    """A locally-originated message tracked under its temp id."""

    temp_id: TemporaryId
    message: Message

    @property
    def delivery_state(self) -> DeliveryState:
        return self.message.delivery_state
