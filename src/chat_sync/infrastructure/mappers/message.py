from __future__ import annotations

from datetime import timezone
from typing import Any

from chat_sync.domain.entities.message import Message
from chat_sync.domain.value_objects.enums import DeliveryState
from chat_sync.domain.value_objects.ids import (
    ConfirmedId,
    ConversationId,
    MessageId,
    UserId,
    new_temp_id,
)
from chat_sync.infrastructure.http.schemas import MessagePayload


def has_server_id(payload: MessagePayload) -> bool:
    return payload.id not in (0, "")


def payload_to_entity(payload: MessagePayload, local_user_id: UserId) -> Message:
    """Map a wire message into the domain.

    A conversation is named after the peer, so when the payload does not
    carry one it is the party that is not the local user. Live copies are
    pushed before the server stores them and carry no id (0 or empty);
    they get a non-local temp id until the stored copy adopts them.
    """
    conversation_id = payload.conversation_id
    if conversation_id is None:
        conversation_id = (
            payload.receiver_id if payload.sender_id == local_user_id else payload.sender_id
        )
    timestamp = payload.timestamp
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    message_id: MessageId
    if has_server_id(payload):
        message_id = ConfirmedId(payload.id)
    else:
        message_id = new_temp_id(local=False)
    return Message(
        id=message_id,
        conversation_id=ConversationId(conversation_id),
        sender_id=UserId(payload.sender_id),
        receiver_id=UserId(payload.receiver_id),
        content=payload.content,
        timestamp=timestamp,
        read=payload.read,
        delivery_state=DeliveryState.SENT,
    )


def raw_to_entity(raw: dict[str, Any], local_user_id: UserId) -> Message:
    """Validate a raw live payload. Raises ``pydantic.ValidationError``."""
    return payload_to_entity(MessagePayload.model_validate(raw), local_user_id)
