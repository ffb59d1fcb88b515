from __future__ import annotations

import logging
from dataclasses import replace

from chat_sync.application.exceptions import UnknownPendingId
from chat_sync.application.ports.clock import Clock, SystemClock
from chat_sync.domain.entities.message import Message, PendingMessage
from chat_sync.domain.value_objects.enums import DeliveryState
from chat_sync.domain.value_objects.ids import (
    ConversationId,
    TemporaryId,
    UserId,
    new_temp_id,
)

logger = logging.getLogger(__name__)


class PendingMessageTracker:
    """Lifecycle of messages sent from this client but not yet confirmed.

    Pending -> Sent on acknowledgment, Pending -> Failed on transport error.
    Failed messages are kept for user-initiated retry; a retry is a new
    ``create`` so the tracker never loops on its own.
    """

    def __init__(self, conversation_id: ConversationId, clock: Clock | None = None) -> None:
        self._conversation_id = conversation_id
        self._clock = clock or SystemClock()
        self._tracked: dict[TemporaryId, PendingMessage] = {}

    def create(self, content: str, sender_id: UserId, receiver_id: UserId) -> PendingMessage:
        temp_id = new_temp_id()
        pending = PendingMessage(
            temp_id=temp_id,
            message=Message(
                id=temp_id,
                conversation_id=self._conversation_id,
                sender_id=sender_id,
                receiver_id=receiver_id,
                content=content,
                timestamp=self._clock.now(),
                read=False,
                delivery_state=DeliveryState.PENDING,
            ),
        )
        self._tracked[temp_id] = pending
        logger.debug("Created pending message %s", temp_id)
        return pending

    def get(self, temp_id: TemporaryId) -> PendingMessage:
        pending = self._tracked.get(temp_id)
        if pending is None:
            raise UnknownPendingId(f"{temp_id} is not tracked")
        return pending

    def resolve(self, temp_id: TemporaryId, server_message: Message | None) -> Message:
        """Mark the send as acknowledged and return the reconciled message.

        Without a server message (accepted but not echoed) the temp identity
        is kept until the server's copy arrives through another path.
        """
        pending = self._outstanding(temp_id)
        if server_message is None:
            message = replace(pending.message, delivery_state=DeliveryState.SENT)
            self._tracked[temp_id] = PendingMessage(temp_id=temp_id, message=message)
        else:
            message = replace(
                server_message,
                conversation_id=self._conversation_id,
                delivery_state=DeliveryState.SENT,
                client_id=temp_id,
            )
            del self._tracked[temp_id]
        logger.debug("Resolved pending message %s as %s", temp_id, message.id)
        return message

    def fail(self, temp_id: TemporaryId) -> PendingMessage:
        pending = self._outstanding(temp_id)
        failed = PendingMessage(
            temp_id=temp_id,
            message=replace(pending.message, delivery_state=DeliveryState.FAILED),
        )
        self._tracked[temp_id] = failed
        return failed

    def outstanding(self) -> list[PendingMessage]:
        return [p for p in self._tracked.values() if p.delivery_state is DeliveryState.PENDING]

    def failed(self) -> list[PendingMessage]:
        return [p for p in self._tracked.values() if p.delivery_state is DeliveryState.FAILED]

    def clear(self) -> None:
        self._tracked.clear()

    def _outstanding(self, temp_id: TemporaryId) -> PendingMessage:
        pending = self.get(temp_id)
        if pending.delivery_state is not DeliveryState.PENDING:
            raise UnknownPendingId(f"{temp_id} has no outstanding send")
        return pending
