from __future__ import annotations

import logging
from typing import Sequence

from chat_sync.domain.entities.message import Message
from chat_sync.domain.value_objects.enums import DeliveryState, NoticeKind
from chat_sync.domain.value_objects.ids import ConfirmedId, MessageId, TemporaryId

logger = logging.getLogger(__name__)

_STATUS = {
    DeliveryState.PENDING: "sending",
    DeliveryState.SENT: "sent",
    DeliveryState.FAILED: "failed",
}


class LoggingRenderer:
    """Headless renderer: writes every newly seen message state to the log."""

    def __init__(self, local_user_id: int) -> None:
        self._local_user_id = local_user_id
        self._shown: dict[MessageId, tuple[str, bool]] = {}

    def on_messages_changed(self, messages: Sequence[Message]) -> None:
        if not messages:
            self._shown.clear()
            return
        for message in messages:
            status = _STATUS[message.delivery_state]
            state = (status, message.read)
            if self._shown.get(message.id) == state:
                continue
            self._shown[message.id] = state
            who = "me" if message.sender_id == self._local_user_id else f"user {message.sender_id}"
            logger.info(
                "[%s] %s: %s (%s%s)",
                message.timestamp.strftime("%H:%M"), who, message.content,
                status, ", read" if message.read else "",
            )

    def on_identity_migrated(self, old_id: TemporaryId, new_id: ConfirmedId) -> None:
        state = self._shown.pop(old_id, None)
        if state is not None:
            self._shown[new_id] = state

    def on_scroll_anchor_adjust(self, delta: int) -> None:
        logger.debug("Prepended %d older messages", delta)

    def on_notice(self, kind: NoticeKind, text: str) -> None:
        level = logging.ERROR if kind is NoticeKind.ERROR else logging.INFO
        logger.log(level, "%s", text)
