from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterable

from chat_sync.domain.entities.message import Message
from chat_sync.domain.entities.read_state import ReadState
from chat_sync.domain.value_objects.ids import ConfirmedId, UserId
from chat_sync.services.message_store import MessageStore

logger = logging.getLogger(__name__)


class ReadReceiptTracker:
    """Decides which received messages need a mark-as-read call.

    An id handed out by ``observe`` stays in flight until ``confirm`` or
    ``abandon``; while in flight it is never handed out again.
    """

    def __init__(self, local_user_id: UserId, peer_id: UserId, store: MessageStore) -> None:
        self._local_user_id = local_user_id
        self._peer_id = peer_id
        self._store = store
        self._states: dict[ConfirmedId, ReadState] = {}

    def observe(self, messages: Iterable[Message]) -> list[ConfirmedId]:
        due: list[ConfirmedId] = []
        for message in messages:
            if not self._needs_mark(message):
                continue
            assert isinstance(message.id, ConfirmedId)
            self._states[message.id] = ReadState(message_id=message.id, in_flight=True)
            due.append(message.id)
        return due

    def confirm(self, message_id: ConfirmedId) -> bool:
        """Record a successful mark. Returns True if the store changed."""
        self._states[message_id] = ReadState(message_id=message_id, read=True)
        return self._store.mark_read(message_id)

    def abandon(self, message_id: ConfirmedId) -> None:
        state = self._states.get(message_id)
        if state is not None:
            self._states[message_id] = replace(state, in_flight=False)
        logger.debug("Read mark for %s abandoned, will retry on next pass", message_id)

    def is_in_flight(self, message_id: ConfirmedId) -> bool:
        state = self._states.get(message_id)
        return state is not None and state.in_flight

    def clear(self) -> None:
        self._states.clear()

    def _needs_mark(self, message: Message) -> bool:
        if not isinstance(message.id, ConfirmedId):
            return False
        if message.read:
            return False
        if message.receiver_id != self._local_user_id or message.sender_id != self._peer_id:
            return False
        state = self._states.get(message.id)
        return state is None or not (state.in_flight or state.read)
