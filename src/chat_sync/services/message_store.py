"""Ordered, deduplicated message collection of one conversation."""
from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, replace
from datetime import timedelta
from typing import Callable, Iterable

from chat_sync.domain.entities.message import Message, PendingMessage
from chat_sync.domain.value_objects.enums import DeliveryState
from chat_sync.domain.value_objects.ids import (
    ConfirmedId,
    ConversationId,
    MessageId,
    TemporaryId,
)

logger = logging.getLogger(__name__)

MigrationListener = Callable[[TemporaryId, ConfirmedId], None]

# how much older than a local send its server copy may be stamped
ADOPTION_WINDOW = timedelta(seconds=30)


@dataclass(slots=True)
class _Entry:
    seq: int
    message: Message


class MessageStore:
    """Merges confirmed and pending messages into one timestamp-ordered view.

    Merging is idempotent and independent of arrival order: the resulting
    sequence is fully determined by identity and timestamp. Temp ids that
    were migrated to a server id are remembered as aliases so that late
    updates addressed to the temp id cannot resurrect a second entry.

    Copies without a server id are reconciled by content: a send that was
    accepted without an id claims the server's copy of it, and a live copy
    pushed before it was stored is adopted by the stored copy. Both only
    match a copy stamped no earlier than ``adoption_window`` before the
    message it replaces.
    """

    def __init__(
        self,
        conversation_id: ConversationId,
        on_migrate: MigrationListener | None = None,
        *,
        adoption_window: timedelta = ADOPTION_WINDOW,
    ) -> None:
        self._conversation_id = conversation_id
        self._on_migrate = on_migrate
        self._adoption_window = adoption_window
        self._entries: dict[MessageId, _Entry] = {}
        self._aliases: dict[TemporaryId, MessageId] = {}
        self._seq = itertools.count()
        self._version = 0
        self._ordered: list[Message] | None = None
        self._added: list[MessageId] = []

    @property
    def conversation_id(self) -> ConversationId:
        return self._conversation_id

    @property
    def version(self) -> int:
        return self._version

    @property
    def last_added(self) -> list[Message]:
        """Messages the most recent ``merge`` inserted as new entries."""
        return [self._entries[k].message for k in self._added if k in self._entries]

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, message_id: object) -> bool:
        return self._resolve(message_id) in self._entries  # type: ignore[arg-type]

    def get(self, message_id: MessageId) -> Message | None:
        entry = self._entries.get(self._resolve(message_id))
        return entry.message if entry else None

    def messages(self) -> list[Message]:
        if self._ordered is None:
            entries = sorted(
                self._entries.values(),
                key=lambda e: (e.message.timestamp, e.seq),
            )
            self._ordered = [e.message for e in entries]
        return list(self._ordered)

    def merge(self, incoming: Iterable[Message | PendingMessage]) -> list[Message]:
        self._added = []
        for item in incoming:
            message = item.message if isinstance(item, PendingMessage) else item
            if message.conversation_id != self._conversation_id:
                logger.warning(
                    "Dropping message %s for conversation %s (store holds %s)",
                    message.id, message.conversation_id, self._conversation_id,
                )
                continue
            self._apply(message)
        return self.messages()

    def mark_read(self, message_id: MessageId) -> bool:
        """Set the read flag. Returns True if the store changed."""
        key = self._resolve(message_id)
        entry = self._entries.get(key)
        if entry is None or entry.message.read:
            return False
        entry.message = replace(entry.message, read=True)
        self._touch()
        return True

    def clear(self) -> None:
        self._entries.clear()
        self._aliases.clear()
        self._added = []
        self._touch()

    # -- internals --------------------------------------------------------

    def _resolve(self, message_id: MessageId) -> MessageId:
        while isinstance(message_id, TemporaryId) and message_id in self._aliases:
            message_id = self._aliases[message_id]
        return message_id

    def _touch(self) -> None:
        self._version += 1
        self._ordered = None

    def _apply(self, message: Message) -> None:
        if isinstance(message.id, TemporaryId):
            self._apply_temporary(message.id, message)
            return

        origin = message.client_id
        if origin is not None and origin in self._aliases:
            origin = None
        if origin is None and message.id not in self._entries:
            origin = self._find_adoptable(message)

        if origin is not None and origin in self._entries:
            self._migrate(origin, message)
        else:
            self._upsert(message.id, message)

    def _apply_temporary(self, temp_id: TemporaryId, message: Message) -> None:
        if temp_id in self._aliases:
            # the copy it was folded into is authoritative from now on
            return
        if not temp_id.local and temp_id not in self._entries:
            send = self._find_local_send(message)
            if send is not None:
                self._aliases[temp_id] = send
                logger.debug("Live copy %s folded into local send %s", temp_id, send)
                return
        self._upsert(temp_id, message)
        if temp_id.local and message.delivery_state is DeliveryState.SENT:
            self._claim_copy(temp_id)

    def _matches(self, candidate: Message, reference: Message) -> bool:
        return (
            candidate.sender_id == reference.sender_id
            and candidate.receiver_id == reference.receiver_id
            and candidate.content == reference.content
            and candidate.timestamp >= reference.timestamp - self._adoption_window
        )

    def _find_adoptable(self, message: Message) -> TemporaryId | None:
        """Oldest id-less entry this server copy confirms.

        Either a local send acknowledged without an id, or a live copy
        pushed before it was stored.
        """
        candidates = [
            (entry.seq, key)
            for key, entry in self._entries.items()
            if isinstance(key, TemporaryId)
            and (not key.local or entry.message.delivery_state is DeliveryState.SENT)
            and self._matches(message, entry.message)
        ]
        if not candidates:
            return None
        return min(candidates)[1]

    def _find_local_send(self, message: Message) -> TemporaryId | None:
        candidates = [
            (entry.seq, key)
            for key, entry in self._entries.items()
            if isinstance(key, TemporaryId)
            and key.local
            and entry.message.delivery_state is DeliveryState.SENT
            and self._matches(message, entry.message)
        ]
        if not candidates:
            return None
        return min(candidates)[1]

    def _claim_copy(self, temp_id: TemporaryId) -> None:
        """Fold an acknowledged local send into a server copy that arrived first."""
        local = self._entries[temp_id].message
        candidates = [
            (entry.seq, key)
            for key, entry in self._entries.items()
            if key != temp_id
            and (
                (isinstance(key, ConfirmedId) and entry.message.client_id is None)
                or (isinstance(key, TemporaryId) and not key.local)
            )
            and self._matches(entry.message, local)
        ]
        if not candidates:
            return
        key = min(candidates)[1]
        if isinstance(key, ConfirmedId):
            self._migrate(temp_id, self._entries[key].message)
            return
        live = self._entries.pop(key)
        entry = self._entries[temp_id]
        entry.seq = min(entry.seq, live.seq)
        self._aliases[key] = temp_id
        self._touch()
        logger.debug("Live copy %s folded into local send %s", key, temp_id)

    def _migrate(self, old_id: TemporaryId, message: Message) -> None:
        assert isinstance(message.id, ConfirmedId)
        local = self._entries.pop(old_id)
        existing = self._entries.get(message.id)
        base = existing.message if existing else local.message
        seq = min(local.seq, existing.seq) if existing else local.seq
        client_id = old_id if old_id.local else message.client_id
        merged = self._reconcile(base, replace(message, client_id=client_id))
        self._entries[message.id] = _Entry(seq=seq, message=merged)
        self._aliases[old_id] = message.id
        self._touch()
        logger.debug("Migrated message identity %s -> %s", old_id, message.id)
        if self._on_migrate is not None:
            self._on_migrate(old_id, message.id)

    def _upsert(self, key: MessageId, message: Message) -> None:
        entry = self._entries.get(key)
        if entry is None:
            self._entries[key] = _Entry(seq=next(self._seq), message=message)
            self._added.append(key)
            self._touch()
            return
        merged = self._reconcile(entry.message, message)
        if merged != entry.message:
            entry.message = merged
            self._touch()

    @staticmethod
    def _reconcile(current: Message, incoming: Message) -> Message:
        return replace(
            incoming,
            read=current.read or incoming.read,
            client_id=incoming.client_id or current.client_id,
        )
