"""Orchestration of the per-conversation sync components.

The engine only sequences calls; ordering, dedup and cursor rules live in
the components it wires together. Every awaited result is checked against
the conversation generation it was issued for and dropped when the user
has moved on.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, NoReturn, TypeVar

from chat_sync.application.dto.events import UpdateEvent
from chat_sync.application.exceptions import (
    StaleResponse,
    TransportError,
    UnknownPendingId,
    ValidationError,
)
from chat_sync.application.ports.clock import Clock, SystemClock
from chat_sync.application.ports.renderer import Renderer
from chat_sync.application.ports.transport import Transport
from chat_sync.domain.entities.message import Message, PendingMessage
from chat_sync.domain.value_objects.cursor import encode_cursor
from chat_sync.domain.value_objects.enums import DeliveryState, NoticeKind, PaginationState
from chat_sync.domain.value_objects.ids import (
    ConfirmedId,
    ConversationId,
    TemporaryId,
    UserId,
)
from chat_sync.services.live_channel import LiveUpdateChannel
from chat_sync.services.message_store import MessageStore
from chat_sync.services.pagination import PaginationController
from chat_sync.services.pending_tracker import PendingMessageTracker
from chat_sync.services.read_receipts import ReadReceiptTracker

logger = logging.getLogger(__name__)

T = TypeVar("T")

ChannelFactory = Callable[[], LiveUpdateChannel]

HISTORY_START_TEXT = "Beginning of conversation"


@dataclass(eq=False)
class ConversationSession:
    """Everything owned by one conversation generation."""

    generation: int
    conversation_id: ConversationId
    store: MessageStore
    pagination: PaginationController
    pending: PendingMessageTracker
    receipts: ReadReceiptTracker
    channel: LiveUpdateChannel
    live_task: asyncio.Task[None] | None = None
    tasks: set[asyncio.Task[None]] = field(default_factory=set)


def _is_valid_id(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 1


class SyncEngine:
    def __init__(
        self,
        local_user_id: int,
        transport: Transport,
        renderer: Renderer,
        channel_factory: ChannelFactory,
        *,
        clock: Clock | None = None,
        max_content_length: int = 1000,
    ) -> None:
        if not _is_valid_id(local_user_id):
            raise ValidationError(f"invalid user id: {local_user_id!r}")
        self._local_user_id = UserId(local_user_id)
        self._transport = transport
        self._renderer = renderer
        self._channel_factory = channel_factory
        self._clock = clock or SystemClock()
        self._max_content_length = max_content_length
        self._generation = 0
        self._session: ConversationSession | None = None

    # -- read-only view ---------------------------------------------------

    @property
    def local_user_id(self) -> UserId:
        return self._local_user_id

    @property
    def active_conversation(self) -> ConversationId | None:
        return self._session.conversation_id if self._session else None

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def messages(self) -> list[Message]:
        return self._session.store.messages() if self._session else []

    @property
    def pagination_state(self) -> PaginationState:
        return self._session.pagination.state if self._session else PaginationState.IDLE

    @property
    def failed_messages(self) -> list[PendingMessage]:
        return self._session.pending.failed() if self._session else []

    # -- operations -------------------------------------------------------

    async def select_conversation(self, conversation_id: int) -> None:
        if not _is_valid_id(conversation_id) or conversation_id == self._local_user_id:
            self._reject(f"invalid conversation id: {conversation_id!r}")

        await self.teardown()
        self._generation += 1
        session = self._open_session(ConversationId(conversation_id))
        self._session = session
        session.pagination.reset()
        self._renderer.on_messages_changed([])
        logger.info(
            "Selected conversation %s (generation %d)", conversation_id, session.generation,
        )

        try:
            page = await self._request(session, self._transport.fetch_page(session.conversation_id))
        except StaleResponse:
            logger.debug("Discarding initial page of abandoned conversation %s", conversation_id)
            return
        except TransportError as exc:
            logger.warning("Loading conversation %s failed: %s", conversation_id, exc.detail)
            self._notify(NoticeKind.ERROR, "Failed to load messages. Please try again.")
            return

        session.pagination.complete_initial(page)
        self._merge(session, page.messages)
        if session.pagination.history_exhausted:
            self._notify(NoticeKind.HISTORY_START, HISTORY_START_TEXT)

        session.live_task = asyncio.create_task(
            self._consume_live(session),
            name=f"live-updates-{conversation_id}-{session.generation}",
        )

    async def send_message(self, content: str) -> Message:
        session = self._require_session()
        text = self._validate_content(content)
        pending = session.pending.create(
            text, self._local_user_id, UserId(session.conversation_id),
        )
        self._merge(session, [pending])
        return await self._deliver(session, pending)

    async def retry_message(self, temp_id: TemporaryId) -> Message:
        """Send the content of a failed message again as a new message."""
        session = self._require_session()
        try:
            failed = session.pending.get(temp_id)
        except UnknownPendingId:
            self._reject(f"unknown message: {temp_id}")
        if failed.delivery_state is not DeliveryState.FAILED:
            self._reject(f"message {temp_id} has not failed")
        return await self.send_message(failed.message.content)

    async def load_older(self) -> bool:
        """Fetch one page of older history. Returns False when nothing was requested."""
        session = self._session
        if session is None:
            return False
        cursor = session.pagination.begin_older()
        if cursor is None:
            logger.debug("Older page not requested in state %s", session.pagination.state)
            return False

        try:
            page = await self._request(
                session, self._transport.fetch_page(session.conversation_id, cursor),
            )
        except StaleResponse:
            return False
        except TransportError as exc:
            logger.warning("Loading older messages failed: %s", exc.detail)
            session.pagination.abort_older()
            self._notify(NoticeKind.ERROR, "Failed to load older messages. Scroll to try again.")
            return False

        session.pagination.complete_older(page)
        added = self._merge(session, page.messages)
        if added:
            self._renderer.on_scroll_anchor_adjust(len(added))
        if session.pagination.history_exhausted:
            self._notify(NoticeKind.HISTORY_START, HISTORY_START_TEXT)
        return True

    def set_at_live_edge(self, at_edge: bool) -> None:
        if self._session is not None:
            self._session.channel.set_live_edge(at_edge)

    async def teardown(self) -> None:
        session, self._session = self._session, None
        self._generation += 1
        if session is None:
            return

        session.channel.close()
        current = asyncio.current_task()
        tasks = [
            t for t in (session.live_task, *session.tasks)
            if t is not None and t is not current and not t.done()
        ]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        session.store.clear()
        session.pending.clear()
        session.receipts.clear()
        session.pagination.close()
        logger.info("Conversation %s torn down", session.conversation_id)

    # -- internals --------------------------------------------------------

    def _open_session(self, conversation_id: ConversationId) -> ConversationSession:
        store = MessageStore(conversation_id, on_migrate=self._renderer.on_identity_migrated)
        return ConversationSession(
            generation=self._generation,
            conversation_id=conversation_id,
            store=store,
            pagination=PaginationController(),
            pending=PendingMessageTracker(conversation_id, clock=self._clock),
            receipts=ReadReceiptTracker(self._local_user_id, UserId(conversation_id), store),
            channel=self._channel_factory(),
        )

    def _is_current(self, session: ConversationSession) -> bool:
        return self._session is session and session.generation == self._generation

    async def _request(self, session: ConversationSession, request: Awaitable[T]) -> T:
        try:
            result = await request
        except TransportError:
            self._ensure_current(session)
            raise
        self._ensure_current(session)
        return result

    def _ensure_current(self, session: ConversationSession) -> None:
        if not self._is_current(session):
            raise StaleResponse(
                f"generation {session.generation} superseded by {self._generation}",
            )

    def _require_session(self) -> ConversationSession:
        if self._session is None:
            self._reject("no conversation selected")
        return self._session

    def _validate_content(self, content: str) -> str:
        text = (content or "").strip()
        if not text:
            self._reject("message content is required")
        if len(text) > self._max_content_length:
            self._reject(
                f"message content must be at most {self._max_content_length} characters",
            )
        return text

    def _reject(self, detail: str) -> NoReturn:
        self._notify(NoticeKind.ERROR, detail)
        raise ValidationError(detail)

    def _notify(self, kind: NoticeKind, text: str) -> None:
        self._renderer.on_notice(kind, text)

    def _merge(
        self,
        session: ConversationSession,
        incoming: list[Message] | list[PendingMessage],
    ) -> list[Message]:
        """Merge into the store and return the messages it did not hold before."""
        store = session.store
        before = store.version
        ordered = store.merge(incoming)
        added = store.last_added
        if store.version != before:
            self._renderer.on_messages_changed(ordered)
        self._schedule_read_marks(session)
        return added

    async def _deliver(self, session: ConversationSession, pending: PendingMessage) -> Message:
        try:
            server_message = await self._request(
                session,
                self._transport.send_message(session.conversation_id, pending.message.content),
            )
        except StaleResponse:
            logger.debug("Discarding send result for abandoned conversation")
            return pending.message
        except TransportError as exc:
            logger.warning("Sending %s failed: %s", pending.temp_id, exc.detail)
            try:
                failed = session.pending.fail(pending.temp_id)
            except UnknownPendingId:
                return pending.message
            self._merge(session, [failed])
            self._notify(NoticeKind.ERROR, "Failed to send message. Please try again.")
            return failed.message

        try:
            reconciled = session.pending.resolve(pending.temp_id, server_message)
        except UnknownPendingId:
            logger.debug("Acknowledgment for untracked message %s ignored", pending.temp_id)
            return pending.message
        self._merge(session, [reconciled])
        if reconciled.is_confirmed:
            session.pagination.advance_forward(encode_cursor(reconciled.timestamp))
        return session.store.get(reconciled.id) or reconciled

    async def _consume_live(self, session: ConversationSession) -> None:
        events = session.channel.open(
            session.conversation_id,
            lambda: self._is_current(session),
            lambda: session.pagination.forward_cursor,
        )
        try:
            async for event in events:
                self._apply_update(session, event)
        except TransportError as exc:
            if self._is_current(session):
                logger.error("Live updates for %s stopped: %s", session.conversation_id, exc.detail)
                self._notify(NoticeKind.ERROR, "Connection lost. Select the conversation again to reconnect.")
        except Exception:
            logger.exception("Live update loop for %s crashed", session.conversation_id)

    def _apply_update(self, session: ConversationSession, event: UpdateEvent) -> None:
        added = self._merge(session, [event.message])
        session.pagination.advance_forward(event.cursor or encode_cursor(event.message.timestamp))
        for message in added:
            if message.sender_id != self._local_user_id:
                self._notify(NoticeKind.INFO, "New message received")

    def _schedule_read_marks(self, session: ConversationSession) -> None:
        for message_id in session.receipts.observe(session.store.messages()):
            task = asyncio.create_task(
                self._mark_read(session, message_id), name=f"mark-read-{message_id}",
            )
            session.tasks.add(task)
            task.add_done_callback(session.tasks.discard)

    async def _mark_read(self, session: ConversationSession, message_id: ConfirmedId) -> None:
        try:
            await self._request(session, self._transport.mark_read(message_id))
        except StaleResponse:
            return
        except TransportError as exc:
            logger.warning("Marking %s as read failed: %s", message_id, exc.detail)
            session.receipts.abandon(message_id)
            return
        if session.receipts.confirm(message_id):
            self._renderer.on_messages_changed(session.store.messages())
