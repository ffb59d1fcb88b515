"""Shared test fixtures."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, Callable, Sequence

import pytest

from chat_sync.application.dto.page import Page
from chat_sync.application.exceptions import TransportError
from chat_sync.domain.entities.message import Message
from chat_sync.domain.value_objects.enums import DeliveryState, NoticeKind
from chat_sync.domain.value_objects.ids import (
    ConfirmedId,
    ConversationId,
    MessageId,
    TemporaryId,
    UserId,
)
from chat_sync.services.live_channel import LiveUpdateChannel, PushStrategy
from chat_sync.services.sync_engine import SyncEngine

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

ME = UserId(1)
PEER = UserId(2)


def ts(seconds: float) -> datetime:
    return BASE_TIME + timedelta(seconds=seconds)


def make_message(
    message_id: int | MessageId = 1,
    *,
    at: float = 0,
    sender_id: int = PEER,
    receiver_id: int = ME,
    conversation_id: int = PEER,
    content: str = "hello",
    read: bool = False,
    delivery_state: DeliveryState = DeliveryState.SENT,
    client_id: TemporaryId | None = None,
) -> Message:
    if isinstance(message_id, int):
        message_id = ConfirmedId(message_id)
    return Message(
        id=message_id,
        conversation_id=ConversationId(conversation_id),
        sender_id=UserId(sender_id),
        receiver_id=UserId(receiver_id),
        content=content,
        timestamp=ts(at),
        read=read,
        delivery_state=delivery_state,
        client_id=client_id,
    )


def make_payload(
    message_id: int = 1,
    *,
    at: float = 0,
    sender_id: int = PEER,
    receiver_id: int = ME,
    content: str = "hello",
    read: bool = False,
) -> dict[str, Any]:
    return {
        "id": message_id,
        "sender_id": sender_id,
        "receiver_id": receiver_id,
        "content": content,
        "timestamp": ts(at).isoformat(),
        "read": read,
    }


async def settle(rounds: int = 20) -> None:
    """Let background tasks run until they block."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@dataclass
class FakeClock:
    """Deterministic clock; ``sleep`` records the delay and only yields."""

    current: datetime = BASE_TIME
    step: timedelta = timedelta(seconds=1)
    sleeps: list[float] = field(default_factory=list)
    on_sleep: Callable[[float], None] | None = None

    def now(self) -> datetime:
        self.current += self.step
        return self.current

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        if self.on_sleep is not None:
            self.on_sleep(seconds)
        await asyncio.sleep(0)


@dataclass
class FakeTransport:
    """In-memory transport.

    ``pages`` is looked up by ``(conversation_id, cursor)`` first, then by
    ``cursor``; a stored exception is raised instead of returned.
    """

    pages: dict[Any, Page | Exception] = field(default_factory=dict)
    send_results: list[Message | None | Exception] = field(default_factory=list)
    fail_mark_read: set[ConfirmedId] = field(default_factory=set)
    fetch_gate: asyncio.Event | None = None
    send_gate: asyncio.Event | None = None
    fetch_calls: list[tuple[ConversationId, str | None]] = field(default_factory=list)
    sent: list[tuple[ConversationId, str]] = field(default_factory=list)
    marked: list[ConfirmedId] = field(default_factory=list)

    async def fetch_page(self, conversation_id: ConversationId, cursor: str | None = None) -> Page:
        self.fetch_calls.append((conversation_id, cursor))
        if self.fetch_gate is not None:
            await self.fetch_gate.wait()
        page = self.pages.get((conversation_id, cursor), self.pages.get(cursor))
        if isinstance(page, Exception):
            raise page
        return page or Page()

    async def send_message(self, conversation_id: ConversationId, content: str) -> Message | None:
        self.sent.append((conversation_id, content))
        if self.send_gate is not None:
            await self.send_gate.wait()
        result = self.send_results.pop(0) if self.send_results else None
        if isinstance(result, Exception):
            raise result
        return result

    async def mark_read(self, message_id: ConfirmedId) -> None:
        self.marked.append(message_id)
        if message_id in self.fail_mark_read:
            raise TransportError("mark failed", status=500)


@dataclass
class FakeLiveSource:
    """Live source fed through a queue.

    Put payload dicts to deliver them, an exception to break the connection,
    ``None`` to close it cleanly.
    """

    queue: asyncio.Queue = field(default_factory=asyncio.Queue)
    subscriptions: list[ConversationId] = field(default_factory=list)

    async def subscribe(self, conversation_id: ConversationId) -> AsyncIterator[dict[str, Any]]:
        self.subscriptions.append(conversation_id)
        while True:
            item = await self.queue.get()
            if item is None:
                return
            if isinstance(item, Exception):
                raise item
            yield item


@dataclass
class ScriptedLiveSource:
    """One scripted list of frames per connection; an exception item is raised."""

    scripts: list[list[Any]] = field(default_factory=list)
    subscriptions: list[ConversationId] = field(default_factory=list)

    async def subscribe(self, conversation_id: ConversationId) -> AsyncIterator[dict[str, Any]]:
        self.subscriptions.append(conversation_id)
        script = self.scripts.pop(0) if self.scripts else []
        for item in script:
            if isinstance(item, Exception):
                raise item
            yield item


@dataclass
class FakeRenderer:
    snapshots: list[list[Message]] = field(default_factory=list)
    migrations: list[tuple[TemporaryId, ConfirmedId]] = field(default_factory=list)
    anchor_adjustments: list[int] = field(default_factory=list)
    notices: list[tuple[NoticeKind, str]] = field(default_factory=list)

    def on_messages_changed(self, messages: Sequence[Message]) -> None:
        self.snapshots.append(list(messages))

    def on_identity_migrated(self, old_id: TemporaryId, new_id: ConfirmedId) -> None:
        self.migrations.append((old_id, new_id))

    def on_scroll_anchor_adjust(self, delta: int) -> None:
        self.anchor_adjustments.append(delta)

    def on_notice(self, kind: NoticeKind, text: str) -> None:
        self.notices.append((kind, text))

    def notice_kinds(self) -> list[NoticeKind]:
        return [kind for kind, _ in self.notices]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def live_source() -> FakeLiveSource:
    return FakeLiveSource()


@pytest.fixture
def renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture
def engine(transport, live_source, renderer, clock) -> SyncEngine:
    def channel_factory() -> LiveUpdateChannel:
        return LiveUpdateChannel(
            PushStrategy(live_source, transport, ME, clock=clock, max_attempts=2),
        )

    return SyncEngine(ME, transport, renderer, channel_factory, clock=clock)
