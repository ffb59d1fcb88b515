"""Live updates for the selected conversation: push with reconnect, or polling."""
from __future__ import annotations

import asyncio
import logging
from contextlib import aclosing
from typing import AsyncIterator, Callable, Protocol

import pydantic

from chat_sync.application.dto.events import UpdateEvent
from chat_sync.application.exceptions import TransportError
from chat_sync.application.ports.clock import Clock, SystemClock
from chat_sync.application.ports.live import LiveSource
from chat_sync.application.ports.transport import Transport
from chat_sync.domain.entities.message import Message
from chat_sync.domain.value_objects.cursor import decode_cursor
from chat_sync.domain.value_objects.ids import ConversationId, UserId
from chat_sync.infrastructure.mappers.message import raw_to_entity

logger = logging.getLogger(__name__)

IsActive = Callable[[], bool]
# current forward cursor of the consumer
Since = Callable[[], str | None]

MAX_CATCH_UP_PAGES = 20


def backoff_delay(attempt: int, base: float, maximum: float) -> float:
    return min(base * (2 ** (attempt - 1)), maximum)


def _reaches(messages: list[Message], since: str | None) -> bool:
    if since is None or not messages:
        return True
    try:
        bound = decode_cursor(since)
    except ValueError:
        return True
    return min(m.timestamp for m in messages) <= bound


async def fetch_since(
    transport: Transport,
    conversation_id: ConversationId,
    since: str | None,
    *,
    max_pages: int = MAX_CATCH_UP_PAGES,
) -> tuple[list[Message], str | None]:
    """Newest messages back to ``since``, oldest first, plus the newest page cursor.

    The API only lists backwards from the newest message, so a gap longer
    than one page is closed by following continuation cursors until a page
    reaches ``since``.
    """
    page = await transport.fetch_page(conversation_id)
    cursor = page.cursor
    messages = list(page.messages)
    older = page.next_cursor
    pages = 1
    while older is not None and not _reaches(messages, since):
        if pages >= max_pages:
            logger.warning(
                "Catch-up for conversation %s stopped after %d pages", conversation_id, pages,
            )
            break
        page = await transport.fetch_page(conversation_id, older)
        if not page.messages:
            break
        messages = list(page.messages) + messages
        older = page.next_cursor
        pages += 1
    return sorted(messages, key=lambda m: m.timestamp), cursor


class UpdateStrategy(Protocol):
    def stream(
        self,
        conversation_id: ConversationId,
        is_active: IsActive,
        since: Since | None = None,
    ) -> AsyncIterator[UpdateEvent]: ...

    def set_live_edge(self, at_edge: bool) -> None: ...


class PushStrategy:
    """One long-lived subscription, re-established with exponential backoff.

    Every connect first catches up from the forward cursor so nothing sent
    before the subscription was up is missed. Raises ``TransportError``
    after ``max_attempts`` consecutive failures.
    """

    def __init__(
        self,
        source: LiveSource,
        transport: Transport,
        local_user_id: UserId,
        *,
        clock: Clock | None = None,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        max_attempts: int = 8,
    ) -> None:
        self._source = source
        self._transport = transport
        self._local_user_id = local_user_id
        self._clock = clock or SystemClock()
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._max_attempts = max_attempts

    def set_live_edge(self, at_edge: bool) -> None:
        pass

    async def stream(
        self,
        conversation_id: ConversationId,
        is_active: IsActive,
        since: Since | None = None,
    ) -> AsyncIterator[UpdateEvent]:
        attempt = 0
        while is_active():
            try:
                messages, cursor = await fetch_since(
                    self._transport, conversation_id, since() if since else None,
                )
                for message in messages:
                    yield UpdateEvent(message=message, cursor=cursor)
                async with aclosing(self._source.subscribe(conversation_id)) as frames:
                    async for raw in frames:
                        attempt = 0
                        try:
                            message = raw_to_entity(raw, self._local_user_id)
                        except pydantic.ValidationError:
                            logger.warning("Skipping malformed live payload: %r", raw)
                            continue
                        yield UpdateEvent(message=message)
                logger.info("Live connection for conversation %s closed by server", conversation_id)
            except TransportError as exc:
                logger.warning(
                    "Live connection for conversation %s failed: %s", conversation_id, exc.detail,
                )

            attempt += 1
            if attempt > self._max_attempts:
                raise TransportError(
                    f"live connection lost after {self._max_attempts} reconnect attempts",
                )
            delay = backoff_delay(attempt, self._base_delay, self._max_delay)
            logger.info("Reconnecting conversation %s in %.1fs (attempt %d)", conversation_id, delay, attempt)
            await self._clock.sleep(delay)
            if not is_active():
                logger.info("Suppressing reconnect for inactive conversation %s", conversation_id)
                return


class PollStrategy:
    """Fixed-interval pull of the newest page.

    Polling pauses while the user is away from the live edge so it does not
    compete with backward history loading.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        clock: Clock | None = None,
        interval: float = 1.0,
    ) -> None:
        self._transport = transport
        self._clock = clock or SystemClock()
        self._interval = interval
        self._at_edge = asyncio.Event()
        self._at_edge.set()

    @property
    def paused(self) -> bool:
        return not self._at_edge.is_set()

    def set_live_edge(self, at_edge: bool) -> None:
        if at_edge:
            self._at_edge.set()
        else:
            self._at_edge.clear()

    async def stream(
        self,
        conversation_id: ConversationId,
        is_active: IsActive,
        since: Since | None = None,
    ) -> AsyncIterator[UpdateEvent]:
        while is_active():
            await self._at_edge.wait()
            if not is_active():
                return
            try:
                messages, cursor = await fetch_since(
                    self._transport, conversation_id, since() if since else None,
                )
            except TransportError as exc:
                logger.warning("Polling conversation %s failed: %s", conversation_id, exc.detail)
            else:
                for message in messages:
                    yield UpdateEvent(message=message, cursor=cursor)
            await self._clock.sleep(self._interval)


class LiveUpdateChannel:
    """Identical contract over either strategy.

    The stream ends as soon as the channel is closed; events addressed to
    another conversation are dropped.
    """

    def __init__(self, strategy: UpdateStrategy) -> None:
        self._strategy = strategy
        self._conversation_id: ConversationId | None = None
        self._closed = True

    @property
    def is_open(self) -> bool:
        return not self._closed

    @property
    def conversation_id(self) -> ConversationId | None:
        return self._conversation_id

    def open(
        self,
        conversation_id: ConversationId,
        is_active: IsActive | None = None,
        since: Since | None = None,
    ) -> AsyncIterator[UpdateEvent]:
        """Stream updates; ``since`` reports the newest cursor already applied."""
        if not self._closed:
            raise RuntimeError(
                f"channel is still open for conversation {self._conversation_id}",
            )
        self._conversation_id = conversation_id
        self._closed = False
        logger.info("Live channel opened for conversation %s", conversation_id)
        return self._iterate(conversation_id, is_active or (lambda: True), since)

    def close(self) -> None:
        if not self._closed:
            logger.info("Live channel closed for conversation %s", self._conversation_id)
        self._closed = True
        self._conversation_id = None

    def set_live_edge(self, at_edge: bool) -> None:
        self._strategy.set_live_edge(at_edge)

    async def _iterate(
        self,
        conversation_id: ConversationId,
        is_active: IsActive,
        since: Since | None,
    ) -> AsyncIterator[UpdateEvent]:
        def active() -> bool:
            return not self._closed and self._conversation_id == conversation_id and is_active()

        async with aclosing(self._strategy.stream(conversation_id, active, since)) as events:
            async for event in events:
                if not active():
                    break
                if event.message.conversation_id != conversation_id:
                    logger.debug(
                        "Dropping event for conversation %s on channel %s",
                        event.message.conversation_id, conversation_id,
                    )
                    continue
                yield event
