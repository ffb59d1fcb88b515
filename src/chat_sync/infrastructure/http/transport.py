"""REST transport over aiohttp."""
from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp
import pydantic

from chat_sync.application.dto.page import Page
from chat_sync.application.exceptions import TransportError
from chat_sync.domain.entities.message import Message
from chat_sync.domain.value_objects.cursor import encode_cursor
from chat_sync.domain.value_objects.ids import ConfirmedId, ConversationId, UserId
from chat_sync.infrastructure.http.schemas import (
    ListMessagesResponse,
    MessagePayload,
    SendMessageRequest,
    SendMessageResponse,
)
from chat_sync.infrastructure.mappers.message import has_server_id, payload_to_entity

logger = logging.getLogger(__name__)


class AiohttpTransport:
    """Implements application.ports.transport.Transport.

    The API lists history newest-first, strictly older than ``cursor``. A page
    shorter than ``page_size`` means the beginning of the conversation has
    been reached, so no continuation cursor is reported for it.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        api_url: str,
        local_user_id: UserId,
        *,
        page_size: int = 20,
    ) -> None:
        self._session = session
        self._api_url = api_url.rstrip("/")
        self._local_user_id = local_user_id
        self._page_size = page_size

    def _messages_url(self, conversation_id: ConversationId) -> str:
        return f"{self._api_url}/users/{self._local_user_id}/chats/{conversation_id}/messages"

    async def fetch_page(
        self,
        conversation_id: ConversationId,
        cursor: str | None = None,
    ) -> Page:
        params: dict[str, Any] = {"page_size": self._page_size}
        if cursor:
            params["cursor"] = cursor
        body = await self._request("GET", self._messages_url(conversation_id), params=params)
        try:
            data = ListMessagesResponse.model_validate(body or {})
        except pydantic.ValidationError as exc:
            raise TransportError(f"malformed message page: {exc.error_count()} errors") from exc

        messages = sorted(
            (payload_to_entity(p, self._local_user_id) for p in data.messages or []),
            key=lambda m: m.timestamp,
        )
        if not messages:
            return Page(messages=[], cursor=None, next_cursor=None)

        next_cursor = None
        if len(messages) >= self._page_size:
            meta_cursor = data.metadata.next_cursor if data.metadata else None
            next_cursor = meta_cursor or encode_cursor(messages[0].timestamp)
        return Page(
            messages=messages,
            cursor=encode_cursor(messages[-1].timestamp),
            next_cursor=next_cursor,
        )

    async def send_message(
        self,
        conversation_id: ConversationId,
        content: str,
    ) -> Message | None:
        body = await self._request(
            "POST",
            self._messages_url(conversation_id),
            json=SendMessageRequest(content=content).model_dump(),
        )
        try:
            data = SendMessageResponse.model_validate(body or {})
        except pydantic.ValidationError as exc:
            raise TransportError(f"malformed send response: {exc.error_count()} errors") from exc
        if isinstance(data.message, MessagePayload) and has_server_id(data.message):
            return payload_to_entity(data.message, self._local_user_id)
        logger.debug("Message accepted without echo: %r", data.message)
        return None

    async def mark_read(self, message_id: ConfirmedId) -> None:
        await self._request("PATCH", f"{self._api_url}/messages/{message_id.value}/read")

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            async with self._session.request(method, url, **kwargs) as resp:
                if resp.status >= 400:
                    text = await resp.text()
                    raise TransportError(
                        f"{method} {url} returned {resp.status}: {text[:200]}",
                        status=resp.status,
                    )
                if resp.content_type != "application/json":
                    return None
                return await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            raise TransportError(f"{method} {url} failed: {exc!r}") from exc
