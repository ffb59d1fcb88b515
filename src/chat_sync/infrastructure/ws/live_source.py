"""WebSocket live source over aiohttp."""
from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator

import aiohttp

from chat_sync.application.exceptions import TransportError
from chat_sync.domain.value_objects.ids import ConversationId, UserId

logger = logging.getLogger(__name__)


class AiohttpLiveSource:
    """Implements application.ports.live.LiveSource.

    One subscription per conversation; each text frame carries one JSON
    message. Reconnecting is the caller's business.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        ws_url: str,
        local_user_id: UserId,
        *,
        heartbeat: float | None = 30.0,
    ) -> None:
        self._session = session
        self._ws_url = ws_url.rstrip("/")
        self._local_user_id = local_user_id
        self._heartbeat = heartbeat

    def subscribe_url(self, conversation_id: ConversationId) -> str:
        return f"{self._ws_url}/users/{self._local_user_id}/chats/{conversation_id}/subscribe"

    async def subscribe(self, conversation_id: ConversationId) -> AsyncIterator[dict[str, Any]]:
        url = self.subscribe_url(conversation_id)
        try:
            async with self._session.ws_connect(url, heartbeat=self._heartbeat) as ws:
                logger.info("WebSocket connected for conversation %s", conversation_id)
                async for msg in ws:
                    if msg.type == aiohttp.WSMsgType.TEXT:
                        try:
                            payload = json.loads(msg.data)
                        except ValueError:
                            logger.warning("Ignoring non-JSON frame: %.200s", msg.data)
                            continue
                        if isinstance(payload, dict):
                            yield payload
                    elif msg.type == aiohttp.WSMsgType.ERROR:
                        raise TransportError(f"websocket error: {ws.exception()!r}")
                    elif msg.type in (aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSED):
                        break
        except aiohttp.WSServerHandshakeError as exc:
            raise TransportError(f"websocket handshake failed: {exc.status}", status=exc.status) from exc
        except aiohttp.ClientError as exc:
            raise TransportError(f"websocket connection failed: {exc!r}") from exc
        logger.info("WebSocket closed for conversation %s", conversation_id)
