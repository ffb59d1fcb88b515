from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import aiohttp

from chat_sync.application.ports.clock import Clock, SystemClock
from chat_sync.application.ports.renderer import Renderer
from chat_sync.config import Settings, settings
from chat_sync.domain.value_objects.enums import LiveMode
from chat_sync.domain.value_objects.ids import UserId
from chat_sync.infrastructure.http.transport import AiohttpTransport
from chat_sync.infrastructure.ws.live_source import AiohttpLiveSource
from chat_sync.services.live_channel import (
    LiveUpdateChannel,
    PollStrategy,
    PushStrategy,
)
from chat_sync.services.sync_engine import ChannelFactory, SyncEngine

logger = logging.getLogger(__name__)


def build_channel_factory(
    cfg: Settings,
    transport: AiohttpTransport,
    source: AiohttpLiveSource,
    clock: Clock,
) -> ChannelFactory:
    mode = LiveMode(cfg.LIVE_MODE)

    def factory() -> LiveUpdateChannel:
        if mode is LiveMode.POLL:
            return LiveUpdateChannel(
                PollStrategy(transport, clock=clock, interval=cfg.POLL_INTERVAL_SECONDS),
            )
        return LiveUpdateChannel(
            PushStrategy(
                source,
                transport,
                UserId(cfg.LOCAL_USER_ID),
                clock=clock,
                base_delay=cfg.RECONNECT_BASE_DELAY_SECONDS,
                max_delay=cfg.RECONNECT_MAX_DELAY_SECONDS,
                max_attempts=cfg.RECONNECT_MAX_ATTEMPTS,
            ),
        )

    return factory


@asynccontextmanager
async def create_engine(
    renderer: Renderer,
    cfg: Settings = settings,
    clock: Clock | None = None,
) -> AsyncIterator[SyncEngine]:
    """HTTP session lifecycle around one engine; tears the engine down on exit."""
    clock = clock or SystemClock()
    timeout = aiohttp.ClientTimeout(total=cfg.REQUEST_TIMEOUT_SECONDS)
    async with aiohttp.ClientSession(timeout=timeout) as session:
        logger.info("HTTP session opened for %s (live mode: %s)", cfg.api_url, cfg.LIVE_MODE)
        user_id = UserId(cfg.LOCAL_USER_ID)
        transport = AiohttpTransport(session, cfg.api_url, user_id, page_size=cfg.PAGE_SIZE)
        source = AiohttpLiveSource(
            session, cfg.ws_url, user_id, heartbeat=cfg.WS_HEARTBEAT_SECONDS,
        )
        engine = SyncEngine(
            cfg.LOCAL_USER_ID,
            transport,
            renderer,
            build_channel_factory(cfg, transport, source, clock),
            clock=clock,
            max_content_length=cfg.MAX_CONTENT_LENGTH,
        )
        try:
            yield engine
        finally:
            await engine.teardown()
            logger.info("HTTP session closed")
