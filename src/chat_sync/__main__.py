"""Entrypoint: python -m chat_sync

Opens the last-used conversation and sends every stdin line as a message.
"""
from __future__ import annotations

import asyncio
import logging
import sys

from chat_sync.app import create_engine
from chat_sync.application.exceptions import ValidationError
from chat_sync.config import settings
from chat_sync.infrastructure.rendering.log_renderer import LoggingRenderer

logger = logging.getLogger(__name__)


async def run_console() -> None:
    if settings.LAST_CONVERSATION_ID is None:
        logger.error("LAST_CONVERSATION_ID is not set, nothing to open")
        return

    loop = asyncio.get_running_loop()
    async with create_engine(LoggingRenderer(settings.LOCAL_USER_ID)) as engine:
        await engine.select_conversation(settings.LAST_CONVERSATION_ID)
        while True:
            line = await loop.run_in_executor(None, sys.stdin.readline)
            if not line:
                break
            command = line.strip()
            if command == "/older":
                await engine.load_older()
                continue
            try:
                await engine.send_message(line)
            except ValidationError as exc:
                logger.debug("Rejected input: %s", exc.detail)


def main() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        asyncio.run(run_console())
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    main()
