"""Cursor bookkeeping for one conversation.

    Idle -> InitialLoad -> Ready <-> LoadingOlder
                               \\-> HistoryExhausted   (backward only)

The forward cursor keeps advancing in every state except Idle.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from chat_sync.application.dto.page import Page
from chat_sync.domain.value_objects.cursor import is_newer
from chat_sync.domain.value_objects.enums import PaginationState

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CursorPair:
    forward_cursor: str | None = None
    backward_cursor: str | None = None
    history_exhausted: bool = False


class PaginationController:
    def __init__(self) -> None:
        self._state = PaginationState.IDLE
        self._cursors = CursorPair()

    @property
    def state(self) -> PaginationState:
        return self._state

    @property
    def cursors(self) -> CursorPair:
        return CursorPair(
            forward_cursor=self._cursors.forward_cursor,
            backward_cursor=self._cursors.backward_cursor,
            history_exhausted=self._cursors.history_exhausted,
        )

    @property
    def forward_cursor(self) -> str | None:
        return self._cursors.forward_cursor

    @property
    def history_exhausted(self) -> bool:
        return self._cursors.history_exhausted

    @property
    def can_load_older(self) -> bool:
        return self._state is PaginationState.READY

    def reset(self) -> None:
        self._cursors = CursorPair()
        self._state = PaginationState.INITIAL_LOAD

    def complete_initial(self, page: Page) -> None:
        if self._state is not PaginationState.INITIAL_LOAD:
            logger.debug("Ignoring initial page in state %s", self._state)
            return
        if page.cursor is not None:
            self._cursors.forward_cursor = page.cursor
        self._apply_backward(page)

    def begin_older(self) -> str | None:
        """Claim the single backward slot; ``None`` means the request is refused."""
        if self._state is not PaginationState.READY:
            return None
        self._state = PaginationState.LOADING_OLDER
        return self._cursors.backward_cursor

    def complete_older(self, page: Page) -> None:
        if self._state is not PaginationState.LOADING_OLDER:
            logger.debug("Ignoring older page in state %s", self._state)
            return
        self._apply_backward(page)

    def abort_older(self) -> None:
        if self._state is PaginationState.LOADING_OLDER:
            self._state = PaginationState.READY

    def advance_forward(self, cursor: str | None) -> bool:
        if cursor is None or self._state is PaginationState.IDLE:
            return False
        if not is_newer(cursor, self._cursors.forward_cursor):
            return False
        self._cursors.forward_cursor = cursor
        return True

    def close(self) -> None:
        self._cursors = CursorPair()
        self._state = PaginationState.IDLE

    def _apply_backward(self, page: Page) -> None:
        if not page.messages or page.next_cursor is None:
            self._cursors.backward_cursor = None
            self._cursors.history_exhausted = True
            self._state = PaginationState.HISTORY_EXHAUSTED
            logger.debug("History exhausted")
        else:
            self._cursors.backward_cursor = page.next_cursor
            self._state = PaginationState.READY
