from __future__ import annotations

from enum import StrEnum


class DeliveryState(StrEnum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class PaginationState(StrEnum):
    IDLE = "idle"
    INITIAL_LOAD = "initial_load"
    READY = "ready"
    LOADING_OLDER = "loading_older"
    HISTORY_EXHAUSTED = "history_exhausted"


class LiveMode(StrEnum):
    PUSH = "push"
    POLL = "poll"


class NoticeKind(StrEnum):
    INFO = "info"
    ERROR = "error"
    HISTORY_START = "history_start"
