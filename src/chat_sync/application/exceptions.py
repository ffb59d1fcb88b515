from __future__ import annotations


class AppError(Exception):
    """Base application error."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class ValidationError(AppError):
    """Bad conversation/user identifiers or message content."""


class TransportError(AppError):
    """A request failed, timed out or returned a non-success status."""

    def __init__(self, detail: str = "", status: int | None = None) -> None:
        self.status = status
        super().__init__(detail)


class UnknownPendingId(AppError):
    pass


class StaleResponse(AppError):
    pass
