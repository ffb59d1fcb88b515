"""Wire models of the messaging API."""
from __future__ import annotations

from datetime import datetime

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class MessagePayload(BaseModel):
    """A message as sent by the server (REST body or one WebSocket frame)."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: int | str
    conversation_id: int | None = Field(
        default=None, validation_alias=AliasChoices("conversation_id", "conversationId"),
    )
    sender_id: int = Field(validation_alias=AliasChoices("sender_id", "senderId"))
    receiver_id: int = Field(validation_alias=AliasChoices("receiver_id", "receiverId"))
    content: str
    timestamp: datetime
    read: bool = False


class PageMetadata(BaseModel):
    current_cursor: str | None = None
    next_cursor: str | None = None
    page_size: int | None = None


class ListMessagesResponse(BaseModel):
    messages: list[MessagePayload] | None = None
    metadata: PageMetadata | None = None


class SendMessageRequest(BaseModel):
    content: str


class SendMessageResponse(BaseModel):
    # "message" is either the stored message or a plain status text when the
    # server only queued it (202 Accepted)
    message: MessagePayload | str | None = None
