"""Envelopes and payloads exchanged over the live chat channel.

Every frame is ``{"event": <name>, "data": {...}}`` in both directions.
"""

from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from app.core.constants import MESSAGE_CONTENT_MAX_LENGTH
from app.messaging.models.message import MessageType


class ClientEnvelope(BaseModel):
    event: str = Field(..., min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)


class ConversationRef(BaseModel):
    conversation_id: UUID


class SendMessagePayload(BaseModel):
    conversation_id: UUID
    content: str = Field(..., min_length=1, max_length=MESSAGE_CONTENT_MAX_LENGTH)
    type: MessageType = MessageType.TEXT
    image_url: str | None = None


class MessageDeliveredPayload(BaseModel):
    message_id: UUID


def server_event(event: str, data: dict[str, Any] | None = None) -> dict[str, Any]:
    return {"event": event, "data": data or {}}


def error_event(message: str) -> dict[str, Any]:
    return server_event("error", {"message": message})
