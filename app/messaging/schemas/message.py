from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from app.core.constants import IMAGE_URL_MAX_LENGTH, MESSAGE_CONTENT_MAX_LENGTH
from app.core.datetime_utils import UTCDatetime
from app.core.schemas import PaginationMeta
from app.messaging.models.message import MessageStatus, MessageType
from app.messaging.schemas.conversation import ConversationResponse


class MessageCreate(BaseModel):
    type: MessageType = MessageType.TEXT
    content: str = Field(..., min_length=1, max_length=MESSAGE_CONTENT_MAX_LENGTH)
    image_url: str | None = Field(None, min_length=1, max_length=IMAGE_URL_MAX_LENGTH)

    @model_validator(mode="after")
    def check_image_url(self) -> "MessageCreate":
        if self.type == MessageType.TEXT and self.image_url is not None:
            raise ValueError("image_url is only allowed for IMAGE messages")
        return self


class SenderInfo(BaseModel):
    id: UUID
    name: str
    avatar_url: str | None = None

    class Config:
        from_attributes = True


class MessageResponse(BaseModel):
    id: UUID
    conversation_id: UUID
    sender_id: UUID
    content: str
    type: MessageType
    image_url: str | None = None
    status: MessageStatus
    is_read: bool
    read_at: UTCDatetime | None = None
    created_at: UTCDatetime
    sender: SenderInfo

    class Config:
        from_attributes = True


class ConversationMessagesResponse(BaseModel):
    data: list[MessageResponse]
    pagination: PaginationMeta
    conversation: ConversationResponse
