from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field

from app.core.datetime_utils import UTCDatetime
from app.core.schemas import PaginationMeta


class ConversationCreate(BaseModel):
    property_id: UUID
    seller_id: UUID


class ParticipantInfo(BaseModel):
    id: UUID
    name: str
    email: str
    avatar_url: str | None = None
    role: str

    class Config:
        from_attributes = True


class PropertySummary(BaseModel):
    id: UUID
    title: str
    price: Decimal
    main_image_url: str | None = None

    class Config:
        from_attributes = True


class ConversationResponse(BaseModel):
    id: UUID
    property_id: UUID
    buyer_id: UUID
    seller_id: UUID
    last_message: str | None = None
    last_message_at: UTCDatetime | None = None
    buyer_unread_count: int = Field(0, ge=0)
    seller_unread_count: int = Field(0, ge=0)
    unread_count: int = Field(0, ge=0, description="Unread messages of the caller")
    created_at: UTCDatetime
    updated_at: UTCDatetime
    buyer: ParticipantInfo
    seller: ParticipantInfo
    property: PropertySummary

    class Config:
        from_attributes = True


class ConversationListResponse(BaseModel):
    data: list[ConversationResponse]
    pagination: PaginationMeta


class UnreadCountResponse(BaseModel):
    unread_count: int
