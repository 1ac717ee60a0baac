import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.datetime_utils import utcnow
from app.db.session import Base


class Conversation(Base):
    __tablename__ = "conversations"
    __table_args__ = (
        UniqueConstraint("property_id", "buyer_id", "seller_id", name="uq_conversation_triple"),
        CheckConstraint("buyer_unread_count >= 0", name="ck_conversation_buyer_unread"),
        CheckConstraint("seller_unread_count >= 0", name="ck_conversation_seller_unread"),
        Index("ix_conversations_buyer_last_message", "buyer_id", "last_message_at"),
        Index("ix_conversations_seller_last_message", "seller_id", "last_message_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4, index=True)
    property_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("properties.id", ondelete="CASCADE"), index=True
    )
    buyer_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))
    seller_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))

    last_message: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)
    last_message_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, default=None)

    # Denormalized: unread messages sent by the other participant.
    buyer_unread_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    seller_unread_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0")

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    buyer = relationship("User", foreign_keys=[buyer_id], lazy="joined")
    seller = relationship("User", foreign_keys=[seller_id], lazy="joined")
    property = relationship("Property", lazy="joined")
    messages = relationship(
        "Message",
        back_populates="conversation",
        order_by="Message.created_at",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
