from datetime import datetime
from typing import cast
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.repository import BaseRepository
from app.messaging.models.message import Message, MessageStatus


class MessageRepository(BaseRepository[Message]):
    def __init__(self, db: Session):
        super().__init__(db, Message)

    def count_for_conversation(self, conversation_id: UUID) -> int:
        result = (
            self.db.query(func.count(Message.id))
            .filter(Message.conversation_id == conversation_id)
            .scalar()
        )
        return int(result or 0)

    def list_newest_first(self, conversation_id: UUID, offset: int, limit: int) -> list[Message]:
        messages = (
            self.db.query(Message)
            .filter(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.desc(), Message.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return cast(list[Message], messages)

    def unread_ids_from_others(self, conversation_id: UUID, reader_id: UUID) -> list[UUID]:
        """Ids of unread messages in the conversation not sent by ``reader_id``."""
        rows = (
            self.db.query(Message.id)
            .filter(
                Message.conversation_id == conversation_id,
                Message.is_read.is_(False),
                Message.sender_id != reader_id,
            )
            .all()
        )
        return [row[0] for row in rows]

    def mark_read(self, message_ids: list[UUID], read_at: datetime) -> int:
        if not message_ids:
            return 0
        updated: int = (
            self.db.query(Message)
            .filter(Message.id.in_(message_ids), Message.is_read.is_(False))
            .update(
                {
                    Message.is_read: True,
                    Message.status: MessageStatus.READ,
                    Message.read_at: read_at,
                },
                synchronize_session=False,
            )
        )
        return updated

    def mark_delivered(self, message_id: UUID) -> int:
        """Move a message from SENT to DELIVERED; any other status is left alone."""
        updated: int = (
            self.db.query(Message)
            .filter(Message.id == message_id, Message.status == MessageStatus.SENT)
            .update({Message.status: MessageStatus.DELIVERED}, synchronize_session=False)
        )
        return updated

    def count_unread_from(self, conversation_id: UUID, sender_id: UUID) -> int:
        result = (
            self.db.query(func.count(Message.id))
            .filter(
                Message.conversation_id == conversation_id,
                Message.sender_id == sender_id,
                Message.is_read.is_(False),
            )
            .scalar()
        )
        return int(result or 0)
