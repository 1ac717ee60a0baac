from collections.abc import Iterator
from datetime import datetime
from typing import cast
from uuid import UUID

from sqlalchemy import case, func, or_, select
from sqlalchemy.orm import Session

from app.core.repository import BaseRepository
from app.messaging.models.conversation import Conversation
from app.messaging.models.message import Message


class ConversationRepository(BaseRepository[Conversation]):
    """Data access for conversations and their denormalized unread counters.

    Counter writes are issued as single UPDATE statements evaluated against
    the current row, never as a save of an in-memory copy.
    """

    def __init__(self, db: Session):
        super().__init__(db, Conversation)

    def find_by_triple(
        self, property_id: UUID, buyer_id: UUID, seller_id: UUID
    ) -> Conversation | None:
        result = (
            self.db.query(Conversation)
            .filter(
                Conversation.property_id == property_id,
                Conversation.buyer_id == buyer_id,
                Conversation.seller_id == seller_id,
            )
            .first()
        )
        return cast(Conversation | None, result)

    def get_for_update(self, conversation_id: UUID) -> Conversation | None:
        """Load a conversation holding a row lock until the transaction ends."""
        result = (
            self.db.query(Conversation)
            .filter(Conversation.id == conversation_id)
            .populate_existing()
            .with_for_update(of=Conversation)
            .first()
        )
        return cast(Conversation | None, result)

    def _for_user(self, user_id: UUID):  # type: ignore[no-untyped-def]
        return self.db.query(Conversation).filter(
            or_(Conversation.buyer_id == user_id, Conversation.seller_id == user_id)
        )

    def count_for_user(self, user_id: UUID) -> int:
        result: int = self._for_user(user_id).count()
        return result

    def list_for_user(self, user_id: UUID, offset: int, limit: int) -> list[Conversation]:
        conversations = (
            self._for_user(user_id)
            .order_by(
                Conversation.last_message_at.desc().nulls_last(),
                Conversation.created_at.desc(),
            )
            .offset(offset)
            .limit(limit)
            .all()
        )
        return cast(list[Conversation], conversations)

    def total_unread_for(self, user_id: UUID) -> int:
        own_counter = case(
            (Conversation.buyer_id == user_id, Conversation.buyer_unread_count),
            else_=Conversation.seller_unread_count,
        )
        total = (
            self.db.query(func.coalesce(func.sum(own_counter), 0))
            .filter(or_(Conversation.buyer_id == user_id, Conversation.seller_id == user_id))
            .scalar()
        )
        return int(total or 0)

    def record_message(
        self, conversation_id: UUID, *, recipient_is_buyer: bool, preview: str, at: datetime
    ) -> int:
        """Set the preview and add one to the recipient's unread counter."""
        counter = (
            Conversation.buyer_unread_count
            if recipient_is_buyer
            else Conversation.seller_unread_count
        )
        updated: int = (
            self.db.query(Conversation)
            .filter(Conversation.id == conversation_id)
            .update(
                {
                    counter: counter + 1,
                    Conversation.last_message: preview,
                    Conversation.last_message_at: at,
                    Conversation.updated_at: at,
                },
                synchronize_session=False,
            )
        )
        return updated

    def reset_unread(
        self, conversation_id: UUID, *, reader_id: UUID, reader_is_buyer: bool, at: datetime
    ) -> int:
        """Set the reader's counter to the messages from the other side still unread.

        Right after a mark-read that count is zero, unless a send committed
        in between, in which case that message stays counted.
        """
        counter = (
            Conversation.buyer_unread_count if reader_is_buyer else Conversation.seller_unread_count
        )
        still_unread = (
            select(func.count(Message.id))
            .where(
                Message.conversation_id == conversation_id,
                Message.is_read.is_(False),
                Message.sender_id != reader_id,
            )
            .scalar_subquery()
        )
        updated: int = (
            self.db.query(Conversation)
            .filter(Conversation.id == conversation_id)
            .update({counter: still_unread, Conversation.updated_at: at}, synchronize_session=False)
        )
        return updated

    def set_counters(self, conversation_id: UUID, *, buyer_unread: int, seller_unread: int) -> int:
        updated: int = (
            self.db.query(Conversation)
            .filter(Conversation.id == conversation_id)
            .update(
                {
                    Conversation.buyer_unread_count: buyer_unread,
                    Conversation.seller_unread_count: seller_unread,
                },
                synchronize_session=False,
            )
        )
        return updated

    def iter_ids(self, batch_size: int) -> Iterator[UUID]:
        """Yield every conversation id in primary-key order, one batch per query."""
        last_id: UUID | None = None
        while True:
            query = self.db.query(Conversation.id).order_by(Conversation.id)
            if last_id is not None:
                query = query.filter(Conversation.id > last_id)
            batch = [row[0] for row in query.limit(batch_size).all()]
            if not batch:
                return
            yield from batch
            last_id = batch[-1]
