import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.constants import RECONCILIATION_BATCH_SIZE
from app.core.exceptions import NotFoundError
from app.messaging.repositories.conversation_repository import ConversationRepository
from app.messaging.repositories.message_repository import MessageRepository

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationResult:
    conversation_id: UUID
    buyer_unread_before: int
    seller_unread_before: int
    buyer_unread_after: int
    seller_unread_after: int

    @property
    def drifted(self) -> bool:
        return (
            self.buyer_unread_before != self.buyer_unread_after
            or self.seller_unread_before != self.seller_unread_after
        )


class UnreadReconciliationService:
    """Recomputes the denormalized unread counters from the message rows.

    A buyer's counter is the number of unread messages sent by the seller,
    and the other way around.
    """

    def __init__(
        self,
        db: Session,
        conversations: ConversationRepository | None = None,
        messages: MessageRepository | None = None,
    ) -> None:
        self.db = db
        self.conversations = conversations or ConversationRepository(db)
        self.messages = messages or MessageRepository(db)

    def reconcile(self, conversation_id: UUID, dry_run: bool = False) -> ReconciliationResult:
        conversation = self.conversations.get_for_update(conversation_id)
        if conversation is None:
            self.conversations.rollback()
            raise NotFoundError("conversation_not_found", resource="conversation")

        result = ReconciliationResult(
            conversation_id=conversation.id,
            buyer_unread_before=conversation.buyer_unread_count,
            seller_unread_before=conversation.seller_unread_count,
            buyer_unread_after=self.messages.count_unread_from(
                conversation.id, conversation.seller_id
            ),
            seller_unread_after=self.messages.count_unread_from(
                conversation.id, conversation.buyer_id
            ),
        )

        if not result.drifted or dry_run:
            self.conversations.rollback()
            return result

        try:
            self.conversations.set_counters(
                conversation.id,
                buyer_unread=result.buyer_unread_after,
                seller_unread=result.seller_unread_after,
            )
            self.conversations.commit()
        except SQLAlchemyError:
            self.conversations.rollback()
            logger.exception("Failed to reconcile unread counters of %s", conversation.id)
            raise

        logger.warning(
            "Corrected unread counters of conversation %s: buyer %d -> %d, seller %d -> %d",
            conversation.id,
            result.buyer_unread_before,
            result.buyer_unread_after,
            result.seller_unread_before,
            result.seller_unread_after,
        )
        return result

    def reconcile_all(
        self, batch_size: int = RECONCILIATION_BATCH_SIZE, dry_run: bool = False
    ) -> list[ReconciliationResult]:
        """Reconcile every conversation and return the ones whose counters drifted."""
        drifted = []
        for conversation_id in self.conversations.iter_ids(batch_size):
            result = self.reconcile(conversation_id, dry_run=dry_run)
            if result.drifted:
                drifted.append(result)
        return drifted
