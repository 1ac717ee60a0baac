import logging
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.auth.models.user import UserRole
from app.core import redis as redis_module
from app.core.config import settings
from app.core.datetime_utils import utcnow
from app.core.exceptions import ConflictError, ForbiddenError, NotFoundError
from app.core.schemas import PaginationMeta, pagination_offset
from app.messaging.models.conversation import Conversation
from app.messaging.repositories.conversation_repository import ConversationRepository
from app.messaging.repositories.message_repository import MessageRepository
from app.messaging.schemas.conversation import (
    ConversationCreate,
    ConversationListResponse,
    ConversationResponse,
)
from app.messaging.services.participants import (
    is_participant,
    participant_role,
    unread_count_for,
)
from app.properties.repositories.property_repository import PropertyRepository

logger = logging.getLogger(__name__)


def to_conversation_response(conversation: Conversation, user_id: UUID) -> ConversationResponse:
    """Serialize a conversation from ``user_id``'s point of view."""
    response = ConversationResponse.model_validate(conversation)
    response.unread_count = unread_count_for(conversation, user_id)
    return response


class ConversationService:
    """Conversation creation, participant authorization and unread bookkeeping."""

    def __init__(
        self,
        db: Session,
        conversations: ConversationRepository | None = None,
        messages: MessageRepository | None = None,
        properties: PropertyRepository | None = None,
    ) -> None:
        self.db = db
        self.conversations = conversations or ConversationRepository(db)
        self.messages = messages or MessageRepository(db)
        self.properties = properties or PropertyRepository(db)

    def create_conversation(
        self, requester_id: UUID, data: ConversationCreate
    ) -> ConversationResponse:
        prop = self.properties.get_by_id(data.property_id)
        if prop is None:
            raise NotFoundError("property_not_found", resource="property")

        if prop.user_id == requester_id:
            raise ForbiddenError("cannot_message_own_property")

        if prop.user_id != data.seller_id:
            raise ForbiddenError("seller_mismatch")

        if self.conversations.find_by_triple(data.property_id, requester_id, data.seller_id):
            raise ConflictError("conversation_already_exists", resource="conversation")

        try:
            conversation = self.conversations.create(
                property_id=data.property_id,
                buyer_id=requester_id,
                seller_id=data.seller_id,
                buyer_unread_count=0,
                seller_unread_count=0,
            )
            self.conversations.commit()
        except IntegrityError:
            # Lost a race against a concurrent create for the same triple.
            self.conversations.rollback()
            raise ConflictError("conversation_already_exists", resource="conversation") from None

        self.conversations.refresh(conversation)
        logger.info(
            "Conversation %s created for property %s by buyer %s",
            conversation.id,
            data.property_id,
            requester_id,
        )
        return to_conversation_response(conversation, requester_id)

    def get_user_conversations(
        self, user_id: UUID, page: int = 1, limit: int = 20
    ) -> ConversationListResponse:
        total = self.conversations.count_for_user(user_id)
        conversations = self.conversations.list_for_user(
            user_id, offset=pagination_offset(page, limit), limit=limit
        )
        return ConversationListResponse(
            data=[to_conversation_response(conv, user_id) for conv in conversations],
            pagination=PaginationMeta.from_query(total=total, page=page, limit=limit),
        )

    def get_conversation(self, user_id: UUID, conversation_id: UUID) -> Conversation:
        """Load a conversation the caller takes part in.

        Raises:
            NotFoundError: If the conversation does not exist.
            ForbiddenError: If the caller is neither buyer nor seller.
        """
        conversation = self.conversations.get_by_id(conversation_id)
        if conversation is None:
            raise NotFoundError("conversation_not_found", resource="conversation")
        if not is_participant(conversation, user_id):
            raise ForbiddenError("invalid_participant")
        return conversation

    def get_conversation_by_id(self, user_id: UUID, conversation_id: UUID) -> ConversationResponse:
        conversation = self.get_conversation(user_id, conversation_id)
        return to_conversation_response(conversation, user_id)

    def mark_messages_as_read(self, user_id: UUID, conversation_id: UUID) -> int:
        """Mark the other participant's unread messages as read and clear the caller's counter.

        Nothing is written when there is nothing unread. Returns the number of
        messages that changed state.
        """
        conversation = self.get_conversation(user_id, conversation_id)
        reader_is_buyer = participant_role(conversation, user_id) is UserRole.BUYER

        # Serializes against sends, which update the same row.
        self.conversations.get_for_update(conversation_id)

        unread_ids = self.messages.unread_ids_from_others(conversation_id, user_id)
        if not unread_ids:
            self.conversations.rollback()
            return 0

        now = utcnow()
        try:
            marked = self.messages.mark_read(unread_ids, now)
            if marked:
                self.conversations.reset_unread(
                    conversation_id, reader_id=user_id, reader_is_buyer=reader_is_buyer, at=now
                )
            self.conversations.commit()
        except SQLAlchemyError:
            self.conversations.rollback()
            logger.exception("Failed to mark messages as read in conversation %s", conversation_id)
            raise

        logger.info(
            "User %s marked %d messages as read in conversation %s",
            user_id,
            marked,
            conversation_id,
        )
        return marked

    def get_total_unread(self, user_id: UUID) -> int:
        return self.conversations.total_unread_for(user_id)

    async def get_total_unread_cached(self, user_id: UUID) -> int:
        cached = await redis_module.get_cached_unread_total(user_id)
        if cached is not None:
            return cached

        count = await run_in_threadpool(self.get_total_unread, user_id)
        await redis_module.set_cached_unread_total(
            user_id, count, settings.UNREAD_CACHE_TTL_SECONDS
        )
        return count
