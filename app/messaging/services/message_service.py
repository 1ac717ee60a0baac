import logging
from collections.abc import Callable
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.auth.models.user import UserRole
from app.core.config import settings
from app.core.constants import IMAGE_MESSAGE_PREVIEW
from app.core.datetime_utils import utcnow
from app.core.exceptions import ForbiddenError, NotFoundError
from app.core.schemas import PaginationMeta, pagination_offset
from app.core.storage import UploadedImage, upload_image
from app.messaging.models.message import Message, MessageStatus, MessageType
from app.messaging.repositories.conversation_repository import ConversationRepository
from app.messaging.repositories.message_repository import MessageRepository
from app.messaging.schemas.message import (
    ConversationMessagesResponse,
    MessageCreate,
    MessageResponse,
)
from app.messaging.services.conversation_service import ConversationService
from app.messaging.services.participants import participant_role

logger = logging.getLogger(__name__)

ImageUploader = Callable[[str, str], UploadedImage]


class MessageService:
    """Sends messages and reads conversation history.

    A send writes the message row and the conversation's preview and unread
    counter in one transaction.
    """

    def __init__(
        self,
        db: Session,
        conversation_service: ConversationService | None = None,
        messages: MessageRepository | None = None,
        conversations: ConversationRepository | None = None,
        image_uploader: ImageUploader = upload_image,
    ) -> None:
        self.db = db
        self.messages = messages or MessageRepository(db)
        self.conversations = conversations or ConversationRepository(db)
        self.conversation_service = conversation_service or ConversationService(
            db, conversations=self.conversations, messages=self.messages
        )
        self._upload_image = image_uploader

    def send_message(
        self, sender_id: UUID, conversation_id: UUID, data: MessageCreate
    ) -> MessageResponse:
        conversation = self.conversation_service.get_conversation(sender_id, conversation_id)
        recipient_is_buyer = participant_role(conversation, sender_id) is UserRole.SELLER

        image_url = data.image_url
        if data.type == MessageType.IMAGE and image_url:
            image_url = self._rehost_image(image_url)

        preview = IMAGE_MESSAGE_PREVIEW if data.type == MessageType.IMAGE else data.content
        now = utcnow()

        try:
            message = self.messages.create(
                conversation_id=conversation_id,
                sender_id=sender_id,
                content=data.content,
                type=data.type,
                image_url=image_url,
                status=MessageStatus.SENT,
                is_read=False,
                created_at=now,
            )
            self.conversations.record_message(
                conversation_id,
                recipient_is_buyer=recipient_is_buyer,
                preview=preview,
                at=now,
            )
            self.messages.commit()
        except SQLAlchemyError:
            self.messages.rollback()
            logger.exception("Failed to store message in conversation %s", conversation_id)
            raise

        self.messages.refresh(message)
        logger.info(
            "Message %s sent by %s in conversation %s", message.id, sender_id, conversation_id
        )
        return MessageResponse.model_validate(message)

    def _rehost_image(self, original: str) -> str:
        """Copy the image to object storage; keep the original value if that fails."""
        try:
            return self._upload_image(original, settings.CHAT_IMAGES_FOLDER).url
        except Exception:
            logger.warning("Chat image upload failed, storing original image URL", exc_info=True)
            return original

    def get_conversation_messages(
        self, user_id: UUID, conversation_id: UUID, page: int = 1, limit: int = 50
    ) -> ConversationMessagesResponse:
        conversation = self.conversation_service.get_conversation_by_id(user_id, conversation_id)

        total = self.messages.count_for_conversation(conversation_id)
        newest_first = self.messages.list_newest_first(
            conversation_id, offset=pagination_offset(page, limit), limit=limit
        )

        return ConversationMessagesResponse(
            data=[MessageResponse.model_validate(m) for m in reversed(newest_first)],
            pagination=PaginationMeta.from_query(total=total, page=page, limit=limit),
            conversation=conversation,
        )

    def mark_delivered(self, user_id: UUID, message_id: UUID) -> tuple[Message, bool]:
        """Acknowledge delivery of a message on behalf of its recipient.

        Only moves SENT to DELIVERED. Returns the message and whether its
        status changed.

        Raises:
            NotFoundError: If the message does not exist.
            ForbiddenError: If the caller sent the message or is not a participant.
        """
        message = self.messages.get_by_id(message_id)
        if message is None:
            raise NotFoundError("message_not_found", resource="message")

        self.conversation_service.get_conversation(user_id, message.conversation_id)
        if message.sender_id == user_id:
            raise ForbiddenError()

        try:
            changed = self.messages.mark_delivered(message_id) > 0
            self.messages.commit()
        except SQLAlchemyError:
            self.messages.rollback()
            raise

        self.messages.refresh(message)
        return message, changed
