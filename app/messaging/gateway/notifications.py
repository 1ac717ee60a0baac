"""Live fan-out shared by the REST routes and the socket handlers.

Building a notice reads the database and is synchronous; callers on the event
loop run it through ``run_in_threadpool`` and only await the publishing part.
"""

from dataclasses import dataclass
from uuid import UUID

import structlog
from fastapi import WebSocket
from sqlalchemy.orm import Session

from app.core import redis as redis_module
from app.messaging.gateway.connection_manager import ConnectionManager, conversation_room
from app.messaging.schemas.conversation import ConversationResponse
from app.messaging.schemas.events import server_event
from app.messaging.schemas.message import MessageCreate, MessageResponse
from app.messaging.services.conversation_service import ConversationService
from app.messaging.services.message_service import MessageService
from app.messaging.services.participants import other_participant_id

logger = structlog.get_logger(__name__)


@dataclass
class NewMessageNotice:
    message: MessageResponse
    recipient_id: UUID
    recipient_view: ConversationResponse


def build_new_message_notice(db: Session, message: MessageResponse) -> NewMessageNotice:
    """Resolve the recipient of a stored message and their view of the conversation."""
    service = ConversationService(db)
    conversation = service.get_conversation(message.sender_id, message.conversation_id)
    recipient_id = other_participant_id(conversation, message.sender_id)
    return NewMessageNotice(
        message=message,
        recipient_id=recipient_id,
        recipient_view=service.get_conversation_by_id(recipient_id, message.conversation_id),
    )


def send_message_with_notice(
    db: Session, sender_id: UUID, conversation_id: UUID, data: MessageCreate
) -> NewMessageNotice:
    message = MessageService(db).send_message(sender_id, conversation_id, data)
    return build_new_message_notice(db, message)


async def publish_new_message(manager: ConnectionManager, notice: NewMessageNotice) -> None:
    """Push a stored message to its room and notify the recipient's personal room."""
    message = notice.message
    payload = message.model_dump(mode="json")
    await manager.broadcast(
        conversation_room(message.conversation_id), server_event("new_message", payload)
    )
    await manager.send_to_user(
        notice.recipient_id,
        server_event(
            "message_notification",
            {
                "conversation_id": str(message.conversation_id),
                "message": payload,
                "conversation": notice.recipient_view.model_dump(mode="json"),
            },
        ),
    )
    await redis_module.invalidate_unread_totals(message.sender_id, notice.recipient_id)
    logger.info(
        "chat_message_published",
        conversation_id=str(message.conversation_id),
        message_id=str(message.id),
    )


async def publish_messages_read(
    manager: ConnectionManager,
    conversation_id: UUID,
    reader_id: UUID,
    exclude: WebSocket | None = None,
) -> None:
    await manager.broadcast(
        conversation_room(conversation_id),
        server_event(
            "messages_read",
            {"conversation_id": str(conversation_id), "read_by": str(reader_id)},
        ),
        exclude=exclude,
    )
    await redis_module.invalidate_unread_totals(reader_id)
