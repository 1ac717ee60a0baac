from fastapi import Depends
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.messaging.gateway.connection_manager import ConnectionManager, chat_manager
from app.messaging.services.conversation_service import ConversationService
from app.messaging.services.message_service import MessageService


def get_conversation_service(db: Session = Depends(get_db)) -> ConversationService:
    return ConversationService(db)


def get_message_service(db: Session = Depends(get_db)) -> MessageService:
    return MessageService(db)


def get_chat_manager() -> ConnectionManager:
    return chat_manager
