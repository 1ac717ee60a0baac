from app.messaging.models.conversation import Conversation
from app.messaging.models.message import Message, MessageStatus, MessageType

__all__ = ["Conversation", "Message", "MessageStatus", "MessageType"]
