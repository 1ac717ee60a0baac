"""Participant helpers shared by the REST services and the live gateway."""

from uuid import UUID

from app.auth.models.user import UserRole
from app.messaging.models.conversation import Conversation


def is_participant(conversation: Conversation, user_id: UUID) -> bool:
    return user_id in (conversation.buyer_id, conversation.seller_id)


def participant_role(conversation: Conversation, user_id: UUID) -> UserRole:
    """Role ``user_id`` plays in the conversation.

    Raises:
        ValueError: If the user is not a participant.
    """
    if user_id == conversation.buyer_id:
        return UserRole.BUYER
    if user_id == conversation.seller_id:
        return UserRole.SELLER
    raise ValueError(f"User {user_id} is not a participant of conversation {conversation.id}")


def unread_count_for(conversation: Conversation, user_id: UUID) -> int:
    """The caller's own unread counter, never the other participant's."""
    if participant_role(conversation, user_id) is UserRole.BUYER:
        return conversation.buyer_unread_count or 0
    return conversation.seller_unread_count or 0


def other_participant_id(conversation: Conversation, user_id: UUID) -> UUID:
    if participant_role(conversation, user_id) is UserRole.BUYER:
        return conversation.seller_id
    return conversation.buyer_id
