import uuid
from datetime import datetime
from decimal import Decimal

from faker import Faker
from sqlalchemy.orm import Session

from app.auth.models.user import User
from app.core.datetime_utils import utcnow
from app.messaging.models.conversation import Conversation
from app.messaging.models.message import Message, MessageStatus, MessageType
from app.properties.models.property import Property

fake = Faker()


def create_user_factory(
    db_session: Session,
    email: str | None = None,
    name: str | None = None,
    role: str = "buyer",
    is_active: bool = True,
) -> User:
    """
    Factory function to create test users.

    Args:
        db_session: Database session
        email: User email (generates random if None)
        name: User name (generates random if None)
        role: User role ("buyer" or "seller")
        is_active: Whether user is active

    Returns:
        Created User instance
    """
    user = User(
        id=uuid.uuid4(),
        email=email or fake.unique.email(),
        name=name or fake.name(),
        role=role,
        is_active=is_active,
        created_at=utcnow(),
        updated_at=utcnow(),
    )

    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)

    return user


def create_property_factory(
    db_session: Session,
    owner: User,
    title: str | None = None,
    price: Decimal | None = None,
) -> Property:
    prop = Property(
        id=uuid.uuid4(),
        user_id=owner.id,
        title=title or fake.street_address(),
        price=price if price is not None else Decimal("250000.00"),
        main_image_url=fake.image_url(),
        created_at=utcnow(),
        updated_at=utcnow(),
    )

    db_session.add(prop)
    db_session.commit()
    db_session.refresh(prop)

    return prop


def create_conversation_factory(
    db_session: Session,
    prop: Property,
    buyer: User,
    buyer_unread_count: int = 0,
    seller_unread_count: int = 0,
    last_message: str | None = None,
    last_message_at: datetime | None = None,
    created_at: datetime | None = None,
) -> Conversation:
    """Create a conversation between ``buyer`` and the owner of ``prop``.

    Counters are stored as given; they are not derived from messages.
    """
    conversation = Conversation(
        id=uuid.uuid4(),
        property_id=prop.id,
        buyer_id=buyer.id,
        seller_id=prop.user_id,
        last_message=last_message,
        last_message_at=last_message_at,
        buyer_unread_count=buyer_unread_count,
        seller_unread_count=seller_unread_count,
        created_at=created_at or utcnow(),
        updated_at=created_at or utcnow(),
    )

    db_session.add(conversation)
    db_session.commit()
    db_session.refresh(conversation)

    return conversation


def create_message_factory(
    db_session: Session,
    conversation: Conversation,
    sender: User,
    content: str | None = None,
    is_read: bool = False,
    message_type: MessageType = MessageType.TEXT,
    image_url: str | None = None,
    created_at: datetime | None = None,
) -> Message:
    read_at = utcnow() if is_read else None
    message = Message(
        id=uuid.uuid4(),
        conversation_id=conversation.id,
        sender_id=sender.id,
        content=content or fake.sentence(),
        type=message_type,
        image_url=image_url,
        status=MessageStatus.READ if is_read else MessageStatus.SENT,
        is_read=is_read,
        read_at=read_at,
        created_at=created_at or utcnow(),
    )

    db_session.add(message)
    db_session.commit()
    db_session.refresh(message)

    return message
