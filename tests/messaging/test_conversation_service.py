"""
Tests for ConversationService - creation rules, authorization and unread bookkeeping.
"""

import uuid
from datetime import timedelta
from unittest.mock import patch

import pytest

from app.core.datetime_utils import utcnow
from app.core.exceptions import ConflictError, ForbiddenError, NotFoundError
from app.messaging.models.conversation import Conversation
from app.messaging.models.message import Message, MessageStatus
from app.messaging.repositories.conversation_repository import ConversationRepository
from app.messaging.repositories.message_repository import MessageRepository
from app.messaging.schemas.conversation import ConversationCreate
from app.messaging.services.conversation_service import ConversationService
from tests.utils.factories import (
    create_conversation_factory,
    create_message_factory,
    create_property_factory,
    create_user_factory,
)


class TestCreateConversation:
    def test_creates_conversation_with_requester_as_buyer(self, db_session, buyer, seller, listing):
        service = ConversationService(db_session)

        result = service.create_conversation(
            buyer.id, ConversationCreate(property_id=listing.id, seller_id=seller.id)
        )

        assert result.buyer_id == buyer.id
        assert result.seller_id == seller.id
        assert result.property_id == listing.id
        assert result.buyer_unread_count == 0
        assert result.seller_unread_count == 0
        assert result.unread_count == 0
        assert result.last_message is None
        assert result.last_message_at is None
        assert result.buyer.email == buyer.email
        assert result.property.title == listing.title
        assert db_session.query(Conversation).count() == 1

    def test_rejects_own_property(self, db_session, seller, listing):
        service = ConversationService(db_session)

        with pytest.raises(ForbiddenError) as exc_info:
            service.create_conversation(
                seller.id, ConversationCreate(property_id=listing.id, seller_id=seller.id)
            )

        assert exc_info.value.message_key == "cannot_message_own_property"
        assert db_session.query(Conversation).count() == 0

    def test_rejects_own_property_whatever_seller_is_named(
        self, db_session, seller, outsider, listing
    ):
        """The owner is refused even when naming somebody else as seller."""
        service = ConversationService(db_session)

        with pytest.raises(ForbiddenError) as exc_info:
            service.create_conversation(
                seller.id, ConversationCreate(property_id=listing.id, seller_id=outsider.id)
            )

        assert exc_info.value.message_key == "cannot_message_own_property"

    def test_rejects_seller_who_does_not_own_property(self, db_session, buyer, outsider, listing):
        service = ConversationService(db_session)

        with pytest.raises(ForbiddenError) as exc_info:
            service.create_conversation(
                buyer.id, ConversationCreate(property_id=listing.id, seller_id=outsider.id)
            )

        assert exc_info.value.message_key == "seller_mismatch"
        assert db_session.query(Conversation).count() == 0

    def test_missing_property_is_not_found(self, db_session, buyer, seller):
        service = ConversationService(db_session)

        with pytest.raises(NotFoundError) as exc_info:
            service.create_conversation(
                buyer.id, ConversationCreate(property_id=uuid.uuid4(), seller_id=seller.id)
            )

        assert exc_info.value.message_key == "property_not_found"

    def test_second_create_for_same_triple_conflicts(self, db_session, buyer, seller, listing):
        service = ConversationService(db_session)
        data = ConversationCreate(property_id=listing.id, seller_id=seller.id)
        service.create_conversation(buyer.id, data)

        with pytest.raises(ConflictError):
            service.create_conversation(buyer.id, data)

        assert db_session.query(Conversation).count() == 1

    def test_unique_constraint_race_is_reported_as_conflict(
        self, db_session, buyer, seller, listing
    ):
        """A concurrent insert that slips past the pre-check still surfaces as Conflict."""
        create_conversation_factory(db_session, listing, buyer)
        service = ConversationService(db_session)

        with patch.object(ConversationRepository, "find_by_triple", return_value=None):
            with pytest.raises(ConflictError):
                service.create_conversation(
                    buyer.id, ConversationCreate(property_id=listing.id, seller_id=seller.id)
                )

        assert db_session.query(Conversation).count() == 1

    def test_other_buyer_gets_own_conversation(self, db_session, buyer, outsider, seller, listing):
        service = ConversationService(db_session)
        data = ConversationCreate(property_id=listing.id, seller_id=seller.id)

        first = service.create_conversation(buyer.id, data)
        second = service.create_conversation(outsider.id, data)

        assert first.id != second.id


class TestGetUserConversations:
    def test_orders_by_last_message_then_created_at(self, db_session, buyer, seller):
        now = utcnow()
        props = [create_property_factory(db_session, owner=seller) for _ in range(4)]
        never_messaged_old = create_conversation_factory(
            db_session, props[0], buyer, created_at=now - timedelta(days=3)
        )
        never_messaged_new = create_conversation_factory(
            db_session, props[1], buyer, created_at=now - timedelta(days=1)
        )
        recent = create_conversation_factory(
            db_session,
            props[2],
            buyer,
            last_message="latest",
            last_message_at=now - timedelta(minutes=1),
            created_at=now - timedelta(days=10),
        )
        older = create_conversation_factory(
            db_session,
            props[3],
            buyer,
            last_message="older",
            last_message_at=now - timedelta(hours=5),
            created_at=now - timedelta(days=9),
        )

        result = ConversationService(db_session).get_user_conversations(buyer.id)

        assert [c.id for c in result.data] == [
            recent.id,
            older.id,
            never_messaged_new.id,
            never_messaged_old.id,
        ]

    def test_includes_conversations_as_buyer_and_as_seller(self, db_session, buyer, seller, listing):
        own_listing = create_property_factory(db_session, owner=buyer)
        as_buyer = create_conversation_factory(db_session, listing, buyer)
        as_seller = create_conversation_factory(db_session, own_listing, seller)
        stranger = create_user_factory(db_session)
        create_conversation_factory(db_session, listing, stranger)

        result = ConversationService(db_session).get_user_conversations(buyer.id)

        assert {c.id for c in result.data} == {as_buyer.id, as_seller.id}
        assert result.pagination.total == 2

    def test_unread_count_is_callers_own_counter(self, db_session, buyer, seller, listing):
        create_conversation_factory(
            db_session, listing, buyer, buyer_unread_count=2, seller_unread_count=7
        )
        service = ConversationService(db_session)

        as_buyer = service.get_user_conversations(buyer.id).data[0]
        as_seller = service.get_user_conversations(seller.id).data[0]

        assert as_buyer.unread_count == 2
        assert as_seller.unread_count == 7

    def test_second_page_of_one_out_of_ten(self, db_session, buyer, seller):
        for _ in range(10):
            create_conversation_factory(
                db_session, create_property_factory(db_session, owner=seller), buyer
            )

        result = ConversationService(db_session).get_user_conversations(buyer.id, page=2, limit=1)

        assert len(result.data) == 1
        assert result.pagination.total == 10
        assert result.pagination.total_pages == 10
        assert result.pagination.page == 2
        assert result.pagination.has_next_page is True
        assert result.pagination.has_previous_page is True

    def test_empty_list(self, db_session, buyer):
        result = ConversationService(db_session).get_user_conversations(buyer.id)

        assert result.data == []
        assert result.pagination.total == 0
        assert result.pagination.total_pages == 0
        assert result.pagination.has_next_page is False


class TestGetConversationById:
    def test_participant_sees_own_unread_count(self, db_session, buyer, seller, listing):
        conversation = create_conversation_factory(
            db_session, listing, buyer, buyer_unread_count=1, seller_unread_count=4
        )
        service = ConversationService(db_session)

        assert service.get_conversation_by_id(buyer.id, conversation.id).unread_count == 1
        assert service.get_conversation_by_id(seller.id, conversation.id).unread_count == 4

    def test_non_participant_is_forbidden(self, db_session, buyer, outsider, listing):
        conversation = create_conversation_factory(db_session, listing, buyer)

        with pytest.raises(ForbiddenError):
            ConversationService(db_session).get_conversation_by_id(outsider.id, conversation.id)

    def test_missing_conversation_is_not_found(self, db_session, buyer):
        with pytest.raises(NotFoundError):
            ConversationService(db_session).get_conversation_by_id(buyer.id, uuid.uuid4())


class TestMarkMessagesAsRead:
    def test_marks_other_participants_messages_and_resets_own_counter(
        self, db_session, buyer, seller, listing
    ):
        conversation = create_conversation_factory(
            db_session, listing, buyer, buyer_unread_count=1, seller_unread_count=2
        )
        from_buyer = [create_message_factory(db_session, conversation, buyer) for _ in range(2)]
        from_seller = create_message_factory(db_session, conversation, seller)

        marked = ConversationService(db_session).mark_messages_as_read(seller.id, conversation.id)

        assert marked == 2
        db_session.expire_all()
        refreshed = db_session.get(Conversation, conversation.id)
        assert refreshed.seller_unread_count == 0
        assert refreshed.buyer_unread_count == 1
        for message in from_buyer:
            stored = db_session.get(Message, message.id)
            assert stored.is_read is True
            assert stored.status == MessageStatus.READ
            assert stored.read_at is not None
        own = db_session.get(Message, from_seller.id)
        assert own.is_read is False
        assert own.status == MessageStatus.SENT
        assert own.read_at is None

    def test_no_unread_messages_performs_no_writes(self, db_session, buyer, seller, listing):
        conversation = create_conversation_factory(db_session, listing, buyer)
        create_message_factory(db_session, conversation, seller, is_read=True)
        create_message_factory(db_session, conversation, buyer)
        updated_at_before = conversation.updated_at
        service = ConversationService(db_session)

        with (
            patch.object(MessageRepository, "mark_read") as mark_read,
            patch.object(ConversationRepository, "reset_unread") as reset_unread,
            patch.object(db_session, "commit", wraps=db_session.commit) as commit,
        ):
            marked = service.mark_messages_as_read(buyer.id, conversation.id)

        assert marked == 0
        mark_read.assert_not_called()
        reset_unread.assert_not_called()
        commit.assert_not_called()
        db_session.expire_all()
        assert db_session.get(Conversation, conversation.id).updated_at == updated_at_before

    def test_non_participant_is_forbidden_before_any_change(
        self, db_session, buyer, seller, outsider, listing
    ):
        conversation = create_conversation_factory(
            db_session, listing, buyer, seller_unread_count=1
        )
        message = create_message_factory(db_session, conversation, buyer)

        with pytest.raises(ForbiddenError):
            ConversationService(db_session).mark_messages_as_read(outsider.id, conversation.id)

        db_session.expire_all()
        assert db_session.get(Message, message.id).is_read is False
        assert db_session.get(Conversation, conversation.id).seller_unread_count == 1

    def test_missing_conversation_is_not_found(self, db_session, buyer):
        with pytest.raises(NotFoundError):
            ConversationService(db_session).mark_messages_as_read(buyer.id, uuid.uuid4())

    def test_second_call_is_a_no_op(self, db_session, buyer, seller, listing):
        conversation = create_conversation_factory(
            db_session, listing, buyer, buyer_unread_count=1
        )
        create_message_factory(db_session, conversation, seller)
        service = ConversationService(db_session)

        assert service.mark_messages_as_read(buyer.id, conversation.id) == 1
        assert service.mark_messages_as_read(buyer.id, conversation.id) == 0


class TestTotalUnread:
    def test_sums_callers_counters_across_roles(self, db_session, buyer, seller, listing):
        own_listing = create_property_factory(db_session, owner=buyer)
        create_conversation_factory(
            db_session, listing, buyer, buyer_unread_count=3, seller_unread_count=9
        )
        create_conversation_factory(
            db_session, own_listing, seller, buyer_unread_count=5, seller_unread_count=2
        )

        assert ConversationService(db_session).get_total_unread(buyer.id) == 3 + 2

    def test_zero_without_conversations(self, db_session, outsider):
        assert ConversationService(db_session).get_total_unread(outsider.id) == 0

    @pytest.mark.asyncio
    async def test_cached_value_is_returned_without_query(self, db_session, buyer, redis_client):
        redis_client.get.return_value = "11"
        service = ConversationService(db_session)

        with patch.object(ConversationRepository, "total_unread_for") as total_unread_for:
            count = await service.get_total_unread_cached(buyer.id)

        assert count == 11
        total_unread_for.assert_not_called()

    @pytest.mark.asyncio
    async def test_cache_miss_computes_and_stores(self, db_session, buyer, seller, listing, redis_client):
        create_conversation_factory(db_session, listing, buyer, buyer_unread_count=4)

        count = await ConversationService(db_session).get_total_unread_cached(buyer.id)

        assert count == 4
        redis_client.setex.assert_awaited_once()
        key, ttl, value = redis_client.setex.await_args.args
        assert key == f"chat:unread:{buyer.id}"
        assert value == "4"

    @pytest.mark.asyncio
    async def test_cache_failure_falls_back_to_database(
        self, db_session, buyer, seller, listing, redis_client
    ):
        redis_client.get.side_effect = ConnectionError("redis down")
        redis_client.setex.side_effect = ConnectionError("redis down")
        create_conversation_factory(db_session, listing, buyer, buyer_unread_count=2)

        count = await ConversationService(db_session).get_total_unread_cached(buyer.id)

        assert count == 2
