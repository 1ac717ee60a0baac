"""Inbound chat socket events.

Each event is parsed into a typed payload and dispatched to the same
conversation and message services used by the REST routes. Service calls
are synchronous and run in the threadpool, one short session per call.
Failures are reported to the triggering socket only, as an ``error`` event.
"""

from collections.abc import Awaitable, Callable
from typing import Any
from uuid import UUID

import pydantic
import structlog
from fastapi import WebSocket
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.core.constants import (
    WS_ERROR_DELIVERED,
    WS_ERROR_INTERNAL,
    WS_ERROR_INVALID_PAYLOAD,
    WS_ERROR_JOIN,
    WS_ERROR_NOT_IN_ROOM,
    WS_ERROR_READ,
    WS_ERROR_SEND,
    WS_ERROR_UNKNOWN_EVENT,
)
from app.core.exceptions import AppError
from app.messaging.gateway.connection_manager import ConnectionManager, conversation_room
from app.messaging.gateway.notifications import (
    NewMessageNotice,
    build_new_message_notice,
    publish_messages_read,
    publish_new_message,
)
from app.messaging.models.message import MessageStatus
from app.messaging.schemas.events import (
    ClientEnvelope,
    ConversationRef,
    MessageDeliveredPayload,
    SendMessagePayload,
    error_event,
    server_event,
)
from app.messaging.schemas.message import MessageCreate, MessageResponse
from app.messaging.services.conversation_service import ConversationService
from app.messaging.services.message_service import MessageService

logger = structlog.get_logger(__name__)

SessionFactory = Callable[[], Session]
EventHandler = Callable[[WebSocket, UUID, dict[str, Any]], Awaitable[None]]

_SERVICE_ERRORS = (pydantic.ValidationError, AppError, SQLAlchemyError)


class ChatEventHandler:
    def __init__(self, manager: ConnectionManager, session_factory: SessionFactory) -> None:
        self.manager = manager
        self.session_factory = session_factory
        self._handlers: dict[str, EventHandler] = {
            "join_conversation": self.join_conversation,
            "leave_conversation": self.leave_conversation,
            "send_message": self.send_message,
            "typing_start": self.typing_start,
            "typing_stop": self.typing_stop,
            "message_delivered": self.message_delivered,
            "messages_read": self.messages_read,
            "ping": self.ping,
        }

    async def dispatch(self, websocket: WebSocket, user_id: UUID, raw: str) -> None:
        try:
            envelope = ClientEnvelope.model_validate_json(raw)
        except pydantic.ValidationError:
            await self._error(websocket, WS_ERROR_INVALID_PAYLOAD)
            return

        handler = self._handlers.get(envelope.event)
        if handler is None:
            logger.info("chat_unknown_event", user_id=str(user_id), event_name=envelope.event)
            await self._error(websocket, WS_ERROR_UNKNOWN_EVENT)
            return

        try:
            await handler(websocket, user_id, envelope.data)
        except Exception:
            logger.exception(
                "chat_event_failed", user_id=str(user_id), event_name=envelope.event
            )
            await self._error(websocket, WS_ERROR_INTERNAL)

    async def _error(self, websocket: WebSocket, message: str) -> None:
        await self.manager.send(websocket, error_event(message))

    def _check_participant(self, user_id: UUID, conversation_id: UUID) -> None:
        with self.session_factory() as db:
            ConversationService(db).get_conversation(user_id, conversation_id)

    def _store_message(self, user_id: UUID, payload: SendMessagePayload) -> MessageResponse:
        with self.session_factory() as db:
            return MessageService(db).send_message(
                user_id,
                payload.conversation_id,
                MessageCreate(
                    type=payload.type,
                    content=payload.content,
                    image_url=payload.image_url,
                ),
            )

    def _describe_message(self, message: MessageResponse) -> NewMessageNotice:
        with self.session_factory() as db:
            return build_new_message_notice(db, message)

    def _acknowledge_delivery(
        self, user_id: UUID, message_id: UUID
    ) -> tuple[UUID, MessageStatus, bool]:
        with self.session_factory() as db:
            message, changed = MessageService(db).mark_delivered(user_id, message_id)
            return message.conversation_id, message.status, changed

    def _mark_read(self, user_id: UUID, conversation_id: UUID) -> int:
        with self.session_factory() as db:
            return ConversationService(db).mark_messages_as_read(user_id, conversation_id)

    async def join_conversation(
        self, websocket: WebSocket, user_id: UUID, data: dict[str, Any]
    ) -> None:
        try:
            ref = ConversationRef.model_validate(data)
            await run_in_threadpool(self._check_participant, user_id, ref.conversation_id)
        except _SERVICE_ERRORS as exc:
            logger.info("chat_join_rejected", user_id=str(user_id), reason=str(exc))
            await self._error(websocket, WS_ERROR_JOIN)
            return

        self.manager.join(websocket, conversation_room(ref.conversation_id))
        logger.info(
            "chat_conversation_joined",
            user_id=str(user_id),
            conversation_id=str(ref.conversation_id),
        )
        await self.manager.send(
            websocket,
            server_event("joined_conversation", {"conversation_id": str(ref.conversation_id)}),
        )

    async def leave_conversation(
        self, websocket: WebSocket, user_id: UUID, data: dict[str, Any]
    ) -> None:
        try:
            ref = ConversationRef.model_validate(data)
        except pydantic.ValidationError:
            await self._error(websocket, WS_ERROR_INVALID_PAYLOAD)
            return

        self.manager.leave(websocket, conversation_room(ref.conversation_id))
        logger.info(
            "chat_conversation_left",
            user_id=str(user_id),
            conversation_id=str(ref.conversation_id),
        )

    async def send_message(self, websocket: WebSocket, user_id: UUID, data: dict[str, Any]) -> None:
        try:
            payload = SendMessagePayload.model_validate(data)
            message = await run_in_threadpool(self._store_message, user_id, payload)
        except _SERVICE_ERRORS as exc:
            logger.warning("chat_send_failed", user_id=str(user_id), reason=str(exc))
            await self._error(websocket, WS_ERROR_SEND)
            return

        notice = await run_in_threadpool(self._describe_message, message)
        await publish_new_message(self.manager, notice)

    async def _typing(
        self, websocket: WebSocket, user_id: UUID, data: dict[str, Any], event: str
    ) -> None:
        try:
            ref = ConversationRef.model_validate(data)
        except pydantic.ValidationError:
            await self._error(websocket, WS_ERROR_INVALID_PAYLOAD)
            return

        room = conversation_room(ref.conversation_id)
        if not self.manager.is_member(websocket, room):
            await self._error(websocket, WS_ERROR_NOT_IN_ROOM)
            return

        await self.manager.broadcast(
            room,
            server_event(
                event, {"user_id": str(user_id), "conversation_id": str(ref.conversation_id)}
            ),
            exclude=websocket,
        )

    async def typing_start(
        self, websocket: WebSocket, user_id: UUID, data: dict[str, Any]
    ) -> None:
        await self._typing(websocket, user_id, data, "user_typing")

    async def typing_stop(self, websocket: WebSocket, user_id: UUID, data: dict[str, Any]) -> None:
        await self._typing(websocket, user_id, data, "user_stopped_typing")

    async def message_delivered(
        self, websocket: WebSocket, user_id: UUID, data: dict[str, Any]
    ) -> None:
        try:
            payload = MessageDeliveredPayload.model_validate(data)
            conversation_id, new_status, changed = await run_in_threadpool(
                self._acknowledge_delivery, user_id, payload.message_id
            )
        except _SERVICE_ERRORS as exc:
            logger.info("chat_delivery_ack_rejected", user_id=str(user_id), reason=str(exc))
            await self._error(websocket, WS_ERROR_DELIVERED)
            return

        if not changed:
            return

        await self.manager.broadcast(
            conversation_room(conversation_id),
            server_event(
                "message_status_updated",
                {
                    "message_id": str(payload.message_id),
                    "conversation_id": str(conversation_id),
                    "status": new_status.value,
                },
            ),
        )

    async def messages_read(
        self, websocket: WebSocket, user_id: UUID, data: dict[str, Any]
    ) -> None:
        try:
            ref = ConversationRef.model_validate(data)
            await run_in_threadpool(self._mark_read, user_id, ref.conversation_id)
        except _SERVICE_ERRORS as exc:
            logger.info("chat_mark_read_failed", user_id=str(user_id), reason=str(exc))
            await self._error(websocket, WS_ERROR_READ)
            return

        await publish_messages_read(self.manager, ref.conversation_id, user_id, exclude=websocket)

    async def ping(self, websocket: WebSocket, user_id: UUID, data: dict[str, Any]) -> None:
        await self.manager.send(websocket, server_event("pong"))
