from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.auth.dependencies import get_current_user
from app.auth.models.user import User
from app.core.config import settings
from app.core.constants import (
    CONVERSATION_MESSAGES_PAGE_SIZE,
    CONVERSATIONS_PAGE_SIZE,
    MAX_PAGE_SIZE,
)
from app.core.i18n import Translator, get_translator
from app.core.rate_limit import limiter
from app.core.schemas import ConfirmationResponse
from app.db.session import get_db
from app.messaging.dependencies import (
    get_chat_manager,
    get_conversation_service,
    get_message_service,
)
from app.messaging.gateway.connection_manager import ConnectionManager
from app.messaging.gateway.notifications import (
    publish_messages_read,
    publish_new_message,
    send_message_with_notice,
)
from app.messaging.schemas.conversation import (
    ConversationCreate,
    ConversationListResponse,
    ConversationResponse,
    UnreadCountResponse,
)
from app.messaging.schemas.message import (
    ConversationMessagesResponse,
    MessageCreate,
    MessageResponse,
)
from app.messaging.services.conversation_service import ConversationService
from app.messaging.services.message_service import MessageService

router = APIRouter(prefix="/conversations", tags=["conversations"])


@router.post("", response_model=ConversationResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
def create_conversation(
    request: Request,
    data: ConversationCreate,
    current_user: User = Depends(get_current_user),
    service: ConversationService = Depends(get_conversation_service),
) -> ConversationResponse:
    return service.create_conversation(current_user.id, data)


@router.get("", response_model=ConversationListResponse)
def list_conversations(
    page: int = Query(1, ge=1),
    limit: int = Query(CONVERSATIONS_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    current_user: User = Depends(get_current_user),
    service: ConversationService = Depends(get_conversation_service),
) -> ConversationListResponse:
    return service.get_user_conversations(current_user.id, page=page, limit=limit)


@router.get("/unread-count", response_model=UnreadCountResponse)
async def get_unread_count(
    current_user: User = Depends(get_current_user),
    service: ConversationService = Depends(get_conversation_service),
) -> UnreadCountResponse:
    count = await service.get_total_unread_cached(current_user.id)
    return UnreadCountResponse(unread_count=count)


@router.get("/{conversation_id}", response_model=ConversationResponse)
def get_conversation(
    conversation_id: UUID,
    current_user: User = Depends(get_current_user),
    service: ConversationService = Depends(get_conversation_service),
) -> ConversationResponse:
    return service.get_conversation_by_id(current_user.id, conversation_id)


@router.get("/{conversation_id}/messages", response_model=ConversationMessagesResponse)
def get_conversation_messages(
    conversation_id: UUID,
    page: int = Query(1, ge=1),
    limit: int = Query(CONVERSATION_MESSAGES_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    current_user: User = Depends(get_current_user),
    service: MessageService = Depends(get_message_service),
) -> ConversationMessagesResponse:
    return service.get_conversation_messages(
        current_user.id, conversation_id, page=page, limit=limit
    )


@router.post(
    "/{conversation_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit(settings.SEND_MESSAGE_RATE_LIMIT)
async def send_message(
    request: Request,
    conversation_id: UUID,
    data: MessageCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    manager: ConnectionManager = Depends(get_chat_manager),
) -> MessageResponse:
    notice = await run_in_threadpool(
        send_message_with_notice, db, current_user.id, conversation_id, data
    )
    await publish_new_message(manager, notice)
    return notice.message


@router.patch("/{conversation_id}/read", response_model=ConfirmationResponse)
async def mark_messages_as_read(
    conversation_id: UUID,
    current_user: User = Depends(get_current_user),
    service: ConversationService = Depends(get_conversation_service),
    manager: ConnectionManager = Depends(get_chat_manager),
    t: Translator = Depends(get_translator),
) -> ConfirmationResponse:
    await run_in_threadpool(service.mark_messages_as_read, current_user.id, conversation_id)
    await publish_messages_read(manager, conversation_id, current_user.id)
    return ConfirmationResponse(message=t("messages_marked_as_read"))
