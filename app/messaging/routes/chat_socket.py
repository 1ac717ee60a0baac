import structlog
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from sqlalchemy.orm import Session, sessionmaker

from app.auth.dependencies import authenticate_websocket
from app.db.session import get_session_factory
from app.messaging.dependencies import get_chat_manager
from app.messaging.gateway.connection_manager import ConnectionManager
from app.messaging.gateway.handlers import ChatEventHandler

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["chat"])


@router.websocket("/ws/chat")
async def chat_socket(
    websocket: WebSocket,
    session_factory: sessionmaker[Session] = Depends(get_session_factory),
    manager: ConnectionManager = Depends(get_chat_manager),
) -> None:
    user = await authenticate_websocket(websocket, session_factory)
    if user is None:
        return
    user_id = user.id

    await manager.connect(websocket, user_id)
    logger.info("chat_socket_connected", user_id=str(user_id))

    handler = ChatEventHandler(manager, session_factory)
    try:
        while True:
            raw = await websocket.receive_text()
            await handler.dispatch(websocket, user_id, raw)
    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(websocket)
        logger.info("chat_socket_disconnected", user_id=str(user_id))
