import logging
from collections.abc import Callable
from typing import Annotated, cast
from uuid import UUID

from fastapi import Cookie, Depends, Header, WebSocket
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.auth.models.user import User
from app.core import security
from app.core.constants import WS_CLOSE_UNAUTHENTICATED
from app.core.exceptions import ForbiddenError, UnauthorizedError
from app.db.session import get_db

logger = logging.getLogger(__name__)


def _load_active_user(db: Session, user_id: str | None) -> User | None:
    if user_id is None:
        return None
    try:
        user_uuid = UUID(user_id)
    except ValueError:
        return None
    user = db.query(User).filter(User.id == user_uuid).first()
    return cast(User | None, user)


async def get_access_token(
    access_token: Annotated[str | None, Cookie()] = None,
    authorization: Annotated[str | None, Header()] = None,
) -> str:
    """Extract the access token from the cookie or an ``Authorization: Bearer`` header"""
    token = access_token or security.strip_bearer(authorization)
    if not token:
        raise UnauthorizedError()
    return token


async def get_current_user(
    access_token: str = Depends(get_access_token),
    db: Session = Depends(get_db),
) -> User:
    """Get current authenticated user from access token"""
    user = _load_active_user(db, security.user_id_from_access_token(access_token))
    if user is None:
        raise UnauthorizedError()

    if not user.is_active:
        raise ForbiddenError()

    return user


def _load_socket_user(session_factory: Callable[[], Session], token: str | None) -> User | None:
    with session_factory() as db:
        return _load_active_user(db, security.user_id_from_access_token(token))


async def authenticate_websocket(
    websocket: WebSocket, session_factory: Callable[[], Session]
) -> User | None:
    """Bind a user to a live channel before it is accepted.

    The token is read from the ``token`` query parameter, the ``access_token``
    cookie or an ``Authorization`` header. On failure the socket is closed
    with code 4001 and None is returned.
    """
    token = (
        websocket.query_params.get("token")
        or websocket.cookies.get("access_token")
        or security.strip_bearer(websocket.headers.get("authorization"))
    )
    user = await run_in_threadpool(_load_socket_user, session_factory, token)

    if user is None or not user.is_active:
        logger.info("Rejected unauthenticated chat socket")
        await websocket.close(code=WS_CLOSE_UNAUTHENTICATED)
        return None

    return user
