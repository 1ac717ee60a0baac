import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from jose import JWTError, jwt

from app.core.config import settings

logger = logging.getLogger(__name__)


def create_access_token(data: dict[str, Any]) -> str:
    to_encode = data.copy()
    expire = datetime.now(UTC) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire, "iat": datetime.now(UTC), "type": "access"})
    encoded_jwt: str = jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return encoded_jwt


def decode_token(token: str) -> dict[str, Any] | None:
    try:
        payload: dict[str, Any] = jwt.decode(
            token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM]
        )
        return payload
    except JWTError:
        return None


def strip_bearer(value: str | None) -> str | None:
    """Return the raw token from a ``Bearer <token>`` header value."""
    if not value:
        return None
    scheme, _, credentials = value.partition(" ")
    if credentials and scheme.lower() == "bearer":
        return credentials.strip() or None
    return value.strip() or None


def user_id_from_access_token(token: str | None) -> str | None:
    """Decode an access token and return its subject, or None when unusable."""
    if not token:
        return None
    payload = decode_token(token)
    if payload is None:
        logger.info("Rejected undecodable access token")
        return None
    if payload.get("type") != "access":
        return None
    sub = payload.get("sub")
    return str(sub) if sub else None
