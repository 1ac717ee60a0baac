from typing import Any
from unittest.mock import AsyncMock

import httpx


def create_auth_headers(token: str) -> dict[str, str]:
    """Create Authorization headers with Bearer token."""
    return {"Authorization": f"Bearer {token}"}


def make_socket() -> AsyncMock:
    """A stand-in for a Starlette WebSocket that records what is sent to it."""
    return AsyncMock()


def sent_events(websocket: AsyncMock) -> list[dict[str, Any]]:
    return [call.args[0] for call in websocket.send_json.await_args_list]


def event_names(websocket: AsyncMock) -> list[str]:
    return [event["event"] for event in sent_events(websocket)]


def events_named(websocket: AsyncMock, name: str) -> list[dict[str, Any]]:
    return [event["data"] for event in sent_events(websocket) if event["event"] == name]


def set_access_token_cookie(client: httpx.AsyncClient, access_token: str) -> None:
    """Set only the access token cookie on the test client."""
    client.cookies.set("access_token", access_token)
