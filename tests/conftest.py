from pathlib import Path

from dotenv import load_dotenv

env_file = Path(__file__).parent.parent / ".env.test"
load_dotenv(env_file)

from unittest.mock import AsyncMock  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import app.db.base  # noqa: E402, F401
from app.core import redis as redis_module  # noqa: E402
from app.core.rate_limit import limiter  # noqa: E402
from app.core.security import create_access_token  # noqa: E402
from app.db.session import Base, get_db, get_session_factory  # noqa: E402
from app.main import app  # noqa: E402
from app.messaging.dependencies import get_chat_manager  # noqa: E402
from app.messaging.gateway.connection_manager import ConnectionManager  # noqa: E402
from tests.utils.factories import (  # noqa: E402
    create_property_factory,
    create_user_factory,
)


@pytest.fixture
def test_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)

    yield engine

    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def test_session_local(test_engine):
    return sessionmaker(bind=test_engine, autocommit=False, autoflush=False)


@pytest.fixture
def db_session(test_session_local):
    session = test_session_local()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def redis_client():
    client = AsyncMock()
    client.get.return_value = None
    redis_module.redis_client = client
    yield client
    redis_module.redis_client = None


@pytest.fixture
def chat_manager():
    return ConnectionManager()


@pytest.fixture
def test_app(db_session, test_session_local, redis_client, chat_manager):
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: test_session_local
    app.dependency_overrides[get_chat_manager] = lambda: chat_manager
    limiter.enabled = False

    yield app

    limiter.enabled = True
    app.dependency_overrides.clear()


@pytest.fixture
async def test_client(test_app):
    async with AsyncClient(transport=ASGITransport(app=test_app), base_url="http://test") as client:
        yield client


@pytest.fixture
def buyer(db_session):
    return create_user_factory(db_session, email="buyer@example.com", role="buyer")


@pytest.fixture
def seller(db_session):
    return create_user_factory(db_session, email="seller@example.com", role="seller")


@pytest.fixture
def outsider(db_session):
    return create_user_factory(db_session, email="outsider@example.com", role="buyer")


@pytest.fixture
def listing(db_session, seller):
    return create_property_factory(db_session, owner=seller, title="Sunny loft near the park")


def token_for(user) -> str:
    return create_access_token({"sub": str(user.id), "email": user.email, "role": user.role})


@pytest.fixture
def buyer_token(buyer):
    return token_for(buyer)


@pytest.fixture
def seller_token(seller):
    return token_for(seller)


@pytest.fixture
def outsider_token(outsider):
    return token_for(outsider)
