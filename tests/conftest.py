"""
Shared fixtures: in-memory database, stubbed ServiceTitan transport, API client.
"""
import os
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("SITE_URL", "https://www.example-plumbing.com")

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from homeservices import config
from homeservices import models, models_google_drive, models_marketing, models_photos  # noqa: F401
from homeservices.database import Base, get_db
from homeservices.integrations.servicetitan.auth import ServiceTitanAuth

ADMIN_TOKEN = "test-admin-token"
TENANT_ID = "12345"
API_URL = "https://api.servicetitan.test"
AUTH_URL = "https://auth.servicetitan.test"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


class RecordingHandler:
    """
    httpx.MockTransport handler: answers the token endpoint itself and routes
    API calls to ``responder(request)``. Every API request is recorded.
    """

    def __init__(self, responder):
        self.responder = responder
        self.requests: list[httpx.Request] = []
        self.token_calls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == httpx.URL(AUTH_URL).host:
            self.token_calls += 1
            return httpx.Response(200, json={"access_token": "st-token", "expires_in": 900})
        self.requests.append(request)
        return self.responder(request)

    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]


@pytest.fixture
def make_st_auth():
    """Build a ServiceTitanAuth whose HTTP goes to ``responder``"""

    def factory(responder):
        handler = RecordingHandler(responder)
        auth = ServiceTitanAuth(
            client_id="client",
            client_secret="secret",
            tenant_id=TENANT_ID,
            app_key="app-key",
            auth_url=AUTH_URL,
            api_url=API_URL,
            transport=httpx.MockTransport(handler),
        )
        return auth, handler

    return factory


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {ADMIN_TOKEN}"}


@pytest.fixture
def api_client(db, monkeypatch):
    from homeservices.main import app
    from homeservices.routes.portal import portal_rate_limit
    from homeservices.routes.scheduler import availability_rate_limit, booking_rate_limit

    monkeypatch.setattr(config, "ADMIN_API_TOKEN", ADMIN_TOKEN)

    def override_get_db():
        yield db

    async def no_rate_limit():
        return None

    app.dependency_overrides[get_db] = override_get_db
    for limiter in (portal_rate_limit, booking_rate_limit, availability_rate_limit):
        app.dependency_overrides[limiter] = no_rate_limit

    yield TestClient(app)
    app.dependency_overrides.clear()


def openai_reply(content: str):
    """Shape of a chat.completions response as far as the services read it"""
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


@pytest.fixture
def fake_openai():
    """AsyncOpenAI stand-in answering each completion call with the next reply"""

    def factory(*contents):
        client = MagicMock()
        client.chat.completions.create = AsyncMock(
            side_effect=[openai_reply(content) for content in contents]
        )
        return client

    return factory
