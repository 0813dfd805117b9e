"""
Shared fixtures: SQLite database per test, deterministic clock, recording
mailer, in-memory Redis revocation list and an ASGI client.
"""

from __future__ import annotations

import os

os.environ.setdefault("TASKHUB_DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("TASKHUB_BCRYPT_ROUNDS", "4")
os.environ.setdefault("TASKHUB_SECRET_KEY", "test-secret-key-0123456789abcdef0123456789abcdef")
os.environ.setdefault("TASKHUB_SMTP_HOST", "")

import re
import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

import app.models  # noqa: F401
from app.core.auth import hash_password
from app.core.config import Settings
from app.core.mailer import Mailer
from app.core.notifications import NotificationDispatcher
from app.core.tokens import TokenService
from app.main import create_app
from app.models.user import User
from taskhub_shared.schemas.common import TokenPurpose

TOKEN_IN_LINK = re.compile(r"[?&](?:token|tk)=([A-Za-z0-9_.\-]+)")


class FakeClock:
    def __init__(self):
        self.current = datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


class RecordingMailer(Mailer):
    """Captures outgoing mail instead of talking SMTP."""

    def __init__(self, settings: Settings):
        super().__init__(settings)
        self.sent: list[dict] = []
        self.fail = False

    async def send(self, to: str, subject: str, html_body: str) -> bool:
        if self.fail:
            return False
        self.sent.append({"to": to, "subject": subject, "html": html_body})
        return True

    def last_token(self, to: str | None = None) -> str:
        for mail in reversed(self.sent):
            if to is None or mail["to"] == to:
                return TOKEN_IN_LINK.search(mail["html"]).group(1)
        raise AssertionError(f"no mail sent to {to}")


@pytest.fixture
def settings() -> Settings:
    return Settings(
        secret_key="test-secret-key-0123456789abcdef0123456789abcdef",
        bcrypt_rounds=4,
        smtp_host="",
        frontend_url="http://frontend.test",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def tokens(settings, clock) -> TokenService:
    return TokenService(settings, clock=clock)


@pytest.fixture
def mailer(settings) -> RecordingMailer:
    return RecordingMailer(settings)


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'taskhub.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
def notifier(session_factory) -> NotificationDispatcher:
    return NotificationDispatcher(session_factory)


@pytest.fixture
def mock_redis():
    """In-memory stand-in for the revocation list."""
    store: dict[str, str] = {}
    redis = AsyncMock()

    async def setex(key, ttl, value):
        store[key] = value

    async def exists(key):
        return int(key in store)

    redis.setex.side_effect = setex
    redis.exists.side_effect = exists
    redis.store = store
    with patch("app.core.auth.get_redis", AsyncMock(return_value=redis)):
        yield redis


@pytest.fixture
def app(settings, engine, session_factory, tokens, mailer, notifier, mock_redis):
    application = create_app(settings)
    application.state.engine = engine
    application.state.session_factory = session_factory
    application.state.token_service = tokens
    application.state.mailer = mailer
    application.state.notifier = notifier
    return application


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def make_user(session_factory):
    async def _make(
        email: str | None = None,
        name: str = "Test User",
        password: str = "Password123!",
        verified: bool = True,
    ) -> User:
        async with session_factory() as s:
            user = User(
                email=email or f"user-{uuid.uuid4().hex[:8]}@example.com",
                name=name,
                password_hash=hash_password(password, rounds=4),
                is_email_verified=verified,
            )
            s.add(user)
            await s.commit()
            return user

    return _make


@pytest.fixture
def auth_headers(tokens):
    """Bearer session header for a user."""

    def _headers(user: User) -> dict[str, str]:
        token = tokens.issue({"sub": str(user.id)}, TokenPurpose.LOGIN)
        return {"Authorization": f"Bearer {token}"}

    return _headers
