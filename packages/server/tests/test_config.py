"""
Tests that ``create_app(settings)`` runs entirely on the settings it is given:
database, session lifetime, cookies, bcrypt cost and Redis URL.
"""

from __future__ import annotations

import jwt
import pytest
from httpx import ASGITransport, AsyncClient
from sqlmodel import select

from app.core import redis as redis_module
from app.core.auth import hash_password
from app.core.config import Settings
from app.core.database import init_db
from app.main import create_app
from app.models.user import User

DAY = 86400


@pytest.fixture
def custom_settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'custom.db'}",
        redis_url="redis://cache.internal:6390/3",
        secret_key="custom-secret-key-0123456789abcdef0123456789abcdef",
        session_ttl_days=1,
        bcrypt_rounds=5,
        smtp_host="",
        frontend_url="http://custom.test",
    )


@pytest.fixture
async def custom_app(custom_settings, mock_redis):
    application = create_app(custom_settings)
    await init_db(application.state.engine)
    yield application
    await application.state.engine.dispose()


@pytest.fixture
async def custom_client(custom_app):
    async with AsyncClient(transport=ASGITransport(app=custom_app), base_url="http://test") as ac:
        yield ac


class TestCreateAppSettings:
    async def test_collaborators_built_from_settings(self, custom_app, custom_settings):
        assert custom_app.state.settings is custom_settings
        assert str(custom_app.state.engine.url) == custom_settings.database_url
        assert redis_module._redis_url == custom_settings.redis_url

    async def test_session_cookie_matches_token_lifetime(self, custom_app, custom_client):
        async with custom_app.state.session_factory() as s:
            s.add(
                User(
                    email="carol@example.com",
                    name="Carol",
                    password_hash=hash_password("Password123!", rounds=4),
                    is_email_verified=True,
                )
            )
            await s.commit()

        resp = await custom_client.post(
            "/auth/login", json={"email": "carol@example.com", "password": "Password123!"}
        )
        assert resp.status_code == 200

        claims = jwt.decode(
            resp.json()["token"],
            "custom-secret-key-0123456789abcdef0123456789abcdef",
            algorithms=["HS256"],
        )
        assert claims["exp"] - claims["iat"] == DAY

        cookies = resp.headers.get_list("set-cookie")
        session_cookie = next(c for c in cookies if c.startswith("th_session="))
        assert f"Max-Age={DAY}" in session_cookie

    async def test_register_hashes_with_configured_rounds(self, custom_app, custom_client):
        resp = await custom_client.post(
            "/auth/register",
            json={"name": "Carol Doe", "email": "carol@example.com", "password": "Password123!"},
        )
        assert resp.status_code == 201

        async with custom_app.state.session_factory() as s:
            user = (await s.execute(select(User).where(User.email == "carol@example.com"))).scalar_one()
        assert user.password_hash.startswith("$2b$05$")

    async def test_notifier_writes_to_app_database(self, custom_app):
        assert custom_app.state.notifier._session_factory is custom_app.state.session_factory
