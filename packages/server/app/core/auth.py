"""
Authentication for TaskHub.

Supports:
- Password hashing (bcrypt, configurable cost)
- Session tokens (``login`` purpose) via Bearer header or HttpOnly cookie
- Session revocation list in Redis
- CSRF double-submit token generation
"""

from __future__ import annotations

import secrets
import uuid
from typing import Optional

import bcrypt
import structlog
from fastapi import Depends, Request
from fastapi.security import APIKeyHeader
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.errors import Unauthorized
from app.core.redis import get_redis
from app.core.tokens import TokenService, get_token_service
from app.models.user import User
from taskhub_shared.schemas.common import TokenPurpose

log = structlog.get_logger()

SESSION_COOKIE = "th_session"
CSRF_COOKIE = "th_csrf"
DEFAULT_BCRYPT_ROUNDS = 12

api_key_header = APIKeyHeader(name="Authorization", auto_error=False)

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------

def hash_password(password: str, rounds: int = DEFAULT_BCRYPT_ROUNDS) -> str:
    """Hash a password using bcrypt. Callers pass the configured cost factor."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=rounds)).decode()


def verify_password(password: str, hashed: str) -> bool:
    """Verify a password against a bcrypt hash. Malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode(), hashed.encode())
    except ValueError:
        return False


# ---------------------------------------------------------------------------
# Session revocation (Redis)
# ---------------------------------------------------------------------------

async def revoke_jwt(jti: str, ttl_seconds: int = 3600) -> None:
    """Add a session token ID to the revocation list in Redis."""
    redis = await get_redis()
    await redis.setex(f"jwt:revoked:{jti}", max(ttl_seconds, 1), "1")


async def is_jwt_revoked(jti: str) -> bool:
    """Check if a session token ID has been revoked."""
    redis = await get_redis()
    return await redis.exists(f"jwt:revoked:{jti}") > 0


# ---------------------------------------------------------------------------
# CSRF Token
# ---------------------------------------------------------------------------

def generate_csrf_token() -> str:
    """Generate a random CSRF token."""
    return secrets.token_urlsafe(32)


# ---------------------------------------------------------------------------
# Authentication dependencies
# ---------------------------------------------------------------------------

def _extract_session_token(request: Request, authorization: Optional[str]) -> Optional[str]:
    if authorization and authorization.startswith("Bearer "):
        return authorization[7:].strip() or None
    return request.cookies.get(SESSION_COOKIE)


async def get_session_claims(
    request: Request,
    authorization: Optional[str] = Depends(api_key_header),
    tokens: TokenService = Depends(get_token_service),
) -> dict:
    """Verified, unrevoked ``login`` claims for the current request."""
    token = _extract_session_token(request, authorization)
    if not token:
        raise Unauthorized("Authentication required")

    claims = tokens.verify(token, TokenPurpose.LOGIN)
    if claims is None:
        raise Unauthorized("Invalid or expired session")

    if await is_jwt_revoked(claims["jti"]):
        log.info("auth.session_revoked", user_id=claims["sub"])
        raise Unauthorized("Session has been revoked")
    return claims


async def get_current_user(
    claims: dict = Depends(get_session_claims),
    session: AsyncSession = Depends(get_session),
) -> User:
    """Main authentication dependency: the active user behind the session."""
    try:
        user_id = uuid.UUID(claims["sub"])
    except ValueError:
        raise Unauthorized("Invalid or expired session")

    user = await session.get(User, user_id)
    if user is None or not user.is_email_verified:
        raise Unauthorized("User not found")
    return user
