"""
Auth flow: register -> verify email -> login, plus password reset.

User states: pending verification (``is_email_verified`` false) and active.
Pending users never receive a session; logging in re-triggers the
verification email instead.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import DEFAULT_BCRYPT_ROUNDS, hash_password, verify_password
from app.core.errors import (
    AlreadyVerified,
    DuplicateRequest,
    EmailAlreadyRegistered,
    EmailNotVerified,
    InvalidToken,
    NotFound,
    Unauthorized,
)
from app.core.mailer import Mailer, reset_password_email, verification_email
from app.core.tokens import TokenService
from app.models.user import User
from app.services.token_records import consume_token, issue_token
from taskhub_shared.schemas.auth import LoginRequest, RegisterRequest, ResetPasswordRequest
from taskhub_shared.schemas.common import TokenPurpose

log = structlog.get_logger()

NOT_VERIFIED_MESSAGE = "Email not verified. Please check your email for the verification link."


@dataclass
class LoginResult:
    user: User
    token: Optional[str] = None  # None while the user is still pending verification


def normalize_email(email: str) -> str:
    return email.strip().lower()


async def get_user_by_email(email: str, session: AsyncSession) -> Optional[User]:
    result = await session.execute(select(User).where(User.email == normalize_email(email)))
    return result.scalar_one_or_none()


async def _send_verification(
    user: User, tokens: TokenService, mailer: Mailer, session: AsyncSession
) -> None:
    token = await issue_token(user.id, TokenPurpose.EMAIL_VERIFICATION, tokens, session)
    subject, body = verification_email(user.name, mailer.build_link("/verify-email", token=token))
    await mailer.send_required(user.email, subject, body, what="verification")


async def register_user(
    req: RegisterRequest,
    tokens: TokenService,
    mailer: Mailer,
    session: AsyncSession,
    *,
    bcrypt_rounds: int = DEFAULT_BCRYPT_ROUNDS,
) -> User:
    """Create a pending user and email a verification link."""
    if await get_user_by_email(req.email, session):
        raise EmailAlreadyRegistered()

    user = User(
        email=normalize_email(req.email),
        name=req.name.strip(),
        password_hash=await asyncio.to_thread(hash_password, req.password, bcrypt_rounds),
        is_email_verified=False,
    )
    session.add(user)
    try:
        await session.flush()
    except IntegrityError:
        raise EmailAlreadyRegistered()

    await _send_verification(user, tokens, mailer, session)
    log.info("user.registered", user_id=str(user.id))
    return user


async def login(
    req: LoginRequest,
    tokens: TokenService,
    mailer: Mailer,
    session: AsyncSession,
) -> LoginResult:
    """Check credentials; active users get a session, pending users get an email."""
    user = await get_user_by_email(req.email, session)
    if user is None or not await asyncio.to_thread(verify_password, req.password, user.password_hash):
        log.info("auth.login_failed")
        raise Unauthorized("Invalid email or password")

    if not user.is_email_verified:
        try:
            await _send_verification(user, tokens, mailer, session)
        except DuplicateRequest:
            raise EmailNotVerified(NOT_VERIFIED_MESSAGE)
        log.info("auth.verification_resent", user_id=str(user.id))
        return LoginResult(user=user)

    token = tokens.issue({"sub": str(user.id)}, TokenPurpose.LOGIN)
    user.last_login = tokens.now()
    session.add(user)
    await session.flush()
    log.info("auth.login", user_id=str(user.id))
    return LoginResult(user=user, token=token)


async def verify_email(token: str, tokens: TokenService, session: AsyncSession) -> User:
    """Consume a verification token and activate the user exactly once."""
    claims, _ = await consume_token(token, TokenPurpose.EMAIL_VERIFICATION, tokens, session)

    user = await session.get(User, uuid.UUID(claims["sub"]))
    if user is None:
        raise InvalidToken()
    if user.is_email_verified:
        raise AlreadyVerified()

    user.is_email_verified = True
    session.add(user)
    await session.flush()
    log.info("user.verified", user_id=str(user.id))
    return user


async def request_password_reset(
    email: str,
    tokens: TokenService,
    mailer: Mailer,
    session: AsyncSession,
) -> None:
    user = await get_user_by_email(email, session)
    if user is None:
        raise NotFound("User not found")
    if not user.is_email_verified:
        raise EmailNotVerified("Please verify your email first")

    token = await issue_token(user.id, TokenPurpose.RESET_PASSWORD, tokens, session)
    subject, body = reset_password_email(user.name, mailer.build_link("/reset-password", token=token))
    await mailer.send_required(user.email, subject, body, what="reset password")
    log.info("auth.reset_requested", user_id=str(user.id))


async def reset_password(
    req: ResetPasswordRequest,
    tokens: TokenService,
    session: AsyncSession,
    *,
    bcrypt_rounds: int = DEFAULT_BCRYPT_ROUNDS,
) -> User:
    claims, _ = await consume_token(req.token, TokenPurpose.RESET_PASSWORD, tokens, session)

    user = await session.get(User, uuid.UUID(claims["sub"]))
    if user is None:
        raise InvalidToken()
    if not user.is_email_verified:
        raise EmailNotVerified("Please verify your email first")

    user.password_hash = await asyncio.to_thread(hash_password, req.new_password, bcrypt_rounds)
    session.add(user)
    await session.flush()
    log.info("auth.password_reset", user_id=str(user.id))
    return user
