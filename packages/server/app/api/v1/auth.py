"""
Authentication endpoints.

- Email/password registration with email verification
- Login (session token in body + HttpOnly cookie), logout, current user
- Password reset request and reset
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import (
    CSRF_COOKIE,
    SESSION_COOKIE,
    generate_csrf_token,
    get_current_user,
    get_session_claims,
    revoke_jwt,
)
from app.core.config import Settings, get_app_settings
from app.core.database import get_session
from app.core.mailer import Mailer, get_mailer
from app.core.tokens import TokenService, get_token_service
from app.models.user import User
from app.services import auth as auth_service
from taskhub_shared.schemas.auth import (
    AuthResponse,
    EmailRequest,
    LoginRequest,
    RegisterRequest,
    ResetPasswordRequest,
    UserRead,
    VerifyEmailRequest,
)
from taskhub_shared.schemas.common import MessageResponse

log = structlog.get_logger()
router = APIRouter()


def cookie_kwargs(settings: Settings) -> dict:
    """Cookie attributes; the lifetime matches the session token."""
    return {
        "httponly": True,
        "secure": not settings.debug,  # allow non-HTTPS in dev
        "samesite": "lax",
        "path": "/",
        "max_age": int(settings.session_ttl.total_seconds()),
    }


def _set_session_cookies(response: Response, settings: Settings, token: str, csrf: str) -> None:
    """Set the session token and CSRF cookies on a response."""
    kwargs = cookie_kwargs(settings)
    response.set_cookie(key=SESSION_COOKIE, value=token, **kwargs)
    response.set_cookie(key=CSRF_COOKIE, value=csrf, **{**kwargs, "httponly": False})


@router.post("/register", response_model=AuthResponse, status_code=201)
async def register(
    body: RegisterRequest,
    session: AsyncSession = Depends(get_session),
    tokens: TokenService = Depends(get_token_service),
    mailer: Mailer = Depends(get_mailer),
    settings: Settings = Depends(get_app_settings),
):
    """Register a new user and send the verification email."""
    user = await auth_service.register_user(
        body, tokens, mailer, session, bcrypt_rounds=settings.bcrypt_rounds
    )
    await session.commit()
    return AuthResponse(
        message="Registration successful. Please check your email to verify your account.",
        user=UserRead.model_validate(user),
    )


@router.post("/login", response_model=AuthResponse)
async def login(
    body: LoginRequest,
    response: Response,
    session: AsyncSession = Depends(get_session),
    tokens: TokenService = Depends(get_token_service),
    mailer: Mailer = Depends(get_mailer),
    settings: Settings = Depends(get_app_settings),
):
    """Log in. Unverified users get a fresh verification email and no session (202)."""
    result = await auth_service.login(body, tokens, mailer, session)
    await session.commit()

    if result.token is None:
        return JSONResponse(
            status_code=status.HTTP_202_ACCEPTED,
            content=AuthResponse(
                message="Email not verified. A new verification link has been sent to your email.",
            ).model_dump(mode="json"),
        )

    _set_session_cookies(response, settings, result.token, generate_csrf_token())
    return AuthResponse(
        message="Login successful",
        token=result.token,
        user=UserRead.model_validate(result.user),
    )


@router.post("/verify-email", response_model=AuthResponse)
async def verify_email(
    body: VerifyEmailRequest,
    session: AsyncSession = Depends(get_session),
    tokens: TokenService = Depends(get_token_service),
):
    user = await auth_service.verify_email(body.token, tokens, session)
    await session.commit()
    return AuthResponse(message="Email verified successfully", user=UserRead.model_validate(user))


@router.post("/reset-password-request", response_model=MessageResponse)
async def reset_password_request(
    body: EmailRequest,
    session: AsyncSession = Depends(get_session),
    tokens: TokenService = Depends(get_token_service),
    mailer: Mailer = Depends(get_mailer),
):
    await auth_service.request_password_reset(body.email, tokens, mailer, session)
    await session.commit()
    return MessageResponse(message="Reset password email sent")


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    body: ResetPasswordRequest,
    session: AsyncSession = Depends(get_session),
    tokens: TokenService = Depends(get_token_service),
    settings: Settings = Depends(get_app_settings),
):
    await auth_service.reset_password(body, tokens, session, bcrypt_rounds=settings.bcrypt_rounds)
    await session.commit()
    return MessageResponse(message="Password reset successfully")


@router.post("/logout", response_model=MessageResponse)
async def logout(
    response: Response,
    claims: dict = Depends(get_session_claims),
    tokens: TokenService = Depends(get_token_service),
):
    """Revoke the current session for its remaining lifetime and clear cookies."""
    remaining = int(claims["exp"] - tokens.now().timestamp())
    await revoke_jwt(claims["jti"], remaining)
    response.delete_cookie(SESSION_COOKIE, path="/")
    response.delete_cookie(CSRF_COOKIE, path="/")
    log.info("auth.logout", user_id=claims["sub"])
    return MessageResponse(message="Logged out")


@router.get("/me", response_model=AuthResponse)
async def me(user: User = Depends(get_current_user)):
    return AuthResponse(message="Current user", user=UserRead.model_validate(user))
