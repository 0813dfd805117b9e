"""
Single-use token protocol.

Issue: sign a token and persist its companion ``TokenRecord`` (one per user,
purpose and scope). Consume: verify, look the record up, check its own expiry,
then claim it with ``DELETE ... WHERE id = ?``. The claim runs in the caller's
transaction together with the state transition, and a row count other than 1
means another request already consumed the token.
"""

from __future__ import annotations

import uuid
from typing import Any, Optional

import structlog
from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.errors import DuplicateRequest, InvalidToken, TokenExpired
from app.core.tokens import TokenService, hash_token
from app.models.base import as_utc
from app.models.token_record import TokenRecord
from taskhub_shared.schemas.common import TokenPurpose

log = structlog.get_logger()

DUPLICATE_MESSAGES = {
    TokenPurpose.EMAIL_VERIFICATION: "Verification email already sent",
    TokenPurpose.RESET_PASSWORD: "Reset password request already sent",
    TokenPurpose.WORKSPACE_INVITE: "User already invited to this workspace",
}


def _scope(purpose: TokenPurpose, workspace_id: Optional[uuid.UUID]) -> str:
    if purpose == TokenPurpose.WORKSPACE_INVITE:
        if workspace_id is None:
            raise ValueError("workspace invites need a workspace_id")
        return str(workspace_id)
    return ""


async def find_record(
    user_id: uuid.UUID,
    purpose: TokenPurpose,
    session: AsyncSession,
    *,
    workspace_id: Optional[uuid.UUID] = None,
) -> Optional[TokenRecord]:
    result = await session.execute(
        select(TokenRecord).where(
            TokenRecord.user_id == user_id,
            TokenRecord.purpose == TokenPurpose(purpose).value,
            TokenRecord.scope == _scope(purpose, workspace_id),
        )
    )
    return result.scalar_one_or_none()


async def issue_token(
    user_id: uuid.UUID,
    purpose: TokenPurpose,
    tokens: TokenService,
    session: AsyncSession,
    *,
    workspace_id: Optional[uuid.UUID] = None,
    role: Optional[str] = None,
) -> str:
    """Issue a purpose token, applying the re-issuance rule.

    An unexpired record for the same user, purpose and scope rejects the
    request as a duplicate. An expired one is deleted and replaced.
    """
    purpose = TokenPurpose(purpose)
    now = tokens.now()

    existing = await find_record(user_id, purpose, session, workspace_id=workspace_id)
    if existing is not None:
        if as_utc(existing.expires_at) > now:
            log.info("token.duplicate_request", purpose=purpose.value, user_id=str(user_id))
            raise DuplicateRequest(DUPLICATE_MESSAGES[purpose])
        await session.execute(delete(TokenRecord).where(TokenRecord.id == existing.id))
        log.info("token.stale_replaced", purpose=purpose.value, user_id=str(user_id))

    claims: dict[str, Any] = {"sub": str(user_id)}
    if workspace_id is not None:
        claims["workspace_id"] = str(workspace_id)
    if role is not None:
        claims["role"] = role

    ttl = tokens.ttl_for(purpose)
    token = tokens.issue(claims, purpose, ttl)
    session.add(
        TokenRecord(
            user_id=user_id,
            purpose=purpose.value,
            scope=_scope(purpose, workspace_id),
            token_hash=hash_token(token),
            workspace_id=workspace_id,
            role=role,
            expires_at=now + ttl,
        )
    )
    try:
        await session.flush()
    except IntegrityError:
        # Lost a race with a concurrent issuance for the same scope.
        raise DuplicateRequest(DUPLICATE_MESSAGES[purpose])

    log.info("token.issued", purpose=purpose.value, user_id=str(user_id))
    return token


async def claim_record(record: TokenRecord, session: AsyncSession) -> None:
    """Authoritatively delete ``record``. Exactly one caller can win."""
    result = await session.execute(
        delete(TokenRecord).where(
            TokenRecord.id == record.id,
            TokenRecord.token_hash == record.token_hash,
        )
    )
    if result.rowcount != 1:
        log.warning("token.replay_rejected", purpose=record.purpose, user_id=str(record.user_id))
        raise InvalidToken()


async def consume_token(
    token: str,
    purpose: TokenPurpose,
    tokens: TokenService,
    session: AsyncSession,
    *,
    user_id: Optional[uuid.UUID] = None,
) -> tuple[dict[str, Any], TokenRecord]:
    """Verify and claim a single-use token.

    ``user_id`` pins the token to an authenticated caller. Every failure is
    reported as ``InvalidToken`` (or its ``TokenExpired`` subclass) so the
    response never says why a token was refused.
    """
    purpose = TokenPurpose(purpose)

    claims = tokens.verify(token, purpose)
    if claims is None:
        log.info("token.invalid", purpose=purpose.value, reason="signature_or_expiry")
        raise InvalidToken()

    try:
        subject = uuid.UUID(claims["sub"])
    except (ValueError, TypeError):
        log.info("token.invalid", purpose=purpose.value, reason="bad_subject")
        raise InvalidToken()

    if user_id is not None and subject != user_id:
        log.info("token.invalid", purpose=purpose.value, reason="foreign_subject")
        raise InvalidToken()

    result = await session.execute(
        select(TokenRecord).where(
            TokenRecord.user_id == subject,
            TokenRecord.purpose == purpose.value,
            TokenRecord.token_hash == hash_token(token),
        )
    )
    record = result.scalar_one_or_none()
    if record is None:
        log.info("token.invalid", purpose=purpose.value, reason="no_record", user_id=str(subject))
        raise InvalidToken()

    if as_utc(record.expires_at) <= tokens.now():
        await session.execute(delete(TokenRecord).where(TokenRecord.id == record.id))
        await session.commit()
        log.info("token.expired", purpose=purpose.value, user_id=str(subject))
        raise TokenExpired()

    await claim_record(record, session)
    return claims, record
