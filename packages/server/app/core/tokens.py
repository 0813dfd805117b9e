"""
Signed, purpose-scoped, expiring tokens.

``TokenService`` only signs and verifies. Single-use semantics come from the
companion ``TokenRecord`` rows managed in ``app.services.token_records``.
"""

from __future__ import annotations

import hashlib
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

import jwt
import structlog
from fastapi import Request

from app.core.config import Settings
from taskhub_shared.schemas.common import TokenPurpose

log = structlog.get_logger()

Clock = Callable[[], datetime]

RESERVED_CLAIMS = frozenset({"purpose", "iat", "exp", "jti"})


def _system_clock() -> datetime:
    return datetime.now(timezone.utc)


def hash_token(token: str) -> str:
    """Stable lookup key for a token; the raw value is never stored."""
    return hashlib.sha256(token.encode()).hexdigest()


class TokenService:
    """HS256 token issuer bound to an immutable ``Settings`` and a clock."""

    def __init__(self, settings: Settings, clock: Optional[Clock] = None):
        self._secret = settings.secret_key
        self._algorithm = settings.jwt_algorithm
        self._clock = clock or _system_clock
        self._ttls = {
            TokenPurpose.EMAIL_VERIFICATION: settings.verification_ttl,
            TokenPurpose.RESET_PASSWORD: settings.reset_ttl,
            TokenPurpose.WORKSPACE_INVITE: settings.invite_ttl,
            TokenPurpose.LOGIN: settings.session_ttl,
        }

    def now(self) -> datetime:
        return self._clock()

    def ttl_for(self, purpose: TokenPurpose) -> timedelta:
        return self._ttls[TokenPurpose(purpose)]

    def issue(
        self,
        claims: dict[str, Any],
        purpose: TokenPurpose,
        ttl: Optional[timedelta] = None,
    ) -> str:
        """Sign ``claims`` for a single purpose. ``claims`` must carry ``sub``."""
        if "sub" not in claims:
            raise ValueError("claims must include 'sub'")
        clash = RESERVED_CLAIMS.intersection(claims)
        if clash:
            raise ValueError(f"reserved claims supplied: {sorted(clash)}")

        now = self.now()
        payload = {
            **{k: str(v) if isinstance(v, uuid.UUID) else v for k, v in claims.items()},
            "purpose": TokenPurpose(purpose).value,
            "iat": int(now.timestamp()),
            "exp": int((now + (ttl or self.ttl_for(purpose))).timestamp()),
            "jti": str(uuid.uuid4()),
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def verify(
        self, token: str, purpose: Optional[TokenPurpose] = None
    ) -> Optional[dict[str, Any]]:
        """Return the claims, or ``None`` for any kind of invalid token."""
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                # Expiry is judged against the service clock below, not the wall clock.
                options={
                    "require": ["sub", "purpose", "exp", "jti"],
                    "verify_exp": False,
                    "verify_iat": False,
                },
            )
        except jwt.PyJWTError as exc:
            log.debug("token.rejected", reason=type(exc).__name__)
            return None

        exp = payload.get("exp")
        if not isinstance(exp, int) or exp <= int(self.now().timestamp()):
            log.debug("token.rejected", reason="expired")
            return None

        if purpose is not None and payload.get("purpose") != TokenPurpose(purpose).value:
            log.debug("token.rejected", reason="purpose_mismatch")
            return None
        return payload


def get_token_service(request: Request) -> TokenService:
    """FastAPI dependency: the ``TokenService`` built at startup."""
    return request.app.state.token_service
