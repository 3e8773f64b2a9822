"""
Sign and verify the session token carried in the auth cookie.

The token is an HS256 JWT::

    {"user": {...claims...}, "iat": <issued>, "exp": <expiry>}

PyJWT compares HMAC signatures with ``hmac.compare_digest``, so verification
is constant time. Only HS256 is accepted on decode; ``alg: none`` and
algorithm-confusion tokens are rejected.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

import jwt

from autoapi.authz.errors import ConfigError
from autoapi.settings import Settings

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
CLAIMS_KEY = "user"


class VerificationError(Exception):
    """Token is malformed, forged, signed with another secret, or expired. Do not log the token."""

    pass


class SessionCodec:
    def __init__(self, secret: str | None, ttl: timedelta = timedelta(days=400)) -> None:
        if not secret:
            raise ConfigError("Session secret is not configured (set APP_SECRET)")
        self._key = secret.encode("utf-8")
        self.ttl = ttl

    @classmethod
    def from_settings(cls, settings: Settings) -> SessionCodec:
        return cls(settings.secret, ttl=timedelta(seconds=settings.cookie_max_age))

    def issue(self, claims: Mapping[str, Any]) -> str:
        now = datetime.now(tz=timezone.utc)
        payload = {
            CLAIMS_KEY: dict(claims),
            "iat": int(now.timestamp()),
            "exp": int((now + self.ttl).timestamp()),
        }
        return jwt.encode(payload, self._key, algorithm=ALGORITHM)

    def verify(self, token: str) -> dict[str, Any]:
        """
        Return the claims passed to ``issue``.

        Every failure surfaces as ``VerificationError``; callers at the trust
        boundary turn that into an anonymous request.
        """
        if not token:
            raise VerificationError("Empty token")

        try:
            payload = jwt.decode(
                token,
                self._key,
                algorithms=[ALGORITHM],
                options={"require": ["exp", "iat"]},
            )
        except jwt.ExpiredSignatureError as e:
            logger.info("Session token expired")
            raise VerificationError("Token expired") from e
        except jwt.InvalidTokenError as e:
            logger.info("Session token invalid: %s", type(e).__name__)
            raise VerificationError("Invalid token") from e

        claims = payload.get(CLAIMS_KEY)
        if not isinstance(claims, dict):
            logger.info("Session token missing claims object")
            raise VerificationError("Invalid token: claims")
        return claims
