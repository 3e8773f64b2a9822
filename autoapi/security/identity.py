from __future__ import annotations

import logging
from typing import Mapping

from autoapi.authz.rules import Principal
from autoapi.security.session_codec import SessionCodec, VerificationError

logger = logging.getLogger(__name__)

DEFAULT_COOKIE_NAME = "auth-token"


def principal_from_claims(claims: Mapping[str, object]) -> Principal | None:
    raw_id = claims.get("id")
    # bool is an int subclass; reject it explicitly.
    if isinstance(raw_id, bool) or not isinstance(raw_id, int):
        return None
    email = claims.get("email")
    return Principal(id=raw_id, email=email if isinstance(email, str) else None)


class IdentityResolver:
    """
    Turn the request's cookies into an optional Principal.

    Authentication failure is not an error here: a missing, forged or expired
    token simply yields an anonymous request, and rules decide what that
    request may do.
    """

    def __init__(self, codec: SessionCodec, cookie_name: str = DEFAULT_COOKIE_NAME) -> None:
        self.codec = codec
        self.cookie_name = cookie_name

    def resolve(self, cookies: Mapping[str, str]) -> Principal | None:
        token = cookies.get(self.cookie_name)
        if not token:
            return None

        try:
            claims = self.codec.verify(token)
        except VerificationError:
            logger.info("Ignoring unverifiable session cookie")
            return None

        principal = principal_from_claims(claims)
        if principal is None:
            logger.info("Session claims carry no usable id")
        return principal
