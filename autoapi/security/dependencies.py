from __future__ import annotations

from fastapi import Depends, Request

from autoapi.authz.engine import AuthorizationEngine
from autoapi.authz.rules import Principal
from autoapi.security.identity import IdentityResolver
from autoapi.security.session_codec import SessionCodec
from autoapi.settings import Settings


def _state(request: Request, name: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise RuntimeError(f"{name} not configured. Was the app built with create_app()?")
    return value


def get_app_settings(request: Request) -> Settings:
    return _state(request, "settings")


def get_authz_engine(request: Request) -> AuthorizationEngine:
    return _state(request, "authz_engine")


def get_identity_resolver(request: Request) -> IdentityResolver:
    return _state(request, "identity_resolver")


def get_session_codec(request: Request) -> SessionCodec:
    return _state(request, "session_codec")


def resolve_principal(
    request: Request,
    resolver: IdentityResolver = Depends(get_identity_resolver),
) -> None:
    """
    Global dependency: attach the request's Principal (or None) to request.state.

    Never rejects a request; anonymous callers are handled by the rules.
    """

    request.state.principal = resolver.resolve(request.cookies)


def get_principal(request: Request) -> Principal | None:
    return getattr(request.state, "principal", None)
