from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from autoapi.authz.engine import AuthorizationEngine
from autoapi.authz.errors import AuthorizationError, ConfigError, DenyReason
from autoapi.authz.filters import FilterError
from autoapi.db.filters import QueryError
from autoapi.db.repository import mapped_models, table_names
from autoapi.logging_config import configure_app_logging
from autoapi.routers import auth, health
from autoapi.routers.generated import build_generated_routers
from autoapi.security.config import load_rule_registry
from autoapi.security.dependencies import resolve_principal
from autoapi.security.identity import IdentityResolver
from autoapi.security.session_codec import SessionCodec
from autoapi.settings import Settings, get_settings

logger = logging.getLogger(__name__)

_DENY_RESPONSES = {
    DenyReason.FORBIDDEN: (status.HTTP_403_FORBIDDEN, "Forbidden"),
    DenyReason.DEPTH_EXCEEDED: (status.HTTP_400_BAD_REQUEST, "Query depth exceeds limit"),
}


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Build the application.

    Everything the request path relies on (secret, rules, generated routes)
    is resolved here, so a misconfiguration fails at startup with ConfigError
    instead of on the first request.
    """

    settings = settings or get_settings()
    configure_app_logging(settings.log_level)

    codec = SessionCodec.from_settings(settings)
    models = mapped_models()
    registry = load_rule_registry(
        settings.resolved_rules_config_path(),
        table_names(),
        default_depth_limit=settings.default_depth_limit,
    )
    unmapped = [name for name in registry.models if name not in models]
    if unmapped:
        raise ConfigError(f"Exposed tables have no ORM model: {unmapped}")
    engine = AuthorizationEngine(registry)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Local import: creating tables needs the process-wide engine.
        from autoapi.db.init_db import init_db

        logger.info("App startup beginning")
        init_db(seed=settings.seed_demo_data)
        logger.info("Database initialized (tables ensured + seed if enabled)")
        yield

    # Global dependency: every request gets its principal (or None) resolved once.
    app = FastAPI(dependencies=[Depends(resolve_principal)], lifespan=lifespan)
    app.state.settings = settings
    app.state.session_codec = codec
    app.state.identity_resolver = IdentityResolver(codec, cookie_name=settings.cookie_name)
    app.state.authz_engine = engine

    app.include_router(health.router)
    app.include_router(auth.router)
    for router in build_generated_routers(engine, models):
        app.include_router(router)

    _register_error_handlers(app)
    logger.info("Rules loaded from %s", settings.resolved_rules_config_path())
    return app


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AuthorizationError)
    async def _authorization_error(request: Request, exc: AuthorizationError) -> JSONResponse:
        status_code, detail = _DENY_RESPONSES[exc.reason]
        return JSONResponse(status_code=status_code, content={"detail": detail})

    @app.exception_handler(FilterError)
    @app.exception_handler(QueryError)
    async def _query_error(request: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})

    @app.exception_handler(IntegrityError)
    async def _integrity_error(request: Request, exc: IntegrityError) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": "Constraint violation"})

    @app.exception_handler(ConfigError)
    async def _config_error(request: Request, exc: ConfigError) -> JSONResponse:
        logger.exception("Rule evaluation failed path=%s", request.url.path, exc_info=exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal authorization error"},
        )
