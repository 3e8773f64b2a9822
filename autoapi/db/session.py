from __future__ import annotations

from collections.abc import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from autoapi.settings import get_settings


_settings = get_settings()

# One engine (and connection pool) per process; sessions are per request.
engine = create_engine(
    _settings.resolved_db_url(),
    connect_args={"check_same_thread": False} if _settings.resolved_db_url().startswith("sqlite") else {},
)

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, class_=Session)


def get_db() -> Generator[Session, None, None]:
    """
    Main DB dependency.

    Row scoping is not attached to the session: every generated route passes
    its verdict's scope explicitly to `ModelRepository`.
    """

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
