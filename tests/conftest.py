"""
Pytest fixtures for the test suite.

Data-layer and route tests use an in-memory SQLite engine and a session that
rolls back after each test, so tests do not affect each other.
"""
from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker

from autoapi.authz.engine import AuthorizationEngine
from autoapi.db.repository import table_names
from autoapi.security.config import load_rule_registry
from autoapi.security.session_codec import SessionCodec
from autoapi.settings import Settings


TEST_DB_URL = "sqlite:///:memory:"
TEST_SECRET = "test-secret-that-is-long-enough-for-hs256"
RULES_PATH = Path(__file__).resolve().parents[1] / "config" / "rules.yaml"


@pytest.fixture
def engine():
    """Create a fresh in-memory SQLite engine for each test."""
    return create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        echo=False,
    )


@pytest.fixture
def tables(engine):
    """Create all ORM tables on the test engine."""
    from autoapi.db.base import Base
    from autoapi.models import blog  # noqa: F401

    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture
def db_session(tables):
    """
    Provide a Session bound to the test DB; roll back after each test.
    """
    connection = tables.connect()
    transaction = connection.begin()
    TestSession = sessionmaker(
        bind=connection,
        autocommit=False,
        autoflush=False,
        class_=Session,
    )
    session = TestSession()
    yield session
    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture
def seeded(db_session):
    """Alice (published + draft), Bob (published + draft), two categories."""
    from autoapi.db.init_db import seed_demo_data
    from autoapi.models.blog import User

    seed_demo_data(db_session)
    users = {u.email.split("@")[0]: u for u in db_session.scalars(select(User)).all()}
    return users


@pytest.fixture
def settings():
    return Settings(
        secret=TEST_SECRET,
        rules_config_path=str(RULES_PATH),
        seed_demo_data=False,
    )


@pytest.fixture
def registry():
    return load_rule_registry(RULES_PATH, table_names())


@pytest.fixture
def authz_engine(registry):
    return AuthorizationEngine(registry)


@pytest.fixture
def codec():
    return SessionCodec(TEST_SECRET)


@pytest.fixture
def app(settings, db_session):
    from autoapi.db.session import get_db
    from autoapi.main import create_app

    application = create_app(settings)
    application.dependency_overrides[get_db] = lambda: db_session
    return application


@pytest.fixture
def client(app):
    # Not used as a context manager: lifespan (table creation on the file DB) is skipped.
    return TestClient(app)


@pytest.fixture
def sign_in_as(client, codec):
    """Put a valid session cookie for `user` on the test client."""

    def _sign_in(user) -> None:
        client.cookies.set("auth-token", codec.issue({"id": user.id, "email": user.email}))

    return _sign_in
