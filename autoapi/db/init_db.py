from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from autoapi.db.base import Base
from autoapi.db.session import SessionLocal, engine
from autoapi.models.blog import Category, Post, User


def init_db(seed: bool = True) -> None:
    """
    Create tables and, optionally, seed demo data.

    The seed is small and deterministic so the rules can be tried without
    additional setup: sign in as alice@example.com or bob@example.com.
    """

    Base.metadata.create_all(bind=engine)

    if not seed:
        return

    with SessionLocal() as db:
        if _has_seed_data(db):
            return
        seed_demo_data(db)


def _has_seed_data(db: Session) -> bool:
    return db.execute(select(User.id).limit(1)).first() is not None


def seed_demo_data(db: Session) -> None:
    alice = User(email="alice@example.com", name="Alice")
    bob = User(email="bob@example.com", name="Bob")
    db.add_all([alice, bob])
    db.flush()

    news = Category(name="News")
    howto = Category(name="How-to")
    db.add_all([news, howto])
    db.flush()

    posts = [
        Post(
            title="Hello from Alice",
            content="A published post everyone can read.",
            published=True,
            published_at=datetime(2025, 1, 10, 9, 0),
            author_id=alice.id,
            categories=[news],
        ),
        Post(
            title="Alice's draft",
            content="Only Alice can see this one.",
            published=False,
            author_id=alice.id,
            categories=[howto],
        ),
        Post(
            title="Bob's guide",
            content="Published, filed under both categories.",
            published=True,
            published_at=datetime(2025, 2, 3, 14, 30),
            author_id=bob.id,
            categories=[news, howto],
        ),
        Post(
            title="Bob's draft",
            content="Only Bob can see this one.",
            published=False,
            author_id=bob.id,
        ),
    ]
    db.add_all(posts)

    db.commit()
