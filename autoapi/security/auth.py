from __future__ import annotations

import logging

from fastapi import Response
from sqlalchemy import select
from sqlalchemy.orm import Session

from autoapi.models.blog import User
from autoapi.settings import Settings

logger = logging.getLogger(__name__)


def set_session_cookie(response: Response, token: str, settings: Settings) -> None:
    response.set_cookie(
        settings.cookie_name,
        token,
        max_age=settings.cookie_max_age,
        path="/",
        httponly=True,
        samesite="strict",
        secure=settings.cookie_secure,
    )


def clear_session_cookie(response: Response, settings: Settings) -> None:
    response.set_cookie(
        settings.cookie_name,
        "",
        max_age=0,
        path="/",
        httponly=True,
        samesite="strict",
        secure=settings.cookie_secure,
    )


def find_user_by_email(db: Session, email: str) -> User | None:
    return db.execute(select(User).where(User.email == email)).scalar_one_or_none()


def load_user(db: Session, user_id: int) -> User | None:
    """Re-fetch the current row; the token only carries the id."""

    user = db.get(User, user_id)
    if user is None:
        logger.info("Session refers to a user that no longer exists user_id=%s", user_id)
    return user
