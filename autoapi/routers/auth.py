from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from autoapi.authz.rules import Principal
from autoapi.db.session import get_db
from autoapi.models.blog import User
from autoapi.schemas.blog import SignInArgs, UserOut
from autoapi.security.auth import clear_session_cookie, find_user_by_email, load_user, set_session_cookie
from autoapi.security.dependencies import get_app_settings, get_principal, get_session_codec
from autoapi.security.session_codec import SessionCodec
from autoapi.settings import Settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/sign-in", response_model=UserOut | None)
def sign_in(
    args: SignInArgs,
    response: Response,
    db: Session = Depends(get_db),
    codec: SessionCodec = Depends(get_session_codec),
    settings: Settings = Depends(get_app_settings),
) -> User | None:
    user = find_user_by_email(db, args.email) if args.email else None
    if user is None:
        logger.info("Sign-in failed: no matching user")
        clear_session_cookie(response, settings)
        return None

    token = codec.issue(Principal(id=user.id, email=user.email).to_claims())
    set_session_cookie(response, token, settings)
    logger.info("Signed in user_id=%s", user.id)
    return user


@router.post("/sign-out")
def sign_out(response: Response, settings: Settings = Depends(get_app_settings)) -> bool:
    clear_session_cookie(response, settings)
    return True


@router.post("/me", response_model=UserOut | None)
def me(
    principal: Principal | None = Depends(get_principal),
    db: Session = Depends(get_db),
) -> User | None:
    if principal is None:
        return None
    return load_user(db, principal.id)
