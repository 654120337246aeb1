# subtrack/deps.py
import logging
from typing import Optional

from fastapi import Depends, Header, Request, Response
from sqlalchemy.orm import Session

from subtrack import models
from subtrack.config import (
    ACCESS_COOKIE_NAME,
    REFRESH_COOKIE_NAME,
    ACCESS_TOKEN_EXPIRE_MINUTES,
    REFRESH_TOKEN_EXPIRE_DAYS,
    COOKIE_SAMESITE,
    COOKIE_SECURE,
)
from subtrack.db import get_db
from subtrack.errors import Forbidden, Unauthorized
from subtrack.security import TokenPair
from subtrack.session_guard import Identity, authenticate, authenticate_optional

log = logging.getLogger("subtrack.deps")


# ======================================================
# COOKIE TRANSPORT
# ======================================================
def set_auth_cookies(response: Response, pair: TokenPair) -> None:
    response.set_cookie(
        ACCESS_COOKIE_NAME,
        pair.access_token,
        max_age=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        httponly=True,
        samesite=COOKIE_SAMESITE,
        secure=COOKIE_SECURE,
        path="/",
    )
    response.set_cookie(
        REFRESH_COOKIE_NAME,
        pair.refresh_token,
        max_age=REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60,
        httponly=True,
        samesite=COOKIE_SAMESITE,
        secure=COOKIE_SECURE,
        path="/",
    )


def clear_auth_cookies(response: Response) -> None:
    for name in (ACCESS_COOKIE_NAME, REFRESH_COOKIE_NAME):
        response.delete_cookie(name, path="/", httponly=True, samesite=COOKIE_SAMESITE, secure=COOKIE_SECURE)


def _read_tokens(request: Request, authorization: Optional[str]):
    # Cookie first
    access_token = request.cookies.get(ACCESS_COOKIE_NAME)

    # Authorization header for non-cookie clients
    if not access_token and authorization:
        parts = authorization.split()
        if len(parts) == 2 and parts[0].lower() == "bearer":
            access_token = parts[1]

    # refresh token is cookie-only
    refresh_token = request.cookies.get(REFRESH_COOKIE_NAME)
    return access_token, refresh_token


# ======================================================
# AUTHENTICATED USER DEPENDENCY
# ======================================================
def get_current_user(
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    authorization: Optional[str] = Header(None),
) -> Identity:
    """
    Returns the authenticated identity, rotating the session cookies when
    the access token had to be renewed from the refresh token.
    """
    access_token, refresh_token = _read_tokens(request, authorization)
    outcome = authenticate(db, access_token, refresh_token)
    if outcome.rotated:
        set_auth_cookies(response, outcome.rotated)
    return outcome.identity


def get_optional_user(
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    authorization: Optional[str] = Header(None),
) -> Optional[Identity]:
    """
    Like get_current_user but anonymous callers get None.
    Do not use on writes or private reads.
    """
    access_token, refresh_token = _read_tokens(request, authorization)
    outcome = authenticate_optional(db, access_token, refresh_token)
    if outcome.rotated:
        set_auth_cookies(response, outcome.rotated)
    return outcome.identity


def get_current_user_row(
    identity: Identity = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> models.User:
    user = db.get(models.User, identity.id)
    if user is None:
        raise Unauthorized()
    return user


def require_paid_plan(identity: Identity = Depends(get_current_user)) -> Identity:
    if not identity.is_paid:
        raise Forbidden("Upgrade to a paid plan to use this feature")
    return identity
