# subtrack/session_guard.py
"""
Request-level session gate.

1. A valid access token is accepted as-is (no database lookup).
2. Otherwise a valid refresh token is checked against the users table and,
   if the user still exists, a fresh access/refresh pair is minted from the
   user's *stored* plan. The pair is returned in AuthOutcome.rotated; the
   transport layer decides how to deliver it.
3. Anything else is Unauthorized.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from subtrack import models
from subtrack.enums import Plan, PAID_PLANS
from subtrack.errors import Unauthorized, StoreUnavailable
from subtrack.security import (
    TokenError,
    TokenPair,
    claims_for_user,
    issue_token_pair,
    verify_access,
    verify_refresh,
)

log = logging.getLogger("subtrack.session_guard")


@dataclass(frozen=True)
class Identity:
    id: int
    email: str
    plan: Plan

    @property
    def is_paid(self) -> bool:
        return self.plan in PAID_PLANS


@dataclass(frozen=True)
class AuthOutcome:
    identity: Optional[Identity] = None
    rotated: Optional[TokenPair] = None

    @property
    def authenticated(self) -> bool:
        return self.identity is not None


ANONYMOUS = AuthOutcome()


def authenticate(db: Session, access_token: Optional[str], refresh_token: Optional[str]) -> AuthOutcome:
    if access_token:
        try:
            claims = verify_access(access_token)
            return AuthOutcome(identity=Identity(id=claims.user_id, email=claims.email, plan=claims.plan))
        except TokenError as e:
            log.debug("access token rejected: %s", e)

    if not refresh_token:
        raise Unauthorized()

    try:
        claims = verify_refresh(refresh_token)
    except TokenError as e:
        log.info("refresh token rejected: %s", e)
        raise Unauthorized()

    try:
        user = db.get(models.User, claims.user_id)
    except OperationalError as e:
        log.error("user lookup failed during token refresh uid=%s: %s", claims.user_id, e)
        raise StoreUnavailable()

    if user is None:
        log.info("refresh token for missing user uid=%s", claims.user_id)
        raise Unauthorized()

    try:
        fresh_claims = claims_for_user(user)
    except ValueError as e:
        # stored row no longer yields valid claims (e.g. unknown plan)
        log.error("cannot rebuild claims for uid=%s: %s", user.id, e)
        raise Unauthorized()
    pair = issue_token_pair(fresh_claims)
    if fresh_claims.plan != claims.plan:
        log.info("session rotated uid=%s plan %s -> %s", user.id, claims.plan.value, fresh_claims.plan.value)
    else:
        log.debug("session rotated uid=%s", user.id)

    return AuthOutcome(
        identity=Identity(id=user.id, email=user.email, plan=fresh_claims.plan),
        rotated=pair,
    )


def authenticate_optional(db: Session, access_token: Optional[str], refresh_token: Optional[str]) -> AuthOutcome:
    """
    Same algorithm, but a failed authentication yields ANONYMOUS instead of
    raising. Only for reads that render differently for anonymous callers;
    never for writes or private data.
    """
    try:
        return authenticate(db, access_token, refresh_token)
    except Unauthorized:
        return ANONYMOUS
