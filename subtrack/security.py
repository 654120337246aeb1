# subtrack/security.py
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Dict, Any

from jose import jwt, JWTError, ExpiredSignatureError
from passlib.context import CryptContext
from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError

from subtrack.config import (
    JWT_ACCESS_SECRET,
    JWT_REFRESH_SECRET,
    JWT_ALGORITHM,
    ACCESS_TOKEN_EXPIRE_MINUTES,
    REFRESH_TOKEN_EXPIRE_DAYS,
)
from subtrack.enums import Plan

log = logging.getLogger("subtrack.security")

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


# --------------------------------------------------
# ERRORS
# --------------------------------------------------
class TokenError(Exception):
    pass


class InvalidToken(TokenError):
    pass


class TokenExpired(TokenError):
    pass


# --------------------------------------------------
# CLAIMS
# --------------------------------------------------
class TokenClaims(BaseModel):
    """
    The only claims a session token may carry. Anything else in the payload
    is dropped; a payload missing one of these fields is rejected.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    user_id: int = Field(alias="userId", gt=0)
    email: str = Field(min_length=3)
    plan: Plan

    def to_payload(self) -> Dict[str, Any]:
        return {"userId": self.user_id, "email": self.email, "plan": self.plan.value}


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


# --------------------------------------------------
# PASSWORD HELPERS
# --------------------------------------------------
def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    if not hashed:
        log.info("verify_password: missing stored hash")
        return False
    try:
        return pwd_context.verify(plain, hashed)
    except ValueError as e:
        log.info("verify_password error: %s", e)
        return False


# --------------------------------------------------
# TOKEN HELPERS
# --------------------------------------------------
def _encode(claims: TokenClaims, secret: str, token_type: str, lifetime: timedelta) -> str:
    now = datetime.utcnow()
    payload: Dict[str, Any] = claims.to_payload()
    payload.update({
        "typ": token_type,
        "iat": now,
        "exp": now + lifetime,
    })
    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)


def _decode(token: Optional[str], secret: str, token_type: str) -> TokenClaims:
    if not token:
        raise InvalidToken("empty token")

    try:
        payload = jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
    except ExpiredSignatureError:
        raise TokenExpired(f"{token_type} token expired")
    except JWTError as e:
        raise InvalidToken(f"{token_type} token rejected: {e}")

    if payload.get("typ") != token_type:
        raise InvalidToken(f"expected {token_type} token")
    if "exp" not in payload:
        raise InvalidToken(f"{token_type} token has no expiry")

    try:
        return TokenClaims.model_validate(payload)
    except PydanticValidationError as e:
        raise InvalidToken(f"{token_type} token payload invalid: {e.error_count()} errors")


def create_access_token(claims: TokenClaims, expires_minutes: Optional[int] = None) -> str:
    lifetime = timedelta(minutes=expires_minutes or ACCESS_TOKEN_EXPIRE_MINUTES)
    return _encode(claims, JWT_ACCESS_SECRET, ACCESS_TOKEN_TYPE, lifetime)


def create_refresh_token(claims: TokenClaims, expires_days: Optional[int] = None) -> str:
    lifetime = timedelta(days=expires_days or REFRESH_TOKEN_EXPIRE_DAYS)
    return _encode(claims, JWT_REFRESH_SECRET, REFRESH_TOKEN_TYPE, lifetime)


def verify_access(token: Optional[str]) -> TokenClaims:
    return _decode(token, JWT_ACCESS_SECRET, ACCESS_TOKEN_TYPE)


def verify_refresh(token: Optional[str]) -> TokenClaims:
    return _decode(token, JWT_REFRESH_SECRET, REFRESH_TOKEN_TYPE)


def issue_token_pair(claims: TokenClaims) -> TokenPair:
    """
    Both tokens are built before either is handed out, so a caller never
    ends up with a new access token next to a stale refresh token.
    """
    access = create_access_token(claims)
    refresh = create_refresh_token(claims)
    return TokenPair(access_token=access, refresh_token=refresh)


def claims_for_user(user) -> TokenClaims:
    return TokenClaims(userId=user.id, email=user.email, plan=Plan(user.plan))
