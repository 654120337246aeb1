# subtrack/services/auth_service.py
import logging
from typing import Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from subtrack import models
from subtrack.enums import Plan
from subtrack.errors import Unauthorized, ValidationError
from subtrack.security import TokenPair, claims_for_user, hash_password, issue_token_pair, verify_password

log = logging.getLogger("subtrack.auth_service")


def _find_by_email(db: Session, email: str):
    return db.execute(select(models.User).where(models.User.email == email)).scalars().first()


def register_user(db: Session, name: str, email: str, password: str) -> Tuple[models.User, TokenPair]:
    email = email.strip().lower()

    if _find_by_email(db, email) is not None:
        raise ValidationError("Email already registered")

    user = models.User(
        name=name.strip(),
        email=email,
        password_hash=hash_password(password),
        plan=Plan.FREE.value,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValidationError("Email already registered")
    db.refresh(user)

    log.info("user registered id=%s", user.id)
    return user, issue_token_pair(claims_for_user(user))


def login_user(db: Session, email: str, password: str) -> Tuple[models.User, TokenPair]:
    email = email.strip().lower()

    # log only safe info
    log.info("Login attempt email=%s", email)

    user = _find_by_email(db, email)
    if user is None:
        log.info("Login: user not found: %s", email)
        raise Unauthorized("Invalid credentials")
    if not verify_password(password, user.password_hash):
        log.info("Invalid password for %s", email)
        raise Unauthorized("Invalid credentials")

    return user, issue_token_pair(claims_for_user(user))
