"""
Account model.

A user owns subscriptions, charges, suggestions and ignored senders
(all keyed by users.id). Users are never hard-deleted.
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, DateTime, BigInteger

from subtrack.db import Base
from subtrack.enums import Plan

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(512), nullable=False)
    plan = Column(String(32), nullable=False, default=Plan.FREE.value)

    # linked mailbox credentials (provider OAuth happens elsewhere)
    mail_access_token = Column(Text, nullable=True)
    mail_refresh_token = Column(Text, nullable=True)
    mail_token_expiry = Column(BigInteger, nullable=True)

    last_scan_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


__all__ = ["User"]
