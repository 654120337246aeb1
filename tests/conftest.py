"""
Shared fixtures.

The environment is pinned before anything from subtrack is imported, so
config picks up an in-memory database and fixed secrets.
"""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["JWT_ACCESS_SECRET"] = "test-access-secret"
os.environ["JWT_REFRESH_SECRET"] = "test-refresh-secret"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = "rzp_test_secret"
os.environ["COOKIE_SECURE"] = "false"

from datetime import datetime
from decimal import Decimal

import pytest

from subtrack import models
from subtrack.db import Base, SessionLocal, engine
from subtrack.enums import Plan
from subtrack.schemas import ChargeRecord, ClassifiedMessage
from subtrack.security import hash_password


@pytest.fixture(autouse=True)
def _schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(email=None, plan=Plan.FREE, password="correct horse"):
        counter["n"] += 1
        user = models.User(
            name=f"User {counter['n']}",
            email=email or f"user{counter['n']}@example.com",
            password_hash=hash_password(password),
            plan=plan.value,
        )
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def client():
    from fastapi.testclient import TestClient
    from subtrack.main import app

    with TestClient(app) as c:
        yield c


def charge_record(**overrides) -> ChargeRecord:
    data = {
        "service": "Netflix",
        "amount": Decimal("15.49"),
        "currency": "USD",
        "billing_cycle": "monthly",
        "kind": "subscription",
        "charged_at": datetime(2024, 3, 1),
        "source_message_id": "msg-1",
        "category": "Entertainment",
    }
    data.update(overrides)
    return ChargeRecord(**data)


def classified_message(**overrides) -> ClassifiedMessage:
    data = {
        "sender_address": "billing@netflix.com",
        "subject": "Your Netflix receipt",
        "service": "Netflix",
        "amount": Decimal("15.49"),
        "currency": "USD",
        "billing_cycle": "monthly",
        "kind": "subscription",
        "charged_at": datetime(2024, 3, 1),
        "source_message_id": "msg-1",
        "category": "Entertainment",
    }
    data.update(overrides)
    return ClassifiedMessage(**data)
