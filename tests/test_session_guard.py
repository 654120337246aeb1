"""Tests for request authentication and silent session rotation."""

import pytest
from sqlalchemy.exc import OperationalError

from subtrack.enums import Plan
from subtrack.errors import StoreUnavailable, Unauthorized
from subtrack.security import (
    claims_for_user,
    create_access_token,
    create_refresh_token,
    verify_access,
    verify_refresh,
)
from subtrack.session_guard import ANONYMOUS, authenticate, authenticate_optional


class _DownStore:
    def get(self, *args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("connection refused"))


class TestAuthenticate:

    def test_valid_access_token_needs_no_lookup(self, user):
        token = create_access_token(claims_for_user(user))
        outcome = authenticate(None, token, None)
        assert outcome.identity.id == user.id
        assert outcome.rotated is None

    def test_no_tokens(self, db):
        with pytest.raises(Unauthorized):
            authenticate(db, None, None)

    def test_expired_access_rotates_from_refresh(self, db, user):
        claims = claims_for_user(user)
        expired = create_access_token(claims, expires_minutes=-1)
        outcome = authenticate(db, expired, create_refresh_token(claims))

        assert outcome.identity.id == user.id
        assert outcome.rotated is not None
        assert verify_access(outcome.rotated.access_token).user_id == user.id
        assert verify_refresh(outcome.rotated.refresh_token).user_id == user.id

    def test_rotation_uses_stored_plan(self, db, user):
        refresh = create_refresh_token(claims_for_user(user))
        user.plan = Plan.PREMIUM.value
        db.commit()

        outcome = authenticate(db, None, refresh)
        assert outcome.identity.plan == Plan.PREMIUM
        assert verify_access(outcome.rotated.access_token).plan == Plan.PREMIUM

    def test_refresh_for_deleted_user(self, db, user):
        refresh = create_refresh_token(claims_for_user(user))
        db.delete(user)
        db.commit()
        with pytest.raises(Unauthorized):
            authenticate(db, None, refresh)

    def test_refresh_with_unknown_stored_plan(self, db, user):
        refresh = create_refresh_token(claims_for_user(user))
        user.plan = "platinum"
        db.commit()
        with pytest.raises(Unauthorized):
            authenticate(db, None, refresh)

    def test_refresh_token_in_access_slot_is_rejected(self, db, user):
        refresh = create_refresh_token(claims_for_user(user))
        with pytest.raises(Unauthorized):
            authenticate(db, refresh, None)

    def test_invalid_refresh(self, db):
        with pytest.raises(Unauthorized):
            authenticate(db, "junk", "more-junk")

    def test_store_down_during_refresh(self, user):
        refresh = create_refresh_token(claims_for_user(user))
        with pytest.raises(StoreUnavailable):
            authenticate(_DownStore(), None, refresh)

    def test_store_not_touched_when_access_valid(self, user):
        token = create_access_token(claims_for_user(user))
        assert authenticate(_DownStore(), token, None).identity.id == user.id


class TestAuthenticateOptional:

    def test_anonymous_on_failure(self, db):
        assert authenticate_optional(db, None, None) is ANONYMOUS
        assert not authenticate_optional(db, "junk", None).authenticated

    def test_same_as_authenticate_on_success(self, db, user):
        token = create_access_token(claims_for_user(user))
        outcome = authenticate_optional(db, token, None)
        assert outcome.authenticated
        assert outcome.identity.email == user.email

    def test_store_errors_still_raise(self, user):
        refresh = create_refresh_token(claims_for_user(user))
        with pytest.raises(StoreUnavailable):
            authenticate_optional(_DownStore(), None, refresh)
