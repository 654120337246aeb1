"""Tests for the token codec and password helpers."""

from datetime import datetime, timedelta

import pytest
from jose import jwt

from subtrack.config import JWT_ACCESS_SECRET, JWT_ALGORITHM
from subtrack.enums import Plan
from subtrack.security import (
    InvalidToken,
    TokenClaims,
    TokenExpired,
    create_access_token,
    create_refresh_token,
    hash_password,
    issue_token_pair,
    verify_access,
    verify_password,
    verify_refresh,
)


@pytest.fixture
def claims():
    return TokenClaims(userId=7, email="ada@example.com", plan=Plan.PRO)


class TestTokens:

    def test_access_round_trip(self, claims):
        decoded = verify_access(create_access_token(claims))
        assert decoded == claims

    def test_refresh_round_trip(self, claims):
        decoded = verify_refresh(create_refresh_token(claims))
        assert decoded.user_id == 7
        assert decoded.plan == Plan.PRO

    def test_refresh_token_is_not_an_access_token(self, claims):
        with pytest.raises(InvalidToken):
            verify_access(create_refresh_token(claims))

    def test_access_token_is_not_a_refresh_token(self, claims):
        with pytest.raises(InvalidToken):
            verify_refresh(create_access_token(claims))

    def test_expired_access_token(self, claims):
        token = create_access_token(claims, expires_minutes=-1)
        with pytest.raises(TokenExpired):
            verify_access(token)

    def test_token_signed_with_another_secret(self, claims):
        payload = {**claims.to_payload(), "typ": "access", "exp": datetime.utcnow() + timedelta(minutes=5)}
        token = jwt.encode(payload, "someone-elses-secret", algorithm=JWT_ALGORITHM)
        with pytest.raises(InvalidToken):
            verify_access(token)

    @pytest.mark.parametrize("token", [None, "", "not-a-jwt"])
    def test_garbage(self, token):
        with pytest.raises(InvalidToken):
            verify_access(token)

    def test_payload_missing_plan_is_rejected(self):
        token = jwt.encode(
            {"userId": 1, "email": "a@b.co", "typ": "access", "exp": datetime.utcnow() + timedelta(minutes=5)},
            JWT_ACCESS_SECRET,
            algorithm=JWT_ALGORITHM,
        )
        with pytest.raises(InvalidToken):
            verify_access(token)

    def test_payload_with_unknown_plan_is_rejected(self):
        token = jwt.encode(
            {"userId": 1, "email": "a@b.co", "plan": "platinum", "typ": "access",
             "exp": datetime.utcnow() + timedelta(minutes=5)},
            JWT_ACCESS_SECRET,
            algorithm=JWT_ALGORITHM,
        )
        with pytest.raises(InvalidToken):
            verify_access(token)

    def test_extra_claims_are_dropped(self):
        token = jwt.encode(
            {"userId": 1, "email": "a@b.co", "plan": "free", "role": "admin", "typ": "access",
             "exp": datetime.utcnow() + timedelta(minutes=5)},
            JWT_ACCESS_SECRET,
            algorithm=JWT_ALGORITHM,
        )
        decoded = verify_access(token)
        assert decoded.to_payload() == {"userId": 1, "email": "a@b.co", "plan": "free"}

    def test_issue_pair_carries_same_claims(self, claims):
        pair = issue_token_pair(claims)
        assert verify_access(pair.access_token) == verify_refresh(pair.refresh_token) == claims


class TestPasswords:

    def test_hash_and_verify(self):
        hashed = hash_password("s3cret-pass")
        assert hashed != "s3cret-pass"
        assert verify_password("s3cret-pass", hashed)
        assert not verify_password("wrong-pass", hashed)

    def test_missing_or_malformed_hash(self):
        assert not verify_password("anything", "")
        assert not verify_password("anything", "not-a-bcrypt-hash")
