"""Tests for the suggestion review queue and the sender ignore list."""

from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from subtrack import models
from subtrack.enums import BillingCycle, SuggestionStatus
from subtrack.errors import InvalidState, NotFound, ValidationError
from subtrack.schemas import SuggestionAccept
from subtrack.services import suggestion_service
from tests.conftest import classified_message


def _charge_count(db, user_id):
    return db.execute(
        select(func.count(models.Charge.id)).where(models.Charge.user_id == user_id)
    ).scalar_one()


@pytest.fixture
def pending(db, user):
    suggestion = suggestion_service.create_suggestion(db, user.id, classified_message(billing_cycle=None))
    db.commit()
    return suggestion


class TestCreateSuggestion:

    def test_new_suggestion_is_pending(self, pending):
        assert pending.status == SuggestionStatus.PENDING.value
        assert pending.sender == "billing@netflix.com"
        assert pending.decided_at is None

    def test_duplicate_source_returns_existing(self, db, user, pending):
        again = suggestion_service.create_suggestion(db, user.id, classified_message(billing_cycle=None))
        assert again.id == pending.id

    def test_ignored_sender_is_dropped(self, db, user):
        suggestion_service.ignore_sender(db, user.id, "Promo@Shop.com")
        db.commit()
        result = suggestion_service.create_suggestion(
            db, user.id, classified_message(sender_address="promo@shop.com", source_message_id="x"),
        )
        assert result is None
        assert suggestion_service.list_suggestions(db, user.id) == []


class TestAcceptSuggestion:

    def test_accept_creates_charge_and_subscription(self, db, user, pending):
        suggestion, charge = suggestion_service.accept_suggestion(db, user.id, pending.id)

        assert suggestion.status == SuggestionStatus.ACCEPTED.value
        assert suggestion.decided_at is not None
        assert charge.source_message_id == pending.source_message_id
        assert charge.subscription.service == "Netflix"
        assert charge.subscription.total_charges == 1

    def test_accept_is_final(self, db, user, pending):
        suggestion_service.accept_suggestion(db, user.id, pending.id)
        with pytest.raises(InvalidState):
            suggestion_service.accept_suggestion(db, user.id, pending.id)
        assert _charge_count(db, user.id) == 1

    def test_ignored_cannot_be_accepted(self, db, user, pending):
        suggestion_service.ignore_suggestion(db, user.id, pending.id)
        with pytest.raises(InvalidState):
            suggestion_service.accept_suggestion(db, user.id, pending.id)
        assert _charge_count(db, user.id) == 0

    def test_accept_without_service(self, db, user):
        suggestion = suggestion_service.create_suggestion(
            db, user.id, classified_message(service=None, source_message_id="no-service"),
        )
        db.commit()
        with pytest.raises(ValidationError):
            suggestion_service.accept_suggestion(db, user.id, suggestion.id)
        assert suggestion.status == SuggestionStatus.PENDING.value

    def test_accept_without_amount(self, db, user):
        suggestion = suggestion_service.create_suggestion(
            db, user.id, classified_message(amount=Decimal("0"), source_message_id="no-amount"),
        )
        db.commit()
        with pytest.raises(ValidationError):
            suggestion_service.accept_suggestion(db, user.id, suggestion.id)

    def test_other_users_suggestion(self, db, make_user, pending):
        stranger = make_user()
        with pytest.raises(NotFound):
            suggestion_service.accept_suggestion(db, stranger.id, pending.id)


class TestIgnoreSuggestion:

    def test_ignore_suppresses_sender(self, db, user, pending):
        ignored = suggestion_service.ignore_suggestion(db, user.id, pending.id)

        assert ignored.status == SuggestionStatus.IGNORED.value
        assert suggestion_service.list_ignored_senders(db, user.id) == ["billing@netflix.com"]

        later = suggestion_service.create_suggestion(
            db, user.id, classified_message(source_message_id="next-month", charged_at=datetime(2024, 4, 1)),
        )
        assert later is None

    def test_ignore_twice(self, db, user, pending):
        suggestion_service.ignore_suggestion(db, user.id, pending.id)
        with pytest.raises(InvalidState):
            suggestion_service.ignore_suggestion(db, user.id, pending.id)

    def test_ignore_sender_is_idempotent(self, db, user):
        suggestion_service.ignore_sender(db, user.id, "a@b.co")
        suggestion_service.ignore_sender(db, user.id, "A@B.CO ")
        db.commit()
        assert suggestion_service.list_ignored_senders(db, user.id) == ["a@b.co"]


class TestListing:

    def test_filter_and_summary(self, db, user):
        for i in range(3):
            suggestion_service.create_suggestion(
                db, user.id, classified_message(source_message_id=f"s{i}", sender_address=f"s{i}@x.com"),
            )
        db.commit()
        first = suggestion_service.list_suggestions(db, user.id)[-1]
        suggestion_service.ignore_suggestion(db, user.id, first.id)

        assert len(suggestion_service.list_suggestions(db, user.id)) == 2
        assert len(suggestion_service.list_suggestions(db, user.id, status=None)) == 3
        assert suggestion_service.suggestion_summary(db, user.id) == {
            "pending": 2, "accepted": 0, "ignored": 1,
        }


class TestAcceptWithEdits:

    def test_user_supplies_missing_service(self, db, user):
        suggestion = suggestion_service.create_suggestion(
            db, user.id, classified_message(service=None, source_message_id="vague", sender_address="pay@acme.com"),
        )
        db.commit()

        accepted, charge = suggestion_service.accept_suggestion(
            db, user.id, suggestion.id, SuggestionAccept(service="Acme Cloud", billing_cycle="yearly"),
        )
        assert accepted.status == SuggestionStatus.ACCEPTED.value
        assert accepted.service == "Acme Cloud"
        assert charge.service == "Acme Cloud"
        assert charge.subscription.billing_cycle == "yearly"

    def test_user_supplies_missing_amount(self, db, user):
        suggestion = suggestion_service.create_suggestion(
            db, user.id, classified_message(amount=Decimal("0"), source_message_id="no-amount"),
        )
        db.commit()

        _, charge = suggestion_service.accept_suggestion(
            db, user.id, suggestion.id, SuggestionAccept(amount=Decimal("7.99")),
        )
        assert charge.amount == Decimal("7.99")
        assert charge.subscription.total_amount == Decimal("7.99")

    def test_edits_do_not_bypass_validation(self, db, user):
        suggestion = suggestion_service.create_suggestion(
            db, user.id, classified_message(service=None, source_message_id="still-vague"),
        )
        db.commit()
        with pytest.raises(ValidationError):
            suggestion_service.accept_suggestion(db, user.id, suggestion.id, SuggestionAccept(category="Tools"))
        assert suggestion.status == SuggestionStatus.PENDING.value

    def test_status_and_always_ignore(self, db, user, pending):
        _, charge = suggestion_service.accept_suggestion(
            db, user.id, pending.id, SuggestionAccept(status="trial", always_ignore_sender=True),
        )
        assert charge.subscription.status == "trial"
        assert suggestion_service.list_ignored_senders(db, user.id) == ["billing@netflix.com"]

    def test_camel_case_payload(self):
        edits = SuggestionAccept.model_validate({"billingCycle": "Monthly", "alwaysIgnoreSender": True})
        assert edits.billing_cycle == BillingCycle.MONTHLY
        assert edits.always_ignore_sender is True
