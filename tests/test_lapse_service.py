"""Tests for the out-of-band lapse policy."""

from datetime import datetime

from subtrack import scheduler
from subtrack.enums import SubscriptionStatus
from subtrack.schemas import SubscriptionUpdate
from subtrack.services import ledger_service
from subtrack.services.lapse_service import mark_lapsed_subscriptions
from subtrack.services.ledger_service import reconcile
from tests.conftest import charge_record


def _only_subscription(db, user):
    return ledger_service.list_subscriptions(db, user.id, include_deleted=True)[0]


class TestMarkLapsed:

    def test_within_grace_is_untouched(self, db, user):
        reconcile(db, user.id, charge_record(charged_at=datetime(2024, 1, 1)))
        db.commit()

        assert mark_lapsed_subscriptions(db, now=datetime(2024, 2, 20)) == 0
        assert _only_subscription(db, user).status == SubscriptionStatus.ACTIVE.value

    def test_overdue_by_a_cycle_goes_on_hold(self, db, user):
        reconcile(db, user.id, charge_record(charged_at=datetime(2024, 1, 1)))
        db.commit()

        assert mark_lapsed_subscriptions(db, now=datetime(2024, 3, 2)) == 1
        sub = _only_subscription(db, user)
        assert sub.status == SubscriptionStatus.ON_HOLD.value
        assert sub.lapse_flagged is True

    def test_one_time_expires(self, db, user):
        reconcile(db, user.id, charge_record(billing_cycle="one_time", kind="one_time_charge"))
        db.commit()

        mark_lapsed_subscriptions(db, now=datetime(2024, 3, 2))
        assert _only_subscription(db, user).status == SubscriptionStatus.EXPIRED.value

    def test_user_decisions_are_left_alone(self, db, make_user):
        canceled_owner, deleted_owner = make_user(), make_user()
        reconcile(db, canceled_owner.id, charge_record(charged_at=datetime(2023, 1, 1)))
        reconcile(db, deleted_owner.id, charge_record(charged_at=datetime(2023, 1, 1)))
        db.commit()
        canceled = _only_subscription(db, canceled_owner)
        canceled.status = SubscriptionStatus.CANCELED.value
        db.commit()
        ledger_service.soft_delete_subscription(db, deleted_owner.id, _only_subscription(db, deleted_owner).id)

        assert mark_lapsed_subscriptions(db, now=datetime(2024, 6, 1)) == 0
        assert canceled.status == SubscriptionStatus.CANCELED.value

    def test_scoped_to_user(self, db, make_user):
        a, b = make_user(), make_user()
        reconcile(db, a.id, charge_record(charged_at=datetime(2023, 1, 1)))
        reconcile(db, b.id, charge_record(charged_at=datetime(2023, 1, 1)))
        db.commit()

        assert mark_lapsed_subscriptions(db, user_id=a.id, now=datetime(2024, 1, 1)) == 1
        assert _only_subscription(db, b).status == SubscriptionStatus.ACTIVE.value


class TestLapseJob:

    def test_job_runs_against_store(self, db, user):
        reconcile(db, user.id, charge_record(charged_at=datetime(2020, 1, 1)))
        db.commit()

        scheduler.lapse_check_job()

        sub = _only_subscription(db, user)
        db.refresh(sub)
        assert sub.status == SubscriptionStatus.ON_HOLD.value

    def test_status_when_not_started(self):
        assert scheduler.get_scheduler_status() == {"running": False, "jobs": []}


class TestRevivalByNewCharge:

    def test_expired_one_time_comes_back_when_charged_monthly(self, db, user):
        reconcile(db, user.id, charge_record(source_message_id="once", billing_cycle="one_time",
                                             kind="one_time_charge", charged_at=datetime(2024, 1, 10)))
        db.commit()
        mark_lapsed_subscriptions(db, now=datetime(2024, 1, 11))
        sub = _only_subscription(db, user)
        assert sub.status == SubscriptionStatus.EXPIRED.value

        reconcile(db, user.id, charge_record(source_message_id="monthly", billing_cycle="monthly",
                                             charged_at=datetime(2024, 2, 10)))
        db.commit()

        assert sub.status == SubscriptionStatus.ACTIVE.value
        assert sub.lapse_flagged is False
        assert sub.next_renewal == datetime(2024, 3, 10)
        summary = ledger_service.spend_summary(db, user.id, now=datetime(2024, 2, 15))
        assert summary["active_count"] == 1

    def test_on_hold_comes_back_past_due_when_flagged(self, db, user):
        reconcile(db, user.id, charge_record(source_message_id="jan", charged_at=datetime(2024, 1, 1)))
        db.commit()
        mark_lapsed_subscriptions(db, now=datetime(2024, 6, 1))

        reconcile(db, user.id, charge_record(source_message_id="jun", past_due=True,
                                             charged_at=datetime(2024, 6, 2)))
        db.commit()
        assert _only_subscription(db, user).status == SubscriptionStatus.PAST_DUE.value

    def test_user_status_set_after_lapse_is_kept(self, db, user):
        reconcile(db, user.id, charge_record(source_message_id="jan", charged_at=datetime(2024, 1, 1)))
        db.commit()
        mark_lapsed_subscriptions(db, now=datetime(2024, 6, 1))
        sub = _only_subscription(db, user)
        ledger_service.update_subscription(db, user.id, sub.id, SubscriptionUpdate(status="canceled"))

        reconcile(db, user.id, charge_record(source_message_id="jul", charged_at=datetime(2024, 7, 1)))
        db.commit()
        assert sub.status == SubscriptionStatus.CANCELED.value

    def test_older_charge_does_not_revive(self, db, user):
        reconcile(db, user.id, charge_record(source_message_id="feb", charged_at=datetime(2024, 2, 1)))
        db.commit()
        mark_lapsed_subscriptions(db, now=datetime(2024, 6, 1))

        reconcile(db, user.id, charge_record(source_message_id="jan", charged_at=datetime(2024, 1, 1)))
        db.commit()
        assert _only_subscription(db, user).status == SubscriptionStatus.ON_HOLD.value
