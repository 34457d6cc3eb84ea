"""
Opening billing accounts and switching plans.

A gallery has at most one current account.  A lapsed gallery may
re-subscribe under a different plan: the old account is superseded (kept
for history) and the new one starts pending.
"""

from datetime import timedelta

from commission_kernel.domain.dtos import (
    AccountStatus,
    CommandStatus,
    EntryKind,
    SessionEvent,
)
from commission_kernel.exceptions import InvalidStateError, PlanNotFoundError
from tests.conftest import CLIENT, NEW_PARTNER, PARTNER, T0, months_after


class TestOpenAccount:

    def test_opens_pending(self, lifecycle):
        result = lifecycle.open_account("g-new", CLIENT, "storage_package", PARTNER, T0)

        assert result.status is CommandStatus.APPLIED
        account = result.account
        assert account.status is AccountStatus.PENDING
        assert account.partner_of_record_id == PARTNER
        assert account.plan_id == "storage_package"
        assert account.created_at == T0
        assert account.is_current
        assert [(t.from_status, t.to_status, t.reason) for t in result.transitions] == [
            (None, AccountStatus.PENDING, "account_opened"),
        ]

    def test_unknown_plan_rejected(self, lifecycle):
        result = lifecycle.open_account("g-new", CLIENT, "gold_tier", PARTNER, T0)
        assert isinstance(result.error, PlanNotFoundError)
        assert lifecycle.get_billing_account("g-new") is None

    def test_second_open_on_live_account_rejected(self, lifecycle, paid_gallery):
        gallery_id = paid_gallery()
        result = lifecycle.open_account(gallery_id, CLIENT, "client_monthly", PARTNER, T0)
        assert isinstance(result.error, InvalidStateError)
        assert result.account.plan_id == "storage_package"

    def test_direct_signup_without_partner(self, lifecycle, open_gallery):
        gallery_id = open_gallery(plan_id="direct_monthly", partner_id=None)
        assert lifecycle.get_billing_account(gallery_id).partner_of_record_id is None


class TestPlanSwitch:

    def test_lapsed_gallery_switches_plan(self, lifecycle, paid_gallery):
        gallery_id = paid_gallery()
        lifecycle.advance_clock(gallery_id, months_after(7))

        opened_at = months_after(8)
        result = lifecycle.open_account(gallery_id, CLIENT, "client_monthly", None, opened_at)

        assert result.status is CommandStatus.APPLIED
        new = result.account
        assert new.plan_id == "client_monthly"
        assert new.status is AccountStatus.PENDING
        assert new.partner_of_record_id is None

        old, current = lifecycle.account_history(gallery_id)
        assert current.id == new.id
        assert old.superseded_by_id == new.id
        assert old.superseded_at == opened_at
        assert new.supersedes_id == old.id
        assert not old.is_current
        assert old.status is AccountStatus.LAPSED

    def test_switch_inherits_session_partner(self, lifecycle, paid_gallery):
        gallery_id = paid_gallery()
        lifecycle.advance_clock(gallery_id, months_after(7))
        lifecycle.apply_session_event(
            SessionEvent(gallery_id=gallery_id, new_partner_id=NEW_PARTNER, occurred_at=months_after(7))
        )

        result = lifecycle.open_account(gallery_id, CLIENT, "client_monthly", None, months_after(8))
        assert result.account.partner_of_record_id == NEW_PARTNER

        payment = lifecycle.record_recurring_payment(gallery_id, 800, months_after(8) + timedelta(hours=1))
        assert payment.entries[0].recipient_id == NEW_PARTNER
        assert payment.entries[0].kind is EntryKind.RECURRING_COMMISSION
        assert payment.entries[0].billing_account_id == result.account.id

    def test_switch_catches_up_unswept_account(self, lifecycle, paid_gallery):
        gallery_id = paid_gallery()
        result = lifecycle.open_account(gallery_id, CLIENT, "client_monthly", PARTNER, months_after(8))

        assert result.status is CommandStatus.APPLIED
        reasons = [t.reason for t in result.transitions]
        assert reasons[:2] == ["billing_cycle_missed", "forfeiture_threshold_exceeded"]
        assert reasons[-1] == "account_opened"
        assert "superseded_by_plan:client_monthly" in reasons
        assert result.account.partner_of_record_id == PARTNER

    def test_same_plan_reactivates_by_payment_only(self, lifecycle, paid_gallery):
        gallery_id = paid_gallery()
        lifecycle.advance_clock(gallery_id, months_after(7))
        result = lifecycle.open_account(gallery_id, CLIENT, "storage_package", None, months_after(8))
        assert isinstance(result.error, InvalidStateError)
        assert len(lifecycle.account_history(gallery_id)) == 1

    def test_inactive_gallery_cannot_switch(self, lifecycle, paid_gallery):
        gallery_id = paid_gallery()
        result = lifecycle.open_account(gallery_id, CLIENT, "client_monthly", None, months_after(3))
        assert result.status is CommandStatus.REJECTED
        # Catch-up computed on the way is discarded with the rejection.
        assert lifecycle.get_billing_account(gallery_id).status is AccountStatus.ACTIVE

    def test_commands_target_new_account(self, lifecycle, paid_gallery):
        gallery_id = paid_gallery()
        lifecycle.advance_clock(gallery_id, months_after(7))
        lifecycle.open_account(gallery_id, CLIENT, "six_month_trial", PARTNER, months_after(8))

        result = lifecycle.record_upfront_payment(gallery_id, 2_000, months_after(8))
        assert result.account.plan_id == "six_month_trial"
        assert result.account.status is AccountStatus.ACTIVE
        assert result.account.period_end == months_after(14)
