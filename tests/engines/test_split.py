"""
Commission split engine.

Scenario A in miniature: a $100 upfront payment at 50/50 becomes one
$50 partner commission and one $50 platform entry.  Without a partner of
record the platform keeps everything.
"""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from commission_engines.split import SplitAllocation, allocate, build_payment_batch
from commission_kernel.domain.dtos import EntryKind
from commission_kernel.domain.plans import PaymentKind, Split

PAID_AT = datetime(2025, 1, 1, 12, tzinfo=timezone.utc)


def _batch(**overrides):
    kwargs = dict(
        gallery_id="g1",
        billing_account_id=uuid4(),
        batch_id=uuid4(),
        payment_kind=PaymentKind.UPFRONT,
        gross_cents=10_000,
        split=Split(50, 50),
        partner_id="p1",
        recorded_at=PAID_AT,
        payout_delay_days=14,
        platform_recipient_id="platform",
    )
    kwargs.update(overrides)
    return build_payment_batch(**kwargs)


class TestAllocate:

    def test_even_split(self):
        assert allocate(10_000, Split(50, 50), "p1") == SplitAllocation(10_000, 5_000, 5_000)

    def test_residual_cent_goes_to_platform(self):
        allocation = allocate(801, Split(50, 50), "p1")
        assert allocation.partner_cents == 400
        assert allocation.platform_cents == 401

    def test_no_partner_platform_keeps_all(self):
        assert allocate(800, Split(50, 50), None) == SplitAllocation(800, 0, 800)

    def test_zero_partner_pct(self):
        assert allocate(800, Split(0, 100), "p1").partner_cents == 0

    def test_negative_gross_rejected(self):
        with pytest.raises(ValueError):
            allocate(-1, Split(50, 50), "p1")

    def test_allocation_must_conserve(self):
        with pytest.raises(ValueError, match="does not equal gross"):
            SplitAllocation(gross_cents=100, partner_cents=50, platform_cents=49)


class TestBuildPaymentBatch:

    def test_upfront_with_partner(self):
        drafts = _batch()
        assert [(d.recipient_id, d.kind, d.amount_cents) for d in drafts] == [
            ("p1", EntryKind.UPFRONT_COMMISSION, 5_000),
            ("platform", EntryKind.PLATFORM_RETAINED, 5_000),
        ]
        assert sum(d.amount_cents for d in drafts) == 10_000

    def test_partner_entry_has_payout_date(self):
        partner, platform = _batch()
        assert partner.payout_due_at == PAID_AT + timedelta(days=14)
        assert platform.payout_due_at is None

    def test_recurring_kind(self):
        drafts = _batch(payment_kind=PaymentKind.RECURRING, gross_cents=800)
        assert drafts[0].kind is EntryKind.RECURRING_COMMISSION
        assert all(d.revenue_stream is PaymentKind.RECURRING for d in drafts)

    def test_without_partner_single_platform_entry(self):
        drafts = _batch(payment_kind=PaymentKind.RECURRING, gross_cents=800, partner_id=None)
        assert len(drafts) == 1
        assert drafts[0].recipient_id == "platform"
        assert drafts[0].amount_cents == 800

    def test_batch_fields_shared(self):
        batch_id = uuid4()
        drafts = _batch(batch_id=batch_id)
        assert {d.batch_id for d in drafts} == {batch_id}
        assert {d.period_label for d in drafts} == {"2025-01"}
        assert {d.gross_cents for d in drafts} == {10_000}

    def test_engine_trace_logged(self, captured_logs):
        _batch()
        traces = [r for r in captured_logs() if r["message"] == "COMMISSION_ENGINE_TRACE"]
        assert traces[-1]["engine_name"] == "commission_split"
        assert len(traces[-1]["input_fingerprint"]) == 16
