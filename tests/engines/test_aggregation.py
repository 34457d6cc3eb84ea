"""Revenue rollups over ledger entries (pure, no database)."""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from commission_engines.aggregation import (
    growth_rate,
    latest_period,
    monthly_breakdown,
    project_next,
    revenue_summary,
    top_partners,
    yearly_totals,
)
from commission_kernel.domain.dtos import EntryKind, LedgerEntryRecord
from commission_kernel.domain.periods import parse_period
from commission_kernel.domain.plans import PaymentKind


def _entry(
    period: str,
    amount: int,
    stream: PaymentKind = PaymentKind.RECURRING,
    recipient: str = "p1",
    gallery: str = "g1",
    batch_id=None,
    offsets=None,
) -> LedgerEntryRecord:
    year, month = parse_period(period)
    kind = (
        EntryKind.PLATFORM_RETAINED if recipient == "platform" else EntryKind.commission_for(stream)
    )
    return LedgerEntryRecord(
        id=uuid4(),
        gallery_id=gallery,
        billing_account_id=None,
        batch_id=batch_id or uuid4(),
        recipient_id=recipient,
        kind=kind,
        revenue_stream=stream,
        amount_cents=amount,
        gross_cents=amount * 2,
        period_label=period,
        recorded_at=datetime(year, month, 10, tzinfo=timezone.utc),
        payout_due_at=None,
        offsets_entry_id=offsets,
    )


class TestMonthlyBreakdown:

    def test_zero_fills_gaps(self):
        entries = [
            _entry("2025-01", 5_000, PaymentKind.UPFRONT),
            _entry("2025-03", 400),
        ]
        rows = monthly_breakdown(entries=entries, from_period="2025-01", to_period="2025-03")
        assert [(r.period, r.upfront_total, r.recurring_total, r.total) for r in rows] == [
            ("2025-01", 5_000, 0, 5_000),
            ("2025-02", 0, 0, 0),
            ("2025-03", 0, 400, 400),
        ]

    def test_offsets_count_negative(self):
        original = _entry("2025-01", 400)
        offset = _entry("2025-01", 400, offsets=original.id)
        rows = monthly_breakdown(entries=[original, offset], from_period="2025-01", to_period="2025-01")
        assert rows[0].total == 0

    def test_inverted_range_empty(self):
        assert monthly_breakdown(entries=[], from_period="2025-05", to_period="2025-01") == []


class TestProjection:

    def test_trailing_three_period_average(self):
        entries = [_entry("2025-01", 400), _entry("2025-02", 400), _entry("2025-03", 400)]
        assert project_next(entries=entries, periods=3) == 1_200
        assert project_next(entries=entries, periods=1) == 400

    def test_missing_months_count_as_zero(self):
        entries = [_entry("2025-03", 900)]
        assert project_next(entries=entries, periods=1, as_of_period="2025-03") == 300

    def test_upfront_excluded(self):
        entries = [_entry("2025-03", 5_000, PaymentKind.UPFRONT)]
        assert project_next(entries=entries, periods=12) == 0

    def test_no_data_or_no_horizon(self):
        assert project_next(entries=[], periods=3) == 0
        assert project_next(entries=[_entry("2025-01", 400)], periods=0) == 0

    def test_anchor_defaults_to_latest_period(self):
        entries = [_entry("2024-12", 400), _entry("2025-01", 400)]
        assert latest_period(entries) == "2025-01"
        assert project_next(entries=entries, periods=3) == 800

    def test_later_upfront_does_not_shift_window(self):
        entries = [
            _entry("2025-01", 400),
            _entry("2025-02", 400),
            _entry("2025-03", 400),
            _entry("2025-05", 5_000, PaymentKind.UPFRONT),
        ]
        assert latest_period(entries) == "2025-05"
        assert latest_period(entries, PaymentKind.RECURRING) == "2025-03"
        assert project_next(entries=entries, periods=1) == 400


class TestTotals:

    def test_yearly_totals(self):
        entries = [
            _entry("2025-01", 5_000, PaymentKind.UPFRONT),
            _entry("2025-06", 400),
            _entry("2026-01", 400),
        ]
        year = yearly_totals(entries=entries, year=2025)
        assert year.upfront_total == 5_000
        assert year.recurring_total == 400
        assert year.total == 5_400
        assert len(year.months) == 12

    def test_growth_rate(self):
        entries = [_entry("2025-01", 400), _entry("2025-02", 500)]
        assert growth_rate(entries=entries, period="2025-02") == Decimal("25.00")

    def test_growth_rate_rounds_half_up(self):
        entries = [_entry("2025-01", 300), _entry("2025-02", 400)]
        assert growth_rate(entries=entries, period="2025-02") == Decimal("33.33")

    def test_growth_undefined_without_prior_revenue(self):
        assert growth_rate(entries=[_entry("2025-02", 400)], period="2025-02") is None

    def test_revenue_summary(self):
        batch = uuid4()
        entries = [
            _entry("2024-12", 5_000, PaymentKind.UPFRONT),
            _entry("2025-01", 400, batch_id=batch),
            _entry("2025-02", 400),
            _entry("2025-03", 400),
        ]
        summary = revenue_summary(entries=entries, as_of_period="2025-02")
        assert summary.total_cents == 5_800
        assert summary.this_month_cents == 400
        assert summary.this_year_cents == 800
        assert summary.payment_count == 3
        assert summary.average_per_payment_cents == 5_800 // 3

    def test_summary_empty(self):
        summary = revenue_summary(entries=[], as_of_period="2025-01")
        assert summary.total_cents == 0
        assert summary.average_per_payment_cents == 0


class TestTopPartners:

    def test_ranked_and_platform_excluded(self):
        entries = [
            _entry("2025-01", 5_000, recipient="p1", gallery="g1"),
            _entry("2025-01", 400, recipient="p1", gallery="g2"),
            _entry("2025-01", 9_000, recipient="p2", gallery="g3"),
            _entry("2025-01", 99_999, recipient="platform"),
            _entry("2025-01", 100, recipient="p3"),
        ]
        ranked = top_partners(entries=entries, limit=2)
        assert [(p.partner_id, p.total_cents, p.gallery_count) for p in ranked] == [
            ("p2", 9_000, 1),
            ("p1", 5_400, 2),
        ]

    def test_ties_broken_by_id(self):
        entries = [_entry("2025-01", 400, recipient="b"), _entry("2025-01", 400, recipient="a")]
        assert [p.partner_id for p in top_partners(entries=entries)] == ["a", "b"]

    @pytest.mark.parametrize("limit", [0, -1])
    def test_non_positive_limit(self, limit):
        assert top_partners(entries=[_entry("2025-01", 400)], limit=limit) == []
