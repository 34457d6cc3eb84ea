"""
Revenue aggregation engine -- pure rollups over ledger entries.

Every figure a dashboard shows (monthly totals, yearly totals, growth,
projections, top partners) is computed here from ``LedgerEntryRecord``
values on demand.  There is no stored "current revenue" anywhere, so a
displayed total can never drift from the ledger.

All functions accept entries already filtered to the party of interest
(except ``top_partners``), never raise domain errors, and return empty or
zero results when there is no data.  Offset entries count negatively.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from commission_engines.tracer import traced_engine
from commission_kernel.domain.dtos import LedgerEntryRecord
from commission_kernel.domain.periods import iter_periods, shift_period
from commission_kernel.domain.plans import PLATFORM_RECIPIENT_ID, PaymentKind

#: Number of trailing periods averaged by ``project_next``.
PROJECTION_WINDOW = 3


@dataclass(frozen=True)
class MonthlyRevenue:
    """Revenue of one party in one period."""

    period: str
    upfront_total: int
    recurring_total: int
    total: int


@dataclass(frozen=True)
class YearlyRevenue:
    year: int
    upfront_total: int
    recurring_total: int
    total: int
    months: tuple[MonthlyRevenue, ...]


@dataclass(frozen=True)
class RevenueSummary:
    """Headline figures for a party as of one period."""

    as_of_period: str
    total_cents: int
    this_month_cents: int
    this_year_cents: int
    payment_count: int
    average_per_payment_cents: int


@dataclass(frozen=True)
class PartnerTotal:
    partner_id: str
    total_cents: int
    gallery_count: int


def _totals_by_period(entries: Iterable[LedgerEntryRecord]) -> dict[str, dict[PaymentKind, int]]:
    totals: dict[str, dict[PaymentKind, int]] = defaultdict(lambda: defaultdict(int))
    for entry in entries:
        totals[entry.period_label][entry.revenue_stream] += entry.signed_amount_cents
    return totals


def _month(period: str, by_stream: dict[PaymentKind, int] | None) -> MonthlyRevenue:
    upfront = by_stream.get(PaymentKind.UPFRONT, 0) if by_stream else 0
    recurring = by_stream.get(PaymentKind.RECURRING, 0) if by_stream else 0
    return MonthlyRevenue(
        period=period,
        upfront_total=upfront,
        recurring_total=recurring,
        total=upfront + recurring,
    )


@traced_engine("revenue_monthly_breakdown", "1.0", fingerprint_fields=("from_period", "to_period"))
def monthly_breakdown(
    *,
    entries: Sequence[LedgerEntryRecord],
    from_period: str,
    to_period: str,
) -> list[MonthlyRevenue]:
    """
    One row per period from ``from_period`` to ``to_period`` inclusive.

    Periods without entries appear with zero totals.  An inverted range
    returns an empty list.
    """
    if from_period > to_period:
        return []
    totals = _totals_by_period(entries)
    return [_month(period, totals.get(period)) for period in iter_periods(from_period, to_period)]


def latest_period(
    entries: Iterable[LedgerEntryRecord],
    stream: PaymentKind | None = None,
) -> str | None:
    """Most recent period with ledger activity (of one revenue stream, if given), or None."""
    return max(
        (
            entry.period_label for entry in entries
            if stream is None or entry.revenue_stream is stream
        ),
        default=None,
    )


@traced_engine("revenue_projection", "1.0", fingerprint_fields=("periods", "as_of_period"))
def project_next(
    *,
    entries: Sequence[LedgerEntryRecord],
    periods: int,
    as_of_period: str | None = None,
) -> int:
    """
    Estimate recurring revenue over the next ``periods`` periods.

    Trailing average of the recurring totals of the last three periods
    ending at ``as_of_period``, multiplied by ``periods`` and floored to
    whole cents.  Months without recurring revenue count as zero.  The
    default anchor is the latest period with recurring activity, so a
    later upfront-only month does not push recurring months out of the
    window.

    This is an estimate, not a forecast: there is no seasonality, churn or
    growth modelling, and callers must present it as such.
    """
    if periods <= 0:
        return 0
    anchor = as_of_period or latest_period(entries, PaymentKind.RECURRING)
    if anchor is None:
        return 0
    window = monthly_breakdown(
        entries=entries,
        from_period=shift_period(anchor, -(PROJECTION_WINDOW - 1)),
        to_period=anchor,
    )
    recurring = sum(month.recurring_total for month in window)
    if recurring <= 0:
        return 0
    return recurring * periods // PROJECTION_WINDOW


def yearly_totals(*, entries: Sequence[LedgerEntryRecord], year: int) -> YearlyRevenue:
    months = tuple(
        monthly_breakdown(entries=entries, from_period=f"{year:04d}-01", to_period=f"{year:04d}-12")
    )
    upfront = sum(m.upfront_total for m in months)
    recurring = sum(m.recurring_total for m in months)
    return YearlyRevenue(
        year=year,
        upfront_total=upfront,
        recurring_total=recurring,
        total=upfront + recurring,
        months=months,
    )


def growth_rate(*, entries: Sequence[LedgerEntryRecord], period: str) -> Decimal | None:
    """
    Month-over-month growth of total revenue, in percent (2 dp).

    None when the previous period had no revenue (growth is undefined).
    """
    previous_period = shift_period(period, -1)
    rows = monthly_breakdown(entries=entries, from_period=previous_period, to_period=period)
    previous, current = rows[0].total, rows[1].total
    if previous == 0:
        return None
    rate = (Decimal(current - previous) / Decimal(previous)) * Decimal(100)
    return rate.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def revenue_summary(*, entries: Sequence[LedgerEntryRecord], as_of_period: str) -> RevenueSummary:
    """Total to date, this month, this year and average per payment."""
    year = as_of_period[:4]
    upto = [entry for entry in entries if entry.period_label <= as_of_period]
    total = sum(entry.signed_amount_cents for entry in upto)
    this_month = sum(e.signed_amount_cents for e in upto if e.period_label == as_of_period)
    this_year = sum(e.signed_amount_cents for e in upto if e.period_label.startswith(year))
    payments = {entry.batch_id for entry in upto if not entry.is_offset}
    return RevenueSummary(
        as_of_period=as_of_period,
        total_cents=total,
        this_month_cents=this_month,
        this_year_cents=this_year,
        payment_count=len(payments),
        average_per_payment_cents=total // len(payments) if payments else 0,
    )


def top_partners(
    *,
    entries: Sequence[LedgerEntryRecord],
    limit: int = 3,
    platform_recipient_id: str = PLATFORM_RECIPIENT_ID,
) -> list[PartnerTotal]:
    """Partners ranked by total commission, highest first (ties by id)."""
    if limit <= 0:
        return []
    totals: dict[str, int] = defaultdict(int)
    galleries: dict[str, set[str]] = defaultdict(set)
    for entry in entries:
        if entry.recipient_id == platform_recipient_id:
            continue
        totals[entry.recipient_id] += entry.signed_amount_cents
        galleries[entry.recipient_id].add(entry.gallery_id)
    ranked = sorted(totals.items(), key=lambda item: (-item[1], item[0]))
    return [
        PartnerTotal(partner_id=pid, total_cents=total, gallery_count=len(galleries[pid]))
        for pid, total in ranked[:limit]
    ]
