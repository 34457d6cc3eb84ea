"""
Commission split engine.

Pure functions that turn a collected payment into a conserved batch of
ledger entry drafts: the partner of record's commission and the platform's
retained share.

Rounding: the partner share is ``floor(gross * partner_pct / 100)``; the
platform receives ``gross - partner``, so any residual cent goes to the
platform and the batch always sums to the gross exactly.

Usage:
    from commission_engines.split import allocate, build_payment_batch

    allocation = allocate(gross_cents=10_000, split=Split(50, 50), partner_id="p1")
    assert allocation.partner_cents == 5_000
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from commission_engines.tracer import traced_engine
from commission_kernel.domain.dtos import EntryKind, LedgerEntryDraft
from commission_kernel.domain.periods import period_label
from commission_kernel.domain.plans import (
    PAYOUT_DELAY_DAYS,
    PLATFORM_RECIPIENT_ID,
    PaymentKind,
    Split,
)


@dataclass(frozen=True)
class SplitAllocation:
    """How one gross amount divides between partner and platform."""

    gross_cents: int
    partner_cents: int
    platform_cents: int

    def __post_init__(self) -> None:
        if self.partner_cents + self.platform_cents != self.gross_cents:
            raise ValueError(
                f"Allocation {self.partner_cents}+{self.platform_cents} "
                f"does not equal gross {self.gross_cents}"
            )


def allocate(gross_cents: int, split: Split | None, partner_id: str | None) -> SplitAllocation:
    """
    Divide ``gross_cents`` per ``split``.

    With no partner of record (or no split) the platform keeps 100%.
    """
    if gross_cents < 0:
        raise ValueError(f"gross_cents must be non-negative, got {gross_cents}")
    if partner_id is None or split is None:
        return SplitAllocation(gross_cents=gross_cents, partner_cents=0, platform_cents=gross_cents)
    partner = gross_cents * split.partner_pct // 100
    return SplitAllocation(
        gross_cents=gross_cents,
        partner_cents=partner,
        platform_cents=gross_cents - partner,
    )


@traced_engine(
    "commission_split",
    "1.0",
    fingerprint_fields=("gallery_id", "payment_kind", "gross_cents", "partner_id", "recorded_at"),
)
def build_payment_batch(
    *,
    gallery_id: str,
    billing_account_id: UUID | None,
    batch_id: UUID,
    payment_kind: PaymentKind,
    gross_cents: int,
    split: Split | None,
    partner_id: str | None,
    recorded_at: datetime,
    payout_delay_days: int = PAYOUT_DELAY_DAYS,
    platform_recipient_id: str = PLATFORM_RECIPIENT_ID,
) -> tuple[LedgerEntryDraft, ...]:
    """
    Build the ledger batch for one payment.

    Zero-amount entries are omitted; partner entries carry a payout date
    ``payout_delay_days`` after ``recorded_at``.
    """
    allocation = allocate(gross_cents, split, partner_id)
    label = period_label(recorded_at)

    drafts: list[LedgerEntryDraft] = []
    if allocation.partner_cents > 0:
        drafts.append(
            LedgerEntryDraft(
                gallery_id=gallery_id,
                billing_account_id=billing_account_id,
                batch_id=batch_id,
                recipient_id=partner_id,
                kind=EntryKind.commission_for(payment_kind),
                revenue_stream=payment_kind,
                amount_cents=allocation.partner_cents,
                gross_cents=gross_cents,
                period_label=label,
                recorded_at=recorded_at,
                payout_due_at=recorded_at + timedelta(days=payout_delay_days),
            )
        )
    if allocation.platform_cents > 0:
        drafts.append(
            LedgerEntryDraft(
                gallery_id=gallery_id,
                billing_account_id=billing_account_id,
                batch_id=batch_id,
                recipient_id=platform_recipient_id,
                kind=EntryKind.PLATFORM_RETAINED,
                revenue_stream=payment_kind,
                amount_cents=allocation.platform_cents,
                gross_cents=gross_cents,
                period_label=label,
                recorded_at=recorded_at,
            )
        )
    return tuple(drafts)
