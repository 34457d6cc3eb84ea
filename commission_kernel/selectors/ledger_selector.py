"""
Module: commission_kernel.selectors.ledger_selector
Responsibility: Read-only commission ledger queries: entries per gallery and
    period, per recipient, per batch, and the per-period conservation check.
    Revenue totals are derived from these rows at query time; nothing stores
    a running balance.
Architecture position: Kernel > Selectors.  May import from models/, domain
    DTOs and selectors/base.py.

Invariants enforced:
    - Conservation (verification side): ``conservation_check`` recomputes,
      for one gallery and period, partner + platform amounts against the
      gross collected by every batch recorded in that period.

Failure modes:
    - Returns empty results or zero totals when no entries exist.
"""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from commission_kernel.domain.dtos import EntryKind, LedgerEntryRecord
from commission_kernel.domain.plans import PLATFORM_RECIPIENT_ID
from commission_kernel.models.ledger_entry import LedgerEntryModel
from commission_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class ConservationReport:
    """Partner/platform allocation versus gross for one gallery period."""

    gallery_id: str
    period_label: str
    gross_cents: int
    partner_cents: int
    platform_cents: int

    @property
    def allocated_cents(self) -> int:
        return self.partner_cents + self.platform_cents

    @property
    def is_balanced(self) -> bool:
        return self.allocated_cents == self.gross_cents


class LedgerSelector(BaseSelector[LedgerEntryModel]):
    """
    Selector for commission ledger queries.

    Contract:
        Results are ordered by ``recorded_at``, then batch, then position
        within the batch, so a batch always reads back in the order it
        was written.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    def _ordered(self, query):
        return query.order_by(
            LedgerEntryModel.recorded_at,
            LedgerEntryModel.batch_id,
            LedgerEntryModel.line_no,
        )

    def _records(self, query) -> list[LedgerEntryRecord]:
        rows = self.session.execute(self._ordered(query)).scalars().all()
        return [LedgerEntryRecord.from_model(row) for row in rows]

    def entries_for(self, gallery_id: str, period_label: str) -> list[LedgerEntryRecord]:
        """All entries for a gallery in one period."""
        return self._records(
            select(LedgerEntryModel).where(
                LedgerEntryModel.gallery_id == gallery_id,
                LedgerEntryModel.period_label == period_label,
            )
        )

    def entries_for_gallery(self, gallery_id: str) -> list[LedgerEntryRecord]:
        """Every entry ever written for a gallery."""
        return self._records(
            select(LedgerEntryModel).where(LedgerEntryModel.gallery_id == gallery_id)
        )

    def entries_for_batch(self, batch_id: UUID) -> list[LedgerEntryRecord]:
        return self._records(
            select(LedgerEntryModel).where(LedgerEntryModel.batch_id == batch_id)
        )

    def entries_for_recipient(
        self,
        recipient_id: str,
        from_period: str | None = None,
        to_period: str | None = None,
    ) -> list[LedgerEntryRecord]:
        """
        Entries credited to one recipient, optionally bounded by period.

        Period labels are ``YYYY-MM`` and compare correctly as strings.
        """
        return self._records(
            self._period_bounded(
                select(LedgerEntryModel).where(
                    LedgerEntryModel.recipient_id == recipient_id
                ),
                from_period,
                to_period,
            )
        )

    def entries_between(
        self,
        from_period: str | None = None,
        to_period: str | None = None,
    ) -> list[LedgerEntryRecord]:
        """All entries in a period range, across every gallery and recipient."""
        return self._records(
            self._period_bounded(select(LedgerEntryModel), from_period, to_period)
        )

    def is_offset(self, entry_ids: list[UUID]) -> bool:
        """True if any of the given entries has already been offset."""
        if not entry_ids:
            return False
        found = self.session.execute(
            select(LedgerEntryModel.id)
            .where(LedgerEntryModel.offsets_entry_id.in_(entry_ids))
            .limit(1)
        ).first()
        return found is not None

    def conservation_check(self, gallery_id: str, period_label: str) -> ConservationReport:
        """
        Recompute the conservation law for one gallery and period.

        Gross is counted once per batch; offset batches count negatively.
        """
        entries = self.entries_for(gallery_id, period_label)

        gross_by_batch: dict[UUID, int] = {}
        partner = 0
        platform = 0
        for entry in entries:
            gross_by_batch[entry.batch_id] = entry.signed_gross_cents
            if entry.recipient_id == PLATFORM_RECIPIENT_ID and entry.kind == EntryKind.PLATFORM_RETAINED:
                platform += entry.signed_amount_cents
            else:
                partner += entry.signed_amount_cents

        return ConservationReport(
            gallery_id=gallery_id,
            period_label=period_label,
            gross_cents=sum(gross_by_batch.values()),
            partner_cents=partner,
            platform_cents=platform,
        )

    @staticmethod
    def _period_bounded(query, from_period: str | None, to_period: str | None):
        if from_period is not None:
            query = query.where(LedgerEntryModel.period_label >= from_period)
        if to_period is not None:
            query = query.where(LedgerEntryModel.period_label <= to_period)
        return query
