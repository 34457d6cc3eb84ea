"""
Commission ledger service -- the only writer of ledger entries.

The ledger is responsible for:
- Validating a batch of drafts against the conservation law before writing
- Writing a batch atomically (all entries or none)
- Correcting history by appending offsetting batches

The ledger does NOT:
- Decide splits (that's ``commission_engines.split``)
- Decide whether a payment is valid (that's ``commission_engines.lifecycle``)
- Commit (the lifecycle engine owns the transaction)
"""

from collections.abc import Sequence
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from commission_kernel.domain.dtos import LedgerEntryDraft, LedgerEntryRecord
from commission_kernel.domain.periods import period_label
from commission_kernel.exceptions import (
    BatchAlreadyOffsetError,
    BatchNotFoundError,
    ConservationViolationError,
)
from commission_kernel.invariants import KernelInvariant
from commission_kernel.logging_config import get_logger
from commission_kernel.models.ledger_entry import LedgerEntryModel
from commission_kernel.selectors.ledger_selector import LedgerSelector
from commission_kernel.services.base import BaseService

logger = get_logger("services.ledger")


class CommissionLedger(BaseService[LedgerEntryModel]):
    """
    Append-only commission ledger.

    Contract:
        ``append`` validates the whole batch before adding anything to the
        session, so it either stages every draft or raises having staged
        none.  A flush failure aborts the caller's transaction.
        There is no update or delete; ``offset_batch`` is the correction
        mechanism.

    Guarantees:
        - Every written batch satisfies sum(amounts) == gross.
        - A batch is offset at most once, and an offset is never offset.
    """

    def __init__(self, session: Session):
        super().__init__(session)
        self._selector = LedgerSelector(session)

    # =========================================================================
    # Writes
    # =========================================================================

    def append(self, entries: Sequence[LedgerEntryDraft]) -> tuple[LedgerEntryRecord, ...]:
        """
        Write one batch of entries atomically.

        Raises:
            ConservationViolationError: the batch is inconsistent or does
                not conserve its gross.  Nothing is written.
        """
        if not entries:
            return ()

        self.validate_batch(entries)

        first = entries[0]
        models = [
            LedgerEntryModel(
                gallery_id=draft.gallery_id,
                billing_account_id=draft.billing_account_id,
                batch_id=draft.batch_id,
                line_no=line_no,
                recipient_id=draft.recipient_id,
                kind=draft.kind.value,
                revenue_stream=draft.revenue_stream.value,
                amount_cents=draft.amount_cents,
                gross_cents=draft.gross_cents,
                period_label=draft.period_label,
                recorded_at=draft.recorded_at,
                payout_due_at=draft.payout_due_at,
                offsets_entry_id=draft.offsets_entry_id,
            )
            for line_no, draft in enumerate(entries)
        ]

        self.session.add_all(models)
        self.session.flush()

        logger.info(
            "ledger_batch_appended",
            extra={
                "gallery_id": first.gallery_id,
                "batch_id": str(first.batch_id),
                "period_label": first.period_label,
                "gross_cents": first.gross_cents,
                "entry_count": len(models),
                "is_offset": first.is_offset,
            },
        )
        return tuple(LedgerEntryRecord.from_model(model) for model in models)

    @staticmethod
    def validate_batch(entries: Sequence[LedgerEntryDraft]) -> None:
        """
        Check that drafts form one consistent, conserved batch.

        Raises:
            ConservationViolationError: on any inconsistency.
        """
        first = entries[0]
        for draft in entries[1:]:
            mismatched = [
                name
                for name in ("batch_id", "gallery_id", "period_label", "gross_cents", "is_offset")
                if getattr(draft, name) != getattr(first, name)
            ]
            if mismatched:
                raise ConservationViolationError(
                    gallery_id=first.gallery_id,
                    gross_cents=first.gross_cents,
                    allocated_cents=sum(d.amount_cents for d in entries),
                    detail=f"batch entries disagree on {', '.join(mismatched)}",
                )

        allocated = sum(draft.amount_cents for draft in entries)
        if allocated != first.gross_cents:
            logger.critical(
                "conservation_violation",
                extra={
                    "invariant": KernelInvariant.CONSERVATION.value,
                    "gallery_id": first.gallery_id,
                    "batch_id": str(first.batch_id),
                    "gross_cents": first.gross_cents,
                    "allocated_cents": allocated,
                },
            )
            raise ConservationViolationError(
                gallery_id=first.gallery_id,
                gross_cents=first.gross_cents,
                allocated_cents=allocated,
            )

    def offset_batch(
        self,
        batch_id: UUID,
        recorded_at: datetime,
        offset_batch_id: UUID | None = None,
    ) -> tuple[LedgerEntryRecord, ...]:
        """
        Cancel a batch by appending one offsetting entry per original entry.

        Offsets land in the period of ``recorded_at``, not the original
        period: history is never rewritten.

        Raises:
            BatchNotFoundError: no entries carry ``batch_id``.
            BatchAlreadyOffsetError: the batch is an offset, or was offset.
        """
        originals = self._selector.entries_for_batch(batch_id)
        if not originals:
            raise BatchNotFoundError(str(batch_id))
        if any(entry.is_offset for entry in originals):
            raise BatchAlreadyOffsetError(str(batch_id))
        if self._selector.is_offset([entry.id for entry in originals]):
            raise BatchAlreadyOffsetError(str(batch_id))

        new_batch_id = offset_batch_id or uuid4()
        label = period_label(recorded_at)
        drafts = [
            LedgerEntryDraft(
                gallery_id=entry.gallery_id,
                billing_account_id=entry.billing_account_id,
                batch_id=new_batch_id,
                recipient_id=entry.recipient_id,
                kind=entry.kind,
                revenue_stream=entry.revenue_stream,
                amount_cents=entry.amount_cents,
                gross_cents=entry.gross_cents,
                period_label=label,
                recorded_at=recorded_at,
                offsets_entry_id=entry.id,
            )
            for entry in originals
        ]
        logger.info(
            "ledger_batch_offset",
            extra={
                "batch_id": str(batch_id),
                "offset_batch_id": str(new_batch_id),
                "period_label": label,
            },
        )
        return self.append(drafts)

    # =========================================================================
    # Reads
    # =========================================================================

    def entries_for(self, gallery_id: str, period_label: str) -> list[LedgerEntryRecord]:
        """All entries for a gallery in one ``YYYY-MM`` period."""
        return self._selector.entries_for(gallery_id, period_label)
