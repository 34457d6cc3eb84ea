"""
Module: commission_kernel.models.ledger_entry
Responsibility: ORM persistence for the append-only commission ledger.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Rows are immutable from creation and never deleted
      (db/immutability.py).  Corrections are offsetting rows that point at
      the row they cancel through ``offsets_entry_id``.
    - amount_cents is non-negative (CHECK constraint); an offset row counts
      negatively.
    - Each original entry is offset at most once (unique ``offsets_entry_id``).
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from commission_kernel.db.base import Base, UUIDString


class LedgerEntryModel(Base):
    """One amount earned by one recipient from one payment batch."""

    __tablename__ = "commission_ledger_entries"

    __table_args__ = (
        CheckConstraint("amount_cents >= 0", name="ck_ledger_amount_non_negative"),
        CheckConstraint("gross_cents >= 0", name="ck_ledger_gross_non_negative"),
        UniqueConstraint("offsets_entry_id", name="uq_ledger_offsets_entry"),
        Index("idx_ledger_gallery_period", "gallery_id", "period_label"),
        Index("idx_ledger_recipient_period", "recipient_id", "period_label"),
        Index("idx_ledger_batch", "batch_id"),
    )

    gallery_id: Mapped[str] = mapped_column(String(64), nullable=False)

    billing_account_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("billing_accounts.id"),
        nullable=True,
    )

    # All entries written by one transition share a batch id
    batch_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    # Position within the batch
    line_no: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    recipient_id: Mapped[str] = mapped_column(String(64), nullable=False)
    kind: Mapped[str] = mapped_column(String(32), nullable=False)
    revenue_stream: Mapped[str] = mapped_column(String(16), nullable=False)

    amount_cents: Mapped[int] = mapped_column(nullable=False)
    gross_cents: Mapped[int] = mapped_column(nullable=False)

    # "YYYY-MM", UTC
    period_label: Mapped[str] = mapped_column(String(7), nullable=False)

    recorded_at: Mapped[datetime] = mapped_column(nullable=False)
    payout_due_at: Mapped[datetime | None] = mapped_column(nullable=True)

    offsets_entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("commission_ledger_entries.id"),
        nullable=True,
    )

    def __repr__(self) -> str:
        sign = "-" if self.offsets_entry_id is not None else ""
        return (
            f"<LedgerEntry {self.gallery_id} {self.period_label} "
            f"{self.recipient_id} {self.kind} {sign}{self.amount_cents}>"
        )
