"""
Module: commission_kernel.models.transition
Responsibility: Append-only log of billing account transitions (status and
    partner-of-record changes), including the succession of partners.
Architecture position: Kernel > Models.  May import from db/base.py only.

Audit relevance:
    Answers "why did this photographer stop earning on this gallery?"
    without reconstructing history from the ledger.  Rows are immutable.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from commission_kernel.db.base import Base, UUIDString


class BillingTransitionModel(Base):
    """One lifecycle step applied to a billing account."""

    __tablename__ = "billing_transitions"

    __table_args__ = (
        Index("idx_transition_account_seq", "billing_account_id", "sequence"),
        Index("idx_transition_gallery", "gallery_id"),
    )

    billing_account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("billing_accounts.id"),
        nullable=False,
    )
    gallery_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # Order of the step within its account's history
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    command: Mapped[str] = mapped_column(String(40), nullable=False)
    from_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    to_status: Mapped[str] = mapped_column(String(20), nullable=False)
    partner_before: Mapped[str | None] = mapped_column(String(64), nullable=True)
    partner_after: Mapped[str | None] = mapped_column(String(64), nullable=True)
    reason: Mapped[str] = mapped_column(String(200), nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(nullable=False)
    batch_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<BillingTransition {self.gallery_id} #{self.sequence}: "
            f"{self.from_status} -> {self.to_status}>"
        )
