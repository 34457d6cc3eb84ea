"""
Module: commission_kernel.models.billing_account
Responsibility: ORM persistence for per-gallery billing accounts -- the plan
    a gallery is on, its payment status and its partner of record.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - At most one current (non-superseded) account per gallery
      (partial unique index ``uq_billing_account_current``).
    - plan_id never changes; status and partner_of_record_id change only
      inside a lifecycle transition (db/immutability.py).
    - Concurrent writers are detected through the ``version`` column.

Audit relevance:
    Accounts are never deleted.  A client re-subscribing under a different
    plan after lapsing gets a new account that points back at the old one
    through ``supersedes_id``.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from commission_kernel.db.base import Base, UUIDString


class BillingAccountModel(Base):
    """
    Billing account for one client gallery.

    Contract:
        Created ``pending`` by the lifecycle engine and moved through
        active / inactive / lapsed only by it.

    Guarantees:
        - ``partner_of_record_id`` is None when the platform retains 100%.
        - ``version`` increments on every UPDATE (optimistic locking).
    """

    __tablename__ = "billing_accounts"

    __table_args__ = (
        Index(
            "uq_billing_account_current",
            "gallery_id",
            unique=True,
            postgresql_where=text("superseded_by_id IS NULL"),
            sqlite_where=text("superseded_by_id IS NULL"),
        ),
        Index("idx_billing_account_status", "status"),
        Index("idx_billing_account_partner", "partner_of_record_id"),
    )

    gallery_id: Mapped[str] = mapped_column(String(64), nullable=False)
    client_id: Mapped[str] = mapped_column(String(64), nullable=False)
    plan_id: Mapped[str] = mapped_column(String(64), nullable=False)

    partner_of_record_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False)

    last_payment_at: Mapped[datetime | None] = mapped_column(nullable=True)
    period_start: Mapped[datetime | None] = mapped_column(nullable=True)
    period_end: Mapped[datetime | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False)

    # Lifecycle chain
    supersedes_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    superseded_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    superseded_at: Mapped[datetime | None] = mapped_column(nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<BillingAccount {self.gallery_id}: {self.plan_id} {self.status}>"

    @property
    def is_current(self) -> bool:
        return self.superseded_by_id is None
