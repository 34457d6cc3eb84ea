"""
Module: commission_kernel.selectors.account_selector
Responsibility: Read-only billing account queries -- the current account of
    a gallery, its superseded predecessors and its transition log.
Architecture position: Kernel > Selectors.
"""

from sqlalchemy import select
from sqlalchemy.orm import Session

from commission_kernel.domain.dtos import BillingAccountRecord, TransitionRecord
from commission_kernel.models.billing_account import BillingAccountModel
from commission_kernel.models.transition import BillingTransitionModel
from commission_kernel.selectors.base import BaseSelector


class AccountSelector(BaseSelector[BillingAccountModel]):
    """Selector for billing accounts and their transition history."""

    def __init__(self, session: Session):
        super().__init__(session)

    def get_current(self, gallery_id: str) -> BillingAccountRecord | None:
        """The gallery's current (non-superseded) account, or None."""
        row = self.session.execute(
            select(BillingAccountModel).where(
                BillingAccountModel.gallery_id == gallery_id,
                BillingAccountModel.superseded_by_id.is_(None),
            )
        ).scalar_one_or_none()
        return BillingAccountRecord.from_model(row) if row is not None else None

    def history(self, gallery_id: str) -> list[BillingAccountRecord]:
        """Every account the gallery has had, oldest first."""
        rows = self.session.execute(
            select(BillingAccountModel)
            .where(BillingAccountModel.gallery_id == gallery_id)
            .order_by(BillingAccountModel.created_at)
        ).scalars().all()
        return [BillingAccountRecord.from_model(row) for row in rows]

    def current_gallery_ids(self) -> list[str]:
        """Gallery ids of every current account, sorted."""
        return list(
            self.session.execute(
                select(BillingAccountModel.gallery_id)
                .where(BillingAccountModel.superseded_by_id.is_(None))
                .order_by(BillingAccountModel.gallery_id)
            ).scalars()
        )

    def transitions(self, gallery_id: str) -> list[TransitionRecord]:
        """Transition log of a gallery across all of its accounts."""
        rows = self.session.execute(
            select(BillingTransitionModel)
            .where(BillingTransitionModel.gallery_id == gallery_id)
            .order_by(
                BillingTransitionModel.occurred_at,
                BillingTransitionModel.billing_account_id,
                BillingTransitionModel.sequence,
            )
        ).scalars().all()
        return [TransitionRecord.from_model(row) for row in rows]
