"""
AccountService -- writes to billing accounts and their transition log.

Responsibility:
    Loads a gallery's current account under a row lock, applies the state
    computed by the lifecycle rules, supersedes lapsed accounts and appends
    transition log rows.  Every change to a guarded field happens inside
    ``lifecycle_transition(session)``.

Architecture position:
    Kernel > Services -- imperative shell.  Decides nothing: the lifecycle
    rules in ``commission_engines.lifecycle`` decide, this service persists.

Failure modes:
    - OptimisticLockError if the account row changed since it was loaded
      (version mismatch on flush).
"""

from collections.abc import Sequence
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from commission_kernel.db.immutability import lifecycle_transition
from commission_kernel.domain.dtos import (
    AccountState,
    AccountStatus,
    CommandKind,
    TransitionRecord,
    TransitionStep,
)
from commission_kernel.exceptions import OptimisticLockError
from commission_kernel.logging_config import get_logger
from commission_kernel.models.billing_account import BillingAccountModel
from commission_kernel.models.transition import BillingTransitionModel
from commission_kernel.services.base import BaseService

logger = get_logger("services.account")


class AccountService(BaseService[BillingAccountModel]):
    """Persistence of billing account state changes (flush only)."""

    def __init__(self, session: Session):
        super().__init__(session)

    def load_current(self, gallery_id: str, for_update: bool = True) -> BillingAccountModel | None:
        """
        Load the gallery's current account.

        With ``for_update`` the row is locked until the caller's transaction
        ends (PostgreSQL; SQLite ignores the clause).
        """
        query = select(BillingAccountModel).where(
            BillingAccountModel.gallery_id == gallery_id,
            BillingAccountModel.superseded_by_id.is_(None),
        )
        if for_update:
            query = query.with_for_update()
        return self.session.execute(query).scalar_one_or_none()

    def open(
        self,
        gallery_id: str,
        client_id: str,
        plan_id: str,
        partner_of_record_id: str | None,
        opened_at: datetime,
        supersedes: BillingAccountModel | None = None,
    ) -> BillingAccountModel:
        """
        Create a ``pending`` account, superseding ``supersedes`` if given.

        The superseded account is marked and flushed first so the
        one-current-account-per-gallery index never sees two current rows.
        """
        account_id = uuid4()
        with lifecycle_transition(self.session):
            if supersedes is not None:
                supersedes.superseded_at = opened_at
                supersedes.superseded_by_id = account_id
                self._flush(supersedes)

            account = BillingAccountModel(
                id=account_id,
                gallery_id=gallery_id,
                client_id=client_id,
                plan_id=plan_id,
                partner_of_record_id=partner_of_record_id,
                status=AccountStatus.PENDING.value,
                created_at=opened_at,
                supersedes_id=supersedes.id if supersedes is not None else None,
            )
            self.session.add(account)
            self.session.flush()

        logger.info(
            "billing_account_opened",
            extra={
                "gallery_id": gallery_id,
                "billing_account_id": str(account.id),
                "plan_id": plan_id,
                "partner_of_record_id": partner_of_record_id,
                "supersedes_id": str(supersedes.id) if supersedes is not None else None,
            },
        )
        return account

    def apply_state(self, account: BillingAccountModel, state: AccountState) -> None:
        """Write the state computed by the lifecycle rules onto the account."""
        with lifecycle_transition(self.session):
            account.status = state.status.value
            account.partner_of_record_id = state.partner_of_record_id
            account.last_payment_at = state.last_payment_at
            account.period_start = state.period_start
            account.period_end = state.period_end
            self._flush(account)

    def record_transitions(
        self,
        account: BillingAccountModel,
        command: CommandKind,
        steps: Sequence[TransitionStep],
        batch_id: UUID | None = None,
    ) -> list[TransitionRecord]:
        """Append one transition log row per step, in order."""
        if not steps:
            return []

        next_sequence = self._next_sequence(account.id)
        rows = []
        for offset, step in enumerate(steps):
            row = BillingTransitionModel(
                billing_account_id=account.id,
                gallery_id=account.gallery_id,
                sequence=next_sequence + offset,
                command=command.value,
                from_status=step.from_status.value if step.from_status else None,
                to_status=step.to_status.value,
                partner_before=step.partner_before,
                partner_after=step.partner_after,
                reason=step.reason,
                occurred_at=step.occurred_at,
                batch_id=batch_id,
            )
            rows.append(row)
            logger.info(
                "account_transition",
                extra={
                    "gallery_id": account.gallery_id,
                    "billing_account_id": str(account.id),
                    "from_status": row.from_status,
                    "to_status": row.to_status,
                    "partner_changed": step.partner_changed,
                    "reason": step.reason,
                },
            )
        self.session.add_all(rows)
        self.session.flush()
        return [TransitionRecord.from_model(row) for row in rows]

    def _next_sequence(self, account_id: UUID) -> int:
        current = self.session.execute(
            select(func.max(BillingTransitionModel.sequence)).where(
                BillingTransitionModel.billing_account_id == account_id
            )
        ).scalar_one()
        return (current or 0) + 1

    def _flush(self, account: BillingAccountModel) -> None:
        try:
            self.session.flush()
        except StaleDataError as exc:
            raise OptimisticLockError("BillingAccount", str(account.id)) from exc
