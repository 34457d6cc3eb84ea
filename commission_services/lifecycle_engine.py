"""
Lifecycle Engine -- coordinates every billing lifecycle command.

The engine ties together:
- Plan catalog: prices and splits
- Lifecycle rules (pure): what the next state is, or why the command is invalid
- Split rules (pure): who gets how much of a payment
- AccountService / CommissionLedger: persistence

Each command:
1. Holds the gallery's lock (no two commands on one gallery interleave)
2. Opens its own session and loads the account row FOR UPDATE
3. Catches the account up on time-based transitions as of the event time
4. Applies the event through the pure rules
5. Writes account state, transition log and ledger batch
6. Commits, or rolls back everything on any error

Domain errors come back inside a rejected ``CommandResult``; they are never
raised.  Infrastructure errors (database failures) roll back and propagate.
Nothing is retried.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy.orm import Session, sessionmaker

from commission_config.catalog import PlanCatalog
from commission_config.schema import EngineSettings
from commission_engines.lifecycle import (
    LifecycleOutcome,
    apply_payment,
    apply_session,
    evaluate_clock,
    resolve_successor_partner,
)
from commission_engines.split import build_payment_batch
from commission_kernel.domain.clock import Clock, SystemClock
from commission_kernel.domain.dtos import (
    AccountStatus,
    BillingAccountRecord,
    CommandKind,
    CommandResult,
    CommandStatus,
    LedgerEntryRecord,
    SessionEvent,
    TransitionRecord,
    TransitionStep,
)
from commission_kernel.domain.periods import ensure_aware
from commission_kernel.domain.plans import PaymentKind
from commission_kernel.exceptions import (
    AccountNotFoundError,
    BatchNotFoundError,
    CommissionEngineError,
)
from commission_kernel.logging_config import LogContext, get_logger
from commission_kernel.models.billing_account import BillingAccountModel
from commission_kernel.selectors.account_selector import AccountSelector
from commission_kernel.selectors.ledger_selector import LedgerSelector
from commission_kernel.services.account_service import AccountService
from commission_kernel.services.gallery_locks import GalleryLockRegistry
from commission_kernel.services.ledger_service import CommissionLedger

logger = get_logger("services.lifecycle_engine")


class LifecycleEngine:
    """
    Entry point for the inbound lifecycle commands.

    Contract:
        Every command returns a ``CommandResult``.  APPLIED means account
        and/or ledger changed; NO_CHANGE means the command was valid but had
        nothing to do (a clock sweep with nothing due); REJECTED carries the
        typed error and guarantees nothing was written.

    Guarantees:
        - Commands on the same gallery are serialized.
        - Each command is one transaction: account state, transition log
          and ledger batch commit together or not at all.
        - ``advance_clock`` is idempotent for a given ``now``.

    Non-goals:
        - Does NOT schedule itself; a caller invokes ``advance_clock``
          (or ``advance_clock_all``) periodically.
        - Does NOT talk to a payment processor; amounts and timestamps are
          assumed to be already collected.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        catalog: PlanCatalog,
        settings: EngineSettings | None = None,
        clock: Clock | None = None,
        locks: GalleryLockRegistry | None = None,
    ):
        self._session_factory = session_factory
        self._catalog = catalog
        self._settings = settings or EngineSettings.with_defaults()
        self._clock = clock or SystemClock()
        self._locks = locks or GalleryLockRegistry()

    @property
    def catalog(self) -> PlanCatalog:
        return self._catalog

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    # =========================================================================
    # Commands
    # =========================================================================

    def open_account(
        self,
        gallery_id: str,
        client_id: str,
        plan_id: str,
        partner_id: str | None = None,
        opened_at: datetime | None = None,
    ) -> CommandResult:
        """
        Associate a gallery with a plan: create a ``pending`` account.

        A lapsed gallery re-subscribing under a different plan supersedes
        its old account; the new one inherits the partner assigned by a
        session event unless ``partner_id`` is given.
        """
        opened_at = ensure_aware(opened_at) if opened_at else self._clock.now()

        def body(session: Session) -> CommandResult:
            plan = self._catalog.get_plan(plan_id)
            accounts = AccountService(session)
            current = accounts.load_current(gallery_id)

            transitions: list[TransitionRecord] = []
            current_state = None
            if current is not None:
                catch_up = self._catch_up(current, opened_at)
                transitions += self._persist(session, current, CommandKind.OPEN_ACCOUNT, catch_up)
                current_state = catch_up.state

            partner = resolve_successor_partner(
                gallery_id=gallery_id,
                current=current_state,
                current_plan_id=current.plan_id if current is not None else None,
                new_plan_id=plan.plan_id,
                partner_id=partner_id,
            )

            if current is not None:
                superseded = TransitionStep(
                    from_status=AccountStatus.LAPSED,
                    to_status=AccountStatus.LAPSED,
                    partner_before=current.partner_of_record_id,
                    partner_after=current.partner_of_record_id,
                    occurred_at=opened_at,
                    reason=f"superseded_by_plan:{plan.plan_id}",
                )
                transitions += accounts.record_transitions(
                    current, CommandKind.OPEN_ACCOUNT, [superseded]
                )

            account = accounts.open(
                gallery_id=gallery_id,
                client_id=client_id,
                plan_id=plan.plan_id,
                partner_of_record_id=partner,
                opened_at=opened_at,
                supersedes=current,
            )
            opened = TransitionStep(
                from_status=None,
                to_status=AccountStatus.PENDING,
                partner_before=None,
                partner_after=partner,
                occurred_at=opened_at,
                reason="account_opened",
            )
            transitions += accounts.record_transitions(account, CommandKind.OPEN_ACCOUNT, [opened])
            return self._applied(CommandKind.OPEN_ACCOUNT, account, transitions=transitions)

        return self._run(CommandKind.OPEN_ACCOUNT, gallery_id, body)

    def record_upfront_payment(
        self,
        gallery_id: str,
        amount_cents: int,
        payer_timestamp: datetime,
    ) -> CommandResult:
        """Record a collected upfront payment (pending or lapsed -> active)."""
        return self._record_payment(
            CommandKind.RECORD_UPFRONT_PAYMENT,
            PaymentKind.UPFRONT,
            gallery_id,
            amount_cents,
            payer_timestamp,
        )

    def record_recurring_payment(
        self,
        gallery_id: str,
        amount_cents: int,
        payer_timestamp: datetime,
    ) -> CommandResult:
        """Record a collected recurring payment (-> active)."""
        return self._record_payment(
            CommandKind.RECORD_RECURRING_PAYMENT,
            PaymentKind.RECURRING,
            gallery_id,
            amount_cents,
            payer_timestamp,
        )

    def advance_clock(self, gallery_id: str, now: datetime | None = None) -> CommandResult:
        """
        Apply every time-based transition due at ``now``.

        Idempotent: a second call with the same ``now`` returns NO_CHANGE
        and writes nothing.
        """
        now = ensure_aware(now) if now else self._clock.now()

        def body(session: Session) -> CommandResult:
            account = self._require_account(session, gallery_id)
            outcome = self._catch_up(account, now)
            if not outcome.changed:
                return CommandResult(
                    command=CommandKind.ADVANCE_CLOCK,
                    gallery_id=gallery_id,
                    status=CommandStatus.NO_CHANGE,
                    account=BillingAccountRecord.from_model(account),
                )
            transitions = self._persist(session, account, CommandKind.ADVANCE_CLOCK, outcome)
            return self._applied(CommandKind.ADVANCE_CLOCK, account, transitions=transitions)

        return self._run(CommandKind.ADVANCE_CLOCK, gallery_id, body)

    def advance_clock_all(self, now: datetime | None = None) -> list[CommandResult]:
        """
        Sweep every current account.

        Each gallery runs under its own lock and transaction; one gallery's
        rejection does not affect the others.
        """
        now = ensure_aware(now) if now else self._clock.now()
        with self._session_factory() as session:
            gallery_ids = AccountSelector(session).current_gallery_ids()

        logger.info("clock_sweep_started", extra={"gallery_count": len(gallery_ids)})
        results = [self.advance_clock(gallery_id, now) for gallery_id in gallery_ids]
        logger.info(
            "clock_sweep_completed",
            extra={
                "gallery_count": len(gallery_ids),
                "applied": sum(1 for r in results if r.status is CommandStatus.APPLIED),
                "rejected": sum(1 for r in results if r.status is CommandStatus.REJECTED),
            },
        )
        return results

    def apply_session_event(self, event: SessionEvent) -> CommandResult:
        """
        Reassign a lapsed gallery to the partner who recorded a new session.

        Rejected with InvalidStateError unless the account is lapsed (after
        catching up on time-based transitions as of ``event.occurred_at``).
        """
        occurred_at = ensure_aware(event.occurred_at)

        def body(session: Session) -> CommandResult:
            account = self._require_account(session, event.gallery_id)
            caught = self._catch_up(account, occurred_at)
            outcome = apply_session(
                gallery_id=event.gallery_id,
                state=caught.state,
                new_partner_id=event.new_partner_id,
                occurred_at=occurred_at,
            )
            transitions = self._persist(
                session, account, CommandKind.APPLY_SESSION_EVENT, caught, outcome
            )
            return self._applied(CommandKind.APPLY_SESSION_EVENT, account, transitions=transitions)

        return self._run(CommandKind.APPLY_SESSION_EVENT, event.gallery_id, body)

    def reverse_payment(
        self,
        gallery_id: str,
        batch_id: UUID,
        recorded_at: datetime | None = None,
    ) -> CommandResult:
        """
        Offset a payment batch (refund or dispute).

        Appends one offsetting entry per original entry in the period of
        ``recorded_at``.  Account status is not changed.
        """
        recorded_at = ensure_aware(recorded_at) if recorded_at else self._clock.now()

        def body(session: Session) -> CommandResult:
            originals = LedgerSelector(session).entries_for_batch(batch_id)
            if not originals or originals[0].gallery_id != gallery_id:
                raise BatchNotFoundError(str(batch_id))
            entries = CommissionLedger(session).offset_batch(batch_id, recorded_at)
            account = AccountService(session).load_current(gallery_id)
            return CommandResult(
                command=CommandKind.REVERSE_PAYMENT,
                gallery_id=gallery_id,
                status=CommandStatus.APPLIED,
                account=BillingAccountRecord.from_model(account) if account is not None else None,
                entries=entries,
            )

        return self._run(CommandKind.REVERSE_PAYMENT, gallery_id, body)

    # =========================================================================
    # Reads
    # =========================================================================

    def get_billing_account(self, gallery_id: str) -> BillingAccountRecord | None:
        """Current billing account of a gallery, or None."""
        with self._session_factory() as session:
            return AccountSelector(session).get_current(gallery_id)

    def account_history(self, gallery_id: str) -> list[BillingAccountRecord]:
        with self._session_factory() as session:
            return AccountSelector(session).history(gallery_id)

    def transitions_for(self, gallery_id: str) -> list[TransitionRecord]:
        with self._session_factory() as session:
            return AccountSelector(session).transitions(gallery_id)

    def entries_for(self, gallery_id: str, period_label: str) -> list[LedgerEntryRecord]:
        with self._session_factory() as session:
            return CommissionLedger(session).entries_for(gallery_id, period_label)

    # =========================================================================
    # Internals
    # =========================================================================

    def _record_payment(
        self,
        command: CommandKind,
        payment_kind: PaymentKind,
        gallery_id: str,
        amount_cents: int,
        payer_timestamp: datetime,
    ) -> CommandResult:
        paid_at = ensure_aware(payer_timestamp)

        def body(session: Session) -> CommandResult:
            account = self._require_account(session, gallery_id)
            plan = self._catalog.get_plan(account.plan_id)
            caught = self._catch_up(account, paid_at)
            outcome = apply_payment(
                gallery_id=gallery_id,
                state=caught.state,
                plan=plan,
                payment_kind=payment_kind,
                amount_cents=amount_cents,
                paid_at=paid_at,
                billing_cycle_months=self._settings.billing_cycle_months,
            )

            batch_id = uuid4()
            drafts = build_payment_batch(
                gallery_id=gallery_id,
                billing_account_id=account.id,
                batch_id=batch_id,
                payment_kind=payment_kind,
                gross_cents=amount_cents,
                split=plan.split_for(payment_kind),
                partner_id=outcome.state.partner_of_record_id,
                recorded_at=paid_at,
                payout_delay_days=self._settings.payout_delay_days,
                platform_recipient_id=self._settings.platform_recipient_id,
            )

            with LogContext.bind(batch_id=str(batch_id)):
                transitions = self._persist(session, account, command, caught)
                transitions += self._persist(session, account, command, outcome, batch_id=batch_id)
                entries = CommissionLedger(session).append(drafts)

            return self._applied(command, account, entries=entries, transitions=transitions)

        return self._run(command, gallery_id, body)

    def _run(
        self,
        command: CommandKind,
        gallery_id: str,
        body: Callable[[Session], CommandResult],
    ) -> CommandResult:
        """Run one command under the gallery lock in its own transaction."""
        correlation_id = str(uuid4())
        with LogContext.bind(
            correlation_id=correlation_id,
            gallery_id=gallery_id,
            command=command.value,
        ):
            logger.info("command_started")
            t0 = time.monotonic()
            with self._locks.hold(gallery_id):
                session = self._session_factory()
                try:
                    result = body(session)
                    session.commit()
                    duration_ms = round((time.monotonic() - t0) * 1000, 2)
                    logger.info(
                        "command_applied",
                        extra={
                            "status": result.status.value,
                            "account_status": (
                                result.account_status.value if result.account_status else None
                            ),
                            "entry_count": len(result.entries),
                            "transition_count": len(result.transitions),
                            "duration_ms": duration_ms,
                        },
                    )
                    return result

                except CommissionEngineError as exc:
                    session.rollback()
                    duration_ms = round((time.monotonic() - t0) * 1000, 2)
                    account = AccountSelector(session).get_current(gallery_id)
                    logger.warning(
                        "command_rejected",
                        extra={
                            "error_code": exc.code,
                            "recoverable": exc.recoverable,
                            "reason": str(exc),
                            "duration_ms": duration_ms,
                        },
                    )
                    return CommandResult.rejected(command, gallery_id, exc, account)

                except Exception:
                    session.rollback()
                    duration_ms = round((time.monotonic() - t0) * 1000, 2)
                    logger.error("command_failed", extra={"duration_ms": duration_ms}, exc_info=True)
                    raise

                finally:
                    session.close()

    def _require_account(self, session: Session, gallery_id: str) -> BillingAccountModel:
        account = AccountService(session).load_current(gallery_id)
        if account is None:
            raise AccountNotFoundError(gallery_id)
        return account

    def _catch_up(
        self,
        account: BillingAccountModel,
        now: datetime,
    ) -> LifecycleOutcome:
        plan = self._catalog.get_plan(account.plan_id)
        return evaluate_clock(
            state=BillingAccountRecord.from_model(account).state,
            plan=plan,
            now=now,
            forfeiture_threshold_months=self._settings.forfeiture_threshold_months,
            billing_cycle_months=self._settings.billing_cycle_months,
        )

    def _persist(
        self,
        session: Session,
        account: BillingAccountModel,
        command: CommandKind,
        *outcomes: LifecycleOutcome,
        batch_id: UUID | None = None,
    ) -> list[TransitionRecord]:
        """Write the final state of ``outcomes`` and log all their steps."""
        steps = [step for outcome in outcomes for step in outcome.steps]
        if not steps:
            return []
        accounts = AccountService(session)
        accounts.apply_state(account, outcomes[-1].state)
        return accounts.record_transitions(account, command, steps, batch_id=batch_id)

    def _applied(
        self,
        command: CommandKind,
        account: BillingAccountModel,
        entries: tuple[LedgerEntryRecord, ...] = (),
        transitions: list[TransitionRecord] | tuple[TransitionRecord, ...] = (),
    ) -> CommandResult:
        return CommandResult(
            command=command,
            gallery_id=account.gallery_id,
            status=CommandStatus.APPLIED,
            account=BillingAccountRecord.from_model(account),
            entries=tuple(entries),
            transitions=tuple(transitions),
        )
