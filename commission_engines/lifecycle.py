"""
Billing lifecycle rules -- the account state machine.

Pure functions over ``AccountState``: given the current state, a plan and
an event, return the next state and the transition steps taken, or raise
a typed error.  Nothing here reads a clock, touches the database or writes
the ledger; ``commission_services.lifecycle_engine`` does that around these
calls.

State machine::

    pending --upfront--> active        (plans with an upfront price)
    pending --recurring--> active      (plans without one)
    active  --recurring--> active
    active  --clock: period_end passed--> inactive   (partner kept)
    inactive --recurring--> active
    inactive --clock: forfeiture threshold passed--> lapsed   (partner cleared)
    lapsed  --upfront|recurring--> active   (partner stays as it is)
    lapsed  --session--> lapsed              (partner reassigned)

The forfeiture threshold is measured from the last payment for plans that
require ongoing payment, and from the end of the access period for
fixed-term plans.  A prepaid term (an upfront price covering more than one
billing cycle) counts as paid through its end: its threshold runs from
``period_end`` like a fixed term.

Payments never shorten coverage.  A recurring payment on a live account
extends from the later of the current ``period_end`` and the payment time,
and ``last_payment_at`` only moves forward, so a webhook delivered late or
replayed cannot rewind an account towards forfeiture.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from commission_engines.tracer import traced_engine
from commission_kernel.domain.dtos import (
    AccountState,
    AccountStatus,
    CommandKind,
    TransitionStep,
)
from commission_kernel.domain.periods import add_months
from commission_kernel.domain.plans import (
    BILLING_CYCLE_MONTHS,
    FORFEITURE_THRESHOLD_MONTHS,
    PaymentKind,
    Plan,
)
from commission_kernel.exceptions import InvalidStateError, PlanMismatchError

# Statuses from which each payment kind is accepted.  A recurring payment
# is also accepted on a pending account whose plan has no upfront price.
UPFRONT_PAYABLE = frozenset({AccountStatus.PENDING, AccountStatus.LAPSED})
RECURRING_PAYABLE = frozenset({
    AccountStatus.ACTIVE,
    AccountStatus.INACTIVE,
    AccountStatus.LAPSED,
})


@dataclass(frozen=True)
class LifecycleOutcome:
    """Next state plus the steps that led there (empty when nothing changed)."""

    state: AccountState
    steps: tuple[TransitionStep, ...] = ()

    @property
    def changed(self) -> bool:
        return bool(self.steps)


def lapse_deadline(
    state: AccountState,
    plan: Plan,
    forfeiture_threshold_months: int = FORFEITURE_THRESHOLD_MONTHS,
    billing_cycle_months: int = BILLING_CYCLE_MONTHS,
) -> datetime | None:
    """Instant after which the partner of record forfeits the gallery."""
    if not plan.requires_ongoing_payment:
        anchor = state.period_end
    else:
        anchor = state.last_payment_at
        if (
            anchor is not None
            and state.period_end is not None
            and state.period_end > add_months(anchor, billing_cycle_months)
        ):
            # Paid through a prepaid term, not just the current cycle.
            anchor = state.period_end
    if anchor is None:
        return None
    return add_months(anchor, forfeiture_threshold_months)


@traced_engine("lifecycle_clock", "1.0", fingerprint_fields=("state", "now"))
def evaluate_clock(
    *,
    state: AccountState,
    plan: Plan,
    now: datetime,
    forfeiture_threshold_months: int = FORFEITURE_THRESHOLD_MONTHS,
    billing_cycle_months: int = BILLING_CYCLE_MONTHS,
) -> LifecycleOutcome:
    """
    Apply every time-based transition due at ``now``.

    Pending and lapsed accounts never change with time.  Calling this again
    with the same ``now`` on its own output returns no steps.
    """
    steps: list[TransitionStep] = []
    current = state

    if (
        current.status is AccountStatus.ACTIVE
        and current.period_end is not None
        and now > current.period_end
    ):
        reason = (
            "billing_cycle_missed" if plan.requires_ongoing_payment else "access_period_ended"
        )
        steps.append(_step(current, AccountStatus.INACTIVE, current.partner_of_record_id, now, reason))
        current = current.evolve(status=AccountStatus.INACTIVE)

    if current.status is AccountStatus.INACTIVE:
        deadline = lapse_deadline(
            current, plan, forfeiture_threshold_months, billing_cycle_months
        )
        if deadline is not None and now > deadline:
            steps.append(_step(current, AccountStatus.LAPSED, None, now, "forfeiture_threshold_exceeded"))
            current = current.evolve(status=AccountStatus.LAPSED, partner_of_record_id=None)

    return LifecycleOutcome(state=current, steps=tuple(steps))


@traced_engine(
    "lifecycle_payment",
    "1.0",
    fingerprint_fields=("gallery_id", "state", "payment_kind", "amount_cents", "paid_at"),
)
def apply_payment(
    *,
    gallery_id: str,
    state: AccountState,
    plan: Plan,
    payment_kind: PaymentKind,
    amount_cents: int,
    paid_at: datetime,
    billing_cycle_months: int = BILLING_CYCLE_MONTHS,
) -> LifecycleOutcome:
    """
    Validate and apply a collected payment.

    ``state`` must already reflect time-based transitions as of ``paid_at``
    (see ``evaluate_clock``).  The partner of record is never changed by a
    payment: a lapsed account without a session event reactivates with no
    partner, and the platform keeps the whole payment.

    Raises:
        PlanMismatchError: the plan has no price of this kind, or the
            amount differs from it.
        InvalidStateError: the account's status does not accept this
            kind of payment.
    """
    command = (
        CommandKind.RECORD_UPFRONT_PAYMENT
        if payment_kind is PaymentKind.UPFRONT
        else CommandKind.RECORD_RECURRING_PAYMENT
    )
    price = plan.price_for(payment_kind)
    if not isinstance(amount_cents, int) or isinstance(amount_cents, bool):
        raise PlanMismatchError(plan.plan_id, payment_kind.value, price, amount_cents)
    if price is None:
        raise PlanMismatchError(plan.plan_id, payment_kind.value, None, amount_cents)

    if payment_kind is PaymentKind.UPFRONT:
        if state.status not in UPFRONT_PAYABLE:
            raise InvalidStateError(
                gallery_id, state.status.value, command.value,
                "upfront price already paid for the current lifecycle",
            )
        access_months = plan.access_duration_months or billing_cycle_months
    else:
        pending_ok = state.status is AccountStatus.PENDING and not plan.has_upfront
        if state.status not in RECURRING_PAYABLE and not pending_ok:
            raise InvalidStateError(
                gallery_id, state.status.value, command.value,
                "upfront payment required first",
            )
        access_months = billing_cycle_months

    if amount_cents != price:
        raise PlanMismatchError(plan.plan_id, payment_kind.value, price, amount_cents)

    if state.status is AccountStatus.LAPSED:
        reason = "reactivation"
    else:
        reason = f"{payment_kind.value}_payment"

    period_start = paid_at
    coverage_from = paid_at
    if (
        state.status in (AccountStatus.ACTIVE, AccountStatus.INACTIVE)
        and state.period_end is not None
        and state.period_end > paid_at
    ):
        # Paid before the current period ran out: stack onto it.
        period_start = state.period_start or paid_at
        coverage_from = state.period_end
    last_payment_at = paid_at
    if state.last_payment_at is not None and state.last_payment_at > paid_at:
        last_payment_at = state.last_payment_at

    step = _step(state, AccountStatus.ACTIVE, state.partner_of_record_id, paid_at, reason)
    new_state = state.evolve(
        status=AccountStatus.ACTIVE,
        last_payment_at=last_payment_at,
        period_start=period_start,
        period_end=add_months(coverage_from, access_months),
    )
    return LifecycleOutcome(state=new_state, steps=(step,))


@traced_engine("lifecycle_session", "1.0", fingerprint_fields=("gallery_id", "state", "new_partner_id"))
def apply_session(
    *,
    gallery_id: str,
    state: AccountState,
    new_partner_id: str,
    occurred_at: datetime,
) -> LifecycleOutcome:
    """
    Reassign a lapsed account to the partner who recorded a new session.

    The account stays lapsed; the next payment credits ``new_partner_id``.

    Raises:
        InvalidStateError: the account is not lapsed.  A session on an
            account that still has rights attached is a caller bug.
    """
    if state.status is not AccountStatus.LAPSED:
        raise InvalidStateError(
            gallery_id, state.status.value, CommandKind.APPLY_SESSION_EVENT.value,
            "only lapsed accounts can be reassigned by a new session",
        )
    step = _step(state, AccountStatus.LAPSED, new_partner_id, occurred_at, "session_reassignment")
    return LifecycleOutcome(
        state=state.evolve(partner_of_record_id=new_partner_id),
        steps=(step,),
    )


def resolve_successor_partner(
    *,
    gallery_id: str,
    current: AccountState | None,
    current_plan_id: str | None,
    new_plan_id: str,
    partner_id: str | None,
) -> str | None:
    """
    Partner of record for a newly opened account.

    A gallery without an account takes ``partner_id``.  A lapsed account
    re-subscribing under a different plan passes on ``partner_id`` if given,
    otherwise whoever a session event assigned to the lapsed account.

    Raises:
        InvalidStateError: the gallery already has a live account, or the
            lapsed account is on the same plan (it reactivates by payment).
    """
    if current is None:
        return partner_id
    if current.status is not AccountStatus.LAPSED:
        raise InvalidStateError(
            gallery_id, current.status.value, CommandKind.OPEN_ACCOUNT.value,
            "gallery already has a billing account",
        )
    if current_plan_id == new_plan_id:
        raise InvalidStateError(
            gallery_id, current.status.value, CommandKind.OPEN_ACCOUNT.value,
            f"lapsed account is already on plan {new_plan_id}; reactivate it by payment",
        )
    return partner_id if partner_id is not None else current.partner_of_record_id


def _step(
    state: AccountState,
    to_status: AccountStatus,
    partner_after: str | None,
    occurred_at: datetime,
    reason: str,
) -> TransitionStep:
    return TransitionStep(
        from_status=state.status,
        to_status=to_status,
        partner_before=state.partner_of_record_id,
        partner_after=partner_after,
        occurred_at=occurred_at,
        reason=reason,
    )
