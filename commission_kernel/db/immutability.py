"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

The commission ledger is the only source of truth for who earned what.  If a
ledger row could be edited, every revenue total and payout computed from it
would silently change.  Corrections are therefore made by appending
offsetting entries, never by mutating history.

Billing accounts are mutable, but two of their fields decide who gets paid:
``status`` and ``partner_of_record_id``.  Those may only change inside a
lifecycle transition.  ``plan_id`` may never change at all: switching plans
means superseding the account with a new one.

===============================================================================
HOW IT WORKS
===============================================================================

    session.flush()
         |
         v
    [before_update event] --> _check_*() --> ImmutabilityViolationError
         |
         v
    [before_delete event] --> _check_*_delete() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

A lifecycle transition marks its session with ``lifecycle_transition(session)``;
the billing account listener allows guarded field changes only while that
mark is present.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity              | Rule
--------------------|---------------------------------------------------------
LedgerEntry         | ALWAYS immutable, never deleted
BillingTransition   | ALWAYS immutable, never deleted
BillingAccount      | plan/gallery/client never change; status, partner and
                    | supersession fields change only inside a transition;
                    | never deleted

===============================================================================
USAGE
===============================================================================

Registered automatically by ``init_engine_from_url``.  To temporarily disable
(TESTS ONLY):

    from commission_kernel.db.immutability import unregister_immutability_listeners
    unregister_immutability_listeners()
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session, object_session

from commission_kernel.exceptions import ImmutabilityViolationError
from commission_kernel.invariants import KernelInvariant
from commission_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

#: Session.info key set while a lifecycle transition is being applied.
LIFECYCLE_TRANSITION_KEY = "commission_lifecycle_transition"

#: Billing account fields that may never change after insert.
ACCOUNT_FROZEN_FIELDS = frozenset({"plan_id", "gallery_id", "client_id", "created_at"})

#: Billing account fields that only a lifecycle transition may change.
ACCOUNT_GUARDED_FIELDS = frozenset({
    "status",
    "partner_of_record_id",
    "superseded_by_id",
    "superseded_at",
})


@contextmanager
def lifecycle_transition(session: Session) -> Generator[Session, None, None]:
    """Allow guarded billing account fields to change within this block."""
    previous = session.info.get(LIFECYCLE_TRANSITION_KEY, False)
    session.info[LIFECYCLE_TRANSITION_KEY] = True
    try:
        yield session
    finally:
        session.info[LIFECYCLE_TRANSITION_KEY] = previous


def _in_lifecycle_transition(target) -> bool:
    session = object_session(target)
    return bool(session is not None and session.info.get(LIFECYCLE_TRANSITION_KEY))


def _changed_fields(target, candidates) -> list[str]:
    state = inspect(target)
    return sorted(
        name for name in candidates
        if state.attrs[name].history.has_changes()
    )


def _block(entity_type: str, target, operation: str, reason: str, invariant: KernelInvariant):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
            "invariant": invariant.value,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


# =============================================================================
# Append-only records
# =============================================================================


def _check_ledger_entry_immutability(mapper, connection, target):
    _block(
        "LedgerEntry", target, "UPDATE",
        "Ledger entries are immutable; append an offset instead",
        KernelInvariant.APPEND_ONLY_LEDGER,
    )


def _check_ledger_entry_delete(mapper, connection, target):
    _block(
        "LedgerEntry", target, "DELETE",
        "Ledger entries cannot be deleted",
        KernelInvariant.APPEND_ONLY_LEDGER,
    )


def _check_transition_immutability(mapper, connection, target):
    _block(
        "BillingTransition", target, "UPDATE",
        "Transition log rows are immutable",
        KernelInvariant.APPEND_ONLY_TRANSITION_LOG,
    )


def _check_transition_delete(mapper, connection, target):
    _block(
        "BillingTransition", target, "DELETE",
        "Transition log rows cannot be deleted",
        KernelInvariant.APPEND_ONLY_TRANSITION_LOG,
    )


# =============================================================================
# Billing account guarded fields
# =============================================================================


def _check_billing_account_update(mapper, connection, target):
    """
    Block plan changes always, and status/partner changes outside a transition.
    """
    frozen = _changed_fields(target, ACCOUNT_FROZEN_FIELDS)
    if frozen:
        _block(
            "BillingAccount", target, "UPDATE",
            f"Fields {frozen} cannot change; supersede the account instead",
            KernelInvariant.GUARDED_LIFECYCLE_FIELDS,
        )

    if _in_lifecycle_transition(target):
        return

    guarded = _changed_fields(target, ACCOUNT_GUARDED_FIELDS)
    if guarded:
        _block(
            "BillingAccount", target, "UPDATE",
            f"Fields {guarded} may only change inside a lifecycle transition",
            KernelInvariant.GUARDED_LIFECYCLE_FIELDS,
        )


def _check_billing_account_delete(mapper, connection, target):
    _block(
        "BillingAccount", target, "DELETE",
        "Billing accounts are never deleted, only superseded",
        KernelInvariant.GUARDED_LIFECYCLE_FIELDS,
    )


# =============================================================================
# Registration
# =============================================================================


def _listener_table():
    from commission_kernel.models.billing_account import BillingAccountModel
    from commission_kernel.models.ledger_entry import LedgerEntryModel
    from commission_kernel.models.transition import BillingTransitionModel

    return (
        (LedgerEntryModel, "before_update", _check_ledger_entry_immutability),
        (LedgerEntryModel, "before_delete", _check_ledger_entry_delete),
        (BillingTransitionModel, "before_update", _check_transition_immutability),
        (BillingTransitionModel, "before_delete", _check_transition_delete),
        (BillingAccountModel, "before_update", _check_billing_account_update),
        (BillingAccountModel, "before_delete", _check_billing_account_delete),
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Safe to call more than once; a listener already registered is skipped.
    """
    for target, event_name, listener_fn in _listener_table():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests.
    """
    for target, event_name, listener_fn in _listener_table():
        _safe_remove_listener(target, event_name, listener_fn)
