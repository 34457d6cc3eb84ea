"""
Typed Exception Hierarchy for the Commission Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

A payment that is rejected for the wrong reason is silently lost money.
Callers (webhook handlers, schedulers, dashboards) must be able to tell a
price mismatch from an invalid state without parsing message strings.

Every error:
  1. Has its own class (catch by type, not message)
  2. Carries a CODE class attribute (machine-readable, API-safe)
  3. Stores its context as attributes (gallery_id, plan_id, amounts, ...)

Lifecycle commands never raise these to their callers; they return them
inside a ``CommandResult``.  Catalog lookups and ledger writes raise them
so the command layer can roll back and report.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    CommissionEngineError (base)
    |
    +-- PlanError
    |   +-- PlanNotFoundError
    |   +-- PlanMismatchError
    |
    +-- LifecycleError
    |   +-- InvalidStateError
    |   +-- AccountNotFoundError
    |
    +-- LedgerError
    |   +-- ConservationViolationError
    |   +-- BatchNotFoundError
    |   +-- BatchAlreadyOffsetError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                      | When Raised
-------------|---------------------------|--------------------------------------
Plan         | PLAN_NOT_FOUND            | Unknown plan id (caller bug, fatal)
             | PLAN_MISMATCH             | Amount != plan price, or plan has no
             |                           | price of that kind (re-prompt payer)
-------------|---------------------------|--------------------------------------
Lifecycle    | INVALID_STATE             | Command not valid for current status
             | ACCOUNT_NOT_FOUND         | Gallery has no billing account
-------------|---------------------------|--------------------------------------
Ledger       | CONSERVATION_VIOLATION    | Split does not sum to gross (bug;
             |                           | the transition aborts, nothing written)
             | BATCH_NOT_FOUND           | Offset requested for unknown batch
             | BATCH_ALREADY_OFFSET      | Batch was already offset
-------------|---------------------------|--------------------------------------
Concurrency  | OPTIMISTIC_LOCK_CONFLICT  | Account row changed underneath us
-------------|---------------------------|--------------------------------------
Immutability | IMMUTABILITY_VIOLATION    | UPDATE/DELETE of ledger or log rows,
             |                           | or a guarded account field changed
             |                           | outside a lifecycle transition

===============================================================================
HANDLING PATTERNS
===============================================================================

    result = engine.record_upfront_payment(gallery_id, 10_000, paid_at)
    if not result.is_success:
        if isinstance(result.error, PlanMismatchError):
            reprompt(expected=result.error.expected_cents)
        elif isinstance(result.error, ConservationViolationError):
            page_oncall(result.error)  # never recoverable
"""


class CommissionEngineError(Exception):
    """
    Base exception for all commission engine errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "COMMISSION_ENGINE_ERROR"

    #: Whether the caller can fix the input and resubmit.
    recoverable: bool = True


# Plan-related exceptions


class PlanError(CommissionEngineError):
    """Base exception for plan catalog errors."""

    code: str = "PLAN_ERROR"


class PlanNotFoundError(PlanError):
    """Plan id is not in the catalog."""

    code: str = "PLAN_NOT_FOUND"
    recoverable = False

    def __init__(self, plan_id: str):
        self.plan_id = plan_id
        super().__init__(f"Plan not found: {plan_id}")


class PlanMismatchError(PlanError):
    """Submitted amount does not satisfy the plan price."""

    code: str = "PLAN_MISMATCH"

    def __init__(
        self,
        plan_id: str,
        payment_kind: str,
        expected_cents: int | None,
        submitted_cents: int,
    ):
        self.plan_id = plan_id
        self.payment_kind = payment_kind
        self.expected_cents = expected_cents
        self.submitted_cents = submitted_cents
        if expected_cents is None:
            message = f"Plan {plan_id} has no {payment_kind} price"
        else:
            message = (
                f"Plan {plan_id} {payment_kind} price is {expected_cents} cents, "
                f"got {submitted_cents}"
            )
        super().__init__(message)


# Lifecycle-related exceptions


class LifecycleError(CommissionEngineError):
    """Base exception for billing account lifecycle errors."""

    code: str = "LIFECYCLE_ERROR"


class InvalidStateError(LifecycleError):
    """Command is not valid for the account's current status."""

    code: str = "INVALID_STATE"

    def __init__(self, gallery_id: str, status: str, command: str, reason: str = ""):
        self.gallery_id = gallery_id
        self.status = status
        self.command = command
        self.reason = reason
        message = f"Cannot {command} on gallery {gallery_id} in status {status}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class AccountNotFoundError(LifecycleError):
    """Gallery has no current billing account."""

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, gallery_id: str):
        self.gallery_id = gallery_id
        super().__init__(f"No billing account for gallery {gallery_id}")


# Ledger-related exceptions


class LedgerError(CommissionEngineError):
    """Base exception for commission ledger errors."""

    code: str = "LEDGER_ERROR"


class ConservationViolationError(LedgerError):
    """
    A ledger batch does not conserve the gross amount collected.

    Never recoverable: it means the split arithmetic is wrong.  The
    transition is aborted before anything is written.
    """

    code: str = "CONSERVATION_VIOLATION"
    recoverable = False

    def __init__(self, gallery_id: str, gross_cents: int, allocated_cents: int, detail: str = ""):
        self.gallery_id = gallery_id
        self.gross_cents = gross_cents
        self.allocated_cents = allocated_cents
        self.detail = detail
        message = (
            f"Conservation violated for gallery {gallery_id}: "
            f"gross={gross_cents}, allocated={allocated_cents}"
        )
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class BatchNotFoundError(LedgerError):
    """No ledger entries exist for the batch."""

    code: str = "BATCH_NOT_FOUND"

    def __init__(self, batch_id: str):
        self.batch_id = batch_id
        super().__init__(f"Ledger batch not found: {batch_id}")


class BatchAlreadyOffsetError(LedgerError):
    """Batch has already been offset, or is itself an offset."""

    code: str = "BATCH_ALREADY_OFFSET"

    def __init__(self, batch_id: str):
        self.batch_id = batch_id
        super().__init__(f"Ledger batch {batch_id} is already offset or is an offset")


# Concurrency-related exceptions


class ConcurrencyError(CommissionEngineError):
    """Base exception for concurrency errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Immutability-related exceptions


class ImmutabilityError(CommissionEngineError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"
    recoverable = False


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Ledger entries and transition log rows are immutable from creation.
    Billing account status, partner of record and plan are only writable
    inside a lifecycle transition.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
