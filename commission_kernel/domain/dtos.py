"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable data structures that flow between the lifecycle
    rules, the ledger and callers: AccountState (engine input/output),
    TransitionStep, LedgerEntryDraft (persistence input), and the record
    types returned at the service boundary (BillingAccountRecord,
    LedgerEntryRecord, TransitionRecord, CommandResult).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    ``from_model()`` class methods are boundary converters invoked only from
    the service and selector layers.

Invariants enforced:
    - Ledger amounts are non-negative integer cents; the sign of an entry is
      carried by ``offsets_entry_id``, never by the amount.
    - Domain logic accepts and returns DTOs, never ORM entities.

Failure modes:
    - ValueError on LedgerEntryDraft with a negative or non-integer amount.
    - ValueError on SessionEvent without a partner id.

Data flow:
    AccountState -> (rules) -> TransitionStep + LedgerEntryDraft
        -> BillingTransitionModel / LedgerEntryModel
        -> TransitionRecord / LedgerEntryRecord -> CommandResult
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from commission_kernel.domain.plans import PaymentKind
from commission_kernel.exceptions import CommissionEngineError

if TYPE_CHECKING:
    from commission_kernel.models.billing_account import BillingAccountModel
    from commission_kernel.models.ledger_entry import LedgerEntryModel
    from commission_kernel.models.transition import BillingTransitionModel


class AccountStatus(str, Enum):
    """
    Billing account status.

    Contract:
        Lifecycle: PENDING -> ACTIVE <-> INACTIVE -> LAPSED -> ACTIVE.
        Only the lifecycle engine moves an account between these states.
    """

    PENDING = "pending"
    ACTIVE = "active"
    INACTIVE = "inactive"
    LAPSED = "lapsed"


class EntryKind(str, Enum):
    """Kind of a commission ledger entry."""

    UPFRONT_COMMISSION = "upfront_commission"
    RECURRING_COMMISSION = "recurring_commission"
    PLATFORM_RETAINED = "platform_retained"

    @classmethod
    def commission_for(cls, payment_kind: PaymentKind) -> EntryKind:
        if payment_kind is PaymentKind.UPFRONT:
            return cls.UPFRONT_COMMISSION
        return cls.RECURRING_COMMISSION


class CommandKind(str, Enum):
    """Commands accepted by the lifecycle engine."""

    OPEN_ACCOUNT = "open_account"
    RECORD_UPFRONT_PAYMENT = "record_upfront_payment"
    RECORD_RECURRING_PAYMENT = "record_recurring_payment"
    ADVANCE_CLOCK = "advance_clock"
    APPLY_SESSION_EVENT = "apply_session_event"
    REVERSE_PAYMENT = "reverse_payment"


class CommandStatus(str, Enum):
    """Outcome of a lifecycle command."""

    APPLIED = "applied"
    NO_CHANGE = "no_change"
    REJECTED = "rejected"


# ---------------------------------------------------------------------------
# Engine-facing state
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AccountState:
    """The mutable part of a billing account, as seen by the lifecycle rules."""

    status: AccountStatus
    partner_of_record_id: str | None
    last_payment_at: datetime | None = None
    period_start: datetime | None = None
    period_end: datetime | None = None

    def evolve(self, **changes) -> AccountState:
        return replace(self, **changes)


@dataclass(frozen=True)
class TransitionStep:
    """One status and/or partner-of-record change produced by the rules."""

    from_status: AccountStatus | None
    to_status: AccountStatus
    partner_before: str | None
    partner_after: str | None
    occurred_at: datetime
    reason: str

    @property
    def partner_changed(self) -> bool:
        return self.partner_before != self.partner_after


@dataclass(frozen=True)
class SessionEvent:
    """A new photo session recorded for a gallery (input only, never stored)."""

    gallery_id: str
    new_partner_id: str
    occurred_at: datetime

    def __post_init__(self) -> None:
        if not self.gallery_id:
            raise ValueError("SessionEvent requires a gallery_id")
        if not self.new_partner_id:
            raise ValueError("SessionEvent requires a new_partner_id")


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerEntryDraft:
    """
    A ledger entry that has not been written yet.

    Contract:
        All drafts of one batch share ``batch_id``, ``gallery_id``,
        ``period_label`` and ``gross_cents``; their amounts sum to
        ``gross_cents``.  Checked by ``CommissionLedger.append``.
    """

    gallery_id: str
    billing_account_id: UUID | None
    batch_id: UUID
    recipient_id: str
    kind: EntryKind
    revenue_stream: PaymentKind
    amount_cents: int
    gross_cents: int
    period_label: str
    recorded_at: datetime
    payout_due_at: datetime | None = None
    offsets_entry_id: UUID | None = None

    def __post_init__(self) -> None:
        for name in ("amount_cents", "gross_cents"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool):
                raise ValueError(f"{name} must be integer cents, got {value!r}")
            if value < 0:
                raise ValueError(f"{name} must be non-negative, got {value}")

    @property
    def is_offset(self) -> bool:
        return self.offsets_entry_id is not None

    @property
    def signed_amount_cents(self) -> int:
        return -self.amount_cents if self.is_offset else self.amount_cents


@dataclass(frozen=True)
class LedgerEntryRecord:
    """A written (immutable) commission ledger entry."""

    id: UUID
    gallery_id: str
    billing_account_id: UUID | None
    batch_id: UUID
    recipient_id: str
    kind: EntryKind
    revenue_stream: PaymentKind
    amount_cents: int
    gross_cents: int
    period_label: str
    recorded_at: datetime
    payout_due_at: datetime | None
    offsets_entry_id: UUID | None

    @property
    def is_offset(self) -> bool:
        return self.offsets_entry_id is not None

    @property
    def signed_amount_cents(self) -> int:
        return -self.amount_cents if self.is_offset else self.amount_cents

    @property
    def signed_gross_cents(self) -> int:
        return -self.gross_cents if self.is_offset else self.gross_cents

    @classmethod
    def from_model(cls, model: LedgerEntryModel) -> LedgerEntryRecord:
        return cls(
            id=model.id,
            gallery_id=model.gallery_id,
            billing_account_id=model.billing_account_id,
            batch_id=model.batch_id,
            recipient_id=model.recipient_id,
            kind=EntryKind(model.kind),
            revenue_stream=PaymentKind(model.revenue_stream),
            amount_cents=model.amount_cents,
            gross_cents=model.gross_cents,
            period_label=model.period_label,
            recorded_at=model.recorded_at,
            payout_due_at=model.payout_due_at,
            offsets_entry_id=model.offsets_entry_id,
        )


# ---------------------------------------------------------------------------
# Service boundary records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BillingAccountRecord:
    """Snapshot of a billing account returned to callers."""

    id: UUID
    gallery_id: str
    client_id: str
    plan_id: str
    partner_of_record_id: str | None
    status: AccountStatus
    last_payment_at: datetime | None
    period_start: datetime | None
    period_end: datetime | None
    created_at: datetime
    supersedes_id: UUID | None = None
    superseded_by_id: UUID | None = None
    superseded_at: datetime | None = None
    version: int = 1

    @property
    def is_current(self) -> bool:
        return self.superseded_by_id is None

    @property
    def state(self) -> AccountState:
        return AccountState(
            status=self.status,
            partner_of_record_id=self.partner_of_record_id,
            last_payment_at=self.last_payment_at,
            period_start=self.period_start,
            period_end=self.period_end,
        )

    @classmethod
    def from_model(cls, model: BillingAccountModel) -> BillingAccountRecord:
        return cls(
            id=model.id,
            gallery_id=model.gallery_id,
            client_id=model.client_id,
            plan_id=model.plan_id,
            partner_of_record_id=model.partner_of_record_id,
            status=AccountStatus(model.status),
            last_payment_at=model.last_payment_at,
            period_start=model.period_start,
            period_end=model.period_end,
            created_at=model.created_at,
            supersedes_id=model.supersedes_id,
            superseded_by_id=model.superseded_by_id,
            superseded_at=model.superseded_at,
            version=model.version,
        )


@dataclass(frozen=True)
class TransitionRecord:
    """One row of the account transition log."""

    id: UUID
    billing_account_id: UUID
    gallery_id: str
    command: CommandKind
    from_status: AccountStatus | None
    to_status: AccountStatus
    partner_before: str | None
    partner_after: str | None
    occurred_at: datetime
    reason: str
    batch_id: UUID | None = None

    @classmethod
    def from_model(cls, model: BillingTransitionModel) -> TransitionRecord:
        return cls(
            id=model.id,
            billing_account_id=model.billing_account_id,
            gallery_id=model.gallery_id,
            command=CommandKind(model.command),
            from_status=AccountStatus(model.from_status) if model.from_status else None,
            to_status=AccountStatus(model.to_status),
            partner_before=model.partner_before,
            partner_after=model.partner_after,
            occurred_at=model.occurred_at,
            reason=model.reason,
            batch_id=model.batch_id,
        )


@dataclass(frozen=True)
class CommandResult:
    """
    Result of a lifecycle command.

    Contract:
        Commands never raise domain errors.  A rejected command carries the
        typed exception in ``error`` and leaves account and ledger exactly
        as they were; ``account`` then shows the unchanged state (or None
        when the gallery has no account).
    """

    command: CommandKind
    gallery_id: str
    status: CommandStatus
    account: BillingAccountRecord | None = None
    entries: tuple[LedgerEntryRecord, ...] = ()
    transitions: tuple[TransitionRecord, ...] = ()
    error: CommissionEngineError | None = None

    @property
    def is_success(self) -> bool:
        return self.status is not CommandStatus.REJECTED

    @property
    def account_status(self) -> AccountStatus | None:
        return self.account.status if self.account is not None else None

    @classmethod
    def rejected(
        cls,
        command: CommandKind,
        gallery_id: str,
        error: CommissionEngineError,
        account: BillingAccountRecord | None = None,
    ) -> CommandResult:
        return cls(
            command=command,
            gallery_id=gallery_id,
            status=CommandStatus.REJECTED,
            account=account,
            error=error,
        )
