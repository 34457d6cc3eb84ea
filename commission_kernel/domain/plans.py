"""
Plans -- immutable payment plan definitions.

Responsibility:
    Value types describing what a client pays for a gallery and how each
    payment is split between the partner of record (the photographer) and
    the platform.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  Plans are loaded from YAML by
    ``commission_config`` and looked up through ``PlanCatalog``; this module
    only defines the shape and its validation.

Invariants enforced:
    - Every split allocates exactly 100 percent between partner and platform.
    - Prices are positive integer cents; a plan defines at least one price.
    - A plan that requires ongoing payment defines a recurring price; a plan
      that does not defines a fixed access duration.

Failure modes:
    - ValueError from ``__post_init__`` on malformed definitions.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

#: Months past the last payment (or past the end of a fixed term) after
#: which the partner of record forfeits commission for the gallery.
FORFEITURE_THRESHOLD_MONTHS = 6

#: Length of one recurring billing cycle, in months.
BILLING_CYCLE_MONTHS = 1

#: Days between a partner commission being earned and its scheduled payout.
PAYOUT_DELAY_DAYS = 14

#: Recipient id used for every platform-retained ledger entry.
PLATFORM_RECIPIENT_ID = "platform"


class PaymentKind(str, Enum):
    """Which price of a plan a payment satisfies."""

    UPFRONT = "upfront"
    RECURRING = "recurring"


@dataclass(frozen=True)
class Split:
    """Percentage split of a payment between partner and platform."""

    partner_pct: int
    platform_pct: int

    def __post_init__(self) -> None:
        for name in ("partner_pct", "platform_pct"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool):
                raise ValueError(f"{name} must be an int, got {value!r}")
            if not 0 <= value <= 100:
                raise ValueError(f"{name} must be within 0..100, got {value}")
        if self.partner_pct + self.platform_pct != 100:
            raise ValueError(
                f"Split must total 100, got {self.partner_pct}/{self.platform_pct}"
            )


@dataclass(frozen=True)
class Plan:
    """
    A payment plan a client gallery can be subscribed to.

    Contract:
        Never mutated after creation.  ``None`` prices mean the plan has no
        payment of that kind; ``access_duration_months = None`` means access
        is unlimited while the client keeps paying.
    """

    plan_id: str
    name: str
    upfront_price_cents: int | None
    upfront_split: Split | None
    recurring_price_cents: int | None
    recurring_split: Split | None
    access_duration_months: int | None
    requires_ongoing_payment: bool

    def __post_init__(self) -> None:
        if not self.plan_id:
            raise ValueError("plan_id is required")
        _check_price(self.plan_id, "upfront", self.upfront_price_cents, self.upfront_split)
        _check_price(
            self.plan_id, "recurring", self.recurring_price_cents, self.recurring_split
        )
        if self.upfront_price_cents is None and self.recurring_price_cents is None:
            raise ValueError(f"Plan {self.plan_id} defines no price")
        if self.requires_ongoing_payment and self.recurring_price_cents is None:
            raise ValueError(
                f"Plan {self.plan_id} requires ongoing payment but has no recurring price"
            )
        if not self.requires_ongoing_payment and self.access_duration_months is None:
            raise ValueError(
                f"Plan {self.plan_id} is fixed-term but has no access duration"
            )
        if self.access_duration_months is not None and self.access_duration_months <= 0:
            raise ValueError(
                f"Plan {self.plan_id} access_duration_months must be positive"
            )

    @property
    def has_upfront(self) -> bool:
        return self.upfront_price_cents is not None

    @property
    def has_recurring(self) -> bool:
        return self.recurring_price_cents is not None

    def price_for(self, kind: PaymentKind) -> int | None:
        if kind is PaymentKind.UPFRONT:
            return self.upfront_price_cents
        return self.recurring_price_cents

    def split_for(self, kind: PaymentKind) -> Split | None:
        if kind is PaymentKind.UPFRONT:
            return self.upfront_split
        return self.recurring_split

    @property
    def partner_offerable(self) -> bool:
        """True when any payment under this plan pays the partner a share."""
        return any(
            split is not None and split.partner_pct > 0
            for split in (self.upfront_split, self.recurring_split)
        )


def _check_price(plan_id: str, kind: str, price: int | None, split: Split | None) -> None:
    if price is None:
        if split is not None:
            raise ValueError(f"Plan {plan_id} has a {kind} split but no {kind} price")
        return
    if not isinstance(price, int) or isinstance(price, bool) or price <= 0:
        raise ValueError(f"Plan {plan_id} {kind} price must be a positive int, got {price!r}")
    if split is None:
        raise ValueError(f"Plan {plan_id} has a {kind} price but no {kind} split")
