"""
Kernel Invariants Contract.

These invariants are structural law. They are enforced by the lifecycle
engine, the commission ledger and the ORM listeners in
``commission_kernel.db.immutability``. No catalog entry or setting may
override them.

Violations are logged with an ``invariant`` field naming the member
below, and ``tests/architecture`` checks the import boundary declared at
the bottom of this module.
"""

from enum import Enum, unique


@unique
class KernelInvariant(str, Enum):
    """Non-configurable invariants enforced by the kernel."""

    CONSERVATION = "conservation"
    """Per gallery and period, partner entries plus platform entries equal
    the gross collected. Enforced by CommissionLedger.append before any
    row is flushed."""

    APPEND_ONLY_LEDGER = "append_only_ledger"
    """Ledger entries are never updated or deleted; corrections are
    offsetting entries. Enforced by ORM listeners."""

    APPEND_ONLY_TRANSITION_LOG = "append_only_transition_log"
    """Billing transition rows are never updated or deleted. Enforced by
    ORM listeners."""

    SINGLE_OWNERSHIP = "single_ownership"
    """A billing account has at most one partner of record."""

    GUARDED_LIFECYCLE_FIELDS = "guarded_lifecycle_fields"
    """Status and partner of record change only inside a lifecycle
    transition; plan id never changes after creation."""

    FORFEITURE_MONOTONICITY = "forfeiture_monotonicity"
    """A partner cleared on lapse is restored only by a session event or
    a new plan subscription."""

    GALLERY_SERIALIZATION = "gallery_serialization"
    """Transitions on one gallery are serialized (per-gallery lock plus
    row lock)."""

    IDEMPOTENT_CLOCK = "idempotent_clock"
    """Advancing the clock twice with the same instant changes nothing the
    second time."""


ALL_KERNEL_INVARIANTS: frozenset[KernelInvariant] = frozenset(KernelInvariant)

# The kernel package may not import from these packages.
# This is enforced by tests/architecture/test_kernel_boundary.py.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "commission_services",
    "commission_config",
    "commission_engines",
)
