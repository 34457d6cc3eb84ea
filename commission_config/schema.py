"""
Configuration schema (``commission_config.schema``).

Responsibility
--------------
Typed dataclasses for the commission engine configuration: the engine
settings (forfeiture threshold, billing cycle, payout delay, platform
recipient) and the assembled catalog set.  Plans themselves are the
kernel's ``Plan`` value type.

Invariants enforced
-------------------
* ``EngineSettings`` validates every field in ``__post_init__``.
* A ``CatalogSet`` never contains two plans with the same id.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Self

from commission_kernel.domain.plans import (
    BILLING_CYCLE_MONTHS,
    FORFEITURE_THRESHOLD_MONTHS,
    PAYOUT_DELAY_DAYS,
    PLATFORM_RECIPIENT_ID,
    Plan,
)
from commission_kernel.logging_config import get_logger

logger = get_logger("config.schema")


@dataclass
class EngineSettings:
    """
    Lifecycle and ledger settings.

    Contract:
        Mutable dataclass so it can be loaded from YAML; validated in
        ``__post_init__``.

    Guarantees:
        - ``forfeiture_threshold_months`` > ``billing_cycle_months`` > 0.
        - ``payout_delay_days`` >= 0.
        - ``platform_recipient_id`` is non-empty.
    """

    forfeiture_threshold_months: int = FORFEITURE_THRESHOLD_MONTHS
    billing_cycle_months: int = BILLING_CYCLE_MONTHS
    payout_delay_days: int = PAYOUT_DELAY_DAYS
    platform_recipient_id: str = PLATFORM_RECIPIENT_ID

    def __post_init__(self):
        if self.billing_cycle_months <= 0:
            raise ValueError("billing_cycle_months must be positive")
        if self.forfeiture_threshold_months <= self.billing_cycle_months:
            raise ValueError(
                "forfeiture_threshold_months must exceed billing_cycle_months"
            )
        if self.payout_delay_days < 0:
            raise ValueError("payout_delay_days cannot be negative")
        if not self.platform_recipient_id:
            raise ValueError("platform_recipient_id is required")

        logger.info(
            "engine_settings_initialized",
            extra={
                "forfeiture_threshold_months": self.forfeiture_threshold_months,
                "billing_cycle_months": self.billing_cycle_months,
                "payout_delay_days": self.payout_delay_days,
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        """Settings matching the production catalog defaults."""
        return cls()


@dataclass(frozen=True)
class CatalogSet:
    """A validated plan catalog plus settings, as loaded from one YAML file."""

    version: str
    settings: EngineSettings
    plans: tuple[Plan, ...]
    checksum: str
    source_path: Path | None = field(default=None, compare=False)

    def __post_init__(self):
        seen: set[str] = set()
        for plan in self.plans:
            if plan.plan_id in seen:
                raise ValueError(f"Duplicate plan id in catalog: {plan.plan_id}")
            seen.add(plan.plan_id)
