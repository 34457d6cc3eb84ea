"""
Module: commission_engines
Responsibility:
    Pure rules for the commission engine: the billing lifecycle state
    machine, payment splits and revenue rollups.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import ``commission_kernel`` domain types and exceptions.
    MUST NOT import commission_services or commission_config.

Invariants enforced:
    - Purity: engines never read the clock; timestamps are parameters.
    - Integer cents only; no floats anywhere in money arithmetic.
    - Determinism: identical inputs always produce identical outputs.
"""

from commission_engines.aggregation import (
    MonthlyRevenue,
    PartnerTotal,
    RevenueSummary,
    YearlyRevenue,
    growth_rate,
    monthly_breakdown,
    project_next,
    revenue_summary,
    top_partners,
    yearly_totals,
)
from commission_engines.lifecycle import (
    LifecycleOutcome,
    apply_payment,
    apply_session,
    evaluate_clock,
    lapse_deadline,
    resolve_successor_partner,
)
from commission_engines.split import SplitAllocation, allocate, build_payment_batch

__all__ = [
    "LifecycleOutcome",
    "MonthlyRevenue",
    "PartnerTotal",
    "RevenueSummary",
    "SplitAllocation",
    "YearlyRevenue",
    "allocate",
    "apply_payment",
    "apply_session",
    "build_payment_batch",
    "evaluate_clock",
    "growth_rate",
    "lapse_deadline",
    "monthly_breakdown",
    "project_next",
    "resolve_successor_partner",
    "revenue_summary",
    "top_partners",
    "yearly_totals",
]
