"""
Plan catalog (``commission_config.catalog``).

Read-only lookup of plans by id.  Built once from a ``CatalogSet`` and
never mutated.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from commission_kernel.domain.plans import Plan
from commission_kernel.exceptions import PlanNotFoundError


class PlanCatalog:
    """
    Immutable mapping of plan id to ``Plan``.

    Contract:
        ``get_plan`` raises ``PlanNotFoundError`` for unknown ids; it has no
        other failure mode and no side effects.
    """

    def __init__(self, plans: Iterable[Plan], version: str = "", checksum: str = ""):
        self._plans: dict[str, Plan] = {}
        for plan in plans:
            if plan.plan_id in self._plans:
                raise ValueError(f"Duplicate plan id: {plan.plan_id}")
            self._plans[plan.plan_id] = plan
        self.version = version
        self.checksum = checksum

    def get_plan(self, plan_id: str) -> Plan:
        try:
            return self._plans[plan_id]
        except KeyError:
            raise PlanNotFoundError(plan_id) from None

    def plans(self) -> tuple[Plan, ...]:
        """All plans, in catalog order."""
        return tuple(self._plans.values())

    def partner_offerable(self) -> tuple[Plan, ...]:
        """Plans a photographer can offer: those that pay the partner a share."""
        return tuple(plan for plan in self._plans.values() if plan.partner_offerable)

    def __contains__(self, plan_id: object) -> bool:
        return plan_id in self._plans

    def __iter__(self) -> Iterator[Plan]:
        return iter(self._plans.values())

    def __len__(self) -> int:
        return len(self._plans)

    def __repr__(self) -> str:
        return f"<PlanCatalog {self.version} plans={list(self._plans)}>"
