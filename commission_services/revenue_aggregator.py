"""
Revenue Aggregator -- read-only revenue reporting over the ledger.

Loads ledger entries through ``LedgerSelector`` and hands them to the pure
rollups in ``commission_engines.aggregation``.  Nothing here writes; every
figure is recomputed from the ledger on each call.

A party is any ledger recipient: a partner id, or the platform recipient
id for platform revenue.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy.orm import Session, sessionmaker

from commission_config.schema import EngineSettings
from commission_engines import aggregation
from commission_engines.aggregation import (
    MonthlyRevenue,
    PartnerTotal,
    RevenueSummary,
    YearlyRevenue,
)
from commission_kernel.domain.periods import shift_period
from commission_kernel.logging_config import get_logger
from commission_kernel.selectors.ledger_selector import LedgerSelector

logger = get_logger("services.revenue_aggregator")


class RevenueAggregator:
    """
    Revenue reports for partners and the platform.

    Contract:
        Pure reads.  Never raises a domain error: no data means empty
        lists and zero totals.  Malformed period labels raise ValueError.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        settings: EngineSettings | None = None,
    ):
        self._session_factory = session_factory
        self._settings = settings or EngineSettings.with_defaults()

    @property
    def platform_id(self) -> str:
        return self._settings.platform_recipient_id

    def _entries(self, party_id: str, from_period: str | None = None, to_period: str | None = None):
        with self._session_factory() as session:
            return LedgerSelector(session).entries_for_recipient(party_id, from_period, to_period)

    def monthly_breakdown(
        self,
        party_id: str,
        from_period: str,
        to_period: str,
    ) -> list[MonthlyRevenue]:
        """Upfront, recurring and total revenue per period, zero-filled."""
        if from_period > to_period:
            return []
        return aggregation.monthly_breakdown(
            entries=self._entries(party_id, from_period, to_period),
            from_period=from_period,
            to_period=to_period,
        )

    def project_next(
        self,
        party_id: str,
        periods: int,
        as_of_period: str | None = None,
    ) -> int:
        """
        Estimated recurring revenue for the next ``periods`` periods, in cents.

        A trailing three-period average of recurring revenue times the
        horizon.  An estimate only: no seasonality or churn is modelled and
        it is not a forecast guarantee.
        """
        if periods <= 0:
            return 0
        entries = self._entries(party_id, to_period=as_of_period)
        projection = aggregation.project_next(
            entries=entries,
            periods=periods,
            as_of_period=as_of_period,
        )
        logger.debug(
            "revenue_projection_computed",
            extra={"party_id": party_id, "periods": periods, "projection_cents": projection},
        )
        return projection

    def yearly_totals(self, party_id: str, year: int) -> YearlyRevenue:
        entries = self._entries(party_id, f"{year:04d}-01", f"{year:04d}-12")
        return aggregation.yearly_totals(entries=entries, year=year)

    def growth_rate(self, party_id: str, period: str) -> Decimal | None:
        """Month-over-month growth in percent, or None if last month was zero."""
        entries = self._entries(party_id, shift_period(period, -1), period)
        return aggregation.growth_rate(entries=entries, period=period)

    def revenue_summary(self, party_id: str, as_of_period: str) -> RevenueSummary:
        entries = self._entries(party_id, to_period=as_of_period)
        return aggregation.revenue_summary(entries=entries, as_of_period=as_of_period)

    def top_partners(
        self,
        from_period: str | None = None,
        to_period: str | None = None,
        limit: int = 3,
    ) -> list[PartnerTotal]:
        """Highest-earning partners in a period range (all time by default)."""
        if limit <= 0:
            return []
        with self._session_factory() as session:
            entries = LedgerSelector(session).entries_between(from_period, to_period)
        return aggregation.top_partners(
            entries=entries,
            limit=limit,
            platform_recipient_id=self.platform_id,
        )
