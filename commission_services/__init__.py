"""
commission_services -- the imperative shell of the commission engine.

``LifecycleEngine`` accepts the inbound lifecycle commands and owns their
transactions; ``RevenueAggregator`` serves read-only revenue reports.
"""

from commission_services.lifecycle_engine import LifecycleEngine
from commission_services.revenue_aggregator import RevenueAggregator

__all__ = [
    "LifecycleEngine",
    "RevenueAggregator",
]
