"""Read-only selectors for the commission kernel."""

from commission_kernel.selectors.account_selector import AccountSelector
from commission_kernel.selectors.ledger_selector import ConservationReport, LedgerSelector

__all__ = [
    "AccountSelector",
    "ConservationReport",
    "LedgerSelector",
]
