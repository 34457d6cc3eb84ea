"""ORM models for the commission kernel."""

from commission_kernel.models.billing_account import BillingAccountModel
from commission_kernel.models.ledger_entry import LedgerEntryModel
from commission_kernel.models.transition import BillingTransitionModel

__all__ = [
    "BillingAccountModel",
    "LedgerEntryModel",
    "BillingTransitionModel",
]
