"""Kernel services: flush-only writers used inside a caller's transaction."""

from commission_kernel.services.account_service import AccountService
from commission_kernel.services.gallery_locks import GalleryLockRegistry
from commission_kernel.services.ledger_service import CommissionLedger

__all__ = [
    "AccountService",
    "CommissionLedger",
    "GalleryLockRegistry",
]
