"""
Commission Kernel

The persistence and domain core of the gallery commission engine:
- Billing accounts with a guarded status / partner-of-record lifecycle
- Append-only commission ledger with a conservation law per period
- Append-only transition log for every change of ownership or status
- Deterministic clock and typed errors
"""

__version__ = "0.1.0"
