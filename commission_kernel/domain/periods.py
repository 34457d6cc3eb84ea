"""
Periods -- calendar arithmetic for billing cycles and ledger periods.

Ledger periods are calendar months labelled ``"YYYY-MM"`` in UTC.  Billing
cycles and the forfeiture threshold are expressed in whole months; adding
months clamps the day to the end of the target month (Jan 31 + 1 month =
Feb 28/29).
"""

from __future__ import annotations

import calendar
import re
from collections.abc import Iterator
from datetime import datetime, timezone

_PERIOD_RE = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC (SQLite drops tzinfo on round trip)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def add_months(value: datetime, months: int) -> datetime:
    """Add calendar months, clamping the day to the target month's length."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def period_label(value: datetime) -> str:
    """Ledger period label (``YYYY-MM``) of a timestamp, in UTC."""
    utc = ensure_aware(value).astimezone(timezone.utc)
    return f"{utc.year:04d}-{utc.month:02d}"


def parse_period(label: str) -> tuple[int, int]:
    """
    Parse a ``YYYY-MM`` label into ``(year, month)``.

    Raises:
        ValueError: if the label is malformed.
    """
    match = _PERIOD_RE.match(label or "")
    if match is None:
        raise ValueError(f"Invalid period label: {label!r} (expected YYYY-MM)")
    return int(match.group(1)), int(match.group(2))


def shift_period(label: str, months: int) -> str:
    """Label of the period ``months`` after (or before, if negative) ``label``."""
    year, month = parse_period(label)
    index = year * 12 + (month - 1) + months
    return f"{index // 12:04d}-{index % 12 + 1:02d}"


def iter_periods(from_period: str, to_period: str) -> Iterator[str]:
    """Yield every period label from ``from_period`` to ``to_period`` inclusive.

    Yields nothing when ``from_period`` is after ``to_period``.
    """
    parse_period(to_period)
    current = from_period
    while current <= to_period:
        yield current
        current = shift_period(current, 1)
