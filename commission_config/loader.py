"""
Configuration Loader (``commission_config.loader``).

Responsibility
--------------
Loads the catalog YAML file and parses it into typed dataclasses.
Runtime callers go through ``commission_config.get_plan_catalog()``.

Invariants enforced
-------------------
* Every parse error raises ``ValueError`` or ``KeyError`` with a
  descriptive message; required fields have no silent defaults.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the raw
  configuration for audit and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from commission_config.schema import CatalogSet, EngineSettings
from commission_kernel.domain.plans import Plan, Split


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_split(data: dict[str, Any]) -> Split:
    return Split(partner_pct=data["partner_pct"], platform_pct=data["platform_pct"])


def _parse_price(data: dict[str, Any] | None) -> tuple[int | None, Split | None]:
    if not data:
        return None, None
    return data["price_cents"], parse_split(data["split"])


def parse_plan(data: dict[str, Any]) -> Plan:
    """Parse one plan entry; the Plan constructor validates its shape."""
    upfront_price, upfront_split = _parse_price(data.get("upfront"))
    recurring_price, recurring_split = _parse_price(data.get("recurring"))
    return Plan(
        plan_id=data["plan_id"],
        name=data.get("name", data["plan_id"]),
        upfront_price_cents=upfront_price,
        upfront_split=upfront_split,
        recurring_price_cents=recurring_price,
        recurring_split=recurring_split,
        access_duration_months=data.get("access_duration_months"),
        requires_ongoing_payment=bool(data["requires_ongoing_payment"]),
    )


def parse_settings(data: dict[str, Any] | None) -> EngineSettings:
    """Parse the ``settings`` block; absent keys take the defaults."""
    data = data or {}
    unknown = set(data) - {
        "forfeiture_threshold_months",
        "billing_cycle_months",
        "payout_delay_days",
        "platform_recipient_id",
    }
    if unknown:
        raise ValueError(f"Unknown settings: {sorted(unknown)}")
    return EngineSettings(**data)


def parse_catalog_set(data: dict[str, Any], source_path: Path | None = None) -> CatalogSet:
    """Parse a whole catalog document."""
    plans = data.get("plans") or []
    if not plans:
        raise ValueError("Catalog defines no plans")
    return CatalogSet(
        version=str(data["version"]),
        settings=parse_settings(data.get("settings")),
        plans=tuple(parse_plan(entry) for entry in plans),
        checksum=compute_checksum(data),
        source_path=source_path,
    )


def load_catalog_set(path: Path) -> CatalogSet:
    return parse_catalog_set(load_yaml_file(path), source_path=path)


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
