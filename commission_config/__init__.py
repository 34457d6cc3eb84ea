"""
commission_config -- single public entrypoint for engine configuration.

Responsibility:
    Provides the plan catalog and engine settings through
    ``get_plan_catalog()`` / ``get_engine_settings()``.  No other component
    reads configuration files directly.

Architecture position:
    Configuration -- sits above ``commission_kernel`` and below
    ``commission_services``.  The kernel MUST NEVER import from here.

Failure modes:
    - ``FileNotFoundError`` -- the requested catalog set does not exist.
    - ``ValueError`` / ``KeyError`` -- the catalog fails validation.

Audit relevance:
    Every load emits a ``COMMISSION_CONFIG_TRACE`` log entry with the
    catalog version, checksum and plan count, tying each ledger entry back
    to the catalog version that priced it.
"""

from __future__ import annotations

import logging
from pathlib import Path

from commission_config.catalog import PlanCatalog
from commission_config.loader import load_catalog_set
from commission_config.schema import CatalogSet, EngineSettings

_logger = logging.getLogger("commission_kernel.config")

_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"
_CATALOG_FILE = "catalog.yaml"

__all__ = [
    "CatalogSet",
    "EngineSettings",
    "PlanCatalog",
    "get_catalog_set",
    "get_engine_settings",
    "get_plan_catalog",
]


def get_catalog_set(config_dir: Path | None = None, set_name: str = "default") -> CatalogSet:
    """
    Load and validate one catalog set.

    Args:
        config_dir: Override path to the configuration sets directory.
            Defaults to commission_config/sets/.
        set_name: Subdirectory holding ``catalog.yaml``.

    Raises:
        FileNotFoundError: If the catalog file does not exist.
        ValueError: If validation fails.
    """
    path = (config_dir or _DEFAULT_CONFIG_DIR) / set_name / _CATALOG_FILE
    if not path.is_file():
        raise FileNotFoundError(f"Catalog not found: {path}")

    catalog_set = load_catalog_set(path)

    _logger.info(
        "COMMISSION_CONFIG_TRACE",
        extra={
            "trace_type": "COMMISSION_CONFIG_TRACE",
            "catalog_set": set_name,
            "catalog_version": catalog_set.version,
            "checksum": catalog_set.checksum,
            "plan_count": len(catalog_set.plans),
        },
    )
    return catalog_set


def get_plan_catalog(config_dir: Path | None = None, set_name: str = "default") -> PlanCatalog:
    """The plan catalog of a catalog set."""
    catalog_set = get_catalog_set(config_dir, set_name)
    return PlanCatalog(
        catalog_set.plans,
        version=catalog_set.version,
        checksum=catalog_set.checksum,
    )


def get_engine_settings(config_dir: Path | None = None, set_name: str = "default") -> EngineSettings:
    """The engine settings of a catalog set."""
    return get_catalog_set(config_dir, set_name).settings
