"""
retail_config -- per-channel inventory configuration.

Responsibility:
    ``get_inventory_configuration_set()`` is the public entry point.  It
    loads the YAML document (the packaged default, or a caller-supplied
    path), parses it into frozen dataclasses, and emits a
    ``RETAIL_CONFIG_TRACE`` log record carrying the version and checksum.

Architecture position:
    Configuration -- sits beside retail_kernel and below retail_services.
    Strategy and policy names are resolved to instances by
    InventoryConfigurationService, not here.
"""

from __future__ import annotations

from pathlib import Path

from retail_config.loader import load_configuration_set
from retail_config.schema import (
    InventoryConfiguration,
    InventoryConfigurationSet,
    ValuationMode,
)
from retail_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "inventory.yaml"


def get_inventory_configuration_set(
    config_path: Path | None = None,
) -> InventoryConfigurationSet:
    path = config_path or DEFAULT_CONFIG_PATH
    config_set = load_configuration_set(path)
    _logger.info(
        "RETAIL_CONFIG_TRACE",
        extra={
            "trace_type": "RETAIL_CONFIG_TRACE",
            "config_path": str(path),
            "config_version": config_set.version,
            "checksum": config_set.checksum,
            "channel_count": len(config_set.channels),
        },
    )
    return config_set


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "InventoryConfiguration",
    "InventoryConfigurationSet",
    "ValuationMode",
    "get_inventory_configuration_set",
]
