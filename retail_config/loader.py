"""
Configuration Loader (``retail_config.loader``).

Responsibility
--------------
Loads the inventory configuration YAML document and parses it into the
frozen dataclasses of ``retail_config.schema``.

Invariants enforced
-------------------
* Unknown valuation modes raise ``ValueError``; no silent defaults for
  values that are present but invalid.
* Channel entries inherit any key they omit from ``defaults``.
* ``compute_checksum`` is deterministic for identical documents.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid valuation mode  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from retail_config.schema import (
    DEFAULT_COSTING_STRATEGY,
    DEFAULT_EXPIRY_POLICY,
    DEFAULT_VALUATION_MODE,
    InventoryConfiguration,
    InventoryConfigurationSet,
    ValuationMode,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file and return its contents as a dict."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_valuation_mode(value: Any) -> ValuationMode:
    if isinstance(value, ValuationMode):
        return value
    try:
        return ValuationMode(str(value).lower())
    except ValueError:
        allowed = ", ".join(m.value for m in ValuationMode)
        raise ValueError(
            f"Invalid valuation mode {value!r}; expected one of: {allowed}"
        ) from None


def parse_inventory_configuration(
    channel_id: str,
    data: dict[str, Any],
    defaults: InventoryConfiguration | None = None,
) -> InventoryConfiguration:
    """Parse one channel entry, falling back to ``defaults`` for omitted keys."""
    base = defaults or InventoryConfiguration(channel_id=channel_id)
    mode = data.get("valuation_mode")
    return InventoryConfiguration(
        channel_id=str(channel_id),
        costing_strategy=str(data.get("costing_strategy", base.costing_strategy)).upper(),
        expiry_policy=str(data.get("expiry_policy", base.expiry_policy)).upper(),
        valuation_mode=parse_valuation_mode(mode) if mode is not None else base.valuation_mode,
        metadata=dict(data.get("metadata") or base.metadata),
    )


def parse_configuration_set(data: dict[str, Any]) -> InventoryConfigurationSet:
    defaults_data = data.get("defaults") or {}
    defaults = parse_inventory_configuration(
        "*",
        defaults_data,
        InventoryConfiguration(
            channel_id="*",
            costing_strategy=DEFAULT_COSTING_STRATEGY,
            expiry_policy=DEFAULT_EXPIRY_POLICY,
            valuation_mode=DEFAULT_VALUATION_MODE,
        ),
    )
    channels = {
        str(channel_id): parse_inventory_configuration(str(channel_id), entry or {}, defaults)
        for channel_id, entry in (data.get("channels") or {}).items()
    }
    return InventoryConfigurationSet(
        version=int(data.get("version", 1)),
        defaults=defaults,
        channels=channels,
        checksum=compute_checksum(data),
    )


def load_configuration_set(path: Path) -> InventoryConfigurationSet:
    return parse_configuration_set(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
