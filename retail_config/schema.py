"""
Configuration schema (``retail_config.schema``).

Frozen dataclasses describing per-channel inventory configuration.  Parsing
lives in ``retail_config.loader``; resolution of names to strategy and policy
instances lives in InventoryConfigurationService.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any


class ValuationMode(str, Enum):
    """How much weight inventory valuation carries for a channel."""

    NONE = "none"                    # cost tracking disabled
    SHADOW = "shadow"                # tracked; failures recorded, never blocking
    AUTHORITATIVE = "authoritative"  # tracked; failures block the business operation


DEFAULT_COSTING_STRATEGY = "FIFO"
DEFAULT_EXPIRY_POLICY = "DEFAULT"
DEFAULT_VALUATION_MODE = ValuationMode.SHADOW


@dataclass(frozen=True, slots=True)
class InventoryConfiguration:
    channel_id: str
    costing_strategy: str = DEFAULT_COSTING_STRATEGY
    expiry_policy: str = DEFAULT_EXPIRY_POLICY
    valuation_mode: ValuationMode = DEFAULT_VALUATION_MODE
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @property
    def is_valuation_enabled(self) -> bool:
        return self.valuation_mode != ValuationMode.NONE

    @property
    def is_authoritative(self) -> bool:
        return self.valuation_mode == ValuationMode.AUTHORITATIVE

    def for_channel(self, channel_id: str) -> InventoryConfiguration:
        return replace(self, channel_id=channel_id)


@dataclass(frozen=True, slots=True)
class InventoryConfigurationSet:
    """Defaults plus per-channel overrides, as loaded from one YAML document."""

    version: int
    defaults: InventoryConfiguration
    channels: Mapping[str, InventoryConfiguration]
    checksum: str = ""

    def for_channel(self, channel_id: str) -> InventoryConfiguration:
        configured = self.channels.get(str(channel_id))
        if configured is not None:
            return configured
        return self.defaults.for_channel(str(channel_id))
