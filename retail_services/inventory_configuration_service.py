"""
retail_services.inventory_configuration_service -- Per-channel strategy resolution.

Responsibility:
    Resolve, per channel, which CostingStrategy and ExpiryPolicy instances
    apply and which valuation mode governs failures.  Names come from the
    YAML configuration set or from programmatic overrides; instances come
    from registries injected at construction.

Architecture position:
    Services -- no database access.  InventoryService asks this service for
    its collaborators on every operation.

Invariants enforced:
    - An unknown strategy or policy name is a ConfigurationError naming the
      available options; there is no silent fallback to a default.
    - ``run_gated`` applies the valuation mode uniformly: ``none`` skips,
      ``shadow`` records failures without blocking, ``authoritative``
      propagates them.

Failure modes:
    - ConfigurationError from resolve_* and set_configuration.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import TypeVar

from retail_config.schema import (
    InventoryConfiguration,
    InventoryConfigurationSet,
    ValuationMode,
)
from retail_engines.costing import CostingStrategy, default_costing_strategies
from retail_engines.expiry import ExpiryPolicy, default_expiry_policies
from retail_kernel.domain.clock import Clock
from retail_kernel.exceptions import ConfigurationError, RetailCoreError
from retail_kernel.logging_config import get_logger

logger = get_logger("services.inventory_configuration")

T = TypeVar("T")


class InventoryConfigurationService:
    """
    Channel-scoped lookup of costing strategy, expiry policy, and valuation mode.

    Guarantees:
        - ``get_configuration`` always returns a configuration; channels
          without an entry get the configured defaults.
    """

    def __init__(
        self,
        configuration_set: InventoryConfigurationSet | None = None,
        costing_strategies: Mapping[str, CostingStrategy] | None = None,
        expiry_policies: Mapping[str, ExpiryPolicy] | None = None,
        clock: Clock | None = None,
    ):
        self._configuration_set = configuration_set
        self._costing_strategies = dict(costing_strategies or default_costing_strategies())
        self._expiry_policies = dict(expiry_policies or default_expiry_policies(clock))
        self._overrides: dict[str, InventoryConfiguration] = {}

    @property
    def available_costing_strategies(self) -> tuple[str, ...]:
        return tuple(self._costing_strategies)

    @property
    def available_expiry_policies(self) -> tuple[str, ...]:
        return tuple(self._expiry_policies)

    def get_configuration(self, channel_id: str) -> InventoryConfiguration:
        channel_id = str(channel_id)
        if channel_id in self._overrides:
            return self._overrides[channel_id]
        if self._configuration_set is not None:
            return self._configuration_set.for_channel(channel_id)
        return InventoryConfiguration(channel_id=channel_id)

    def set_configuration(self, configuration: InventoryConfiguration) -> None:
        """Install a programmatic override after checking both names resolve."""
        self._lookup_strategy(configuration.channel_id, configuration.costing_strategy)
        self._lookup_policy(configuration.channel_id, configuration.expiry_policy)
        self._overrides[str(configuration.channel_id)] = configuration
        logger.info(
            "inventory_configuration_updated",
            extra={
                "channel_id": configuration.channel_id,
                "costing_strategy": configuration.costing_strategy,
                "expiry_policy": configuration.expiry_policy,
                "valuation_mode": configuration.valuation_mode,
            },
        )

    def resolve_costing_strategy(self, channel_id: str) -> CostingStrategy:
        config = self.get_configuration(channel_id)
        return self._lookup_strategy(config.channel_id, config.costing_strategy)

    def resolve_expiry_policy(self, channel_id: str) -> ExpiryPolicy:
        config = self.get_configuration(channel_id)
        return self._lookup_policy(config.channel_id, config.expiry_policy)

    def is_valuation_enabled(self, channel_id: str) -> bool:
        return self.get_configuration(channel_id).is_valuation_enabled

    def is_authoritative_mode(self, channel_id: str) -> bool:
        return self.get_configuration(channel_id).is_authoritative

    def run_gated(
        self,
        channel_id: str,
        operation: str,
        fn: Callable[[], T],
    ) -> T | None:
        """
        Run an inventory operation under the channel's valuation mode.

        Returns the operation result, or None when it was skipped
        (``none``) or failed in ``shadow`` mode.
        """
        mode = self.get_configuration(channel_id).valuation_mode

        if mode == ValuationMode.NONE:
            logger.debug(
                "inventory_valuation_skipped",
                extra={"channel_id": channel_id, "operation": operation},
            )
            return None

        if mode == ValuationMode.AUTHORITATIVE:
            return fn()

        try:
            return fn()
        except RetailCoreError as exc:
            logger.warning(
                "inventory_shadow_failure",
                extra={
                    "channel_id": channel_id,
                    "operation": operation,
                    "error_code": exc.code,
                    "error": str(exc),
                },
            )
            return None

    def _lookup_strategy(self, channel_id: str, name: str) -> CostingStrategy:
        strategy = self._costing_strategies.get(name)
        if strategy is None:
            available = self.available_costing_strategies
            raise ConfigurationError(
                f"Costing strategy '{name}' not found for channel {channel_id}. "
                f"Available strategies: {', '.join(available)}",
                channel_id=channel_id,
                available=available,
            )
        return strategy

    def _lookup_policy(self, channel_id: str, name: str) -> ExpiryPolicy:
        policy = self._expiry_policies.get(name)
        if policy is None:
            available = self.available_expiry_policies
            raise ConfigurationError(
                f"Expiry policy '{name}' not found for channel {channel_id}. "
                f"Available policies: {', '.join(available)}",
                channel_id=channel_id,
                available=available,
            )
        return policy
