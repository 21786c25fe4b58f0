"""
retail_engines.expiry -- Pluggable expiry policies.

Responsibility:
    Decide, per movement type, whether a batch may be consumed given its
    expiry date, and expose lifecycle hooks for batch creation and expiry.

Architecture position:
    Engines -- pure decision logic.  Current time comes from an injected
    Clock; hooks only log.

Invariants enforced:
    DefaultExpiryPolicy rules, evaluated in order:
    1. PURCHASE never references an existing batch: always rejected.
    2. No expiry date: allowed.
    3. Expiry date not in the past: allowed.
    4. Expired: SALE rejected; TRANSFER / ADJUSTMENT allowed with warning;
       WRITE_OFF / EXPIRY allowed with warning.
    5. Any other movement type on an expired batch: rejected.
    StrictExpiryPolicy additionally rejects TRANSFER and ADJUSTMENT of an
    expired batch.

Failure modes:
    - Policies never raise; callers turn ``allowed=False`` into
      ExpiryViolationError.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from retail_kernel.domain.clock import Clock, SystemClock
from retail_kernel.domain.inventory import InventoryBatch, MovementType
from retail_kernel.logging_config import get_logger

logger = get_logger("engines.expiry")


@dataclass(frozen=True, slots=True)
class ExpiryValidationResult:
    allowed: bool
    warning: str | None = None
    error: str | None = None

    @classmethod
    def ok(cls, warning: str | None = None) -> ExpiryValidationResult:
        return cls(allowed=True, warning=warning)

    @classmethod
    def reject(cls, error: str) -> ExpiryValidationResult:
        return cls(allowed=False, error=error)


def _movement_label(movement_type: MovementType | str) -> str:
    return movement_type.value if isinstance(movement_type, MovementType) else str(movement_type)


class ExpiryPolicy(ABC):
    """
    Contract for expiry validation.

    Non-goals:
        - Hooks must not mutate state; they are logging and notification
          points only.
    """

    name: str = ""

    @abstractmethod
    def validate_before_consume(
        self,
        batch: InventoryBatch,
        quantity: int,
        movement_type: MovementType | str,
    ) -> ExpiryValidationResult:
        ...

    def on_batch_created(self, batch: InventoryBatch) -> None:
        return None

    def on_batch_expired(self, batch: InventoryBatch) -> None:
        return None


class DefaultExpiryPolicy(ExpiryPolicy):
    """Blocks sales of expired stock; lets corrective movements through with a warning."""

    name = "DEFAULT"

    _WARN_AND_PROCEED = (MovementType.TRANSFER, MovementType.ADJUSTMENT)
    _EXPECTED_ON_EXPIRED = (MovementType.WRITE_OFF, MovementType.EXPIRY)

    def __init__(self, clock: Clock | None = None):
        self._clock = clock or SystemClock()

    def validate_before_consume(self, batch, quantity, movement_type):
        label = _movement_label(movement_type)

        if label == MovementType.PURCHASE.value:
            return ExpiryValidationResult.reject(
                "Purchase movements should not reference existing batches"
            )

        if batch.expiry_date is None:
            return ExpiryValidationResult.ok()

        now = self._clock.now()
        if not batch.is_expired(now):
            return ExpiryValidationResult.ok()

        expiry = batch.expiry_date.isoformat()
        if label == MovementType.SALE.value:
            return ExpiryValidationResult.reject(
                f"Cannot sell expired batch {batch.id}. Expiry date: {expiry}"
            )
        if label in {t.value for t in self._WARN_AND_PROCEED}:
            return ExpiryValidationResult.ok(
                f"Batch expired on {expiry}. Proceeding with {label}."
            )
        if label in {t.value for t in self._EXPECTED_ON_EXPIRED}:
            return ExpiryValidationResult.ok(
                f"Processing {label} for expired batch {batch.id}"
            )
        return ExpiryValidationResult.reject(f"Unknown movement type: {label}")

    def on_batch_created(self, batch):
        if batch.expiry_date is not None:
            logger.info(
                "batch_created_with_expiry",
                extra={
                    "batch_id": str(batch.id),
                    "product_variant_id": batch.product_variant_id,
                    "expiry_date": batch.expiry_date,
                },
            )

    def on_batch_expired(self, batch):
        logger.warning(
            "batch_expired",
            extra={
                "batch_id": str(batch.id),
                "product_variant_id": batch.product_variant_id,
                "expiry_date": batch.expiry_date,
                "remaining_quantity": batch.quantity,
            },
        )


class StrictExpiryPolicy(DefaultExpiryPolicy):
    """Like DEFAULT, but an expired batch may only leave through WRITE_OFF or EXPIRY."""

    name = "STRICT"

    def validate_before_consume(self, batch, quantity, movement_type):
        result = super().validate_before_consume(batch, quantity, movement_type)
        if result.allowed and _movement_label(movement_type) in {
            t.value for t in self._WARN_AND_PROCEED
        }:
            if batch.expiry_date is not None and batch.is_expired(self._clock.now()):
                return ExpiryValidationResult.reject(
                    f"Cannot {_movement_label(movement_type)} expired batch {batch.id}. "
                    f"Expiry date: {batch.expiry_date.isoformat()}"
                )
        return result


def default_expiry_policies(clock: Clock | None = None) -> dict[str, ExpiryPolicy]:
    """Registry of built-in policies keyed by name."""
    policies: list[ExpiryPolicy] = [DefaultExpiryPolicy(clock), StrictExpiryPolicy(clock)]
    return {p.name: p for p in policies}
