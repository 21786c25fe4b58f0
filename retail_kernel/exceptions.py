"""
Typed Exception Hierarchy for the Retail Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Inventory and ledger callers must react to failures precisely. A point-of-sale
screen renders "not enough stock" differently from "the ledger is missing an
account", and neither should be detected by parsing a message string.

Every error therefore:
  1. Has its own class (catch by type, not message)
  2. Has a CODE attribute (machine-readable, API-safe)
  3. Carries structured DATA (quantities, ids, account codes)

Example - WRONG way to handle errors:
    try:
        inventory.record_sale(sale)
    except Exception as e:
        if "Insufficient" in str(e):  # FRAGILE - message might change
            show_stock_warning()

Example - RIGHT way (what this module enables):
    try:
        inventory.record_sale(sale)
    except InsufficientStockError as e:
        show_stock_warning(e.product_variant_id, e.available, e.requested)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from RetailCoreError:

    RetailCoreError (base)
    |
    +-- InventoryError
    |   +-- InsufficientStockError      user-correctable
    |   +-- ExpiryViolationError        user-correctable
    |   +-- InvariantViolationError     bug or race; should not normally occur
    |
    +-- ConfigurationError              operator / deployment fault
    |
    +-- PostingError
    |   +-- PostingAlreadyExistsError   duplicate key; success for retries
    |   +-- UnbalancedEntryError
    |   +-- AccountNotFoundError
    |   +-- PeriodLockedError
    |
    +-- PaymentAllocationError
    |   +-- NoUnpaidOrdersError
    |
    +-- CustomerNotFoundError
    +-- ValidationError

===============================================================================
PROPAGATION
===============================================================================

Every error except PostingAlreadyExistsError aborts the enclosing transaction
and reaches the caller unchanged. Services log at the point of failure before
re-raising; logging never alters control flow.
"""


class RetailCoreError(Exception):
    """
    Base exception for all retail kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "RETAIL_CORE_ERROR"


# Inventory exceptions


class InventoryError(RetailCoreError):
    """Base for inventory costing and movement errors."""

    code: str = "INVENTORY_ERROR"


class InsufficientStockError(InventoryError):
    """Requested quantity exceeds the total of open batches."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        product_variant_id: str,
        stock_location_id: str,
        requested: int,
        available: int,
    ):
        self.product_variant_id = product_variant_id
        self.stock_location_id = stock_location_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for variant {product_variant_id} at location "
            f"{stock_location_id}: requested {requested}, available {available}"
        )


class ExpiryViolationError(InventoryError):
    """The active expiry policy refused consumption of a batch."""

    code: str = "EXPIRY_VIOLATION"

    def __init__(self, batch_id: str, movement_type: str, reason: str):
        self.batch_id = batch_id
        self.movement_type = movement_type
        self.reason = reason
        super().__init__(reason)


class InvariantViolationError(InventoryError):
    """
    A structural inventory invariant would be broken.

    Raised for a negative resulting batch quantity or a referenced batch
    that does not exist.
    """

    code: str = "INVARIANT_VIOLATION"

    def __init__(self, message: str, batch_id: str | None = None):
        self.batch_id = batch_id
        super().__init__(message)


# Configuration exceptions


class ConfigurationError(RetailCoreError):
    """Unknown costing strategy or expiry policy, or malformed config."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(
        self,
        message: str,
        channel_id: str | None = None,
        available: tuple[str, ...] = (),
    ):
        self.channel_id = channel_id
        self.available = available
        super().__init__(message)


# Posting exceptions


class PostingError(RetailCoreError):
    """Base for ledger posting errors."""

    code: str = "POSTING_ERROR"


class PostingAlreadyExistsError(PostingError):
    """
    A posting with this idempotency key was inserted concurrently.

    Not a true failure: retries treat it as success.
    """

    code: str = "POSTING_ALREADY_EXISTS"

    def __init__(self, channel_id: str, idempotency_key: str):
        self.channel_id = channel_id
        self.idempotency_key = idempotency_key
        super().__init__(
            f"Posting already exists for channel {channel_id}: {idempotency_key}"
        )


class UnbalancedEntryError(PostingError):
    """Journal entry debits do not equal credits."""

    code: str = "UNBALANCED_ENTRY"

    def __init__(self, debits: int, credits: int, source_type: str):
        self.debits = debits
        self.credits = credits
        self.source_type = source_type
        super().__init__(
            f"Unbalanced {source_type} posting: debits={debits}, credits={credits}"
        )


class AccountNotFoundError(PostingError):
    """Required accounts are missing from the channel's chart of accounts."""

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, channel_id: str, account_codes: list[str]):
        self.channel_id = channel_id
        self.account_codes = account_codes
        super().__init__(
            f"Missing required accounts for channel {channel_id}: "
            f"{', '.join(account_codes)}. "
            "Initialize the chart of accounts for this channel first."
        )


class PeriodLockedError(PostingError):
    """Entry date falls on or before the channel's period lock date."""

    code: str = "PERIOD_LOCKED"

    def __init__(self, channel_id: str, entry_date: str, lock_end_date: str):
        self.channel_id = channel_id
        self.entry_date = entry_date
        self.lock_end_date = lock_end_date
        super().__init__(
            f"Cannot post to locked period for channel {channel_id}: "
            f"entry date {entry_date} is on or before lock date {lock_end_date}"
        )


# Payment allocation exceptions


class PaymentAllocationError(RetailCoreError):
    """Base for payment allocation errors."""

    code: str = "PAYMENT_ALLOCATION_ERROR"


class NoUnpaidOrdersError(PaymentAllocationError):
    """Customer has no orders with an outstanding balance."""

    code: str = "NO_UNPAID_ORDERS"

    def __init__(self, customer_id: str):
        self.customer_id = customer_id
        super().__init__("No unpaid orders found for this customer")


# Other exceptions


class CustomerNotFoundError(RetailCoreError):
    """Customer does not exist in the read-model."""

    code: str = "CUSTOMER_NOT_FOUND"

    def __init__(self, customer_id: str):
        self.customer_id = customer_id
        super().__init__(f"Customer {customer_id} not found")


class ValidationError(RetailCoreError):
    """Caller supplied an invalid argument."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(message)
