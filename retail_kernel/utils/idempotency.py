"""
Idempotency key generation utilities.

Idempotency keys ensure that the same economic event always produces the
same journal entry, even when it is posted synchronously and again by a
safety-net listener.
"""

from uuid import UUID


def generate_idempotency_key(event_type: str, natural_id: UUID | str) -> str:
    """
    Generate an idempotency key for an economic event.

    Format: event_type:natural_id

    The key is stored on the JournalEntry and is unique per channel.

    Example:
        >>> generate_idempotency_key("purchase", "PO-1001")
        "purchase:PO-1001"
    """
    return f"{event_type}:{natural_id}"


def parse_idempotency_key(key: str) -> tuple[str, str]:
    """
    Split an idempotency key into (event_type, natural_id).

    Raises:
        ValueError: If key format is invalid.
    """
    parts = key.split(":", 1)
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise ValueError(f"Invalid idempotency key format: {key}")
    return parts[0], parts[1]
