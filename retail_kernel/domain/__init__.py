"""Pure domain types for the retail kernel (no I/O)."""
