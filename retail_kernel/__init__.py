"""
Retail Kernel - inventory costing and ledger posting core.

Provides:
- Batch-level inventory persistence with append-only movements
- Balanced, idempotent double-entry journal postings
- Typed errors and structured JSON logging shared by all layers
"""

__version__ = "0.1.0"
