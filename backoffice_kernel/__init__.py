"""
Back-office Kernel

Shared infrastructure for the procurement and finance back-office core:
- Decimal-safe ledger primitives (3-place money, 0.001 tolerance)
- Per-tenant database isolation
- Typed, coded exceptions
- Structured JSON logging
- Explicit state-transition tables
"""

__version__ = "0.1.0"
