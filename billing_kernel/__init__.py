"""
Billing Kernel - shared infrastructure for the recurring billing engine.

Provides:
- Structured JSON logging with run-scoped context
- Typed exception hierarchy with machine-readable codes
- Injectable clocks for deterministic scheduling
- SQLAlchemy declarative base, engine and session helpers
"""

__version__ = "0.1.0"
