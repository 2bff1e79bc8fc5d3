"""Database layer - engine, base classes and column types."""

from billing_kernel.db.base import UUID, Base, TimestampedBase, UTCDateTime, UUIDString
from billing_kernel.db.engine import create_tables, get_engine, get_session

__all__ = [
    "get_engine",
    "get_session",
    "create_tables",
    "Base",
    "TimestampedBase",
    "UTCDateTime",
    "UUIDString",
    "UUID",
]
