"""Database layer - engine, base classes, types."""

from procurement_kernel.db.base import UUID, Base, TrackedBase, UTCDateTime, UUIDString
from procurement_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session_factory,
    init_engine_from_url,
)
from procurement_kernel.db.types import Currency, Money, Percent, Quantity

__all__ = [
    "init_engine_from_url",
    "get_engine",
    "get_session_factory",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UTCDateTime",
    "UUID",
    "Money",
    "Quantity",
    "Percent",
    "Currency",
]
