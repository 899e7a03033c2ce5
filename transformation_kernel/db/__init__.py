"""Database layer - engine, base classes, types, and immutability guards."""

from transformation_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from transformation_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    session_scope,
)
from transformation_kernel.db.types import Money, Quantity, round_money, round_quantity

__all__ = [
    "Base",
    "Money",
    "Quantity",
    "TrackedBase",
    "UUID",
    "UUIDString",
    "create_tables",
    "drop_tables",
    "get_engine",
    "get_session",
    "init_engine_from_url",
    "round_money",
    "round_quantity",
    "session_scope",
]
