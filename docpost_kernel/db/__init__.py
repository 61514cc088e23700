"""Database layer - engine, base classes, types, and immutability."""

from docpost_kernel.db.base import SYSTEM_ACTOR_ID, UUID, Base, TrackedBase, UUIDString
from docpost_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from docpost_kernel.db.types import Currency, Money, Quantity

__all__ = [
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "SYSTEM_ACTOR_ID",
    "init_engine_from_url",
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "drop_tables",
    "reset_engine",
    "Money",
    "Quantity",
    "Currency",
]
