"""Database layer - engine, base classes and column types."""

from savings_kernel.db.base import UUID, Base, UInt256, UUIDString
from savings_kernel.db.engine import (
    create_ledger_engine,
    create_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    session_scope,
)
from savings_kernel.db.types import BPS_DENOMINATOR, ONE_DAY

__all__ = [
    "get_engine",
    "get_session",
    "init_engine_from_url",
    "create_ledger_engine",
    "create_tables",
    "session_scope",
    "Base",
    "UUIDString",
    "UInt256",
    "UUID",
    "BPS_DENOMINATOR",
    "ONE_DAY",
]
