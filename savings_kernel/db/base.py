"""
Module: savings_kernel.db.base
Responsibility: Declarative base class for all SQLAlchemy ORM models.  Provides
    the UUID primary key convention, the unsigned 256-bit integer column type,
    and the type annotation map for consistent column types.
Architecture position: Kernel > DB.  This is the lowest-level import target
    within the kernel.  ALL model files import from here.  This module MUST NOT
    import from models/, services/, domain/, or outer layers.

Invariants enforced:
    - UUID primary keys: Every model inherits a uuid4-generated primary key.
    - Token amounts are exact integers: UInt256 stores Python ints as decimal
      strings so no backend ever coerces a balance to floating point.
      NEVER use float for amounts.
    - Timestamps are integer UNIX seconds (BigInteger) taken from the
      injected Clock.

Failure modes:
    - InvalidInputError on bind if an amount is negative or >= 2**256.
"""

from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from savings_kernel.exceptions import InvalidInputError

UINT256_MAX = 2**256 - 1


class UUIDString(TypeDecorator):
    """
    UUID type stored as String(36) for cross-database portability.

    Guarantees:
        - process_bind_param: UUID -> str on INSERT/UPDATE.
        - process_result_value: str -> UUID on SELECT.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return PyUUID(value)
        return None


class UInt256(TypeDecorator):
    """
    Unsigned 256-bit integer stored as a decimal String(78).

    Contract:
        Balances, fee accumulators and packed config words are arbitrary
        precision Python ints.  SQLite's NUMERIC affinity silently turns
        large integers into REAL, so the value travels as text.

    Guarantees:
        - process_bind_param: int -> str, range-checked to [0, 2**256).
        - process_result_value: str -> int.
    """

    impl = String(78)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidInputError("uint256", value, "must be an int")
        if value < 0 or value > UINT256_MAX:
            raise InvalidInputError("uint256", value, "out of range [0, 2**256)")
        return str(value)

    def process_result_value(self, value, dialect):
        if value is not None:
            return int(value)
        return None


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Guarantees:
        - id is always a uuid4-generated UUID stored as String(36).
        - int maps to BigInteger (timestamps, counters, basis points).
        - Amount columns declare UInt256 explicitly.
    """

    type_annotation_map: ClassVar[dict] = {
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


# Re-export UUID for convenience
UUID = PyUUID
