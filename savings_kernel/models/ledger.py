"""
ORM models for the central ledger's protocol-level state.

Contract:
    LedgerSettings (single row), ModuleRegistryEntry, AssetRegistryEntry
    and TreasuryBalance.  Only SavingsLedger writes these tables.

Invariants enforced:
    - ``module_id`` is UNIQUE: re-registration overwrites the address.
    - ``asset`` is UNIQUE in both the asset registry and the treasury.
"""

from __future__ import annotations

from sqlalchemy import BigInteger, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from savings_kernel.db.base import Base, UInt256
from savings_kernel.db.types import ADDRESS_LENGTH
from savings_kernel.domain.values import AssetEntry


class LedgerSettings(Base):
    """Owner, wiring addresses and fee rate.  Exactly one row once initialized."""

    __tablename__ = "ledger_settings"

    owner: Mapped[str] = mapped_column(String(ADDRESS_LENGTH), nullable=False)
    orchestrator: Mapped[str] = mapped_column(String(ADDRESS_LENGTH), nullable=False)
    exchange_engine: Mapped[str] = mapped_column(String(ADDRESS_LENGTH), nullable=False)
    treasury: Mapped[str] = mapped_column(String(ADDRESS_LENGTH), nullable=False)
    treasury_fee_bps: Mapped[int] = mapped_column(BigInteger, nullable=False)
    initialized_at: Mapped[int] = mapped_column(BigInteger, nullable=False)


class ModuleRegistryEntry(Base):
    """Identifier -> authorized caller address."""

    __tablename__ = "module_registry"

    module_id: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    address: Mapped[str] = mapped_column(String(ADDRESS_LENGTH), nullable=False)
    registered_at: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __table_args__ = (Index("ix_module_registry_address", "address"),)


class AssetRegistryEntry(Base):
    """Asset -> share-token id and round-up granularity."""

    __tablename__ = "asset_registry"

    asset: Mapped[str] = mapped_column(String(ADDRESS_LENGTH), nullable=False, unique=True)
    asset_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    rounding_unit: Mapped[int] = mapped_column(UInt256(), nullable=False, default=1)

    def to_dto(self) -> AssetEntry:
        return AssetEntry(
            asset=self.asset,
            asset_id=self.asset_id,
            rounding_unit=self.rounding_unit,
        )


class TreasuryBalance(Base):
    """Accumulated protocol fees per asset."""

    __tablename__ = "treasury_balances"

    asset: Mapped[str] = mapped_column(String(ADDRESS_LENGTH), nullable=False, unique=True)
    balance: Mapped[int] = mapped_column(UInt256(), nullable=False, default=0)
