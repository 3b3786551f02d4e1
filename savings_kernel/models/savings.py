"""
ORM models for per-user savings state.

Contract:
    UserConfigModel holds the packed strategy word plus the asset
    selections that do not fit in it.  SavingsBalanceModel holds one
    SavingsRecord per (user, asset).

Invariants enforced:
    - One config row per user; one balance row per (user, asset).
    - ``balance`` is never negative (UInt256 rejects it on bind; the
      ledger raises InsufficientSavingsError before that).
"""

from __future__ import annotations

from sqlalchemy import BigInteger, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from savings_kernel.db.base import Base, UInt256
from savings_kernel.db.types import ADDRESS_LENGTH
from savings_kernel.domain.values import SavingsRecord


class UserConfigModel(Base):
    """Packed UserConfig word (see domain/codec.py for the layout)."""

    __tablename__ = "user_configs"

    user: Mapped[str] = mapped_column(String(ADDRESS_LENGTH), nullable=False, unique=True)
    packed_config: Mapped[int] = mapped_column(UInt256(), nullable=False, default=0)
    specific_asset: Mapped[str | None] = mapped_column(String(ADDRESS_LENGTH), nullable=True)
    dca_target_asset: Mapped[str | None] = mapped_column(String(ADDRESS_LENGTH), nullable=True)
    slippage_bps: Mapped[int | None] = mapped_column(BigInteger, nullable=True)


class SavingsBalanceModel(Base):
    """Savings of one user in one asset."""

    __tablename__ = "savings_balances"

    __table_args__ = (
        UniqueConstraint("user", "asset", name="uq_savings_balances_user_asset"),
    )

    user: Mapped[str] = mapped_column(String(ADDRESS_LENGTH), nullable=False)
    asset: Mapped[str] = mapped_column(String(ADDRESS_LENGTH), nullable=False)
    balance: Mapped[int] = mapped_column(UInt256(), nullable=False, default=0)
    total_saved: Mapped[int] = mapped_column(UInt256(), nullable=False, default=0)
    last_save_time: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    unlock_time: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    def to_dto(self) -> SavingsRecord:
        return SavingsRecord(
            user=self.user,
            asset=self.asset,
            balance=self.balance,
            total_saved=self.total_saved,
            last_save_time=self.last_save_time,
            unlock_time=self.unlock_time,
        )
