"""
ORM models for the DCA queue.

Contract:
    DcaOrderModel rows form one append-only list per user, ordered by
    ``position``.  Rows are never deleted; execution flips ``executed``.
    DcaTickStrategyModel holds the per-user price gate.

Invariants enforced:
    - (user, position) is UNIQUE; positions are dense from 0.
"""

from __future__ import annotations

from sqlalchemy import BigInteger, Boolean, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from savings_kernel.db.base import Base, UInt256
from savings_kernel.db.types import ADDRESS_LENGTH
from savings_kernel.domain.values import DcaOrder, DcaTickStrategy


class DcaOrderModel(Base):
    """One queued conversion."""

    __tablename__ = "dca_orders"

    __table_args__ = (
        UniqueConstraint("user", "position", name="uq_dca_orders_user_position"),
    )

    user: Mapped[str] = mapped_column(String(ADDRESS_LENGTH), nullable=False)
    position: Mapped[int] = mapped_column(BigInteger, nullable=False)
    from_asset: Mapped[str] = mapped_column(String(ADDRESS_LENGTH), nullable=False)
    to_asset: Mapped[str] = mapped_column(String(ADDRESS_LENGTH), nullable=False)
    amount: Mapped[int] = mapped_column(UInt256(), nullable=False)
    execution_tick: Mapped[int] = mapped_column(BigInteger, nullable=False)
    deadline: Mapped[int] = mapped_column(BigInteger, nullable=False)
    enqueued_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    executed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    custom_slippage_bps: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    def to_dto(self) -> DcaOrder:
        return DcaOrder(
            user=self.user,
            index=self.position,
            from_asset=self.from_asset,
            to_asset=self.to_asset,
            amount=self.amount,
            execution_tick=self.execution_tick,
            deadline=self.deadline,
            enqueued_at=self.enqueued_at,
            executed=self.executed,
            custom_slippage_bps=self.custom_slippage_bps,
        )


class DcaTickStrategyModel(Base):
    """Per-user tick gate."""

    __tablename__ = "dca_tick_strategies"

    user: Mapped[str] = mapped_column(String(ADDRESS_LENGTH), nullable=False, unique=True)
    tick_delta: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    tick_expiry_time: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    only_improve_price: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    min_tick_improvement: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    def to_dto(self) -> DcaTickStrategy:
        return DcaTickStrategy(
            tick_delta=self.tick_delta,
            tick_expiry_time=self.tick_expiry_time,
            only_improve_price=self.only_improve_price,
            min_tick_improvement=self.min_tick_improvement,
        )
