"""
ORM model for scheduled daily contributions.

Contract:
    One DailyPlanModel per (user, asset).  ``position`` is the plan's index
    in the user's append-only asset list; cancelling a plan only clears
    ``enabled``, so positions stay stable for the batch processor.
"""

from __future__ import annotations

from sqlalchemy import BigInteger, Boolean, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from savings_kernel.db.base import Base, UInt256
from savings_kernel.db.types import ADDRESS_LENGTH
from savings_kernel.domain.values import DailyContributionPlan


class DailyPlanModel(Base):
    """Daily contribution plan of one user in one asset."""

    __tablename__ = "daily_plans"

    __table_args__ = (
        UniqueConstraint("user", "asset", name="uq_daily_plans_user_asset"),
        UniqueConstraint("user", "position", name="uq_daily_plans_user_position"),
    )

    user: Mapped[str] = mapped_column(String(ADDRESS_LENGTH), nullable=False)
    asset: Mapped[str] = mapped_column(String(ADDRESS_LENGTH), nullable=False)
    position: Mapped[int] = mapped_column(BigInteger, nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    daily_amount: Mapped[int] = mapped_column(UInt256(), nullable=False)
    goal_amount: Mapped[int] = mapped_column(UInt256(), nullable=False, default=0)
    current_amount: Mapped[int] = mapped_column(UInt256(), nullable=False, default=0)
    penalty_bps: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    end_time: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    start_time: Mapped[int] = mapped_column(BigInteger, nullable=False)
    last_execution_time: Mapped[int] = mapped_column(BigInteger, nullable=False)
    yield_strategy: Mapped[str | None] = mapped_column(String(50), nullable=True)

    def to_dto(self) -> DailyContributionPlan:
        return DailyContributionPlan(
            user=self.user,
            asset=self.asset,
            position=self.position,
            enabled=self.enabled,
            daily_amount=self.daily_amount,
            goal_amount=self.goal_amount,
            current_amount=self.current_amount,
            penalty_bps=self.penalty_bps,
            end_time=self.end_time,
            start_time=self.start_time,
            last_execution_time=self.last_execution_time,
            yield_strategy=self.yield_strategy,
        )
