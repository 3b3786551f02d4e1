"""
savings_batch.domain.types -- Pure frozen dataclasses for daily runs.

ZERO I/O.  Frozen dataclasses with enum status fields and tuples for
immutable collections.

Invariants enforced:
    - A SKIPPED result always carries a SkipReason; a SUCCEEDED one never
      does.
    - DailyRunResult.total_saved is the sum of the succeeded amounts.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ContributionStatus(str, Enum):
    """Outcome of one (user, asset) item."""

    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"  # Not attempted or not due; see SkipReason
    FAILED = "failed"  # Unexpected error, item rolled back


class SkipReason(str, Enum):
    """Why an item produced no contribution."""

    PLAN_DISABLED = "plan_disabled"
    GOAL_REACHED = "goal_reached"
    NOT_DUE = "not_due"  # Less than one whole day since the last run
    PLAN_EXPIRED = "plan_expired"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    INSUFFICIENT_ALLOWANCE = "insufficient_allowance"
    TRANSFER_FAILED = "transfer_failed"
    BUDGET_EXHAUSTED = "budget_exhausted"


@dataclass(frozen=True)
class ContributionResult:
    """Result of ``DailyContributionProcessor.execute_one``."""

    user: str
    asset: str
    status: ContributionStatus
    amount: int = 0
    days_elapsed: int = 0
    reason: SkipReason | None = None
    cost: int = 0  # Budget units consumed by this item
    goal_completed: bool = False
    yield_applied: bool = False
    error_code: str | None = None
    error_message: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status is ContributionStatus.SUCCEEDED


@dataclass(frozen=True)
class DailyRunResult:
    """Result of ``DailyContributionProcessor.execute_for_user``."""

    user: str
    total_saved: int
    succeeded: int
    skipped: int
    failed: int
    item_results: tuple[ContributionResult, ...] = ()
    budget_used: int = 0
    estimate: int = 0  # Per-item cost estimate after the run

    @property
    def total_items(self) -> int:
        return len(self.item_results)


@dataclass(frozen=True)
class PlanStatus:
    """Read-only view of where a plan stands right now."""

    user: str
    asset: str
    enabled: bool
    goal_reached: bool
    days_elapsed: int
    amount_due: int
    current_amount: int
    goal_amount: int
    remaining_to_goal: int | None


@dataclass(frozen=True)
class PlanWithdrawal:
    """Result of withdrawing from a plan: ``paid_out + penalty == amount``."""

    user: str
    asset: str
    amount: int
    paid_out: int
    penalty: int
    early: bool
