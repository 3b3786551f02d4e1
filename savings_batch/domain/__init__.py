"""savings_batch.domain -- Pure types and budget arithmetic.  ZERO I/O."""

from savings_batch.domain.budget import AdaptiveCostEstimator, ResourceBudget
from savings_batch.domain.types import (
    ContributionResult,
    ContributionStatus,
    DailyRunResult,
    PlanStatus,
    PlanWithdrawal,
    SkipReason,
)

__all__ = [
    "AdaptiveCostEstimator",
    "ContributionResult",
    "ContributionStatus",
    "DailyRunResult",
    "PlanStatus",
    "PlanWithdrawal",
    "ResourceBudget",
    "SkipReason",
]
