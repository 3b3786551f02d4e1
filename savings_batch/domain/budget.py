"""
Resource budget accounting for daily runs.

ResourceBudget is the caller-visible allowance for one call: every step
of a contribution charges it, and a charge that does not fit raises
BudgetExhaustedError before anything is consumed.

AdaptiveCostEstimator predicts the cost of the next item from the
observed cost of successful ones.  It moves a quarter of the way up
towards a more expensive observation, halves the gap to a much cheaper
one (below 80% of the estimate), and ignores anything in between, so a
single outlier does not swing it.
"""

from __future__ import annotations

from savings_kernel.db.types import validate_amount
from savings_kernel.exceptions import BudgetExhaustedError


class ResourceBudget:
    """Finite allowance of abstract resource units."""

    def __init__(self, limit: int):
        self._limit = validate_amount("budget_limit", limit)
        self._used = 0

    @classmethod
    def unlimited(cls) -> ResourceBudget:
        return cls(2**256 - 1)

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def used(self) -> int:
        return self._used

    @property
    def remaining(self) -> int:
        return self._limit - self._used

    def can_afford(self, units: int) -> bool:
        return units <= self.remaining

    def charge(self, units: int) -> int:
        """
        Consume ``units``.  Returns the remaining budget.

        Raises:
            BudgetExhaustedError: If ``units`` exceeds what is left.  Nothing
                is consumed in that case.
        """
        validate_amount("units", units)
        if units > self.remaining:
            raise BudgetExhaustedError(units, self.remaining)
        self._used += units
        return self.remaining

    def __repr__(self) -> str:
        return f"ResourceBudget(limit={self._limit}, used={self._used})"


class AdaptiveCostEstimator:
    """Exponentially smoothed per-item cost estimate."""

    def __init__(self, initial_estimate: int):
        self._estimate = validate_amount("initial_estimate", initial_estimate)

    @property
    def estimate(self) -> int:
        return self._estimate

    def observe(self, actual: int) -> int:
        """Fold one observed item cost into the estimate and return it."""
        validate_amount("actual", actual)
        estimate = self._estimate
        if actual > estimate:
            estimate += (actual - estimate) // 4
        elif actual < estimate * 8 // 10:
            estimate = (estimate + actual) // 2
        self._estimate = estimate
        return estimate
