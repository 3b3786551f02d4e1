"""Tests for ResourceBudget and AdaptiveCostEstimator."""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from savings_batch.domain.budget import AdaptiveCostEstimator, ResourceBudget
from savings_kernel.exceptions import BudgetExhaustedError, InvalidInputError


class TestResourceBudget:
    def test_charge_reduces_remaining(self):
        budget = ResourceBudget(100)
        assert budget.charge(30) == 70
        assert budget.used == 30
        assert budget.remaining == 70

    def test_exact_fit_allowed(self):
        budget = ResourceBudget(100)
        budget.charge(100)
        assert budget.remaining == 0

    def test_overcharge_rejected_without_consuming(self):
        budget = ResourceBudget(100)
        budget.charge(60)
        with pytest.raises(BudgetExhaustedError) as exc_info:
            budget.charge(41)
        assert exc_info.value.requested == 41
        assert exc_info.value.remaining == 40
        assert budget.remaining == 40

    def test_can_afford(self):
        budget = ResourceBudget(10)
        assert budget.can_afford(10)
        assert not budget.can_afford(11)

    def test_negative_limit_rejected(self):
        with pytest.raises(InvalidInputError):
            ResourceBudget(-1)

    def test_unlimited(self):
        assert ResourceBudget.unlimited().can_afford(10**30)


class TestAdaptiveCostEstimator:
    def test_higher_cost_moves_a_quarter_of_the_gap(self):
        estimator = AdaptiveCostEstimator(100)
        assert estimator.observe(200) == 125

    def test_much_lower_cost_halves_the_gap(self):
        estimator = AdaptiveCostEstimator(100)
        assert estimator.observe(40) == 70

    @pytest.mark.parametrize("actual", [80, 90, 100])
    def test_small_drop_ignored(self, actual):
        estimator = AdaptiveCostEstimator(100)
        assert estimator.observe(actual) == 100

    def test_just_below_eighty_percent_updates(self):
        estimator = AdaptiveCostEstimator(100)
        assert estimator.observe(79) == 89

    def test_converges_towards_steady_cost(self):
        estimator = AdaptiveCostEstimator(1_000)
        for _ in range(50):
            estimator.observe(10_000)
        assert 9_900 <= estimator.estimate <= 10_000

    @given(st.integers(0, 10**12), st.lists(st.integers(0, 10**12), max_size=30))
    def test_estimate_stays_within_observed_range(self, initial, observations):
        estimator = AdaptiveCostEstimator(initial)
        low = high = initial
        for actual in observations:
            low, high = min(low, actual), max(high, actual)
            estimator.observe(actual)
            assert low <= estimator.estimate <= high
