"""Tests for the DCA tick-strategy gate."""

import pytest

from savings_kernel.domain.tick_strategy import (
    evaluate_order,
    gate_tick,
    is_pending,
    tick_improvement,
)
from savings_kernel.domain.values import DcaOrder, DcaTickStrategy

NOW = 1_000_000


def make_order(
    from_asset="0xaaa",
    to_asset="0xbbb",
    execution_tick=100,
    deadline=NOW + 3_600,
    enqueued_at=NOW - 60,
    executed=False,
):
    return DcaOrder(
        user="0xalice",
        index=0,
        from_asset=from_asset,
        to_asset=to_asset,
        amount=1_000,
        execution_tick=execution_tick,
        deadline=deadline,
        enqueued_at=enqueued_at,
        executed=executed,
    )


GATED = DcaTickStrategy(
    tick_delta=10,
    tick_expiry_time=600,
    only_improve_price=True,
    min_tick_improvement=5,
)


class TestDirection:
    def test_zero_for_one_prefers_rising_tick(self):
        order = make_order("0xaaa", "0xbbb", execution_tick=100)
        assert order.zero_for_one
        assert tick_improvement(order, 110) == 10
        assert tick_improvement(order, 90) == -10

    def test_one_for_zero_prefers_falling_tick(self):
        order = make_order("0xbbb", "0xaaa", execution_tick=100)
        assert not order.zero_for_one
        assert tick_improvement(order, 90) == 10

    def test_gate_tick_moves_in_favor(self):
        assert gate_tick(100, True, GATED) == 110
        assert gate_tick(100, False, GATED) == 90


class TestEvaluateOrder:
    def test_ungated_strategy_always_eligible(self):
        decision = evaluate_order(make_order(), DcaTickStrategy(), current_tick=-500, now=NOW)
        assert decision.eligible
        assert decision.reason == "ungated"

    def test_price_improved_enough(self):
        decision = evaluate_order(make_order(), GATED, current_tick=105, now=NOW)
        assert decision.eligible
        assert decision.reason == "price_improved"

    def test_price_improvement_below_minimum_waits(self):
        decision = evaluate_order(make_order(), GATED, current_tick=104, now=NOW)
        assert not decision.eligible
        assert decision.reason == "awaiting_price"

    def test_expiry_forces_execution_regardless_of_price(self):
        order = make_order(enqueued_at=NOW - 600)
        decision = evaluate_order(order, GATED, current_tick=0, now=NOW)
        assert decision.eligible
        assert decision.reason == "tick_expired"

    def test_zero_expiry_never_forces(self):
        strategy = DcaTickStrategy(only_improve_price=True, min_tick_improvement=5)
        order = make_order(enqueued_at=0)
        assert not evaluate_order(order, strategy, current_tick=0, now=NOW).eligible

    def test_executed_order_never_eligible(self):
        decision = evaluate_order(make_order(executed=True), DcaTickStrategy(), 0, NOW)
        assert decision == decision.__class__(False, "executed")

    @pytest.mark.parametrize("deadline", [NOW, NOW - 1])
    def test_expired_order_never_eligible(self, deadline):
        decision = evaluate_order(make_order(deadline=deadline), DcaTickStrategy(), 0, NOW)
        assert not decision.eligible
        assert decision.reason == "expired"


class TestIsPending:
    def test_pending(self):
        assert is_pending(make_order(), NOW)

    def test_executed_not_pending(self):
        assert not is_pending(make_order(executed=True), NOW)

    def test_deadline_reached_not_pending(self):
        assert not is_pending(make_order(deadline=NOW), NOW)
