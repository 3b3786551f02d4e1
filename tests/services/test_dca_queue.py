"""
Tests for DcaQueueService: enqueue validation, the pending filter,
idempotent execution flags and gated execution.
"""

import pytest

from savings_config.schema import ProtocolConfig
from savings_kernel.exceptions import (
    AssetNotRegisteredError,
    IndexOutOfBoundsError,
    InsufficientSavingsError,
    InvalidInputError,
    OrderNotEligibleError,
    SlippageExceededError,
)


@pytest.fixture
def funded(system, accounts):
    """Alice holds 1000 USDC of savings (and the matching shares)."""
    system.engine.credit(accounts.alice, accounts.usdc, 1_000)
    return system


class TestEnqueue:
    def test_defaults(self, system, accounts, clock, config):
        order = system.dca.enqueue(accounts.alice, accounts.usdc, accounts.weth, 500)

        assert order.index == 0
        assert order.execution_tick == 0
        assert order.deadline == clock.timestamp() + config.default_dca_deadline_seconds
        assert order.enqueued_at == clock.timestamp()
        assert not order.executed
        assert system.ledger.dca_queue_length(accounts.alice) == 1

    def test_execution_tick_moves_in_order_favor(self, system, accounts, quotes):
        system.dca.set_tick_strategy(accounts.alice, tick_delta=25)
        quotes.ticks[(accounts.usdc, accounts.weth)] = 100
        quotes.ticks[(accounts.weth, accounts.usdc)] = 100

        up = system.dca.enqueue(accounts.alice, accounts.usdc, accounts.weth, 1)
        down = system.dca.enqueue(accounts.alice, accounts.weth, accounts.usdc, 1)
        assert (up.execution_tick, down.execution_tick) == (125, 75)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"amount": 0},
            {"to_asset": "0xusdc"},
            {"deadline": 1_704_110_400},
            {"custom_slippage_bps": 1_001},
        ],
    )
    def test_invalid_orders(self, system, accounts, kwargs):
        params = {"from_asset": accounts.usdc, "to_asset": accounts.weth, "amount": 10}
        params.update(kwargs)
        with pytest.raises(InvalidInputError):
            system.dca.enqueue(accounts.alice, **params)
        assert system.dca.orders(accounts.alice) == ()

    def test_out_of_bounds_mark(self, system, accounts):
        with pytest.raises(IndexOutOfBoundsError):
            system.dca.mark_executed(accounts.alice, 3)


class TestQueueLimit:
    @pytest.fixture
    def config(self):
        return ProtocolConfig(max_dca_queue_length=2)

    def test_pending_orders_capped(self, system, accounts):
        system.dca.enqueue(accounts.alice, accounts.usdc, accounts.weth, 1)
        system.dca.enqueue(accounts.alice, accounts.usdc, accounts.weth, 2)
        with pytest.raises(InvalidInputError) as exc_info:
            system.dca.enqueue(accounts.alice, accounts.usdc, accounts.weth, 3)
        assert exc_info.value.field == "dca_queue"

    def test_executed_orders_free_a_slot(self, system, accounts):
        system.dca.enqueue(accounts.alice, accounts.usdc, accounts.weth, 1)
        system.dca.enqueue(accounts.alice, accounts.usdc, accounts.weth, 2)
        system.dca.mark_executed(accounts.alice, 0)
        order = system.dca.enqueue(accounts.alice, accounts.usdc, accounts.weth, 3)
        assert order.index == 2


class TestPendingOrders:
    def test_filters_executed_and_expired(self, system, accounts, clock):
        system.dca.enqueue(accounts.alice, accounts.usdc, accounts.weth, 1)
        system.dca.enqueue(
            accounts.alice, accounts.usdc, accounts.weth, 2, deadline=clock.timestamp() + 60
        )
        system.dca.enqueue(accounts.alice, accounts.usdc, accounts.weth, 3)
        system.dca.mark_executed(accounts.alice, 2)
        clock.advance(60)

        pending = system.dca.pending_orders(accounts.alice)
        assert [o.index for o in pending] == [0]
        assert len(system.dca.orders(accounts.alice)) == 3

    def test_mark_executed_idempotent(self, system, accounts):
        system.dca.enqueue(accounts.alice, accounts.usdc, accounts.weth, 1)
        assert system.dca.mark_executed(accounts.alice, 0)
        assert not system.dca.mark_executed(accounts.alice, 0)
        assert system.ledger.get_dca_order(accounts.alice, 0).executed


class TestExecuteOrder:
    def test_ungated_order_converts(self, funded, accounts, share_token, converter):
        funded.dca.enqueue(accounts.alice, accounts.usdc, accounts.weth, 400)

        received = funded.dca.execute_order(accounts.alice, 0)

        assert received == 400
        assert converter.calls == [(accounts.usdc, accounts.weth, 400, 398)]
        assert funded.ledger.get_savings(accounts.alice, accounts.usdc).balance == 600
        assert funded.ledger.get_savings(accounts.alice, accounts.weth).balance == 400
        assert share_token.shares(accounts.alice, accounts.usdc) == 600
        assert share_token.shares(accounts.alice, accounts.weth) == 400
        assert funded.ledger.get_dca_order(accounts.alice, 0).executed

    def test_executed_order_rejected(self, funded, accounts):
        funded.dca.enqueue(accounts.alice, accounts.usdc, accounts.weth, 400)
        funded.dca.execute_order(accounts.alice, 0)
        with pytest.raises(OrderNotEligibleError) as exc_info:
            funded.dca.execute_order(accounts.alice, 0)
        assert exc_info.value.reason == "executed"

    def test_price_gate(self, funded, accounts, quotes):
        funded.dca.set_tick_strategy(accounts.alice, only_improve_price=True, min_tick_improvement=5)
        funded.dca.enqueue(accounts.alice, accounts.usdc, accounts.weth, 100)

        with pytest.raises(OrderNotEligibleError) as exc_info:
            funded.dca.execute_order(accounts.alice, 0)
        assert exc_info.value.reason == "awaiting_price"

        quotes.ticks[(accounts.usdc, accounts.weth)] = 5
        assert funded.dca.execute_order(accounts.alice, 0) == 100

    def test_tick_expiry_forces_execution(self, funded, accounts, clock):
        funded.dca.set_tick_strategy(
            accounts.alice, tick_expiry_time=600, only_improve_price=True, min_tick_improvement=5
        )
        funded.dca.enqueue(accounts.alice, accounts.usdc, accounts.weth, 100)
        clock.advance(600)
        assert funded.dca.execute_order(accounts.alice, 0) == 100

    def test_expired_order_rejected(self, funded, accounts, clock):
        funded.dca.enqueue(
            accounts.alice, accounts.usdc, accounts.weth, 100, deadline=clock.timestamp() + 10
        )
        clock.advance(10)
        with pytest.raises(OrderNotEligibleError) as exc_info:
            funded.dca.execute_order(accounts.alice, 0)
        assert exc_info.value.reason == "expired"

    def test_insufficient_source_savings(self, funded, accounts):
        funded.dca.enqueue(accounts.alice, accounts.usdc, accounts.weth, 1_001)
        with pytest.raises(InsufficientSavingsError):
            funded.dca.execute_order(accounts.alice, 0)
        assert not funded.ledger.get_dca_order(accounts.alice, 0).executed

    def test_slippage_rolls_back(self, funded, accounts, converter):
        converter.haircut_bps = 100
        funded.dca.enqueue(accounts.alice, accounts.usdc, accounts.weth, 1_000)

        with pytest.raises(SlippageExceededError) as exc_info:
            funded.dca.execute_order(accounts.alice, 0)

        assert exc_info.value.expected_min == 995
        assert exc_info.value.received == 990
        assert funded.ledger.get_savings(accounts.alice, accounts.usdc).balance == 1_000
        assert funded.ledger.get_savings(accounts.alice, accounts.weth).balance == 0
        assert not funded.ledger.get_dca_order(accounts.alice, 0).executed

    def test_custom_slippage_overrides_user_default(self, funded, accounts, converter):
        converter.haircut_bps = 100
        funded.dca.enqueue(
            accounts.alice, accounts.usdc, accounts.weth, 1_000, custom_slippage_bps=200
        )
        assert funded.dca.execute_order(accounts.alice, 0) == 990

    def test_unregistered_target(self, funded, accounts):
        funded.dca.enqueue(accounts.alice, accounts.usdc, "0xunlisted", 10)
        with pytest.raises(AssetNotRegisteredError):
            funded.dca.execute_order(accounts.alice, 0)


class TestEnableDca:
    def test_enable_and_disable(self, system, accounts):
        system.strategies.set_strategy(accounts.alice, percentage=100)
        system.dca.enable_dca(accounts.alice, accounts.weth)
        assert system.ledger.get_user_config(accounts.alice).enable_dca
        assert system.ledger.get_dca_target(accounts.alice) == accounts.weth
        assert system.ledger.get_user_config(accounts.alice).percentage == 100

        system.dca.disable_dca(accounts.alice)
        assert not system.ledger.get_user_config(accounts.alice).enable_dca
        assert system.ledger.get_dca_target(accounts.alice) is None

    def test_target_must_be_registered(self, system, accounts):
        with pytest.raises(AssetNotRegisteredError):
            system.dca.enable_dca(accounts.alice, "0xunlisted")
