"""
Tests for DailyContributionProcessor.

Covers due-amount arithmetic, goal completion, every skip reason,
SAVEPOINT isolation of a failing item, budget exhaustion mid-run, the
adaptive estimate, best-effort yield, and plan withdrawals.
"""

import pytest

from savings_batch.domain.budget import ResourceBudget
from savings_batch.domain.types import ContributionStatus, SkipReason
from savings_config.schema import ProtocolConfig
from savings_kernel.exceptions import (
    InsufficientSavingsError,
    InvalidInputError,
    WithdrawalFailedError,
)

EXTRA_ASSETS = ("0xaaa", "0xbbb")


@pytest.fixture
def fund(funds, processor, accounts):
    """Give ``user`` a balance of ``asset`` and approve the processor for it."""

    def _fund(asset, amount, user=accounts.alice):
        funds.fund(user, asset, amount, spender=processor.address)

    return _fund


class TestConfigurePlan:
    def test_new_plan(self, processor, accounts, clock):
        plan = processor.configure_plan(accounts.alice, accounts.usdc, 100, goal_amount=250)
        assert plan.enabled
        assert plan.position == 0
        assert plan.start_time == plan.last_execution_time == clock.timestamp()
        assert plan.current_amount == 0

    def test_positions_follow_insertion(self, processor, ledger, accounts):
        processor.configure_plan(accounts.alice, accounts.weth, 1)
        processor.configure_plan(accounts.alice, accounts.usdc, 1)
        processor.configure_plan(accounts.alice, accounts.weth, 2)
        assert ledger.daily_plan_assets(accounts.alice) == (accounts.weth, accounts.usdc)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"daily_amount": 0},
            {"daily_amount": 100, "goal_amount": 50},
            {"daily_amount": 100, "penalty_bps": 3_001},
            {"daily_amount": 100, "end_time": 1},
        ],
    )
    def test_invalid_plans(self, processor, accounts, kwargs):
        with pytest.raises(InvalidInputError):
            processor.configure_plan(accounts.alice, accounts.usdc, **kwargs)

    def test_unknown_plan(self, processor, accounts):
        with pytest.raises(InvalidInputError):
            processor.execute_one(accounts.alice, accounts.usdc)


class TestExecuteOne:
    def test_goal_reached_over_three_days(self, processor, ledger, accounts, clock, fund, share_token):
        fund(accounts.usdc, 1_000)
        processor.configure_plan(accounts.alice, accounts.usdc, 100, goal_amount=250)

        amounts = []
        for _ in range(3):
            clock.advance_days(1)
            amounts.append(processor.execute_one(accounts.alice, accounts.usdc).amount)

        assert amounts == [100, 100, 50]
        plan = ledger.get_daily_plan(accounts.alice, accounts.usdc)
        assert plan.current_amount == 250
        assert not plan.enabled
        assert ledger.get_savings(accounts.alice, accounts.usdc).balance == 250
        assert share_token.shares(accounts.alice, accounts.usdc) == 250

        clock.advance_days(1)
        result = processor.execute_one(accounts.alice, accounts.usdc)
        assert result.reason is SkipReason.PLAN_DISABLED

    def test_missed_days_accumulate_up_to_goal(self, processor, accounts, clock, fund):
        fund(accounts.usdc, 1_000)
        processor.configure_plan(accounts.alice, accounts.usdc, 100, goal_amount=250)
        clock.advance_days(3)

        result = processor.execute_one(accounts.alice, accounts.usdc)

        assert result.succeeded
        assert result.amount == 250
        assert result.days_elapsed == 3
        assert result.goal_completed

    def test_no_treasury_fee(self, processor, ledger, accounts, clock, fund):
        fund(accounts.usdc, 100)
        processor.configure_plan(accounts.alice, accounts.usdc, 100)
        clock.advance_days(1)
        processor.execute_one(accounts.alice, accounts.usdc)
        assert ledger.get_treasury_balance(accounts.usdc) == 0

    def test_not_due(self, processor, accounts, clock):
        processor.configure_plan(accounts.alice, accounts.usdc, 100)
        clock.advance(86_399)
        assert processor.execute_one(accounts.alice, accounts.usdc).reason is SkipReason.NOT_DUE

    def test_expired(self, processor, accounts, clock, fund):
        fund(accounts.usdc, 1_000)
        processor.configure_plan(
            accounts.alice, accounts.usdc, 100, end_time=clock.timestamp() + 2 * 86_400
        )
        clock.advance_days(2)
        assert processor.execute_one(accounts.alice, accounts.usdc).reason is SkipReason.PLAN_EXPIRED

    def test_cancelled(self, processor, accounts, clock):
        processor.configure_plan(accounts.alice, accounts.usdc, 100)
        processor.cancel_plan(accounts.alice, accounts.usdc)
        clock.advance_days(1)
        assert processor.execute_one(accounts.alice, accounts.usdc).reason is SkipReason.PLAN_DISABLED

    def test_insufficient_balance(self, processor, accounts, clock, fund):
        fund(accounts.usdc, 99)
        processor.configure_plan(accounts.alice, accounts.usdc, 100)
        clock.advance_days(1)
        result = processor.execute_one(accounts.alice, accounts.usdc)
        assert result.reason is SkipReason.INSUFFICIENT_BALANCE

    def test_insufficient_allowance(self, processor, accounts, clock, funds):
        funds.fund(accounts.alice, accounts.usdc, 1_000)
        processor.configure_plan(accounts.alice, accounts.usdc, 100)
        clock.advance_days(1)
        result = processor.execute_one(accounts.alice, accounts.usdc)
        assert result.reason is SkipReason.INSUFFICIENT_ALLOWANCE

    def test_transfer_error_becomes_skip(self, processor, ledger, accounts, clock, fund, funds):
        fund(accounts.usdc, 1_000)
        funds.raise_on_transfer = True
        processor.configure_plan(accounts.alice, accounts.usdc, 100)
        clock.advance_days(1)

        result = processor.execute_one(accounts.alice, accounts.usdc)

        assert result.status is ContributionStatus.SKIPPED
        assert result.reason is SkipReason.TRANSFER_FAILED
        assert ledger.get_daily_plan(accounts.alice, accounts.usdc).current_amount == 0

    def test_failure_rolls_back_item(self, processor, ledger, accounts, clock, fund, funds, share_token):
        fund(accounts.usdc, 1_000)
        share_token.fail_mint = True
        processor.configure_plan(accounts.alice, accounts.usdc, 100)
        clock.advance_days(1)

        result = processor.execute_one(accounts.alice, accounts.usdc)

        assert result.status is ContributionStatus.FAILED
        assert result.error_code == "UNHANDLED_EXCEPTION"
        plan = ledger.get_daily_plan(accounts.alice, accounts.usdc)
        assert plan.current_amount == 0
        assert plan.enabled
        assert ledger.get_savings(accounts.alice, accounts.usdc).balance == 0
        assert funds.balance_of(accounts.alice, accounts.usdc) == 1_000
        assert funds.payouts == [(accounts.usdc, accounts.alice, 100)]

    def test_refused_refund_is_logged(
        self, processor, accounts, clock, fund, funds, share_token, captured_logs
    ):
        fund(accounts.usdc, 1_000)
        share_token.fail_mint = True
        funds.refuse_payouts = True
        processor.configure_plan(accounts.alice, accounts.usdc, 100)
        clock.advance_days(1)

        result = processor.execute_one(accounts.alice, accounts.usdc)

        assert result.status is ContributionStatus.FAILED
        (record,) = [r for r in captured_logs() if r["message"] == "daily_refund_failed"]
        assert record["amount"] == 100
        assert record["reason"] == "refused"

    def test_budget_runs_out_mid_item(self, processor, ledger, accounts, clock, fund, funds):
        fund(accounts.usdc, 1_000)
        processor.configure_plan(accounts.alice, accounts.usdc, 100)
        clock.advance_days(1)

        result = processor.execute_one(accounts.alice, accounts.usdc, ResourceBudget(100_000))

        assert result.reason is SkipReason.BUDGET_EXHAUSTED
        assert result.cost == 15_000
        assert ledger.get_daily_plan(accounts.alice, accounts.usdc).current_amount == 0
        assert ledger.get_savings(accounts.alice, accounts.usdc).balance == 0
        assert funds.balance_of(accounts.alice, accounts.usdc) == 1_000
        assert funds.payouts == []

    def test_saved_event_carries_module(self, processor, accounts, clock, fund, captured_logs):
        fund(accounts.usdc, 100)
        processor.configure_plan(accounts.alice, accounts.usdc, 100)
        clock.advance_days(1)

        processor.execute_one(accounts.alice, accounts.usdc)

        (record,) = [r for r in captured_logs() if r["message"] == "daily_contribution_saved"]
        assert record["module"] == processor.address
        assert record["asset"] == accounts.usdc


class TestYield:
    def test_yield_applied(self, processor, accounts, clock, fund, yield_strategy):
        fund(accounts.usdc, 100)
        processor.configure_plan(accounts.alice, accounts.usdc, 100, yield_strategy="vault")
        clock.advance_days(1)

        result = processor.execute_one(accounts.alice, accounts.usdc)

        assert result.yield_applied
        assert result.cost == 155_000
        assert yield_strategy.applied == [(accounts.alice, accounts.usdc, 100, "vault")]

    def test_yield_failure_keeps_contribution(
        self, processor, ledger, accounts, clock, fund, yield_strategy, captured_logs
    ):
        fund(accounts.usdc, 100)
        yield_strategy.fail = True
        processor.configure_plan(accounts.alice, accounts.usdc, 100, yield_strategy="vault")
        clock.advance_days(1)

        result = processor.execute_one(accounts.alice, accounts.usdc)

        assert result.succeeded
        assert not result.yield_applied
        assert ledger.get_savings(accounts.alice, accounts.usdc).balance == 100
        assert any(r["message"] == "yield_application_failed" for r in captured_logs())


@pytest.fixture
def five_plans(system, processor, accounts, clock, fund):
    for asset in EXTRA_ASSETS:
        system.add_asset(asset)
    assets = (accounts.usdc, accounts.weth, accounts.dai) + EXTRA_ASSETS
    for asset in assets:
        fund(asset, 1_000)
        processor.configure_plan(accounts.alice, asset, 100)
    clock.advance_days(1)
    return assets


class TestExecuteForUser:

    def test_unlimited_budget_runs_everything(self, processor, accounts, five_plans):
        run = processor.execute_for_user(accounts.alice, ResourceBudget.unlimited())
        assert run.succeeded == 5
        assert run.total_saved == 500
        assert [r.asset for r in run.item_results] == list(five_plans)

    def test_budget_stops_run_early(self, processor, ledger, accounts, five_plans):
        run = processor.execute_for_user(accounts.alice, ResourceBudget(300_000))

        assert run.succeeded == 2
        assert run.skipped == 3
        assert run.failed == 0
        assert run.total_items == 5
        assert all(
            r.reason is SkipReason.BUDGET_EXHAUSTED for r in run.item_results[2:]
        )
        assert run.total_saved == sum(r.amount for r in run.item_results[:2]) == 200
        assert run.budget_used == 250_000
        assert run.estimate == 150_000
        assert ledger.get_daily_plan(accounts.alice, five_plans[2]).current_amount == 0

    def test_skipped_item_does_not_stop_run(self, processor, accounts, five_plans, funds):
        funds.balances[(accounts.alice, accounts.weth)] = 0
        run = processor.execute_for_user(accounts.alice, ResourceBudget.unlimited())
        assert run.succeeded == 4
        assert run.item_results[1].reason is SkipReason.INSUFFICIENT_BALANCE

    def test_estimate_unchanged_within_tolerance(self, processor, accounts, five_plans):
        processor.execute_for_user(accounts.alice, ResourceBudget.unlimited())
        assert processor.estimator.estimate == 150_000


class TestSmallBatches:
    @pytest.fixture
    def config(self):
        return ProtocolConfig(batch_size=2)

    def test_all_batches_run(self, processor, accounts, five_plans):
        run = processor.execute_for_user(accounts.alice, ResourceBudget.unlimited())
        assert run.succeeded == 5
        assert [r.asset for r in run.item_results] == list(five_plans)

    def test_exhaustion_carries_across_batches(self, processor, accounts, five_plans):
        run = processor.execute_for_user(accounts.alice, ResourceBudget(300_000))
        assert [r.status for r in run.item_results] == [ContributionStatus.SUCCEEDED] * 2 + [
            ContributionStatus.SKIPPED
        ] * 3


class TestPlanStatus:
    def test_status(self, processor, accounts, clock):
        processor.configure_plan(accounts.alice, accounts.usdc, 100, goal_amount=250)
        clock.advance_days(5)
        status = processor.plan_status(accounts.alice, accounts.usdc)
        assert status.days_elapsed == 5
        assert status.amount_due == 250
        assert status.remaining_to_goal == 250


class TestWithdrawFromPlan:
    @pytest.fixture
    def contributed(self, processor, accounts, clock, fund):
        fund(accounts.usdc, 1_000)
        processor.configure_plan(
            accounts.alice, accounts.usdc, 100, goal_amount=500, penalty_bps=1_000
        )
        clock.advance_days(2)
        processor.execute_one(accounts.alice, accounts.usdc)
        return processor

    def test_early_withdrawal_pays_penalty(self, contributed, ledger, accounts, funds):
        result = contributed.withdraw_from_plan(accounts.alice, accounts.usdc, 100)

        assert result.early
        assert (result.paid_out, result.penalty) == (90, 10)
        assert ledger.get_treasury_balance(accounts.usdc) == 10
        assert ledger.get_daily_plan(accounts.alice, accounts.usdc).current_amount == 100
        assert ledger.get_savings(accounts.alice, accounts.usdc).balance == 100
        assert funds.payouts == [(accounts.usdc, accounts.alice, 90)]

    def test_no_penalty_after_goal(self, processor, ledger, accounts, clock, fund):
        fund(accounts.usdc, 1_000)
        processor.configure_plan(
            accounts.alice, accounts.usdc, 100, goal_amount=200, penalty_bps=1_000
        )
        clock.advance_days(2)
        processor.execute_one(accounts.alice, accounts.usdc)

        result = processor.withdraw_from_plan(accounts.alice, accounts.usdc, 200)
        assert not result.early
        assert result.penalty == 0
        assert ledger.get_treasury_balance(accounts.usdc) == 0

    def test_more_than_plan_balance(self, contributed, accounts):
        with pytest.raises(InsufficientSavingsError):
            contributed.withdraw_from_plan(accounts.alice, accounts.usdc, 201)

    def test_refused_payout_changes_nothing(self, contributed, ledger, accounts, funds):
        funds.refuse_payouts = True
        with pytest.raises(WithdrawalFailedError):
            contributed.withdraw_from_plan(accounts.alice, accounts.usdc, 100)
        assert ledger.get_daily_plan(accounts.alice, accounts.usdc).current_amount == 200
        assert ledger.get_treasury_balance(accounts.usdc) == 0
