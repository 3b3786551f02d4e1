"""
DailyContributionProcessor -- budgeted, SAVEPOINT-per-item daily saving.

Contract:
    Configures daily contribution plans and executes them.  A run walks
    the user's append-only asset list in fixed-size batches; before each
    batch and each item it checks that the remaining budget covers the
    current per-item estimate, and stops early with partial results when
    it does not.

Architecture: savings_batch/services.  Imports from savings_batch.domain
    and the kernel services.

Invariants enforced:
    - SAVEPOINT isolation per item: one item's failure rolls back only
      that item and never aborts the run.
    - Skips are data: every item yields a ContributionResult; exceptions
      from the funds-transfer service become TRANSFER_FAILED.
    - No funds move unless the budget covers transfer, state write and
      mint together; funds pulled by an item that then rolls back are
      transferred back to the user.
    - Contribution = daily_amount * whole days elapsed, capped at the
      remaining goal.
    - Reaching the goal disables the plan.
    - Yield application is best-effort: its failure is logged and the
      contribution stands.
    - All timestamps from the injected Clock.
"""

from __future__ import annotations

import time

from savings_kernel.db.types import ONE_DAY, normalize_address, validate_amount
from savings_kernel.domain.fees import apply_penalty
from savings_kernel.domain.ports import YieldStrategy
from savings_kernel.domain.values import DailyContributionPlan
from savings_kernel.exceptions import (
    BudgetExhaustedError,
    InsufficientSavingsError,
    InvalidInputError,
    WithdrawalLockedError,
)
from savings_kernel.logging_config import LogContext, get_logger
from savings_kernel.services.system import DAILY_MODULE, SavingsSystem, module_address

from savings_batch.domain.budget import AdaptiveCostEstimator, ResourceBudget
from savings_batch.domain.types import (
    ContributionResult,
    ContributionStatus,
    DailyRunResult,
    PlanStatus,
    PlanWithdrawal,
    SkipReason,
)

logger = get_logger("batch.daily")


def days_elapsed(plan: DailyContributionPlan, now: int) -> int:
    """Whole days since the plan last ran."""
    if now <= plan.last_execution_time:
        return 0
    return (now - plan.last_execution_time) // ONE_DAY


def amount_due(plan: DailyContributionPlan, elapsed: int) -> int:
    """Contribution for ``elapsed`` days, capped at the remaining goal."""
    amount = plan.daily_amount * elapsed
    remaining = plan.remaining_to_goal
    if remaining is not None:
        amount = min(amount, remaining)
    return amount


class DailyContributionProcessor:
    """Daily contribution engine with SAVEPOINT-per-item isolation.

    Contract:
        - ``configure_plan()`` / ``cancel_plan()`` manage plans.
        - ``execute_for_user()`` runs every plan of a user under a budget.
        - ``execute_one()`` runs a single plan.
        - ``withdraw_from_plan()`` pays out plan savings, minus the
          early-withdrawal penalty.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT decide when runs happen; the host schedules them.
    """

    def __init__(
        self,
        system: SavingsSystem,
        yield_strategy: YieldStrategy | None = None,
        address: str | None = None,
        estimator: AdaptiveCostEstimator | None = None,
    ):
        self._system = system
        self._ledger = system.ledger
        self._session = system.session
        self._config = system.config
        self._clock = system.clock
        self._funds = system.funds
        self._yield = yield_strategy
        self._address = normalize_address(address or module_address(DAILY_MODULE))
        self._estimator = estimator or AdaptiveCostEstimator(
            self._config.initial_item_estimate
        )

    @property
    def address(self) -> str:
        return self._address

    @property
    def estimator(self) -> AdaptiveCostEstimator:
        return self._estimator

    # -------------------------------------------------------------------------
    # Plan management
    # -------------------------------------------------------------------------

    def configure_plan(
        self,
        user: str,
        asset: str,
        daily_amount: int,
        goal_amount: int = 0,
        penalty_bps: int = 0,
        end_time: int = 0,
        yield_strategy: str | None = None,
    ) -> DailyContributionPlan:
        """Create or replace the plan for (user, asset).

        The first contribution falls due one day after configuration.

        Raises:
            AssetNotRegisteredError: If ``asset`` has no share-token id.
            InvalidInputError: On out-of-range amounts, penalty or end time.
        """
        self._ledger.asset_entry(asset)
        plan = self._ledger.put_daily_plan(
            self._address,
            user,
            asset,
            daily_amount=daily_amount,
            goal_amount=goal_amount,
            penalty_bps=penalty_bps,
            end_time=end_time,
            yield_strategy=yield_strategy,
        )
        logger.info(
            "daily_plan_configured",
            extra={
                "user": plan.user,
                "asset": plan.asset,
                "daily_amount": daily_amount,
                "goal_amount": goal_amount,
                "penalty_bps": penalty_bps,
                "end_time": end_time,
                "position": plan.position,
            },
        )
        return plan

    def cancel_plan(self, user: str, asset: str) -> None:
        """Disable a plan.  It keeps its position and its savings."""
        self._ledger.set_daily_plan_enabled(self._address, user, asset, False)
        logger.info(
            "daily_plan_cancelled",
            extra={"user": normalize_address(user, "user"), "asset": normalize_address(asset, "asset")},
        )

    def _require_plan(self, user: str, asset: str) -> DailyContributionPlan:
        plan = self._ledger.get_daily_plan(user, asset)
        if plan is None:
            raise InvalidInputError("asset", asset, "no daily plan configured")
        return plan

    def plan_status(self, user: str, asset: str) -> PlanStatus:
        plan = self._require_plan(user, asset)
        elapsed = days_elapsed(plan, self._clock.timestamp())
        due = 0
        if plan.enabled and not plan.goal_reached:
            due = amount_due(plan, elapsed)
        return PlanStatus(
            user=plan.user,
            asset=plan.asset,
            enabled=plan.enabled,
            goal_reached=plan.goal_reached,
            days_elapsed=elapsed,
            amount_due=due,
            current_amount=plan.current_amount,
            goal_amount=plan.goal_amount,
            remaining_to_goal=plan.remaining_to_goal,
        )

    # -------------------------------------------------------------------------
    # Execute
    # -------------------------------------------------------------------------

    def execute_for_user(self, user: str, budget: ResourceBudget) -> DailyRunResult:
        """Run every plan of ``user`` in batches of ``config.batch_size``.

        Items the budget cannot cover are reported as BUDGET_EXHAUSTED
        without being attempted.
        """
        user = normalize_address(user, "user")
        assets = self._ledger.daily_plan_assets(user)
        batch_size = self._config.batch_size
        reserve = self._config.min_budget_reserve
        start_used = budget.used

        results: list[ContributionResult] = []
        exhausted = False

        with LogContext.bind(user=user, module=self._address, operation="daily_run"):
            logger.info(
                "daily_run_started",
                extra={"items": len(assets), "budget": budget.remaining,
                       "estimate": self._estimator.estimate},
            )

            for start in range(0, len(assets), batch_size):
                batch = assets[start:start + batch_size]
                if not exhausted and not budget.can_afford(self._estimator.estimate + reserve):
                    exhausted = True
                    logger.info(
                        "daily_batch_skipped",
                        extra={"batch_start": start, "remaining": budget.remaining},
                    )

                for asset in batch:
                    if not exhausted and not budget.can_afford(self._estimator.estimate + reserve):
                        exhausted = True
                    if exhausted:
                        results.append(self._skipped(user, asset, SkipReason.BUDGET_EXHAUSTED))
                        continue

                    result = self.execute_one(user, asset, budget)
                    results.append(result)
                    if result.reason is SkipReason.BUDGET_EXHAUSTED:
                        exhausted = True

        run = DailyRunResult(
            user=user,
            total_saved=sum(r.amount for r in results if r.succeeded),
            succeeded=sum(1 for r in results if r.status is ContributionStatus.SUCCEEDED),
            skipped=sum(1 for r in results if r.status is ContributionStatus.SKIPPED),
            failed=sum(1 for r in results if r.status is ContributionStatus.FAILED),
            item_results=tuple(results),
            budget_used=budget.used - start_used,
            estimate=self._estimator.estimate,
        )
        logger.info(
            "daily_run_completed",
            extra={
                "user": user,
                "total_saved": run.total_saved,
                "succeeded": run.succeeded,
                "skipped": run.skipped,
                "failed": run.failed,
                "budget_used": run.budget_used,
                "estimate": run.estimate,
            },
        )
        return run

    def execute_one(
        self,
        user: str,
        asset: str,
        budget: ResourceBudget | None = None,
    ) -> ContributionResult:
        """Run the plan for (user, asset) in its own SAVEPOINT.

        Raises:
            InvalidInputError: If no plan is configured for the pair.
        """
        user = normalize_address(user, "user")
        asset = normalize_address(asset, "asset")
        budget = budget or ResourceBudget.unlimited()
        costs = self._config.costs
        start_used = budget.used

        with LogContext.bind(
            user=user, module=self._address, asset=asset, operation="daily_contribution"
        ):
            try:
                budget.charge(costs.plan_read)
            except BudgetExhaustedError:
                return self._skipped(user, asset, SkipReason.BUDGET_EXHAUSTED)

            plan = self._require_plan(user, asset)
            now = self._clock.timestamp()
            elapsed = days_elapsed(plan, now)

            reason = self._precheck(plan, now, elapsed)
            if reason is not None:
                return self._skipped(user, asset, reason, budget.used - start_used, elapsed)

            amount = amount_due(plan, elapsed)
            try:
                budget.charge(costs.balance_check)
                if self._funds.balance_of(user, asset) < amount:
                    return self._skipped(
                        user, asset, SkipReason.INSUFFICIENT_BALANCE,
                        budget.used - start_used, elapsed,
                    )
                budget.charge(costs.balance_check)
                if self._funds.allowance(user, self._address, asset) < amount:
                    return self._skipped(
                        user, asset, SkipReason.INSUFFICIENT_ALLOWANCE,
                        budget.used - start_used, elapsed,
                    )
            except BudgetExhaustedError:
                return self._skipped(
                    user, asset, SkipReason.BUDGET_EXHAUSTED,
                    budget.used - start_used, elapsed,
                )

            if not budget.can_afford(costs.transfer + costs.state_write + costs.mint):
                return self._skipped(
                    user, asset, SkipReason.BUDGET_EXHAUSTED,
                    budget.used - start_used, elapsed,
                )

            item_start = time.monotonic()
            pulled = False
            savepoint = self._session.begin_nested()
            try:
                budget.charge(costs.transfer)
                pulled = self._pull_funds(user, asset, amount)
                if not pulled:
                    savepoint.rollback()
                    return self._skipped(
                        user, asset, SkipReason.TRANSFER_FAILED,
                        budget.used - start_used, elapsed,
                    )

                budget.charge(costs.state_write)
                updated = self._ledger.record_daily_contribution(
                    self._address, user, asset, amount, now
                )
                goal_completed = updated.goal_reached
                if goal_completed:
                    self._ledger.set_daily_plan_enabled(self._address, user, asset, False)

                budget.charge(costs.mint)
                self._system.engine.credit(user, asset, amount)
                savepoint.commit()

            except BudgetExhaustedError:
                savepoint.rollback()
                if pulled:
                    self._refund(user, asset, amount)
                return self._skipped(
                    user, asset, SkipReason.BUDGET_EXHAUSTED,
                    budget.used - start_used, elapsed,
                )
            except Exception as exc:
                savepoint.rollback()
                logger.error(
                    "daily_item_failed",
                    extra={"amount": amount, "duration_ms": int((time.monotonic() - item_start) * 1000)},
                    exc_info=True,
                )
                if pulled:
                    self._refund(user, asset, amount)
                return ContributionResult(
                    user=user,
                    asset=asset,
                    status=ContributionStatus.FAILED,
                    amount=0,
                    days_elapsed=elapsed,
                    cost=budget.used - start_used,
                    error_code=getattr(exc, "code", "UNHANDLED_EXCEPTION"),
                    error_message=str(exc),
                )

            yield_applied = self._apply_yield(plan, amount, budget)
            cost = budget.used - start_used
            self._estimator.observe(cost)

            logger.info(
                "daily_contribution_saved",
                extra={
                    "amount": amount,
                    "days_elapsed": elapsed,
                    "current_amount": updated.current_amount,
                    "goal_completed": goal_completed,
                    "cost": cost,
                    "estimate": self._estimator.estimate,
                },
            )
            return ContributionResult(
                user=user,
                asset=asset,
                status=ContributionStatus.SUCCEEDED,
                amount=amount,
                days_elapsed=elapsed,
                cost=cost,
                goal_completed=goal_completed,
                yield_applied=yield_applied,
            )

    def _precheck(
        self, plan: DailyContributionPlan, now: int, elapsed: int
    ) -> SkipReason | None:
        if not plan.enabled:
            return SkipReason.PLAN_DISABLED
        if plan.goal_reached:
            return SkipReason.GOAL_REACHED
        if plan.end_time and now >= plan.end_time:
            return SkipReason.PLAN_EXPIRED
        if elapsed == 0:
            return SkipReason.NOT_DUE
        return None

    def _pull_funds(self, user: str, asset: str, amount: int) -> bool:
        """Transfer the contribution in.  False on refusal or error."""
        try:
            return bool(self._funds.transfer_from(asset, user, self._address, amount))
        except Exception:
            logger.warning("daily_transfer_failed", extra={"amount": amount}, exc_info=True)
            return False

    def _refund(self, user: str, asset: str, amount: int) -> None:
        """Return funds pulled by an item that rolled back.  Failure is logged."""
        try:
            refunded = bool(self._funds.transfer(asset, user, amount))
        except Exception:
            logger.error("daily_refund_failed", extra={"amount": amount}, exc_info=True)
            return
        if refunded:
            logger.info("daily_contribution_refunded", extra={"amount": amount})
        else:
            logger.error("daily_refund_failed", extra={"amount": amount, "reason": "refused"})

    def _apply_yield(
        self, plan: DailyContributionPlan, amount: int, budget: ResourceBudget
    ) -> bool:
        """Best effort: a failure is logged and the contribution stands."""
        if plan.yield_strategy is None or self._yield is None:
            return False
        try:
            budget.charge(self._config.costs.yield_apply)
            self._yield.apply(plan.user, plan.asset, amount, plan.yield_strategy)
        except Exception:
            logger.warning(
                "yield_application_failed",
                extra={"strategy": plan.yield_strategy, "amount": amount},
                exc_info=True,
            )
            return False
        return True

    def _skipped(
        self,
        user: str,
        asset: str,
        reason: SkipReason,
        cost: int = 0,
        elapsed: int = 0,
    ) -> ContributionResult:
        logger.info("daily_item_skipped", extra={"asset": asset, "reason": reason})
        return ContributionResult(
            user=user,
            asset=asset,
            status=ContributionStatus.SKIPPED,
            days_elapsed=elapsed,
            reason=reason,
            cost=cost,
        )

    # -------------------------------------------------------------------------
    # Withdraw
    # -------------------------------------------------------------------------

    def withdraw_from_plan(self, user: str, asset: str, amount: int) -> PlanWithdrawal:
        """Withdraw plan savings.

        Before ``end_time`` with the goal unmet (or at any time for an
        open-ended plan whose goal is unmet) the withdrawal is early and
        ``amount * penalty_bps / 10000`` goes to the treasury.

        Raises:
            InsufficientSavingsError: If amount exceeds the plan balance.
            WithdrawalLockedError: Inside the savings timelock.
            WithdrawalFailedError: Outbound transfer failed (nothing changes).
        """
        validate_amount("amount", amount, allow_zero=False)
        user = normalize_address(user, "user")
        asset = normalize_address(asset, "asset")
        plan = self._require_plan(user, asset)
        now = self._clock.timestamp()

        if amount > plan.current_amount:
            raise InsufficientSavingsError(user, asset, amount, plan.current_amount)
        record = self._ledger.get_savings(user, asset)
        if now < record.unlock_time:
            raise WithdrawalLockedError(user, asset, record.unlock_time, now)

        early = not plan.goal_reached and (plan.end_time == 0 or now < plan.end_time)
        paid_out, penalty = apply_penalty(amount, plan.penalty_bps if early else 0)
        entry = self._ledger.asset_entry(asset)

        with LogContext.bind(
            user=user, module=self._address, asset=asset, operation="plan_withdraw"
        ):
            with self._session.begin_nested():
                self._ledger.reduce_daily_plan(self._address, user, asset, amount)
                self._ledger.decrease_savings(self._address, user, asset, amount)
                self._system.share_token.burn(user, entry.asset_id, amount)
                if penalty:
                    self._ledger.increase_treasury(self._address, asset, penalty)
                self._system.withdrawals.pay_out(user, asset, paid_out)

            logger.info(
                "plan_withdrawn",
                extra={"amount": amount, "paid_out": paid_out, "penalty": penalty, "early": early},
            )

        return PlanWithdrawal(
            user=user,
            asset=asset,
            amount=amount,
            paid_out=paid_out,
            penalty=penalty,
            early=early,
        )


def build_daily_processor(
    system: SavingsSystem,
    yield_strategy: YieldStrategy | None = None,
    address: str | None = None,
) -> DailyContributionProcessor:
    """Construct the processor and register it with the ledger."""
    processor = DailyContributionProcessor(system, yield_strategy, address)
    system.register_module(DAILY_MODULE, processor.address)
    return processor
