"""
InterceptionProtocol -- the two-phase hook around an exchange.

Responsibility:
    The exchange engine calls ``prepare`` before it executes an exchange
    and ``settle`` after.  Prepare reads the user's strategy, computes the
    tentative diversion and records a swap context.  Settle consumes the
    context, commits the diversion, and runs the best-effort follow-ups
    (DCA enqueue, auto-increment).

Architecture position:
    Kernel > Services -- the outermost kernel service.  Depends on the
    ledger, the savings engine, the strategy service and the DCA queue.

State machine (per user):

    NoStrategy   --prepare-->  (no context)            --settle--> no-op
    HasStrategy  --prepare-->  ContextActive           --settle--> NoActiveContext
    ContextActive --abort-->   NoActiveContext

Invariants enforced:
    - Only the configured exchange engine may call prepare/settle/abort.
    - After settle returns or raises, no context remains for the user.
    - The diversion is committed before any best-effort step; a failing
      follow-up is logged and never undoes the commit.
    - Nested prepare/settle calls are rejected (ReentrantCallError).
    - A context is only recorded when the asset to be saved is
      registered, so settle can always commit what prepare withheld.
    - Exchange amounts are capped at MAX_EXCHANGE_AMOUNT (2**128 - 1).

Savings source handling:
    INPUT     pending = diversion of the input amount in ``asset_in``.
              For EXACT_INPUT that is ``amount`` and the adjustment is
              taken out of it.  For EXACT_OUTPUT ``amount`` is in
              ``asset_out``, so the diversion comes from the engine's
              ``quoted_input`` and is charged on top of the input.
              Committed at settle.
    OUTPUT    nothing pending; settle diverts from ``actual_output``.
    SPECIFIC  like OUTPUT, then a conversion of the saved amount into the
              user's specific asset is queued.
"""

from __future__ import annotations

import logging

from savings_kernel.db.types import normalize_address, validate_amount
from savings_kernel.domain.codec import MAX_EXCHANGE_AMOUNT
from savings_kernel.domain.fees import compute_diversion
from savings_kernel.domain.values import (
    ExchangeDirection,
    PrepareResult,
    SavingsTokenType,
    SettleResult,
    SwapContext,
    SwapRoute,
)
from savings_kernel.exceptions import InvalidInputError, UnauthorizedError
from savings_kernel.logging_config import LogContext, get_logger
from savings_kernel.services.base import BaseService
from savings_kernel.services.dca_queue import DcaQueueService
from savings_kernel.services.guards import ReentrancyGuard
from savings_kernel.services.ledger_service import SavingsLedger
from savings_kernel.services.savings_engine import SavingsEngine
from savings_kernel.services.strategy_service import SavingsStrategyService

logger = get_logger("services.interception")


def validate_exchange_amount(field: str, value: int) -> int:
    """An exchange amount must fit the swap context's pending field."""
    validate_amount(field, value)
    if value > MAX_EXCHANGE_AMOUNT:
        raise InvalidInputError(
            field, value, f"exceeds the exchange amount limit {MAX_EXCHANGE_AMOUNT}"
        )
    return value


class InterceptionProtocol(BaseService):
    """
    Prepare/settle entry points for the exchange engine.

    Contract:
        - ``prepare`` never commits savings; ``settle`` commits at most once
          per prepared context.
        - A settle without a context is a no-op, never an error.

    Non-goals:
        - Does NOT move the exchanged funds; it only reports adjustments.
    """

    def __init__(
        self,
        ledger: SavingsLedger,
        engine: SavingsEngine,
        strategies: SavingsStrategyService,
        dca: DcaQueueService,
        address: str,
        guard: ReentrancyGuard | None = None,
    ):
        super().__init__(ledger.session)
        self._ledger = ledger
        self._engine = engine
        self._strategies = strategies
        self._dca = dca
        self._address = normalize_address(address)
        self._guard = guard or ReentrancyGuard()

    @property
    def address(self) -> str:
        return self._address

    @property
    def guard(self) -> ReentrancyGuard:
        return self._guard

    def _require_exchange_engine(self, caller: str, operation: str) -> None:
        if normalize_address(caller, "caller") != self._ledger.exchange_engine:
            logger.warning(
                "unauthorized_call",
                extra={"caller": caller, "operation": operation, "required": "exchange_engine"},
            )
            raise UnauthorizedError(caller, operation)

    # -------------------------------------------------------------------------
    # Prepare
    # -------------------------------------------------------------------------

    def prepare(
        self,
        caller: str,
        user: str,
        asset_in: str,
        asset_out: str,
        amount: int,
        direction: ExchangeDirection = ExchangeDirection.EXACT_INPUT,
        quoted_input: int | None = None,
    ) -> PrepareResult:
        """
        Record the swap context for ``user`` and report the input adjustment.

        ``amount`` is the exchange's specified amount: the input for
        EXACT_INPUT, the output for EXACT_OUTPUT.  An EXACT_OUTPUT exchange
        for a user saving the input asset must also pass ``quoted_input``,
        the input the engine quoted for that output; the diversion is taken
        from it.

        Returns ``PrepareResult.noop()`` when the user has no strategy or
        the asset that would be saved has no share-token registration.

        Raises:
            InvalidInputError: If an amount is out of range, or
                ``quoted_input`` is missing where it is required.
        """
        with self._guard.enter("prepare"):
            self._require_exchange_engine(caller, "prepare")
            validate_exchange_amount("amount", amount)
            if quoted_input is not None:
                validate_exchange_amount("quoted_input", quoted_input)
            user = normalize_address(user, "user")
            route = SwapRoute(
                asset_in=normalize_address(asset_in, "asset_in"),
                asset_out=normalize_address(asset_out, "asset_out"),
                direction=ExchangeDirection(direction),
            )

            with LogContext.bind(user=user, module=self._address, operation="prepare"):
                config = self._ledger.get_user_config(user)
                if not config.has_strategy:
                    return self._noop(user, "no_strategy")

                saves_input = config.savings_token_type is SavingsTokenType.INPUT
                saved_asset = route.asset_in if saves_input else route.asset_out
                if self._ledger.find_asset(saved_asset) is None:
                    return self._noop(user, "asset_not_registered", saved_asset=saved_asset)

                pending = 0
                if saves_input:
                    base = amount
                    if route.direction is ExchangeDirection.EXACT_OUTPUT:
                        if quoted_input is None:
                            raise InvalidInputError(
                                "quoted_input", None, "required for EXACT_OUTPUT input savings"
                            )
                        base = quoted_input
                    pending = self._engine.compute_pending(user, base, saved_asset, config)

                context = SwapContext(
                    pending_amount=pending,
                    current_percentage=config.percentage,
                    has_strategy=True,
                    savings_token_type=config.savings_token_type,
                    round_up=config.round_up,
                    enable_dca=config.enable_dca,
                )
                self._ledger.set_swap_context(self._address, user, context, route)

                logger.info(
                    "swap_prepared",
                    extra={
                        "asset_in": route.asset_in,
                        "asset_out": route.asset_out,
                        "direction": route.direction,
                        "amount": amount,
                        "quoted_input": quoted_input,
                        "pending_amount": pending,
                        "savings_token_type": config.savings_token_type.name,
                    },
                )
                return PrepareResult(
                    active=True,
                    input_adjustment=pending,
                    pending_amount=pending,
                )

    def _noop(self, user: str, reason: str, **extra: object) -> PrepareResult:
        if self._ledger.has_swap_context(user):
            self._ledger.clear_swap_context(self._address, user)
            logger.warning("stale_swap_context_cleared")
        level = logging.DEBUG if reason == "no_strategy" else logging.WARNING
        logger.log(level, "prepare_noop", extra={"reason": reason, **extra})
        return PrepareResult.noop()

    # -------------------------------------------------------------------------
    # Settle
    # -------------------------------------------------------------------------

    def settle(
        self,
        caller: str,
        user: str,
        actual_output: int,
        direction: ExchangeDirection | None = None,
    ) -> SettleResult:
        """
        Commit the prepared diversion and clear the context.

        ``direction`` defaults to the one recorded at prepare; a mismatch is
        logged and the recorded one wins.
        """
        with self._guard.enter("settle"):
            self._require_exchange_engine(caller, "settle")
            validate_amount("actual_output", actual_output)
            user = normalize_address(user, "user")

            with LogContext.bind(user=user, module=self._address, operation="settle"):
                with self._ledger.swap_context_scope(self._address, user) as slot:
                    if slot is None:
                        logger.debug("settle_noop", extra={"reason": "no_context"})
                        return SettleResult.noop()

                    context, route = slot
                    if direction is not None and ExchangeDirection(direction) is not route.direction:
                        logger.warning(
                            "settle_direction_mismatch",
                            extra={"prepared": route.direction, "settled": direction},
                        )
                    return self._settle_context(user, context, route, actual_output)

    def _settle_context(
        self,
        user: str,
        context: SwapContext,
        route: SwapRoute,
        actual_output: int,
    ) -> SettleResult:
        output_adjustment = 0
        if context.savings_token_type is SavingsTokenType.INPUT:
            saved_asset = route.asset_in
            gross = context.pending_amount
        else:
            saved_asset = route.asset_out
            gross = compute_diversion(
                actual_output,
                context.current_percentage,
                context.round_up,
                self._engine.rounding_unit(saved_asset),
            )
            output_adjustment = gross

        result = self._engine.commit(user, saved_asset, gross)

        dca_enqueued = False
        if result.net > 0:
            dca_enqueued = self._queue_conversion(user, context, saved_asset, result.net)
            self._auto_increment(user)

        logger.info(
            "swap_settled",
            extra={
                "saved_asset": saved_asset,
                "gross": result.gross,
                "net": result.net,
                "fee": result.fee,
                "output_adjustment": output_adjustment,
                "dca_enqueued": dca_enqueued,
            },
        )
        return SettleResult(
            active=True,
            saved_asset=saved_asset,
            gross=result.gross,
            net=result.net,
            fee=result.fee,
            output_adjustment=output_adjustment,
            dca_enqueued=dca_enqueued,
        )

    def _conversion_target(self, user: str, context: SwapContext) -> str | None:
        if context.savings_token_type is SavingsTokenType.SPECIFIC:
            return self._ledger.get_specific_asset(user)
        if context.enable_dca:
            return self._ledger.get_dca_target(user)
        return None

    def _queue_conversion(self, user: str, context: SwapContext, asset: str, amount: int) -> bool:
        """Best effort: a failure is logged and the saved funds stay put."""
        target = self._conversion_target(user, context)
        if target is None or target == asset:
            return False
        try:
            with self.atomic():
                self._dca.enqueue(user, asset, target, amount)
        except Exception:
            logger.warning(
                "dca_enqueue_failed",
                extra={"from_asset": asset, "to_asset": target, "amount": amount},
                exc_info=True,
            )
            return False
        return True

    def _auto_increment(self, user: str) -> None:
        """Best effort, like the DCA enqueue."""
        try:
            with self.atomic():
                self._strategies.apply_auto_increment(user)
        except Exception:
            logger.warning("auto_increment_failed", exc_info=True)

    # -------------------------------------------------------------------------
    # Abort
    # -------------------------------------------------------------------------

    def abort(self, caller: str, user: str) -> bool:
        """
        Drop the user's context when the exchange reverted after prepare.

        Returns whether a context existed.
        """
        self._require_exchange_engine(caller, "abort")
        user = normalize_address(user, "user")
        existed = self._ledger.clear_swap_context(self._address, user)
        if existed:
            logger.info("swap_aborted", extra={"user": user})
        return existed
