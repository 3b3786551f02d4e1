"""
DcaQueueService -- deferred conversion of saved funds.

Responsibility:
    Maintains each user's append-only queue of DCA orders, gates their
    execution on price (tick strategy) or elapsed time, and executes an
    eligible order by converting savings from one asset to another.

Architecture position:
    Kernel > Services.  The eligibility rule itself is the pure
    ``domain.tick_strategy.evaluate_order``.

Invariants enforced:
    - enqueue: amount > 0, deadline > now, from_asset != to_asset, and at
      most ``max_dca_queue_length`` pending orders per user.
    - mark_executed is idempotent.
    - pending_orders is a pure read (no state mutation).
    - execute_order: the source debit, the target credit, the share
      burn/mint and the executed flag land in one SAVEPOINT.  Output below
      the slippage floor rolls everything back.
"""

from __future__ import annotations

from dataclasses import replace

from savings_kernel.db.types import normalize_address, validate_amount, validate_bps
from savings_kernel.domain.fees import min_amount_out
from savings_kernel.domain.ports import ConversionService, QuoteService, ShareToken
from savings_kernel.domain.tick_strategy import evaluate_order, gate_tick, is_pending
from savings_kernel.domain.values import DcaOrder, DcaTickStrategy
from savings_kernel.exceptions import (
    InsufficientSavingsError,
    InvalidInputError,
    OrderNotEligibleError,
    SlippageExceededError,
)
from savings_kernel.logging_config import LogContext, get_logger
from savings_kernel.services.base import BaseService
from savings_kernel.services.ledger_service import SavingsLedger

logger = get_logger("services.dca")


class DcaQueueService(BaseService):
    """
    Per-user DCA queue with a tick-strategy gate.

    Contract:
        - Orders are never removed; execution flips ``executed``.
        - ``execute_order`` only runs orders the gate accepts.

    Non-goals:
        - Does NOT pick which orders to run; the host (keeper) decides
          when to call ``execute_order``.
    """

    def __init__(
        self,
        ledger: SavingsLedger,
        share_token: ShareToken,
        quotes: QuoteService,
        converter: ConversionService,
        address: str,
    ):
        super().__init__(ledger.session)
        self._ledger = ledger
        self._shares = share_token
        self._quotes = quotes
        self._converter = converter
        self._address = normalize_address(address)

    @property
    def address(self) -> str:
        return self._address

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    def enable_dca(self, user: str, target_asset: str) -> None:
        """Turn on automatic enqueueing of saved funds into ``target_asset``."""
        self._ledger.asset_entry(target_asset)
        config = self._ledger.get_user_config(user)
        with self.atomic():
            self._ledger.set_user_config(
                self._address,
                user,
                replace(config, enable_dca=True),
            )
            self._ledger.set_dca_target(self._address, user, target_asset)
        logger.info(
            "dca_enabled",
            extra={"user": normalize_address(user, "user"), "target_asset": target_asset},
        )

    def disable_dca(self, user: str) -> None:
        config = self._ledger.get_user_config(user)
        with self.atomic():
            self._ledger.set_user_config(
                self._address,
                user,
                replace(config, enable_dca=False),
            )
            self._ledger.set_dca_target(self._address, user, None)
        logger.info("dca_disabled", extra={"user": normalize_address(user, "user")})

    def set_tick_strategy(
        self,
        user: str,
        tick_delta: int = 0,
        tick_expiry_time: int = 0,
        only_improve_price: bool = False,
        min_tick_improvement: int = 0,
    ) -> DcaTickStrategy:
        strategy = DcaTickStrategy(
            tick_delta=tick_delta,
            tick_expiry_time=tick_expiry_time,
            only_improve_price=only_improve_price,
            min_tick_improvement=min_tick_improvement,
        )
        self._ledger.set_tick_strategy(self._address, user, strategy)
        return strategy

    def get_tick_strategy(self, user: str) -> DcaTickStrategy:
        return self._ledger.get_tick_strategy(user)

    # -------------------------------------------------------------------------
    # Queue
    # -------------------------------------------------------------------------

    def enqueue(
        self,
        user: str,
        from_asset: str,
        to_asset: str,
        amount: int,
        execution_tick: int | None = None,
        deadline: int | None = None,
        custom_slippage_bps: int = 0,
    ) -> DcaOrder:
        """
        Append an order to the user's queue.

        ``execution_tick`` defaults to the current tick moved ``tick_delta``
        in the order's favor; ``deadline`` defaults to now plus
        ``default_dca_deadline_seconds``.
        """
        validate_amount("amount", amount, allow_zero=False)
        validate_bps("custom_slippage_bps", custom_slippage_bps, self._ledger.config.max_slippage_bps)
        from_asset = normalize_address(from_asset, "from_asset")
        to_asset = normalize_address(to_asset, "to_asset")
        if from_asset == to_asset:
            raise InvalidInputError("to_asset", to_asset, "must differ from from_asset")

        now = self._ledger.clock.timestamp()
        if deadline is None:
            deadline = now + self._ledger.config.default_dca_deadline_seconds
        if deadline <= now:
            raise InvalidInputError("deadline", deadline, f"must be after now ({now})")

        pending = self.pending_orders(user)
        if len(pending) >= self._ledger.config.max_dca_queue_length:
            raise InvalidInputError(
                "dca_queue", len(pending),
                f"at most {self._ledger.config.max_dca_queue_length} pending orders",
            )

        if execution_tick is None:
            strategy = self._ledger.get_tick_strategy(user)
            execution_tick = gate_tick(
                self._quotes.current_tick(from_asset, to_asset),
                from_asset < to_asset,
                strategy,
            )

        order = self._ledger.append_dca_order(
            self._address,
            user,
            from_asset,
            to_asset,
            amount,
            execution_tick,
            deadline,
            custom_slippage_bps,
        )
        logger.info(
            "dca_order_enqueued",
            extra={
                "user": order.user,
                "index": order.index,
                "from_asset": from_asset,
                "to_asset": to_asset,
                "amount": amount,
                "execution_tick": execution_tick,
                "deadline": deadline,
            },
        )
        return order

    def mark_executed(self, user: str, index: int) -> bool:
        """Idempotent.  Raises IndexOutOfBoundsError for an unknown index."""
        return self._ledger.mark_dca_executed(self._address, user, index)

    def orders(self, user: str) -> tuple[DcaOrder, ...]:
        return self._ledger.get_dca_orders(user)

    def pending_orders(self, user: str) -> tuple[DcaOrder, ...]:
        """Orders neither executed nor past their deadline."""
        now = self._ledger.clock.timestamp()
        return tuple(o for o in self._ledger.get_dca_orders(user) if is_pending(o, now))

    @staticmethod
    def is_eligible(
        order: DcaOrder,
        strategy: DcaTickStrategy,
        current_tick: int,
        now: int,
    ) -> bool:
        return evaluate_order(order, strategy, current_tick, now).eligible

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def execute_order(self, user: str, index: int) -> int:
        """
        Convert one eligible order.  Returns the amount received.

        Raises:
            IndexOutOfBoundsError: Unknown index.
            OrderNotEligibleError: Executed, expired, or gated by price.
            InsufficientSavingsError: Source savings below the order amount.
            SlippageExceededError: Conversion returned less than min_out.
            AssetNotRegisteredError: Either asset has no share-token id.
        """
        order = self._ledger.get_dca_order(user, index)
        user = order.user

        with LogContext.bind(
            user=user, module=self._address, asset=order.from_asset, operation="dca_execute"
        ):
            now = self._ledger.clock.timestamp()
            current_tick = self._quotes.current_tick(order.from_asset, order.to_asset)
            decision = evaluate_order(
                order, self._ledger.get_tick_strategy(user), current_tick, now
            )
            if not decision.eligible:
                logger.info(
                    "dca_order_not_eligible",
                    extra={"index": index, "reason": decision.reason, "tick": current_tick},
                )
                raise OrderNotEligibleError(user, index, decision.reason)

            available = self._ledger.get_savings(user, order.from_asset).balance
            if order.amount > available:
                raise InsufficientSavingsError(user, order.from_asset, order.amount, available)

            source = self._ledger.asset_entry(order.from_asset)
            target = self._ledger.asset_entry(order.to_asset)
            slippage = order.custom_slippage_bps or self._ledger.get_user_slippage(user)
            expected = self._quotes.expected_output(order.from_asset, order.to_asset, order.amount)
            min_out = min_amount_out(expected, slippage)

            with self.atomic():
                self._ledger.decrease_savings(self._address, user, order.from_asset, order.amount)
                self._shares.burn(user, source.asset_id, order.amount)
                received = self._converter.convert(
                    order.from_asset, order.to_asset, order.amount, min_out
                )
                if received < min_out:
                    raise SlippageExceededError(min_out, received)
                self._ledger.increase_savings(self._address, user, order.to_asset, received)
                if received:
                    self._shares.mint(user, target.asset_id, received)
                self._ledger.mark_dca_executed(self._address, user, index)

            logger.info(
                "dca_order_executed",
                extra={
                    "index": index,
                    "to_asset": order.to_asset,
                    "amount": order.amount,
                    "received": received,
                    "min_out": min_out,
                    "reason": decision.reason,
                },
            )
            return received
