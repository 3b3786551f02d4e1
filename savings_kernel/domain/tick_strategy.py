"""
Tick-strategy gate for DCA orders.

Responsibility:
    Decide whether a queued conversion may run now.  An order prefers a
    favorable price but must not starve: it becomes eligible either when
    the price tick has improved by at least ``min_tick_improvement`` over
    the order's ``execution_tick``, or once ``tick_expiry_time`` seconds
    have passed since it was enqueued.

Architecture position:
    Kernel > Domain -- pure functions, zero I/O.

Direction convention:
    Ticks price the lower-ordered asset in units of the higher-ordered
    one.  Selling the lower-ordered asset (``order.zero_for_one``) gets
    better as the tick rises; selling the other asset gets better as it
    falls.
"""

from __future__ import annotations

from dataclasses import dataclass

from savings_kernel.domain.values import DcaOrder, DcaTickStrategy


@dataclass(frozen=True)
class EligibilityDecision:
    eligible: bool
    reason: str


def tick_improvement(order: DcaOrder, current_tick: int) -> int:
    """Signed improvement of ``current_tick`` over the order's gate tick."""
    if order.zero_for_one:
        return current_tick - order.execution_tick
    return order.execution_tick - current_tick


def is_pending(order: DcaOrder, now: int) -> bool:
    return not order.executed and order.deadline > now


def evaluate_order(
    order: DcaOrder,
    strategy: DcaTickStrategy,
    current_tick: int,
    now: int,
) -> EligibilityDecision:
    """Gate decision for one order."""
    if order.executed:
        return EligibilityDecision(False, "executed")
    if order.deadline <= now:
        return EligibilityDecision(False, "expired")
    if not strategy.only_improve_price:
        return EligibilityDecision(True, "ungated")

    improvement = tick_improvement(order, current_tick)
    if improvement >= strategy.min_tick_improvement:
        return EligibilityDecision(True, "price_improved")

    if strategy.tick_expiry_time > 0 and now >= order.enqueued_at + strategy.tick_expiry_time:
        return EligibilityDecision(True, "tick_expired")

    return EligibilityDecision(False, "awaiting_price")


def gate_tick(current_tick: int, zero_for_one: bool, strategy: DcaTickStrategy) -> int:
    """
    Execution tick recorded on a new order.

    The order waits for the price to move ``tick_delta`` in its favor from
    the tick at enqueue time.
    """
    if zero_for_one:
        return current_tick + strategy.tick_delta
    return current_tick - strategy.tick_delta
