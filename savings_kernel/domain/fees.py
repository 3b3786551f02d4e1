"""
Savings and fee arithmetic.

Responsibility:
    The two pure calculations behind every diversion: how much of an
    exchanged amount goes to savings, and how that amount splits between
    the user and the treasury.

Architecture position:
    Kernel > Domain -- pure functions, zero I/O.

Invariants enforced:
    - compute_diversion(amount, bps, False) == amount * bps // 10000.
    - Rounding up never diverts more than ``amount``.
    - apply_treasury_fee: net + fee == diverted, exactly.
    - 100% diversion (bps == 10000) returns ``amount``; nothing here
      divides by the remaining exchange amount.
"""

from savings_kernel.db.types import BPS_DENOMINATOR, validate_amount, validate_bps
from savings_kernel.exceptions import InvalidInputError


def compute_diversion(
    amount: int,
    percentage_bps: int,
    round_up: bool = False,
    rounding_unit: int = 1,
) -> int:
    """
    Portion of ``amount`` diverted into savings.

    Args:
        amount: Exchanged amount in the asset's smallest unit.
        percentage_bps: Savings percentage in basis points.
        round_up: Round the diversion up to a multiple of ``rounding_unit``.
        rounding_unit: Rounding granularity (e.g. one whole token).

    Returns:
        The diverted amount, ``0 <= result <= amount``.
    """
    validate_amount("amount", amount)
    validate_bps("percentage_bps", percentage_bps)
    if rounding_unit < 1:
        raise InvalidInputError("rounding_unit", rounding_unit, "must be >= 1")

    diverted = amount * percentage_bps // BPS_DENOMINATOR
    if diverted == 0 or not round_up or rounding_unit == 1:
        return diverted

    remainder = diverted % rounding_unit
    if remainder:
        diverted += rounding_unit - remainder
    return min(diverted, amount)


def apply_treasury_fee(diverted_amount: int, fee_bps: int) -> tuple[int, int]:
    """
    Split a diversion into ``(net, fee)``.

    The fee is floored, so the user keeps any rounding dust.
    """
    validate_amount("diverted_amount", diverted_amount)
    validate_bps("fee_bps", fee_bps)

    fee = diverted_amount * fee_bps // BPS_DENOMINATOR
    return diverted_amount - fee, fee


def apply_penalty(amount: int, penalty_bps: int) -> tuple[int, int]:
    """Split an early withdrawal into ``(paid_out, penalty)``."""
    validate_amount("amount", amount)
    validate_bps("penalty_bps", penalty_bps)

    penalty = amount * penalty_bps // BPS_DENOMINATOR
    return amount - penalty, penalty


def min_amount_out(expected_out: int, slippage_bps: int) -> int:
    """Lowest acceptable conversion output for a slippage tolerance."""
    validate_amount("expected_out", expected_out)
    validate_bps("slippage_bps", slippage_bps)
    return expected_out * (BPS_DENOMINATOR - slippage_bps) // BPS_DENOMINATOR
