"""
Configuration Validator (``savings_config.validator``).

Responsibility
--------------
Checks a parsed ``ProtocolConfig`` for values the ledger cannot run
with.  Returns every problem at once rather than failing on the first,
so a reviewer sees the full list.
"""

from __future__ import annotations

from dataclasses import fields

from savings_config.schema import ProtocolConfig, ResourceCosts

BPS_DENOMINATOR = 10_000


def _check_bps(errors: list[str], name: str, value: int, maximum: int = BPS_DENOMINATOR) -> None:
    if not isinstance(value, int) or isinstance(value, bool):
        errors.append(f"{name} must be an integer, got {value!r}")
    elif not 0 <= value <= maximum:
        errors.append(f"{name} must be between 0 and {maximum}, got {value}")


def _check_positive(errors: list[str], name: str, value: int) -> None:
    if not isinstance(value, int) or isinstance(value, bool) or value < 1:
        errors.append(f"{name} must be a positive integer, got {value!r}")


def _check_non_negative(errors: list[str], name: str, value: int) -> None:
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        errors.append(f"{name} must be a non-negative integer, got {value!r}")


def validate_protocol_config(config: ProtocolConfig) -> tuple[str, ...]:
    """
    Validate a ProtocolConfig.

    Returns:
        Tuple of human-readable error strings (empty when valid).
    """
    errors: list[str] = []

    _check_bps(errors, "max_treasury_fee_bps", config.max_treasury_fee_bps)
    _check_bps(errors, "treasury_fee_bps", config.treasury_fee_bps)
    if (
        isinstance(config.treasury_fee_bps, int)
        and isinstance(config.max_treasury_fee_bps, int)
        and config.treasury_fee_bps > config.max_treasury_fee_bps
    ):
        errors.append(
            f"treasury_fee_bps ({config.treasury_fee_bps}) exceeds "
            f"max_treasury_fee_bps ({config.max_treasury_fee_bps})"
        )

    _check_non_negative(errors, "withdrawal_timelock_seconds", config.withdrawal_timelock_seconds)
    _check_positive(errors, "default_rounding_unit", config.default_rounding_unit)

    _check_positive(errors, "max_dca_queue_length", config.max_dca_queue_length)
    _check_bps(errors, "max_slippage_bps", config.max_slippage_bps)
    _check_bps(errors, "default_slippage_bps", config.default_slippage_bps, config.max_slippage_bps)
    _check_positive(errors, "default_dca_deadline_seconds", config.default_dca_deadline_seconds)

    _check_positive(errors, "batch_size", config.batch_size)
    _check_positive(errors, "initial_item_estimate", config.initial_item_estimate)
    _check_non_negative(errors, "min_budget_reserve", config.min_budget_reserve)
    _check_bps(errors, "max_penalty_bps", config.max_penalty_bps)

    if not isinstance(config.costs, ResourceCosts):
        errors.append("costs must be a ResourceCosts mapping")
    else:
        for f in fields(ResourceCosts):
            _check_non_negative(errors, f"costs.{f.name}", getattr(config.costs, f.name))

    return tuple(errors)
