"""
ProtocolConfig schema.

Defines the human-authored, reviewable configuration of the savings
ledger.  YAML files are parsed into these types by the loader and checked
by the validator before any service sees them.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ResourceCosts:
    """Budget units charged per step of a daily contribution."""

    plan_read: int = 5_000
    balance_check: int = 5_000
    transfer: int = 50_000
    mint: int = 40_000
    state_write: int = 20_000
    yield_apply: int = 30_000


@dataclass(frozen=True)
class ProtocolConfig:
    """Protocol-wide parameters.

    Fee and percentage values are basis points (1/100 of a percent).
    """

    treasury_fee_bps: int = 80
    max_treasury_fee_bps: int = 1_000
    withdrawal_timelock_seconds: int = 0
    default_rounding_unit: int = 1

    # DCA
    max_dca_queue_length: int = 100
    default_slippage_bps: int = 50
    max_slippage_bps: int = 1_000
    default_dca_deadline_seconds: int = 7 * 86_400

    # Daily contributions
    batch_size: int = 5
    initial_item_estimate: int = 150_000
    min_budget_reserve: int = 0
    max_penalty_bps: int = 3_000
    costs: ResourceCosts = field(default_factory=ResourceCosts)

    name: str = "default"
    version: int = 1
