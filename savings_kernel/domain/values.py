"""
savings_kernel.domain.values -- Pure frozen value objects for the ledger.

ZERO I/O.  Every record the services read or return is one of these
frozen dataclasses; ORM models convert to them via ``to_dto()``.

Invariants documented here, enforced by the ledger setters:
    - UserConfig: percentage <= max_percentage <= 10000.
    - SwapContext: at most one live context per user, never outlives a
      single prepare/settle pair.
    - SavingsRecord: balance is never negative.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum


class SavingsTokenType(IntEnum):
    """Which side of an exchange the savings are taken from.

    The ordinal is part of the packed config layout.
    """

    INPUT = 0
    OUTPUT = 1
    SPECIFIC = 2


class ExchangeDirection(str, Enum):
    """Which amount of the exchange the caller fixed."""

    EXACT_INPUT = "exact_input"  # amount is the input spent
    EXACT_OUTPUT = "exact_output"  # amount is the output received


# =============================================================================
# Per-user configuration and per-call context
# =============================================================================


@dataclass(frozen=True)
class UserConfig:
    """A user's savings strategy, stored as one packed word."""

    percentage: int = 0
    auto_increment: int = 0
    max_percentage: int = 0
    round_up: bool = False
    enable_dca: bool = False
    savings_token_type: SavingsTokenType = SavingsTokenType.INPUT
    reserved: int = 0

    @property
    def has_strategy(self) -> bool:
        return self.percentage > 0


@dataclass(frozen=True)
class SwapContext:
    """Transient state carried from prepare to settle."""

    pending_amount: int = 0
    current_percentage: int = 0
    has_strategy: bool = False
    savings_token_type: SavingsTokenType = SavingsTokenType.INPUT
    round_up: bool = False
    enable_dca: bool = False


@dataclass(frozen=True)
class SwapRoute:
    """Assets and direction of the exchange a context belongs to."""

    asset_in: str
    asset_out: str
    direction: ExchangeDirection


# =============================================================================
# Balances
# =============================================================================


@dataclass(frozen=True)
class SavingsRecord:
    """Savings held by one user in one asset."""

    user: str
    asset: str
    balance: int = 0
    total_saved: int = 0
    last_save_time: int = 0
    unlock_time: int = 0


@dataclass(frozen=True)
class AssetEntry:
    """Share-token registration of an asset."""

    asset: str
    asset_id: int
    rounding_unit: int = 1


# =============================================================================
# DCA
# =============================================================================


@dataclass(frozen=True)
class DcaOrder:
    """One entry of a user's deferred-conversion queue."""

    user: str
    index: int
    from_asset: str
    to_asset: str
    amount: int
    execution_tick: int
    deadline: int
    enqueued_at: int
    executed: bool = False
    custom_slippage_bps: int = 0

    @property
    def zero_for_one(self) -> bool:
        """True when the order sells the lower-ordered asset."""
        return self.from_asset < self.to_asset


@dataclass(frozen=True)
class DcaTickStrategy:
    """Price gate applied to a user's DCA orders."""

    tick_delta: int = 0
    tick_expiry_time: int = 0
    only_improve_price: bool = False
    min_tick_improvement: int = 0


# =============================================================================
# Daily contributions
# =============================================================================


@dataclass(frozen=True)
class DailyContributionPlan:
    """Scheduled daily saving of one asset.

    ``goal_amount == 0`` means no goal; ``end_time == 0`` means open-ended.
    """

    user: str
    asset: str
    position: int
    enabled: bool
    daily_amount: int
    goal_amount: int
    current_amount: int
    penalty_bps: int
    end_time: int
    start_time: int
    last_execution_time: int
    yield_strategy: str | None = None

    @property
    def goal_reached(self) -> bool:
        return self.goal_amount > 0 and self.current_amount >= self.goal_amount

    @property
    def remaining_to_goal(self) -> int | None:
        if self.goal_amount == 0:
            return None
        return max(self.goal_amount - self.current_amount, 0)


# =============================================================================
# Operation results
# =============================================================================


@dataclass(frozen=True)
class CommitResult:
    """Outcome of crediting a diversion: ``net + fee == gross``."""

    asset: str
    gross: int
    net: int
    fee: int


@dataclass(frozen=True)
class PrepareResult:
    """Returned to the exchange engine before it executes.

    ``input_adjustment`` is the amount the engine must take from the
    user's input on top of (EXACT_OUTPUT) or out of (EXACT_INPUT) the
    exchanged amount.
    """

    active: bool
    input_adjustment: int = 0
    pending_amount: int = 0

    @classmethod
    def noop(cls) -> PrepareResult:
        return cls(active=False)


@dataclass(frozen=True)
class SettleResult:
    """Returned to the exchange engine after it settles.

    ``output_adjustment`` is the amount withheld from the user's output.
    """

    active: bool
    saved_asset: str | None = None
    gross: int = 0
    net: int = 0
    fee: int = 0
    output_adjustment: int = 0
    dca_enqueued: bool = False

    @classmethod
    def noop(cls) -> SettleResult:
        return cls(active=False)
