"""
savings_kernel.domain -- Pure types, codec and arithmetic.

ZERO I/O.  Everything here is a frozen dataclass or a pure function.
"""

from savings_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from savings_kernel.domain.values import (
    AssetEntry,
    CommitResult,
    DailyContributionPlan,
    DcaOrder,
    DcaTickStrategy,
    ExchangeDirection,
    PrepareResult,
    SavingsRecord,
    SavingsTokenType,
    SettleResult,
    SwapContext,
    SwapRoute,
    UserConfig,
)

__all__ = [
    "AssetEntry",
    "Clock",
    "CommitResult",
    "DailyContributionPlan",
    "DcaOrder",
    "DcaTickStrategy",
    "DeterministicClock",
    "ExchangeDirection",
    "PrepareResult",
    "SavingsRecord",
    "SavingsTokenType",
    "SettleResult",
    "SwapContext",
    "SwapRoute",
    "SystemClock",
    "UserConfig",
]
