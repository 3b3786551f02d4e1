"""ORM models for the savings ledger."""

from savings_kernel.models.daily import DailyPlanModel
from savings_kernel.models.dca import DcaOrderModel, DcaTickStrategyModel
from savings_kernel.models.ledger import (
    AssetRegistryEntry,
    LedgerSettings,
    ModuleRegistryEntry,
    TreasuryBalance,
)
from savings_kernel.models.savings import SavingsBalanceModel, UserConfigModel


__all__ = [
    "AssetRegistryEntry",
    "DailyPlanModel",
    "DcaOrderModel",
    "DcaTickStrategyModel",
    "LedgerSettings",
    "ModuleRegistryEntry",
    "SavingsBalanceModel",
    "TreasuryBalance",
    "UserConfigModel",
]
