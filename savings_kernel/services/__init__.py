"""
savings_kernel.services -- imperative shell over the savings ledger.

Each service receives the shared SavingsLedger (and through it the
Session), flushes but never commits, and writes under its own registered
module address.
"""

from savings_kernel.services.base import BaseService
from savings_kernel.services.dca_queue import DcaQueueService
from savings_kernel.services.guards import ReentrancyGuard
from savings_kernel.services.interception import InterceptionProtocol
from savings_kernel.services.ledger_service import SavingsLedger
from savings_kernel.services.savings_engine import SavingsEngine
from savings_kernel.services.strategy_service import SavingsStrategyService
from savings_kernel.services.system import (
    DAILY_MODULE,
    SavingsSystem,
    build_savings_system,
    module_address,
)
from savings_kernel.services.withdrawal_service import WithdrawalService

__all__ = [
    "BaseService",
    "DAILY_MODULE",
    "DcaQueueService",
    "InterceptionProtocol",
    "ReentrancyGuard",
    "SavingsEngine",
    "SavingsLedger",
    "SavingsStrategyService",
    "SavingsSystem",
    "WithdrawalService",
    "build_savings_system",
    "module_address",
]
