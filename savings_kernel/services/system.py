"""
Wiring -- builds a complete, registered set of kernel services.

Every module is constructed against one SavingsLedger, registered under
its identifier with the owner's authority, and returned in a single
``SavingsSystem`` handle.  Registry addresses are resolved here once;
the ledger re-checks them on every write.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session

from savings_config.schema import ProtocolConfig
from savings_kernel.domain.clock import Clock, SystemClock
from savings_kernel.domain.ports import (
    ConversionService,
    FundsTransfer,
    QuoteService,
    ShareToken,
)
from savings_kernel.domain.values import AssetEntry
from savings_kernel.logging_config import get_logger
from savings_kernel.services.dca_queue import DcaQueueService
from savings_kernel.services.guards import ReentrancyGuard
from savings_kernel.services.interception import InterceptionProtocol
from savings_kernel.services.ledger_service import SavingsLedger
from savings_kernel.services.savings_engine import SavingsEngine
from savings_kernel.services.strategy_service import SavingsStrategyService
from savings_kernel.services.withdrawal_service import WithdrawalService

logger = get_logger("services.system")

STRATEGY_MODULE = "strategy"
SAVINGS_MODULE = "savings"
WITHDRAWAL_MODULE = "withdrawal"
DCA_MODULE = "dca"
INTERCEPTION_MODULE = "interception"
DAILY_MODULE = "daily"


def module_address(module_id: str) -> str:
    """Default registry address of a built-in module."""
    return f"module:{module_id}"


@dataclass
class SavingsSystem:
    """Handle on a wired ledger and its modules."""

    session: Session
    config: ProtocolConfig
    clock: Clock
    ledger: SavingsLedger
    strategies: SavingsStrategyService
    engine: SavingsEngine
    withdrawals: WithdrawalService
    dca: DcaQueueService
    protocol: InterceptionProtocol
    share_token: ShareToken
    funds: FundsTransfer
    quotes: QuoteService
    converter: ConversionService
    owner: str
    exchange_engine: str

    def register_module(self, module_id: str, address: str) -> None:
        self.ledger.register_module(self.owner, module_id, address)

    def add_asset(self, asset: str, rounding_unit: int | None = None) -> AssetEntry:
        """Register ``asset`` with the share token and the ledger."""
        existing = self.ledger.find_asset(asset)
        if existing is not None and rounding_unit in (None, existing.rounding_unit):
            return existing
        asset_id = existing.asset_id if existing else self.share_token.register_asset(asset)
        return self.ledger.register_asset(self.owner, asset, asset_id, rounding_unit)


def build_savings_system(
    session: Session,
    *,
    share_token: ShareToken,
    funds: FundsTransfer,
    quotes: QuoteService,
    converter: ConversionService,
    owner: str,
    exchange_engine: str,
    treasury: str,
    orchestrator: str | None = None,
    config: ProtocolConfig | None = None,
    clock: Clock | None = None,
) -> SavingsSystem:
    """
    Construct, initialize and register every kernel module.

    ``orchestrator`` defaults to the owner.  The ledger must not be
    initialized yet.
    """
    config = config or ProtocolConfig()
    clock = clock or SystemClock()

    ledger = SavingsLedger(session, config, clock)
    ledger.initialize(
        owner=owner,
        orchestrator=orchestrator or owner,
        exchange_engine=exchange_engine,
        treasury=treasury,
    )

    strategies = SavingsStrategyService(ledger, module_address(STRATEGY_MODULE))
    engine = SavingsEngine(ledger, share_token, module_address(SAVINGS_MODULE))
    withdrawals = WithdrawalService(
        ledger, share_token, funds, module_address(WITHDRAWAL_MODULE)
    )
    dca = DcaQueueService(
        ledger, share_token, quotes, converter, module_address(DCA_MODULE)
    )
    protocol = InterceptionProtocol(
        ledger,
        engine,
        strategies,
        dca,
        module_address(INTERCEPTION_MODULE),
        guard=ReentrancyGuard(),
    )

    for module_id, service in (
        (STRATEGY_MODULE, strategies),
        (SAVINGS_MODULE, engine),
        (WITHDRAWAL_MODULE, withdrawals),
        (DCA_MODULE, dca),
        (INTERCEPTION_MODULE, protocol),
    ):
        ledger.register_module(owner, module_id, service.address)

    logger.info(
        "savings_system_built",
        extra={"modules": sorted(ledger.registered_modules())},
    )

    return SavingsSystem(
        session=session,
        config=config,
        clock=clock,
        ledger=ledger,
        strategies=strategies,
        engine=engine,
        withdrawals=withdrawals,
        dca=dca,
        protocol=protocol,
        share_token=share_token,
        funds=funds,
        quotes=quotes,
        converter=converter,
        owner=ledger.owner,
        exchange_engine=ledger.exchange_engine,
    )
