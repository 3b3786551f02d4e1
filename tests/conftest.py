"""
Pytest fixtures for the savings kernel test suite.

Provides:
- In-memory SQLite sessions (fresh schema per test)
- A DeterministicClock
- In-memory fakes for every external collaborator (share token, funds
  transfer, price quotes, conversion, yield strategy)
- A fully wired SavingsSystem and daily processor
- captured_logs for asserting on structured log events
"""

import json
import logging
from dataclasses import dataclass
from io import StringIO
from typing import Callable

import pytest
from sqlalchemy.orm import sessionmaker

from savings_batch.services.processor import build_daily_processor
from savings_config.schema import ProtocolConfig
from savings_kernel.db.engine import create_ledger_engine, create_tables
from savings_kernel.domain.clock import DeterministicClock
from savings_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from savings_kernel.services.system import build_savings_system


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture savings_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, system):
            ...
            logs = captured_logs()
            assert any(r["message"] == "diversion_committed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("savings_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Addresses
# =============================================================================


@dataclass(frozen=True)
class Accounts:
    owner: str = "0xowner"
    exchange: str = "0xexchange"
    treasury: str = "0xtreasury"
    alice: str = "0xalice"
    bob: str = "0xbob"
    stranger: str = "0xstranger"
    # Lexicographic order: dai < usdc < weth
    dai: str = "0xdai"
    usdc: str = "0xusdc"
    weth: str = "0xweth"


@pytest.fixture
def accounts() -> Accounts:
    return Accounts()


# =============================================================================
# External collaborator fakes
# =============================================================================


class FakeShareToken:
    """Multi-asset share ledger kept in dicts."""

    def __init__(self):
        self.asset_ids: dict[str, int] = {}
        self.balances: dict[tuple[str, int], int] = {}
        self.on_mint: Callable[[str, int, int], None] | None = None
        self.fail_mint = False

    def register_asset(self, asset: str) -> int:
        if asset not in self.asset_ids:
            self.asset_ids[asset] = len(self.asset_ids) + 1
        return self.asset_ids[asset]

    def mint(self, user: str, asset_id: int, amount: int) -> None:
        if self.on_mint is not None:
            self.on_mint(user, asset_id, amount)
        if self.fail_mint:
            raise RuntimeError("mint rejected")
        key = (user, asset_id)
        self.balances[key] = self.balances.get(key, 0) + amount

    def burn(self, user: str, asset_id: int, amount: int) -> None:
        key = (user, asset_id)
        if self.balances.get(key, 0) < amount:
            raise RuntimeError("burn exceeds share balance")
        self.balances[key] -= amount

    def balance_of(self, user: str, asset_id: int) -> int:
        return self.balances.get((user, asset_id), 0)

    def shares(self, user: str, asset: str) -> int:
        return self.balance_of(user, self.asset_ids[asset])


class FakeFunds:
    """Funds-transfer service with switchable failure modes."""

    def __init__(self):
        self.balances: dict[tuple[str, str], int] = {}
        self.allowances: dict[tuple[str, str, str], int] = {}
        self.payouts: list[tuple[str, str, int]] = []
        self.refuse_transfers = False
        self.raise_on_transfer = False
        self.refuse_payouts = False

    def fund(self, owner: str, asset: str, amount: int, spender: str | None = None) -> None:
        self.balances[(owner, asset)] = self.balances.get((owner, asset), 0) + amount
        if spender is not None:
            self.allowances[(owner, spender, asset)] = (
                self.allowances.get((owner, spender, asset), 0) + amount
            )

    def balance_of(self, owner: str, asset: str) -> int:
        return self.balances.get((owner, asset), 0)

    def allowance(self, owner: str, spender: str, asset: str) -> int:
        return self.allowances.get((owner, spender, asset), 0)

    def transfer_from(self, asset: str, owner: str, recipient: str, amount: int) -> bool:
        if self.raise_on_transfer:
            raise ConnectionError("transfer service unavailable")
        if self.refuse_transfers:
            return False
        if self.balance_of(owner, asset) < amount:
            return False
        if self.allowance(owner, recipient, asset) < amount:
            return False
        self.balances[(owner, asset)] -= amount
        self.allowances[(owner, recipient, asset)] -= amount
        self.balances[(recipient, asset)] = self.balances.get((recipient, asset), 0) + amount
        return True

    def transfer(self, asset: str, recipient: str, amount: int) -> bool:
        if self.refuse_payouts:
            return False
        self.payouts.append((asset, recipient, amount))
        self.balances[(recipient, asset)] = self.balances.get((recipient, asset), 0) + amount
        return True


class FakeQuotes:
    """Fixed ticks and a fixed conversion rate per pair."""

    def __init__(self):
        self.ticks: dict[tuple[str, str], int] = {}
        self.rate = (1, 1)  # numerator, denominator
        self.on_quote: Callable[[], None] | None = None

    def current_tick(self, from_asset: str, to_asset: str) -> int:
        if self.on_quote is not None:
            self.on_quote()
        return self.ticks.get((from_asset, to_asset), 0)

    def expected_output(self, from_asset: str, to_asset: str, amount: int) -> int:
        num, den = self.rate
        return amount * num // den


class FakeConverter:
    """Converts at the quote rate minus ``haircut_bps``."""

    def __init__(self, quotes: FakeQuotes):
        self._quotes = quotes
        self.haircut_bps = 0
        self.calls: list[tuple[str, str, int, int]] = []

    def convert(self, from_asset: str, to_asset: str, amount: int, min_out: int) -> int:
        self.calls.append((from_asset, to_asset, amount, min_out))
        expected = self._quotes.expected_output(from_asset, to_asset, amount)
        return expected * (10_000 - self.haircut_bps) // 10_000


class FakeYield:
    def __init__(self):
        self.applied: list[tuple[str, str, int, str]] = []
        self.fail = False

    def apply(self, user: str, asset: str, amount: int, strategy: str) -> None:
        if self.fail:
            raise RuntimeError("yield vault paused")
        self.applied.append((user, asset, amount, strategy))


# =============================================================================
# Database and wiring
# =============================================================================


@pytest.fixture
def engine():
    engine = create_ledger_engine("sqlite://")
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    factory = sessionmaker(bind=engine, expire_on_commit=False)
    session = factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock()


@pytest.fixture
def config() -> ProtocolConfig:
    return ProtocolConfig()


@pytest.fixture
def share_token() -> FakeShareToken:
    return FakeShareToken()


@pytest.fixture
def funds() -> FakeFunds:
    return FakeFunds()


@pytest.fixture
def quotes() -> FakeQuotes:
    return FakeQuotes()


@pytest.fixture
def converter(quotes) -> FakeConverter:
    return FakeConverter(quotes)


@pytest.fixture
def yield_strategy() -> FakeYield:
    return FakeYield()


@pytest.fixture
def system(session, clock, config, share_token, funds, quotes, converter, accounts):
    """Wired system with USDC, WETH and DAI registered."""
    system = build_savings_system(
        session,
        share_token=share_token,
        funds=funds,
        quotes=quotes,
        converter=converter,
        owner=accounts.owner,
        exchange_engine=accounts.exchange,
        treasury=accounts.treasury,
        config=config,
        clock=clock,
    )
    for asset in (accounts.usdc, accounts.weth, accounts.dai):
        system.add_asset(asset)
    return system


@pytest.fixture
def ledger(system):
    return system.ledger


@pytest.fixture
def processor(system, yield_strategy):
    return build_daily_processor(system, yield_strategy)
