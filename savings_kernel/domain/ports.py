"""
Ports -- interfaces of the external collaborators the ledger consumes.

Contract:
    The kernel never implements share-token accounting, asset movement,
    price quoting, conversion or yield.  Services receive objects that
    satisfy these protocols through constructor injection.

Failure conventions:
    - FundsTransfer.transfer_from / transfer return False (or raise) on
      failure; callers turn both into WithdrawalFailedError
      or a batch skip reason.
    - ConversionService.convert returns the received amount; slippage is
      checked by the caller.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class ShareToken(Protocol):
    """Multi-asset accounting token representing savings as shares."""

    def register_asset(self, asset: str) -> int: ...

    def mint(self, user: str, asset_id: int, amount: int) -> None: ...

    def burn(self, user: str, asset_id: int, amount: int) -> None: ...

    def balance_of(self, user: str, asset_id: int) -> int: ...


@runtime_checkable
class FundsTransfer(Protocol):
    """Asset movement primitive."""

    def balance_of(self, owner: str, asset: str) -> int: ...

    def allowance(self, owner: str, spender: str, asset: str) -> int: ...

    def transfer_from(self, asset: str, owner: str, recipient: str, amount: int) -> bool: ...

    def transfer(self, asset: str, recipient: str, amount: int) -> bool: ...


@runtime_checkable
class QuoteService(Protocol):
    """Read-only price source for the tick gate and slippage bounds."""

    def current_tick(self, from_asset: str, to_asset: str) -> int: ...

    def expected_output(self, from_asset: str, to_asset: str, amount: int) -> int: ...


@runtime_checkable
class ConversionService(Protocol):
    """Executes a conversion of saved funds."""

    def convert(self, from_asset: str, to_asset: str, amount: int, min_out: int) -> int: ...


@runtime_checkable
class YieldStrategy(Protocol):
    """Deploys freshly saved funds into a yield strategy."""

    def apply(self, user: str, asset: str, amount: int, strategy: str) -> None: ...
