"""
WithdrawalService -- pays saved funds back out.

Responsibility:
    Decrements a savings balance, burns the matching shares and transfers
    the asset to the user, as one unit.

Invariants enforced:
    - No partial state: the unlock check, the checked decrement, the burn
      and the outbound transfer run in one SAVEPOINT.  Any failure leaves
      the ledger exactly as it was.
    - Savings inside the timelock window cannot leave.

Failure modes:
    - InvalidInputError: amount is zero or negative.
    - WithdrawalLockedError: ``now < unlock_time``.
    - InsufficientSavingsError: amount exceeds the balance.
    - WithdrawalFailedError: the funds-transfer service refused or raised.
"""

from __future__ import annotations

from savings_kernel.db.types import normalize_address, validate_amount
from savings_kernel.domain.ports import FundsTransfer, ShareToken
from savings_kernel.domain.values import SavingsRecord
from savings_kernel.exceptions import (
    InsufficientSavingsError,
    WithdrawalFailedError,
    WithdrawalLockedError,
)
from savings_kernel.logging_config import LogContext, get_logger
from savings_kernel.services.base import BaseService
from savings_kernel.services.ledger_service import SavingsLedger

logger = get_logger("services.withdrawal")


class WithdrawalService(BaseService):
    def __init__(
        self,
        ledger: SavingsLedger,
        share_token: ShareToken,
        funds: FundsTransfer,
        address: str,
    ):
        super().__init__(ledger.session)
        self._ledger = ledger
        self._shares = share_token
        self._funds = funds
        self._address = normalize_address(address)

    @property
    def address(self) -> str:
        return self._address

    def withdraw(self, user: str, asset: str, amount: int) -> SavingsRecord:
        """Withdraw ``amount`` of ``asset`` savings to ``user``."""
        validate_amount("amount", amount, allow_zero=False)
        user = normalize_address(user, "user")
        asset = normalize_address(asset, "asset")

        with LogContext.bind(user=user, module=self._address, asset=asset, operation="withdraw"):
            record = self._ledger.get_savings(user, asset)
            now = self._ledger.clock.timestamp()
            if now < record.unlock_time:
                logger.warning(
                    "withdrawal_rejected",
                    extra={"reason": "locked", "unlock_time": record.unlock_time},
                )
                raise WithdrawalLockedError(user, asset, record.unlock_time, now)
            if amount > record.balance:
                logger.warning(
                    "withdrawal_rejected",
                    extra={"reason": "insufficient_savings", "requested": amount,
                           "available": record.balance},
                )
                raise InsufficientSavingsError(user, asset, amount, record.balance)

            entry = self._ledger.asset_entry(asset)
            with self.atomic():
                self._ledger.decrease_savings(self._address, user, asset, amount)
                self._shares.burn(user, entry.asset_id, amount)
                self.pay_out(user, asset, amount)

            logger.info("savings_withdrawn", extra={"amount": amount})
            return self._ledger.get_savings(user, asset)

    def pay_out(self, user: str, asset: str, amount: int) -> None:
        """
        Transfer ``amount`` of ``asset`` to ``user``.

        Raises:
            WithdrawalFailedError: On a refused or raising transfer.
        """
        if amount == 0:
            return
        try:
            ok = self._funds.transfer(asset, user, amount)
        except Exception as exc:
            raise WithdrawalFailedError(user, asset, amount, str(exc)) from exc
        if not ok:
            raise WithdrawalFailedError(user, asset, amount, "transfer refused")
