"""
SavingsEngine -- computes diversions and commits them to the ledger.

Responsibility:
    Turns a user's strategy and an exchanged amount into a tentative
    diversion, and credits a diversion (net of the treasury fee) as
    savings plus share tokens.

Architecture position:
    Kernel > Services.  Pure arithmetic lives in ``domain.fees``; this
    service adds the ledger reads and the atomic commit.

Invariants enforced:
    - commit: net + fee == gross; the savings credit, the treasury credit,
      the share mint and the timelock update land in one SAVEPOINT or not
      at all.
    - The fee rate is range-checked when configured, never at commit.
"""

from __future__ import annotations

from savings_kernel.db.types import normalize_address, validate_amount
from savings_kernel.domain.fees import apply_treasury_fee, compute_diversion
from savings_kernel.domain.ports import ShareToken
from savings_kernel.domain.values import CommitResult, SavingsRecord, UserConfig
from savings_kernel.logging_config import get_logger
from savings_kernel.services.base import BaseService
from savings_kernel.services.ledger_service import SavingsLedger

logger = get_logger("services.savings_engine")


class SavingsEngine(BaseService):
    """
    Diversion arithmetic plus the all-or-nothing commit.

    Contract:
        - ``compute_pending`` is a read; it never writes.
        - ``commit`` and ``credit`` raise on failure with nothing written.
    """

    def __init__(self, ledger: SavingsLedger, share_token: ShareToken, address: str):
        super().__init__(ledger.session)
        self._ledger = ledger
        self._shares = share_token
        self._address = normalize_address(address)

    @property
    def address(self) -> str:
        return self._address

    def rounding_unit(self, asset: str) -> int:
        entry = self._ledger.find_asset(asset)
        if entry is None:
            return self._ledger.config.default_rounding_unit
        return entry.rounding_unit

    def compute_pending(
        self,
        user: str,
        amount: int,
        asset: str,
        config: UserConfig | None = None,
    ) -> int:
        """Diversion of ``amount`` under the user's current strategy."""
        if config is None:
            config = self._ledger.get_user_config(user)
        if not config.has_strategy or amount == 0:
            return 0
        return compute_diversion(
            amount,
            config.percentage,
            config.round_up,
            self.rounding_unit(asset),
        )

    def credit(self, user: str, asset: str, amount: int) -> SavingsRecord:
        """
        Credit ``amount`` of savings and mint the matching shares.

        No fee is taken.  Starts the withdrawal timelock when one is
        configured.

        Raises:
            AssetNotRegisteredError: If ``asset`` has no share-token id.
        """
        validate_amount("amount", amount)
        entry = self._ledger.asset_entry(asset)
        timelock = self._ledger.config.withdrawal_timelock_seconds

        with self.atomic():
            record = self._ledger.increase_savings(self._address, user, asset, amount)
            if timelock > 0:
                unlock_time = self._ledger.clock.timestamp() + timelock
                self._ledger.set_unlock_time(self._address, user, asset, unlock_time)
            if amount:
                self._shares.mint(record.user, entry.asset_id, amount)
        return self._ledger.get_savings(user, asset)

    def commit(self, user: str, asset: str, gross: int) -> CommitResult:
        """
        Credit a diversion: ``net`` to the user, ``fee`` to the treasury.

        A zero diversion is a no-op.
        """
        validate_amount("gross", gross)
        asset = normalize_address(asset, "asset")
        if gross == 0:
            return CommitResult(asset=asset, gross=0, net=0, fee=0)

        net, fee = apply_treasury_fee(gross, self._ledger.treasury_fee_bps)

        with self.atomic():
            if fee:
                self._ledger.increase_treasury(self._address, asset, fee)
            self.credit(user, asset, net)

        logger.info(
            "diversion_committed",
            extra={
                "user": normalize_address(user, "user"),
                "asset": asset,
                "gross": gross,
                "net": net,
                "fee": fee,
            },
        )
        return CommitResult(asset=asset, gross=gross, net=net, fee=fee)
