"""
SavingsStrategyService -- the collaborator that owns UserConfig writes.

Responsibility:
    Validates and stores a user's savings strategy, and applies the
    auto-increment step after each successful save.

Architecture position:
    Kernel > Services.  Writes through SavingsLedger under its own
    registered module address.

Invariants enforced:
    - percentage <= max_percentage <= 10000; auto_increment <= 10000.
    - A SPECIFIC strategy names a registered target asset.
    - apply_auto_increment never raises percentage above max_percentage.
"""

from __future__ import annotations

from dataclasses import replace

from savings_kernel.db.types import normalize_address
from savings_kernel.domain.values import SavingsTokenType, UserConfig
from savings_kernel.exceptions import InvalidInputError
from savings_kernel.logging_config import get_logger
from savings_kernel.services.base import BaseService
from savings_kernel.services.ledger_service import SavingsLedger

logger = get_logger("services.strategy")


class SavingsStrategyService(BaseService):
    """
    Configure per-user savings strategies.

    The identity of ``user`` is established by the host; this service only
    checks that the strategy itself is valid.
    """

    def __init__(self, ledger: SavingsLedger, address: str):
        super().__init__(ledger.session)
        self._ledger = ledger
        self._address = normalize_address(address)

    @property
    def address(self) -> str:
        return self._address

    def set_strategy(
        self,
        user: str,
        percentage: int,
        auto_increment: int = 0,
        max_percentage: int | None = None,
        round_up: bool = False,
        token_type: SavingsTokenType = SavingsTokenType.INPUT,
        specific_asset: str | None = None,
        enable_dca: bool = False,
    ) -> UserConfig:
        """
        Store a new strategy for ``user``.

        ``max_percentage`` defaults to ``percentage`` (no room to grow).

        Raises:
            InvalidInputError: On any out-of-range field, or SPECIFIC without
                a target asset.
            AssetNotRegisteredError: If the SPECIFIC target is unknown.
        """
        if max_percentage is None:
            max_percentage = percentage
        try:
            token_type = SavingsTokenType(token_type)
        except ValueError as exc:
            raise InvalidInputError("token_type", token_type, "unknown token type") from exc

        config = UserConfig(
            percentage=percentage,
            auto_increment=auto_increment,
            max_percentage=max_percentage,
            round_up=round_up,
            enable_dca=enable_dca,
            savings_token_type=token_type,
        )
        SavingsLedger.validate_user_config(config)

        if token_type is SavingsTokenType.SPECIFIC:
            if specific_asset is None:
                raise InvalidInputError(
                    "specific_asset", None, "required for SPECIFIC savings"
                )
            self._ledger.asset_entry(specific_asset)
        elif specific_asset is not None:
            raise InvalidInputError(
                "specific_asset", specific_asset, "only valid for SPECIFIC savings"
            )

        with self.atomic():
            self._ledger.set_user_config(self._address, user, config)
            self._ledger.set_specific_asset(self._address, user, specific_asset)

        logger.info(
            "strategy_configured",
            extra={
                "user": normalize_address(user, "user"),
                "percentage": percentage,
                "auto_increment": auto_increment,
                "max_percentage": max_percentage,
                "savings_token_type": token_type.name,
                "round_up": round_up,
                "enable_dca": enable_dca,
            },
        )
        return config

    def clear_strategy(self, user: str) -> None:
        """Disable savings for ``user``.  DCA settings are kept."""
        current = self._ledger.get_user_config(user)
        cleared = UserConfig(enable_dca=current.enable_dca)
        with self.atomic():
            self._ledger.set_user_config(self._address, user, cleared)
            self._ledger.set_specific_asset(self._address, user, None)
        logger.info("strategy_cleared", extra={"user": normalize_address(user, "user")})

    def apply_auto_increment(self, user: str) -> int:
        """
        Raise the user's percentage by ``auto_increment``, capped at
        ``max_percentage``.  Returns the percentage in effect afterwards.
        """
        config = self._ledger.get_user_config(user)
        if not config.has_strategy or config.auto_increment == 0:
            return config.percentage

        new_percentage = min(config.percentage + config.auto_increment, config.max_percentage)
        if new_percentage == config.percentage:
            return config.percentage

        self._ledger.set_user_config(
            self._address, user, replace(config, percentage=new_percentage)
        )
        logger.info(
            "percentage_auto_incremented",
            extra={
                "user": normalize_address(user, "user"),
                "previous": config.percentage,
                "percentage": new_percentage,
            },
        )
        return new_percentage
