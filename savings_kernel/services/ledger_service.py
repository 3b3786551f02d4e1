"""
SavingsLedger -- the central ledger and module registry.

Responsibility:
    Single source of truth for every piece of savings state: ledger
    settings, module registry, asset registry, per-user packed config,
    per-(user, asset) savings balances, treasury balances, DCA queues,
    daily contribution plans, and the transient per-call swap context.
    Every other component reads and mutates state only through this
    service.

Architecture position:
    Kernel > Services -- imperative shell.  Receives a Session (flush
    only), a Clock, and the ProtocolConfig.

Invariants enforced:
    - Registration and protocol settings are owner-only.  Re-registering a
      module id overwrites its address.
    - Every other state-mutating method requires
      ``caller in registry addresses | {orchestrator}``.
    - Numeric setters validate ranges before writing
      (percentage <= max_percentage <= 10000, fee <= max_treasury_fee_bps).
    - Savings balances never go negative (checked subtraction).
    - At most one swap context per user; contexts live in memory only and
      are removed on every exit path of ``swap_context_scope``.

Failure modes:
    - UnauthorizedError: caller is not owner / registered module.
    - InvalidInputError: out-of-range input.
    - AlreadyInitializedError / NotInitializedError: lifecycle misuse.
    - ModuleNotFoundError / AssetNotRegisteredError: registry miss.
    - InsufficientSavingsError: checked subtraction failed.
    - IndexOutOfBoundsError: DCA queue index does not exist.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from savings_config.schema import ProtocolConfig
from savings_kernel.db.types import (
    normalize_address,
    validate_amount,
    validate_bps,
)
from savings_kernel.domain.clock import Clock, SystemClock
from savings_kernel.domain.codec import (
    pack_swap_context,
    pack_user_config,
    unpack_swap_context,
    unpack_user_config,
)
from savings_kernel.domain.values import (
    AssetEntry,
    DailyContributionPlan,
    DcaOrder,
    DcaTickStrategy,
    SavingsRecord,
    SavingsTokenType,
    SwapContext,
    SwapRoute,
    UserConfig,
)
from savings_kernel.exceptions import (
    AlreadyInitializedError,
    AssetNotRegisteredError,
    IndexOutOfBoundsError,
    InsufficientSavingsError,
    InvalidInputError,
    ModuleNotFoundError,
    NotInitializedError,
    UnauthorizedError,
)
from savings_kernel.logging_config import get_logger
from savings_kernel.models import (
    AssetRegistryEntry,
    DailyPlanModel,
    DcaOrderModel,
    DcaTickStrategyModel,
    LedgerSettings,
    ModuleRegistryEntry,
    SavingsBalanceModel,
    TreasuryBalance,
    UserConfigModel,
)
from savings_kernel.services.base import BaseService

logger = get_logger("services.ledger")


class SavingsLedger(BaseService):
    """
    Central ledger with owner-gated registry and module-gated writes.

    Contract:
        - ``initialize()`` once; every other call requires it.
        - Reads are open to anyone; writes name their ``caller``.
        - The transient swap-context store belongs to this instance; it is
          never persisted and is shared by every component wired to it.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT move funds or mint shares -- modules do that.
    """

    def __init__(
        self,
        session: Session,
        config: ProtocolConfig,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._config = config
        self._clock = clock or SystemClock()
        self._swap_contexts: dict[str, tuple[int, SwapRoute]] = {}

    @property
    def config(self) -> ProtocolConfig:
        return self._config

    @property
    def clock(self) -> Clock:
        return self._clock

    # -------------------------------------------------------------------------
    # Lifecycle and settings
    # -------------------------------------------------------------------------

    def _find_settings(self) -> LedgerSettings | None:
        return self.session.execute(select(LedgerSettings)).scalar_one_or_none()

    def _settings(self) -> LedgerSettings:
        settings = self._find_settings()
        if settings is None:
            raise NotInitializedError()
        return settings

    @property
    def is_initialized(self) -> bool:
        return self._find_settings() is not None

    def initialize(
        self,
        owner: str,
        orchestrator: str,
        exchange_engine: str,
        treasury: str,
    ) -> None:
        """
        Create the settings row.

        Raises:
            AlreadyInitializedError: On a second call.
        """
        existing = self._find_settings()
        if existing is not None:
            raise AlreadyInitializedError(existing.owner)

        settings = LedgerSettings(
            owner=normalize_address(owner, "owner"),
            orchestrator=normalize_address(orchestrator, "orchestrator"),
            exchange_engine=normalize_address(exchange_engine, "exchange_engine"),
            treasury=normalize_address(treasury, "treasury"),
            treasury_fee_bps=validate_bps(
                "treasury_fee_bps",
                self._config.treasury_fee_bps,
                self._config.max_treasury_fee_bps,
            ),
            initialized_at=self._clock.timestamp(),
        )
        self.session.add(settings)
        self.session.flush()

        logger.info(
            "ledger_initialized",
            extra={
                "owner": settings.owner,
                "orchestrator": settings.orchestrator,
                "treasury": settings.treasury,
                "treasury_fee_bps": settings.treasury_fee_bps,
            },
        )

    @property
    def owner(self) -> str:
        return self._settings().owner

    @property
    def orchestrator(self) -> str:
        return self._settings().orchestrator

    @property
    def exchange_engine(self) -> str:
        return self._settings().exchange_engine

    @property
    def treasury(self) -> str:
        return self._settings().treasury

    @property
    def treasury_fee_bps(self) -> int:
        return self._settings().treasury_fee_bps

    def set_treasury_fee(self, caller: str, fee_bps: int) -> None:
        """Owner-only.  Fee is capped at ``max_treasury_fee_bps``."""
        settings = self._require_owner(caller, "set_treasury_fee")
        validate_bps("treasury_fee_bps", fee_bps, self._config.max_treasury_fee_bps)
        previous = settings.treasury_fee_bps
        settings.treasury_fee_bps = fee_bps
        self.session.flush()
        logger.info(
            "treasury_fee_updated",
            extra={"previous_bps": previous, "fee_bps": fee_bps},
        )

    def set_treasury(self, caller: str, treasury: str) -> None:
        """Owner-only."""
        settings = self._require_owner(caller, "set_treasury")
        settings.treasury = normalize_address(treasury, "treasury")
        self.session.flush()
        logger.info("treasury_updated", extra={"treasury": settings.treasury})

    # -------------------------------------------------------------------------
    # Authorization
    # -------------------------------------------------------------------------

    def _require_owner(self, caller: str, operation: str) -> LedgerSettings:
        settings = self._settings()
        if normalize_address(caller, "caller") != settings.owner:
            logger.warning(
                "unauthorized_call",
                extra={"caller": caller, "operation": operation, "required": "owner"},
            )
            raise UnauthorizedError(caller, operation)
        return settings

    def _require_authorized(self, caller: str, operation: str) -> None:
        if not self.is_authorized(caller):
            logger.warning(
                "unauthorized_call",
                extra={"caller": caller, "operation": operation, "required": "module"},
            )
            raise UnauthorizedError(caller, operation)

    def is_authorized(self, address: str) -> bool:
        """True when ``address`` is the orchestrator or a registered module."""
        settings = self._settings()
        address = normalize_address(address, "caller")
        if address == settings.orchestrator:
            return True
        match = self.session.execute(
            select(ModuleRegistryEntry.id).where(ModuleRegistryEntry.address == address)
        ).first()
        return match is not None

    # -------------------------------------------------------------------------
    # Module registry
    # -------------------------------------------------------------------------

    def register_module(self, caller: str, module_id: str, address: str) -> None:
        """
        Owner-only.  Registers or replaces ``module_id``.

        Raises:
            UnauthorizedError: If caller is not the owner.
            InvalidInputError: If module_id is empty.
        """
        self._require_owner(caller, "register_module")
        if not module_id or not module_id.strip():
            raise InvalidInputError("module_id", module_id, "must be non-empty")
        address = normalize_address(address, "address")

        entry = self.session.execute(
            select(ModuleRegistryEntry).where(ModuleRegistryEntry.module_id == module_id)
        ).scalar_one_or_none()

        previous = None
        if entry is None:
            entry = ModuleRegistryEntry(
                module_id=module_id,
                address=address,
                registered_at=self._clock.timestamp(),
            )
            self.session.add(entry)
        else:
            previous = entry.address
            entry.address = address
            entry.registered_at = self._clock.timestamp()
        self.session.flush()

        logger.info(
            "module_registered",
            extra={"module_id": module_id, "address": address, "replaced": previous},
        )

    def module_address(self, module_id: str) -> str:
        """
        Raises:
            ModuleNotFoundError: If nothing is registered under module_id.
        """
        address = self.session.execute(
            select(ModuleRegistryEntry.address).where(
                ModuleRegistryEntry.module_id == module_id
            )
        ).scalar_one_or_none()
        if address is None:
            raise ModuleNotFoundError(module_id)
        return address

    def registered_modules(self) -> dict[str, str]:
        rows = self.session.execute(
            select(ModuleRegistryEntry.module_id, ModuleRegistryEntry.address)
            .order_by(ModuleRegistryEntry.module_id)
        ).all()
        return {module_id: address for module_id, address in rows}

    # -------------------------------------------------------------------------
    # Asset registry
    # -------------------------------------------------------------------------

    def register_asset(
        self,
        caller: str,
        asset: str,
        asset_id: int,
        rounding_unit: int | None = None,
    ) -> AssetEntry:
        """Owner-only.  Records the share-token id of ``asset``."""
        self._require_owner(caller, "register_asset")
        asset = normalize_address(asset, "asset")
        unit = self._config.default_rounding_unit if rounding_unit is None else rounding_unit
        if isinstance(unit, bool) or not isinstance(unit, int) or unit < 1:
            raise InvalidInputError("rounding_unit", unit, "must be a positive integer")
        validate_amount("asset_id", asset_id)

        entry = self.session.execute(
            select(AssetRegistryEntry).where(AssetRegistryEntry.asset == asset)
        ).scalar_one_or_none()
        if entry is None:
            entry = AssetRegistryEntry(asset=asset, asset_id=asset_id, rounding_unit=unit)
            self.session.add(entry)
        else:
            entry.asset_id = asset_id
            entry.rounding_unit = unit
        self.session.flush()

        logger.info(
            "asset_registered",
            extra={"asset": asset, "asset_id": asset_id, "rounding_unit": unit},
        )
        return entry.to_dto()

    def find_asset(self, asset: str) -> AssetEntry | None:
        entry = self.session.execute(
            select(AssetRegistryEntry).where(
                AssetRegistryEntry.asset == normalize_address(asset, "asset")
            )
        ).scalar_one_or_none()
        return entry.to_dto() if entry is not None else None

    def asset_entry(self, asset: str) -> AssetEntry:
        """
        Raises:
            AssetNotRegisteredError: If the asset has no share-token id.
        """
        entry = self.find_asset(asset)
        if entry is None:
            raise AssetNotRegisteredError(asset)
        return entry

    # -------------------------------------------------------------------------
    # User configuration
    # -------------------------------------------------------------------------

    def _config_row(self, user: str) -> UserConfigModel | None:
        return self.session.execute(
            select(UserConfigModel).where(UserConfigModel.user == user)
        ).scalar_one_or_none()

    def _config_row_for_update(self, user: str) -> UserConfigModel:
        row = self._config_row(user)
        if row is None:
            row = UserConfigModel(user=user, packed_config=0)
            self.session.add(row)
        return row

    def get_user_config(self, user: str) -> UserConfig:
        """One packed-word read; unconfigured users get the zero config."""
        row = self._config_row(normalize_address(user, "user"))
        if row is None:
            return UserConfig()
        return unpack_user_config(row.packed_config)

    def get_specific_asset(self, user: str) -> str | None:
        row = self._config_row(normalize_address(user, "user"))
        return row.specific_asset if row is not None else None

    def get_dca_target(self, user: str) -> str | None:
        row = self._config_row(normalize_address(user, "user"))
        return row.dca_target_asset if row is not None else None

    def get_user_slippage(self, user: str) -> int:
        """User tolerance, falling back to the protocol default."""
        row = self._config_row(normalize_address(user, "user"))
        if row is None or row.slippage_bps is None:
            return self._config.default_slippage_bps
        return row.slippage_bps

    @staticmethod
    def validate_user_config(config: UserConfig) -> None:
        """
        Raises:
            InvalidInputError: If percentage <= max_percentage <= 10000 does
                not hold, or another field is out of range.
        """
        validate_bps("percentage", config.percentage)
        validate_bps("max_percentage", config.max_percentage)
        validate_bps("auto_increment", config.auto_increment)
        if config.percentage > config.max_percentage:
            raise InvalidInputError(
                "percentage",
                config.percentage,
                f"must not exceed max_percentage ({config.max_percentage})",
            )
        if not isinstance(config.savings_token_type, SavingsTokenType):
            raise InvalidInputError(
                "savings_token_type", config.savings_token_type, "unknown token type"
            )
        if config.reserved != 0:
            raise InvalidInputError("reserved", config.reserved, "reserved bits must be zero")

    def set_user_config(self, caller: str, user: str, config: UserConfig) -> None:
        self._require_authorized(caller, "set_user_config")
        user = normalize_address(user, "user")
        self.validate_user_config(config)

        row = self._config_row_for_update(user)
        row.packed_config = pack_user_config(config)
        self.session.flush()

        logger.debug(
            "user_config_written",
            extra={
                "user": user,
                "percentage": config.percentage,
                "savings_token_type": config.savings_token_type.name,
            },
        )

    def set_specific_asset(self, caller: str, user: str, asset: str | None) -> None:
        self._require_authorized(caller, "set_specific_asset")
        row = self._config_row_for_update(normalize_address(user, "user"))
        row.specific_asset = normalize_address(asset, "asset") if asset is not None else None
        self.session.flush()

    def set_dca_target(self, caller: str, user: str, asset: str | None) -> None:
        self._require_authorized(caller, "set_dca_target")
        row = self._config_row_for_update(normalize_address(user, "user"))
        row.dca_target_asset = normalize_address(asset, "asset") if asset is not None else None
        self.session.flush()

    def set_user_slippage(self, caller: str, user: str, slippage_bps: int | None) -> None:
        self._require_authorized(caller, "set_user_slippage")
        if slippage_bps is not None:
            validate_bps("slippage_bps", slippage_bps, self._config.max_slippage_bps)
        row = self._config_row_for_update(normalize_address(user, "user"))
        row.slippage_bps = slippage_bps
        self.session.flush()

    # -------------------------------------------------------------------------
    # Savings balances
    # -------------------------------------------------------------------------

    def _savings_row(self, user: str, asset: str) -> SavingsBalanceModel | None:
        return self.session.execute(
            select(SavingsBalanceModel).where(
                SavingsBalanceModel.user == user,
                SavingsBalanceModel.asset == asset,
            )
        ).scalar_one_or_none()

    def get_savings(self, user: str, asset: str) -> SavingsRecord:
        user = normalize_address(user, "user")
        asset = normalize_address(asset, "asset")
        row = self._savings_row(user, asset)
        if row is None:
            return SavingsRecord(user=user, asset=asset)
        return row.to_dto()

    def list_savings(self, user: str) -> tuple[SavingsRecord, ...]:
        rows = self.session.execute(
            select(SavingsBalanceModel)
            .where(SavingsBalanceModel.user == normalize_address(user, "user"))
            .order_by(SavingsBalanceModel.asset)
        ).scalars().all()
        return tuple(r.to_dto() for r in rows)

    def increase_savings(self, caller: str, user: str, asset: str, amount: int) -> SavingsRecord:
        self._require_authorized(caller, "increase_savings")
        validate_amount("amount", amount)
        user = normalize_address(user, "user")
        asset = normalize_address(asset, "asset")

        row = self._savings_row(user, asset)
        if row is None:
            row = SavingsBalanceModel(
                user=user, asset=asset, balance=0, total_saved=0,
                last_save_time=0, unlock_time=0,
            )
            self.session.add(row)
        row.balance += amount
        row.total_saved += amount
        row.last_save_time = self._clock.timestamp()
        self.session.flush()
        return row.to_dto()

    def decrease_savings(self, caller: str, user: str, asset: str, amount: int) -> SavingsRecord:
        """
        Raises:
            InsufficientSavingsError: If amount exceeds the balance.  Nothing
                is written in that case.
        """
        self._require_authorized(caller, "decrease_savings")
        validate_amount("amount", amount)
        user = normalize_address(user, "user")
        asset = normalize_address(asset, "asset")

        row = self._savings_row(user, asset)
        available = row.balance if row is not None else 0
        if amount > available:
            raise InsufficientSavingsError(user, asset, amount, available)
        if row is None:
            return SavingsRecord(user=user, asset=asset)
        row.balance -= amount
        self.session.flush()
        return row.to_dto()

    def set_unlock_time(self, caller: str, user: str, asset: str, unlock_time: int) -> None:
        self._require_authorized(caller, "set_unlock_time")
        validate_amount("unlock_time", unlock_time)
        row = self._savings_row(
            normalize_address(user, "user"), normalize_address(asset, "asset")
        )
        if row is None:
            raise InsufficientSavingsError(user, asset, 0, 0)
        row.unlock_time = unlock_time
        self.session.flush()

    # -------------------------------------------------------------------------
    # Treasury
    # -------------------------------------------------------------------------

    def _treasury_row(self, asset: str) -> TreasuryBalance | None:
        return self.session.execute(
            select(TreasuryBalance).where(TreasuryBalance.asset == asset)
        ).scalar_one_or_none()

    def get_treasury_balance(self, asset: str) -> int:
        row = self._treasury_row(normalize_address(asset, "asset"))
        return row.balance if row is not None else 0

    def increase_treasury(self, caller: str, asset: str, amount: int) -> int:
        self._require_authorized(caller, "increase_treasury")
        validate_amount("amount", amount)
        asset = normalize_address(asset, "asset")
        row = self._treasury_row(asset)
        if row is None:
            row = TreasuryBalance(asset=asset, balance=0)
            self.session.add(row)
        row.balance += amount
        self.session.flush()
        return row.balance

    # -------------------------------------------------------------------------
    # Transient swap context
    # -------------------------------------------------------------------------

    def set_swap_context(
        self,
        caller: str,
        user: str,
        context: SwapContext,
        route: SwapRoute,
    ) -> None:
        """Store the packed context.  A leftover context is replaced."""
        self._require_authorized(caller, "set_swap_context")
        user = normalize_address(user, "user")
        validate_bps("current_percentage", context.current_percentage)
        word = pack_swap_context(context)
        if user in self._swap_contexts:
            logger.warning("stale_swap_context_replaced", extra={"user": user})
        self._swap_contexts[user] = (word, route)

    def get_swap_context(self, user: str) -> tuple[SwapContext, SwapRoute] | None:
        slot = self._swap_contexts.get(normalize_address(user, "user"))
        if slot is None:
            return None
        word, route = slot
        return unpack_swap_context(word), route

    def has_swap_context(self, user: str) -> bool:
        return normalize_address(user, "user") in self._swap_contexts

    def clear_swap_context(self, caller: str, user: str) -> bool:
        """Remove the user's context.  Returns whether one existed."""
        self._require_authorized(caller, "clear_swap_context")
        return self._swap_contexts.pop(normalize_address(user, "user"), None) is not None

    @contextmanager
    def swap_context_scope(
        self, caller: str, user: str
    ) -> Iterator[tuple[SwapContext, SwapRoute] | None]:
        """
        Yield the user's context (or None) and delete it on every exit path.
        """
        self._require_authorized(caller, "swap_context_scope")
        key = normalize_address(user, "user")
        try:
            yield self.get_swap_context(key)
        finally:
            self._swap_contexts.pop(key, None)

    # -------------------------------------------------------------------------
    # DCA queue storage
    # -------------------------------------------------------------------------

    def dca_queue_length(self, user: str) -> int:
        return self.session.execute(
            select(func.count(DcaOrderModel.id)).where(
                DcaOrderModel.user == normalize_address(user, "user")
            )
        ).scalar_one()

    def append_dca_order(
        self,
        caller: str,
        user: str,
        from_asset: str,
        to_asset: str,
        amount: int,
        execution_tick: int,
        deadline: int,
        custom_slippage_bps: int = 0,
    ) -> DcaOrder:
        self._require_authorized(caller, "append_dca_order")
        validate_amount("amount", amount, allow_zero=False)
        validate_bps("custom_slippage_bps", custom_slippage_bps, self._config.max_slippage_bps)
        user = normalize_address(user, "user")

        position = self.dca_queue_length(user)
        row = DcaOrderModel(
            user=user,
            position=position,
            from_asset=normalize_address(from_asset, "from_asset"),
            to_asset=normalize_address(to_asset, "to_asset"),
            amount=amount,
            execution_tick=execution_tick,
            deadline=deadline,
            enqueued_at=self._clock.timestamp(),
            executed=False,
            custom_slippage_bps=custom_slippage_bps,
        )
        self.session.add(row)
        self.session.flush()
        return row.to_dto()

    def _dca_row(self, user: str, index: int) -> DcaOrderModel:
        user = normalize_address(user, "user")
        row = self.session.execute(
            select(DcaOrderModel).where(
                DcaOrderModel.user == user,
                DcaOrderModel.position == index,
            )
        ).scalar_one_or_none()
        if row is None:
            raise IndexOutOfBoundsError(user, index, self.dca_queue_length(user))
        return row

    def get_dca_order(self, user: str, index: int) -> DcaOrder:
        """
        Raises:
            IndexOutOfBoundsError: If ``index`` is not in the queue.
        """
        return self._dca_row(user, index).to_dto()

    def get_dca_orders(self, user: str) -> tuple[DcaOrder, ...]:
        rows = self.session.execute(
            select(DcaOrderModel)
            .where(DcaOrderModel.user == normalize_address(user, "user"))
            .order_by(DcaOrderModel.position)
        ).scalars().all()
        return tuple(r.to_dto() for r in rows)

    def mark_dca_executed(self, caller: str, user: str, index: int) -> bool:
        """Idempotent.  Returns True if this call changed the flag."""
        self._require_authorized(caller, "mark_dca_executed")
        row = self._dca_row(user, index)
        if row.executed:
            return False
        row.executed = True
        self.session.flush()
        return True

    def get_tick_strategy(self, user: str) -> DcaTickStrategy:
        row = self.session.execute(
            select(DcaTickStrategyModel).where(
                DcaTickStrategyModel.user == normalize_address(user, "user")
            )
        ).scalar_one_or_none()
        return row.to_dto() if row is not None else DcaTickStrategy()

    def set_tick_strategy(self, caller: str, user: str, strategy: DcaTickStrategy) -> None:
        self._require_authorized(caller, "set_tick_strategy")
        validate_amount("tick_delta", strategy.tick_delta)
        validate_amount("tick_expiry_time", strategy.tick_expiry_time)
        validate_amount("min_tick_improvement", strategy.min_tick_improvement)
        user = normalize_address(user, "user")

        row = self.session.execute(
            select(DcaTickStrategyModel).where(DcaTickStrategyModel.user == user)
        ).scalar_one_or_none()
        if row is None:
            row = DcaTickStrategyModel(user=user)
            self.session.add(row)
        row.tick_delta = strategy.tick_delta
        row.tick_expiry_time = strategy.tick_expiry_time
        row.only_improve_price = strategy.only_improve_price
        row.min_tick_improvement = strategy.min_tick_improvement
        self.session.flush()

    # -------------------------------------------------------------------------
    # Daily contribution plans
    # -------------------------------------------------------------------------

    def _plan_row(self, user: str, asset: str) -> DailyPlanModel | None:
        return self.session.execute(
            select(DailyPlanModel).where(
                DailyPlanModel.user == user,
                DailyPlanModel.asset == asset,
            )
        ).scalar_one_or_none()

    def get_daily_plan(self, user: str, asset: str) -> DailyContributionPlan | None:
        row = self._plan_row(normalize_address(user, "user"), normalize_address(asset, "asset"))
        return row.to_dto() if row is not None else None

    def daily_plan_assets(self, user: str) -> tuple[str, ...]:
        """The user's append-only asset list, in configuration order."""
        rows = self.session.execute(
            select(DailyPlanModel.asset)
            .where(DailyPlanModel.user == normalize_address(user, "user"))
            .order_by(DailyPlanModel.position)
        ).scalars().all()
        return tuple(rows)

    def put_daily_plan(
        self,
        caller: str,
        user: str,
        asset: str,
        *,
        daily_amount: int,
        goal_amount: int,
        penalty_bps: int,
        end_time: int,
        yield_strategy: str | None = None,
    ) -> DailyContributionPlan:
        """Create or reconfigure a plan; the asset keeps its list position."""
        self._require_authorized(caller, "put_daily_plan")
        validate_amount("daily_amount", daily_amount, allow_zero=False)
        validate_amount("goal_amount", goal_amount)
        validate_bps("penalty_bps", penalty_bps, self._config.max_penalty_bps)
        validate_amount("end_time", end_time)
        now = self._clock.timestamp()
        if end_time and end_time <= now:
            raise InvalidInputError("end_time", end_time, "must be in the future")
        if goal_amount and goal_amount < daily_amount:
            raise InvalidInputError("goal_amount", goal_amount, "must be at least daily_amount")

        user = normalize_address(user, "user")
        asset = normalize_address(asset, "asset")
        row = self._plan_row(user, asset)
        if row is None:
            position = len(self.daily_plan_assets(user))
            row = DailyPlanModel(
                user=user,
                asset=asset,
                position=position,
                current_amount=0,
                start_time=now,
                last_execution_time=now,
            )
            self.session.add(row)
        row.enabled = True
        row.daily_amount = daily_amount
        row.goal_amount = goal_amount
        row.penalty_bps = penalty_bps
        row.end_time = end_time
        row.yield_strategy = yield_strategy
        self.session.flush()
        return row.to_dto()

    def set_daily_plan_enabled(self, caller: str, user: str, asset: str, enabled: bool) -> None:
        self._require_authorized(caller, "set_daily_plan_enabled")
        row = self._plan_row(normalize_address(user, "user"), normalize_address(asset, "asset"))
        if row is None:
            raise InvalidInputError("asset", asset, "no daily plan configured")
        row.enabled = enabled
        self.session.flush()

    def record_daily_contribution(
        self,
        caller: str,
        user: str,
        asset: str,
        amount: int,
        executed_at: int,
    ) -> DailyContributionPlan:
        """Advance ``current_amount`` and ``last_execution_time``."""
        self._require_authorized(caller, "record_daily_contribution")
        validate_amount("amount", amount)
        row = self._plan_row(normalize_address(user, "user"), normalize_address(asset, "asset"))
        if row is None:
            raise InvalidInputError("asset", asset, "no daily plan configured")
        row.current_amount += amount
        row.last_execution_time = executed_at
        self.session.flush()
        return row.to_dto()

    def reduce_daily_plan(self, caller: str, user: str, asset: str, amount: int) -> DailyContributionPlan:
        """
        Raises:
            InsufficientSavingsError: If amount exceeds the plan balance.
        """
        self._require_authorized(caller, "reduce_daily_plan")
        validate_amount("amount", amount)
        user = normalize_address(user, "user")
        asset = normalize_address(asset, "asset")
        row = self._plan_row(user, asset)
        available = row.current_amount if row is not None else 0
        if row is None or amount > available:
            raise InsufficientSavingsError(user, asset, amount, available)
        row.current_amount -= amount
        self.session.flush()
        return row.to_dto()
