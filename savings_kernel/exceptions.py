"""
Typed Exception Hierarchy for the Savings Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

The savings ledger sits inside someone else's exchange. Callers (the
exchange engine, the batch processor, an admin surface) must react to
failures precisely: an unauthorized module is a wiring bug, an empty
savings balance is a user error, a failed transfer inside a batch is a
skip reason. Parsing message strings for that is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, log-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        withdrawals.withdraw(user, asset, amount)
    except InsufficientSavingsError as e:
        log.warning("withdraw_rejected", extra={"available": e.available})

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    SavingsKernelError (base)
    |
    +-- AccessError
    |   +-- UnauthorizedError
    |
    +-- ValidationError
    |   +-- InvalidInputError
    |
    +-- LifecycleError
    |   +-- AlreadyInitializedError
    |   +-- NotInitializedError
    |
    +-- RegistryError
    |   +-- ModuleNotFoundError
    |   +-- AssetNotRegisteredError
    |
    +-- BalanceError
    |   +-- InsufficientSavingsError
    |   +-- WithdrawalLockedError
    |
    +-- QueueError
    |   +-- IndexOutOfBoundsError
    |   +-- OrderNotEligibleError
    |   +-- SlippageExceededError
    |
    +-- TransferError
    |   +-- WithdrawalFailedError
    |
    +-- ConcurrencyError
    |   +-- ReentrantCallError
    |
    +-- BudgetError
        +-- BudgetExhaustedError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                   | When Raised
-------------|------------------------|-------------------------------------------
Access       | UNAUTHORIZED           | Caller is not owner / registered module
Validation   | INVALID_INPUT          | Numeric parameter outside its range
Lifecycle    | ALREADY_INITIALIZED    | Ledger initialized twice
             | NOT_INITIALIZED        | Ledger used before initialize()
Registry     | MODULE_NOT_FOUND       | Registry lookup miss
             | ASSET_NOT_REGISTERED   | Asset has no share-token id
Balance      | INSUFFICIENT_SAVINGS   | Savings balance below requested amount
             | WITHDRAWAL_LOCKED      | Savings still inside the timelock window
Queue        | INDEX_OUT_OF_BOUNDS    | DCA queue index does not exist
             | ORDER_NOT_ELIGIBLE     | DCA order gate is closed
             | SLIPPAGE_EXCEEDED      | Conversion returned less than min_out
Transfer     | WITHDRAWAL_FAILED      | Outbound transfer of a withdrawal failed
Concurrency  | REENTRANT_CALL         | Nested call into prepare/settle
Budget       | BUDGET_EXHAUSTED       | Charge would exceed the call budget

===============================================================================
DESIGN DECISIONS
===============================================================================

1. Domain exceptions inherit from Exception, not ValueError & co., so they
   can be caught as a group without catching programming errors.

2. ``code`` is a class attribute: static per type, readable without an
   instance, and copied into structured logs by the formatter.

3. All context is stored as public attributes so the JSON log formatter
   can emit it as ``exc_<attr>`` fields.

===============================================================================
"""


class SavingsKernelError(Exception):
    """
    Base exception for all savings kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "SAVINGS_KERNEL_ERROR"


# Access-related exceptions


class AccessError(SavingsKernelError):
    """Base exception for authorization failures."""

    code: str = "ACCESS_ERROR"


class UnauthorizedError(AccessError):
    """Caller is neither the owner nor a registered module."""

    code: str = "UNAUTHORIZED"

    def __init__(self, caller: str, operation: str):
        self.caller = caller
        self.operation = operation
        super().__init__(f"Caller {caller!r} is not authorized for {operation}")


# Validation exceptions


class ValidationError(SavingsKernelError):
    """Base exception for input validation failures."""

    code: str = "VALIDATION_ERROR"


class InvalidInputError(ValidationError):
    """A parameter is outside its declared range."""

    code: str = "INVALID_INPUT"

    def __init__(self, field: str, value: object, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field}={value!r}: {reason}")


# Lifecycle exceptions


class LifecycleError(SavingsKernelError):
    """Base exception for ledger lifecycle errors."""

    code: str = "LIFECYCLE_ERROR"


class AlreadyInitializedError(LifecycleError):
    """The ledger has already been initialized."""

    code: str = "ALREADY_INITIALIZED"

    def __init__(self, owner: str):
        self.owner = owner
        super().__init__(f"Ledger already initialized (owner {owner!r})")


class NotInitializedError(LifecycleError):
    """The ledger has not been initialized yet."""

    code: str = "NOT_INITIALIZED"

    def __init__(self) -> None:
        super().__init__("Ledger not initialized. Call initialize() first.")


# Registry exceptions


class RegistryError(SavingsKernelError):
    """Base exception for registry lookups."""

    code: str = "REGISTRY_ERROR"


class ModuleNotFoundError(RegistryError):
    """No module registered under the given identifier."""

    code: str = "MODULE_NOT_FOUND"

    def __init__(self, module_id: str):
        self.module_id = module_id
        super().__init__(f"Module not found: {module_id}")


class AssetNotRegisteredError(RegistryError):
    """Asset has not been registered with the share token."""

    code: str = "ASSET_NOT_REGISTERED"

    def __init__(self, asset: str):
        self.asset = asset
        super().__init__(f"Asset not registered: {asset}")


# Balance exceptions


class BalanceError(SavingsKernelError):
    """Base exception for balance checks."""

    code: str = "BALANCE_ERROR"


class InsufficientSavingsError(BalanceError):
    """Savings balance is below the requested amount."""

    code: str = "INSUFFICIENT_SAVINGS"

    def __init__(self, user: str, asset: str, requested: int, available: int):
        self.user = user
        self.asset = asset
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient savings for {user} in {asset}: "
            f"requested={requested}, available={available}"
        )


class WithdrawalLockedError(BalanceError):
    """Savings cannot be withdrawn before the unlock time."""

    code: str = "WITHDRAWAL_LOCKED"

    def __init__(self, user: str, asset: str, unlock_time: int, now: int):
        self.user = user
        self.asset = asset
        self.unlock_time = unlock_time
        self.now = now
        super().__init__(
            f"Savings of {user} in {asset} locked until {unlock_time} (now {now})"
        )


# DCA queue exceptions


class QueueError(SavingsKernelError):
    """Base exception for DCA queue errors."""

    code: str = "QUEUE_ERROR"


class IndexOutOfBoundsError(QueueError):
    """Queue index does not exist."""

    code: str = "INDEX_OUT_OF_BOUNDS"

    def __init__(self, user: str, index: int, length: int):
        self.user = user
        self.index = index
        self.length = length
        super().__init__(
            f"DCA queue index {index} out of bounds for {user} (length {length})"
        )


class OrderNotEligibleError(QueueError):
    """DCA order cannot be executed right now."""

    code: str = "ORDER_NOT_ELIGIBLE"

    def __init__(self, user: str, index: int, reason: str):
        self.user = user
        self.index = index
        self.reason = reason
        super().__init__(f"DCA order {index} of {user} not eligible: {reason}")


class SlippageExceededError(QueueError):
    """Conversion output fell below the slippage-adjusted minimum."""

    code: str = "SLIPPAGE_EXCEEDED"

    def __init__(self, expected_min: int, received: int):
        self.expected_min = expected_min
        self.received = received
        super().__init__(
            f"Slippage exceeded: expected at least {expected_min}, received {received}"
        )


# Transfer exceptions


class TransferError(SavingsKernelError):
    """Base exception for external funds movement."""

    code: str = "TRANSFER_ERROR"


class WithdrawalFailedError(TransferError):
    """Outbound transfer of withdrawn savings failed."""

    code: str = "WITHDRAWAL_FAILED"

    def __init__(self, user: str, asset: str, amount: int, reason: str = ""):
        self.user = user
        self.asset = asset
        self.amount = amount
        self.reason = reason
        super().__init__(
            f"Withdrawal of {amount} {asset} to {user} failed"
            + (f": {reason}" if reason else "")
        )


# Concurrency exceptions


class ConcurrencyError(SavingsKernelError):
    """Base exception for call-ordering violations."""

    code: str = "CONCURRENCY_ERROR"


class ReentrantCallError(ConcurrencyError):
    """A guarded operation was entered while already in progress."""

    code: str = "REENTRANT_CALL"

    def __init__(self, operation: str, active: str):
        self.operation = operation
        self.active = active
        super().__init__(
            f"Re-entrant call to {operation} while {active} is in progress"
        )


# Budget exceptions


class BudgetError(SavingsKernelError):
    """Base exception for resource budget accounting."""

    code: str = "BUDGET_ERROR"


class BudgetExhaustedError(BudgetError):
    """A charge would exceed the remaining resource budget."""

    code: str = "BUDGET_EXHAUSTED"

    def __init__(self, requested: int, remaining: int):
        self.requested = requested
        self.remaining = remaining
        super().__init__(
            f"Resource budget exhausted: requested {requested}, remaining {remaining}"
        )
