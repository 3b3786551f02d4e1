"""
Clock -- Deterministic time abstraction.

Responsibility:
    Provides an injectable clock so that domain and service code never call
    ``time.time()`` or ``datetime.now()`` directly.  The ledger works in
    integer UNIX seconds (the unit of every stored timestamp), so the
    primary accessor is ``timestamp()``.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O (except SystemClock,
    which is the one sanctioned I/O boundary for time).

Failure modes:
    - None; clocks never raise.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone


class Clock(ABC):
    """
    Abstract clock interface.

    Contract:
        All services that need current time receive a Clock instance via
        constructor injection.

    Guarantees:
        - ``timestamp()`` returns integer UNIX seconds.
        - ``now()`` returns the matching timezone-aware UTC ``datetime``.
    """

    @abstractmethod
    def timestamp(self) -> int:
        """Current time in whole UNIX seconds."""
        ...

    def now(self) -> datetime:
        """Current time as an aware UTC datetime."""
        return datetime.fromtimestamp(self.timestamp(), tz=timezone.utc)


class SystemClock(Clock):
    """
    Production clock that returns actual system time.

    Non-goals:
        Not suitable for deterministic replay or testing.
    """

    def timestamp(self) -> int:
        return int(datetime.now(timezone.utc).timestamp())


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Guarantees:
        - ``timestamp()`` returns the same value on repeated calls until
          ``advance()`` or ``set_time()`` is called.
        - ``tick()`` advances by exactly 1 second and returns the new time.
    """

    DEFAULT_EPOCH = 1_704_110_400  # 2024-01-01T12:00:00Z

    def __init__(self, fixed_time: int | datetime | None = None):
        """
        Initialize with optional fixed time.

        Args:
            fixed_time: UNIX seconds or an aware datetime.  Defaults to
                2024-01-01T12:00:00Z.
        """
        self._fixed_time = self._to_seconds(fixed_time) if fixed_time is not None else self.DEFAULT_EPOCH
        self._advance_seconds = 0

    @staticmethod
    def _to_seconds(value: int | datetime) -> int:
        if isinstance(value, datetime):
            return int(value.timestamp())
        return int(value)

    def timestamp(self) -> int:
        return self._fixed_time + self._advance_seconds

    def set_time(self, time: int | datetime) -> None:
        """Set the clock to a specific time."""
        self._fixed_time = self._to_seconds(time)
        self._advance_seconds = 0

    def advance(self, seconds: int = 1) -> None:
        """Advance the clock by the specified seconds."""
        self._advance_seconds += seconds

    def advance_days(self, days: int) -> None:
        """Advance the clock by whole days."""
        self.advance(days * 86_400)

    def tick(self) -> int:
        """Advance by 1 second and return new time."""
        self.advance(1)
        return self.timestamp()

