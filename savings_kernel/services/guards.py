"""
Re-entrancy guard for the two-phase interception protocol.

Execution is call-serialized by the host, so no real lock is needed.
What can happen is a collaborator (share token, funds transfer, DCA
conversion) calling back into prepare/settle while one is in progress.
The guard is acquired with ``with`` and released on every exit path.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from savings_kernel.exceptions import ReentrantCallError


class ReentrancyGuard:
    """Rejects a nested entry into any operation it protects."""

    def __init__(self) -> None:
        self._active: str | None = None

    @property
    def active(self) -> str | None:
        """Name of the operation currently holding the guard."""
        return self._active

    @property
    def locked(self) -> bool:
        return self._active is not None

    @contextmanager
    def enter(self, operation: str) -> Iterator[None]:
        """
        Raises:
            ReentrantCallError: If another guarded operation is in progress.
        """
        if self._active is not None:
            raise ReentrantCallError(operation, self._active)
        self._active = operation
        try:
            yield
        finally:
            self._active = None
