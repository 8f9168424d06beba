"""Serialisation primitives for vendor command execution.

The DSEE tools mutate the on-disk registry and instance directories without
any locking of their own, so every invocation made by this process goes
through one re-entrant gate. Reconcilers hold the gate across their probe and
the action that follows so the pair is atomic with respect to other threads.
"""
from __future__ import annotations

import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from .errors import DseectlError


class LockTimeoutError(DseectlError):
    """Raised when the execution gate cannot be acquired in time."""


@dataclass(frozen=True, slots=True)
class LockHandle:
    """Information about an acquired gate."""

    wait_ms: int
    depth: int


class ExecutionLock:
    """Re-entrant mutual-exclusion gate with optional acquisition timeout."""

    def __init__(self, default_timeout: float | None = None) -> None:
        """Create the gate; ``default_timeout`` of ``None`` waits forever."""
        self.default_timeout = default_timeout
        self._lock = threading.RLock()
        self._local = threading.local()

    @contextmanager
    def hold(self, timeout: float | None = None) -> Iterator[LockHandle]:
        """Acquire the gate for the duration of the ``with`` block."""
        effective = self.default_timeout if timeout is None else timeout
        start = time.perf_counter()
        if effective is None:
            acquired = self._lock.acquire()
        else:
            acquired = self._lock.acquire(timeout=effective)
        if not acquired:
            raise LockTimeoutError(
                f"Timed out after {effective:.1f}s waiting for the execution lock."
            )
        depth = getattr(self._local, "depth", 0) + 1
        self._local.depth = depth
        try:
            yield LockHandle(wait_ms=int((time.perf_counter() - start) * 1000), depth=depth)
        finally:
            self._local.depth = depth - 1
            self._lock.release()

    @property
    def held(self) -> bool:
        """Return ``True`` when the calling thread currently holds the gate."""
        return getattr(self._local, "depth", 0) > 0


class NullLock(ExecutionLock):
    """Gate that never blocks; for single-threaded unit tests."""

    @contextmanager
    def hold(self, timeout: float | None = None) -> Iterator[LockHandle]:
        """Yield immediately without acquiring anything."""
        yield LockHandle(wait_ms=0, depth=1)

    @property
    def held(self) -> bool:
        """Null locks are never considered held."""
        return False


_SHARED_LOCK = ExecutionLock()


def shared_lock() -> ExecutionLock:
    """Return the process-wide execution gate."""
    return _SHARED_LOCK


__all__ = ["ExecutionLock", "LockHandle", "LockTimeoutError", "NullLock", "shared_lock"]
