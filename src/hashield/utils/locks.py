"""Concurrency control utilities for pending operations.

Provides per-key locking so that check-and-mutate steps on the same
operation (approve, reject) run one at a time.
"""

import asyncio
import logging
from typing import Optional

logger = logging.getLogger(__name__)

# Global lock registry: key -> asyncio.Lock
_operation_locks: dict[str, asyncio.Lock] = {}


class LockTimeoutError(Exception):
    """Raised when a lock cannot be acquired within the timeout period."""

    pass


def get_operation_lock(key: str) -> asyncio.Lock:
    """Get or create the lock for a key.

    Runs without awaiting, so two tasks asking for the same key always get
    the same lock object.
    """
    lock = _operation_locks.get(key)
    if lock is None:
        lock = _operation_locks[key] = asyncio.Lock()
    return lock


async def _acquire(lock: asyncio.Lock, key: str, timeout: Optional[float], operation: str) -> None:
    try:
        if timeout:
            await asyncio.wait_for(lock.acquire(), timeout=timeout)
        else:
            await lock.acquire()
    except asyncio.TimeoutError:
        logger.warning(f"Lock timeout for {key} after {timeout}s: {operation}")
        raise LockTimeoutError(f"Could not acquire lock for {key} within {timeout}s")

    logger.debug(f"Lock acquired for {key}: {operation}")


class OperationLock:
    """Context manager for exclusive access to one operation's state.

    Example:
        async with OperationLock(operation_id, operation="approve"):
            op = registry.get(operation_id)
            ...
    """

    def __init__(
        self,
        key: str,
        timeout: Optional[float] = 30.0,
        operation: str = "operation",
    ):
        """Initialize the lock.

        Args:
            key: Operation id (or any string key)
            timeout: Maximum time to wait for lock (None = wait forever)
            operation: Description of the operation for logging
        """
        self.key = key
        self.timeout = timeout
        self.operation = operation
        self._lock: Optional[asyncio.Lock] = None
        self._acquired = False

    async def __aenter__(self) -> "OperationLock":
        self._lock = get_operation_lock(self.key)
        await _acquire(self._lock, self.key, self.timeout, self.operation)
        self._acquired = True
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._acquired and self._lock:
            self._lock.release()
            self._acquired = False
            logger.debug(f"Lock released for {self.key}: {self.operation}")
        return False


def release_operation_lock(key: str) -> bool:
    """Drop a key's lock from the registry once nobody holds it.

    Returns:
        True if the lock was removed
    """
    lock = _operation_locks.get(key)
    if lock is None or lock.locked():
        return False
    del _operation_locks[key]
    return True


def clear_operation_locks() -> None:
    """Clear all operation locks (useful for testing)."""
    _operation_locks.clear()
