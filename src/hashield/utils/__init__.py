"""Utility modules for hashield."""

from hashield.utils.locks import (
    LockTimeoutError,
    OperationLock,
    clear_operation_locks,
    get_operation_lock,
    release_operation_lock,
)

__all__ = [
    "LockTimeoutError",
    "OperationLock",
    "clear_operation_locks",
    "get_operation_lock",
    "release_operation_lock",
]
