"""Tests for the per-operation lock registry."""

import asyncio

import pytest

from hashield.utils.locks import (
    LockTimeoutError,
    OperationLock,
    _operation_locks,
    get_operation_lock,
    release_operation_lock,
)


class TestOperationLocks:
    """Tests for the concurrency locks module."""

    @pytest.mark.asyncio
    async def test_same_key_same_lock(self):
        """Test that get_operation_lock returns one lock per key."""
        assert get_operation_lock("a") is get_operation_lock("a")
        assert get_operation_lock("a") is not get_operation_lock("b")

    @pytest.mark.asyncio
    async def test_context_manager_releases(self):
        async with OperationLock("op-1", operation="test"):
            lock = get_operation_lock("op-1")
            assert lock.locked()

        assert not lock.locked()

    @pytest.mark.asyncio
    async def test_prevents_concurrent_access(self):
        """Test that holders of the same key run one at a time."""
        results = []

        async def task(name):
            async with OperationLock("shared", timeout=10.0, operation=f"task_{name}"):
                results.append(f"{name}_start")
                await asyncio.sleep(0.05)
                results.append(f"{name}_end")

        await asyncio.gather(task("A"), task("B"))

        assert results in [
            ["A_start", "A_end", "B_start", "B_end"],
            ["B_start", "B_end", "A_start", "A_end"],
        ]

    @pytest.mark.asyncio
    async def test_timeout(self):
        """Test that a held lock times out a second waiter."""
        async with OperationLock("busy"):
            with pytest.raises(LockTimeoutError):
                async with OperationLock("busy", timeout=0.05):
                    pass

    @pytest.mark.asyncio
    async def test_released_on_exception(self):
        with pytest.raises(RuntimeError):
            async with OperationLock("boom"):
                raise RuntimeError("fail")

        assert not get_operation_lock("boom").locked()

    @pytest.mark.asyncio
    async def test_release_only_when_free(self):
        async with OperationLock("held"):
            assert release_operation_lock("held") is False
            assert "held" in _operation_locks

        assert release_operation_lock("held") is True
        assert "held" not in _operation_locks
        assert release_operation_lock("missing") is False
