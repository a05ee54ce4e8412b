"""Pending transaction registry with single-flight approval.

State machine per operation:

    intake -> rejected
    intake -> approving -> executing -> succeeded | failed

`approve` sets the processing flag and removes the operation from the pending
registry in one step under the operation's lock, so a concurrent second
`approve` sees AlreadyProcessing and a concurrent `reject` sees NotFound. A
transaction is submitted at most once per approval.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Coroutine, Optional, Union

from hashield.transactions.executor import TransactionExecutor
from hashield.transactions.models import OperationStatus, PendingOperation, TransactionRequest
from hashield.utils.locks import OperationLock, release_operation_lock

logger = logging.getLogger(__name__)

SubmitHook = Callable[[PendingOperation], Awaitable[Any]]


class OperationNotFoundError(LookupError):
    """No pending operation with this id (unknown, resolved or already approved)."""

    def __init__(self, operation_id: str):
        self.operation_id = operation_id
        super().__init__("Transaction not found")


class AlreadyProcessingError(Exception):
    """Approval was already accepted for this operation."""

    def __init__(self, operation_id: str):
        self.operation_id = operation_id
        super().__init__("Transaction already being processed")


class UserRejectedError(Exception):
    """The user declined the request."""

    def __init__(self, message: str = "User rejected transaction"):
        super().__init__(message)


class TransactionQueue:
    """Holds requests until the user approves or rejects them.

    Args:
        executor: Runs approved operations
        on_submit: Optional best-effort hook called for every new request
            (notification, bridge order creation). Its failures are logged.
        lock_timeout: Seconds to wait for an operation's lock
    """

    def __init__(
        self,
        executor: TransactionExecutor,
        on_submit: Optional[SubmitHook] = None,
        lock_timeout: Optional[float] = 30.0,
    ):
        self.executor = executor
        self.on_submit = on_submit
        self.lock_timeout = lock_timeout
        self._pending: dict[str, PendingOperation] = {}
        self._in_flight: dict[str, PendingOperation] = {}
        self._tasks: set[asyncio.Task] = set()

    def submit(self, request: Union[TransactionRequest, dict]) -> str:
        """Register a request and return its operation id.

        Raises:
            InvalidRequestError: If the raw params are malformed
        """
        if not isinstance(request, TransactionRequest):
            request = TransactionRequest.parse(request)

        operation = PendingOperation(request)
        self._pending[operation.id] = operation
        logger.info(f"Transaction {operation.id} queued: to={request.to} value={request.value}")

        if self.on_submit is not None:
            self._spawn(self._notify(operation))
        return operation.id

    async def approve(self, operation_id: str) -> PendingOperation:
        """Accept an operation for execution.

        Returns once execution has been scheduled, not when it settles.

        Raises:
            AlreadyProcessingError: If approval was already accepted
            OperationNotFoundError: If the id is unknown or already resolved
        """
        async with OperationLock(operation_id, self.lock_timeout, operation="approve"):
            if operation_id in self._in_flight:
                raise AlreadyProcessingError(operation_id)

            operation = self._pending.get(operation_id)
            if operation is None:
                raise OperationNotFoundError(operation_id)
            if operation.processing:
                raise AlreadyProcessingError(operation_id)

            operation.processing = True
            operation.status = OperationStatus.APPROVING
            del self._pending[operation_id]
            self._in_flight[operation_id] = operation

        logger.info(f"Transaction {operation_id} approved")
        self._spawn(self._run(operation))
        return operation

    async def reject(self, operation_id: str) -> None:
        """Cancel a not-yet-approved operation.

        Raises:
            OperationNotFoundError: If the id is unknown, resolved or approved
        """
        async with OperationLock(operation_id, self.lock_timeout, operation="reject"):
            operation = self._pending.pop(operation_id, None)
            if operation is None:
                raise OperationNotFoundError(operation_id)

            operation.status = OperationStatus.REJECTED
            operation.fail(UserRejectedError())

        release_operation_lock(operation_id)
        logger.info(f"Transaction {operation_id} rejected")

    def list(self) -> list[PendingOperation]:
        """Snapshot of operations awaiting a decision, oldest first."""
        return sorted(self._pending.values(), key=lambda op: op.created_at)

    def get(self, operation_id: str) -> Optional[PendingOperation]:
        return self._pending.get(operation_id) or self._in_flight.get(operation_id)

    async def wait_for_outcome(self, operation_id: str) -> str:
        """Await the transaction hash (or the error) for a known operation.

        Raises:
            OperationNotFoundError: If the id is not pending or in flight
        """
        operation = self.get(operation_id)
        if operation is None:
            raise OperationNotFoundError(operation_id)
        return await operation.outcome

    async def drain(self) -> None:
        """Wait for every background task (execution, confirmation, hooks)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _spawn(self, coro: Coroutine) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, operation: PendingOperation) -> None:
        try:
            confirmation = await self.executor.execute(operation)
            if confirmation is not None:
                self._tasks.add(confirmation)
                confirmation.add_done_callback(self._tasks.discard)
        finally:
            self._in_flight.pop(operation.id, None)
            release_operation_lock(operation.id)

    async def _notify(self, operation: PendingOperation) -> None:
        try:
            await self.on_submit(operation)
        except Exception as e:
            logger.warning(f"Submit hook failed for {operation.id}: {e}")
