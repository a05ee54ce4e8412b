"""Transaction intake, approval queue, execution and progress reporting."""

from hashield.transactions.executor import NoSessionError, TransactionExecutor
from hashield.transactions.models import (
    AddressSubstitution,
    InvalidRequestError,
    OperationStatus,
    PendingOperation,
    TransactionRequest,
)
from hashield.transactions.progress import ProgressStatus, ProgressTracker, TransactionProgress
from hashield.transactions.queue import (
    AlreadyProcessingError,
    OperationNotFoundError,
    TransactionQueue,
    UserRejectedError,
)

__all__ = [
    "AddressSubstitution",
    "AlreadyProcessingError",
    "InvalidRequestError",
    "NoSessionError",
    "OperationNotFoundError",
    "OperationStatus",
    "PendingOperation",
    "ProgressStatus",
    "ProgressTracker",
    "TransactionExecutor",
    "TransactionProgress",
    "TransactionQueue",
    "TransactionRequest",
    "UserRejectedError",
]
