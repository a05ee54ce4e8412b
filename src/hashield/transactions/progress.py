"""Transaction progress reporting.

Each approved operation gets a progress record keyed by its id. The UI shows
one slot at a time, which `current()` serves as the most recently updated
record. Terminal records clear themselves after a delay, longer on error.
"""

import asyncio
import itertools
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)

TOTAL_STEPS = 2


class ProgressStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self is not ProgressStatus.PROCESSING


@dataclass(frozen=True)
class TransactionProgress:
    """Snapshot of one operation's progress."""

    operation_id: str
    step: int
    total_steps: int
    step_name: str
    status: ProgressStatus
    tx_hash: Optional[str] = None
    error: Optional[str] = None
    updated_at: float = field(default_factory=time.time)
    sequence: int = field(default=0, compare=False)

    def to_dict(self) -> dict:
        return {
            "txId": self.operation_id,
            "step": self.step,
            "totalSteps": self.total_steps,
            "stepName": self.step_name,
            "status": self.status.value,
            "txHash": self.tx_hash,
            "error": self.error,
            "timestamp": int(self.updated_at * 1000),
        }


class ProgressTracker:
    """Progress records keyed by operation id.

    Step indices never decrease for an operation. A scheduled clear removes
    only the exact record it was scheduled for; any later update for the same
    operation cancels it.
    """

    def __init__(
        self,
        clear_delay_success: float = 5.0,
        clear_delay_error: float = 10.0,
        total_steps: int = TOTAL_STEPS,
    ):
        self.clear_delay_success = clear_delay_success
        self.clear_delay_error = clear_delay_error
        self.total_steps = total_steps
        self._records: dict[str, TransactionProgress] = {}
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._sequence = itertools.count(1)

    def update(
        self,
        operation_id: str,
        step: int,
        step_name: str,
        status: ProgressStatus = ProgressStatus.PROCESSING,
        tx_hash: Optional[str] = None,
        error: Optional[str] = None,
    ) -> TransactionProgress:
        """Record a progress transition.

        Raises:
            ValueError: If step is outside 0..total_steps or goes backwards
        """
        if not 0 <= step <= self.total_steps:
            raise ValueError(f"Step {step} outside 0..{self.total_steps}")

        previous = self._records.get(operation_id)
        if previous is not None and step < previous.step:
            raise ValueError(
                f"Progress for {operation_id} cannot go back from step {previous.step} to {step}"
            )

        record = TransactionProgress(
            operation_id=operation_id,
            step=step,
            total_steps=self.total_steps,
            step_name=step_name,
            status=status,
            tx_hash=tx_hash or (previous.tx_hash if previous else None),
            error=error,
            sequence=next(self._sequence),
        )
        self._records[operation_id] = record
        self._cancel_timer(operation_id)
        logger.info(
            f"Progress {operation_id}: {step}/{self.total_steps} {step_name} ({status.value})"
        )

        if status.is_terminal:
            delay = (
                self.clear_delay_error if status == ProgressStatus.ERROR
                else self.clear_delay_success
            )
            self._schedule_clear(record, delay)
        return record

    def fail(self, operation_id: str, step_name: str, error: str) -> TransactionProgress:
        """Move an operation to error at its current step."""
        previous = self._records.get(operation_id)
        step = previous.step if previous else 0
        return self.update(operation_id, step, step_name, ProgressStatus.ERROR, error=error)

    def get(self, operation_id: str) -> Optional[TransactionProgress]:
        return self._records.get(operation_id)

    def current(self) -> Optional[TransactionProgress]:
        """The most recently updated record (the single visible slot)."""
        if not self._records:
            return None
        return max(self._records.values(), key=lambda r: r.sequence)

    def all(self) -> list[TransactionProgress]:
        """All live records, newest first."""
        return sorted(self._records.values(), key=lambda r: r.sequence, reverse=True)

    def clear(self, operation_id: str) -> None:
        self._cancel_timer(operation_id)
        self._records.pop(operation_id, None)

    def close(self) -> None:
        """Cancel pending clears and drop every record."""
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        self._records.clear()

    def _schedule_clear(self, record: TransactionProgress, delay: float) -> None:
        loop = asyncio.get_running_loop()
        self._timers[record.operation_id] = loop.call_later(delay, self._clear_if_current, record)

    def _clear_if_current(self, record: TransactionProgress) -> None:
        self._timers.pop(record.operation_id, None)
        if self._records.get(record.operation_id) is record:
            del self._records[record.operation_id]
            logger.debug(f"Progress cleared for {record.operation_id}")

    def _cancel_timer(self, operation_id: str) -> None:
        handle = self._timers.pop(operation_id, None)
        if handle is not None:
            handle.cancel()
