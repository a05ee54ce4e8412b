"""Durable session-index counter.

Single writer: only the session coordinator mutates it. Every increment is
persisted before the derived identity is handed out, so a crash between
derivation and use never leads to the same index being issued twice.
"""

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path

logger = logging.getLogger(__name__)


class CounterStore(ABC):
    """Persistence backend for the session counter."""

    @abstractmethod
    def load(self) -> int:
        """Return the last persisted value (0 if none)."""
        pass

    @abstractmethod
    def save(self, value: int) -> None:
        """Persist a new value. Must be durable when it returns."""
        pass


class MemoryCounterStore(CounterStore):
    """In-memory store for tests and ephemeral runs."""

    def __init__(self, value: int = 0):
        self.value = value
        self.saves = 0

    def load(self) -> int:
        return self.value

    def save(self, value: int) -> None:
        self.value = value
        self.saves += 1


class FileCounterStore(CounterStore):
    """JSON file store with atomic replace.

    The file holds {"sessionCounter": n}. Writes go to a temp file in the same
    directory, are fsynced, then os.replace()d over the target.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self) -> int:
        if not self.path.exists():
            return 0
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return int(data.get("sessionCounter", 0))
        except (ValueError, TypeError) as e:
            raise ValueError(f"Corrupted session counter file {self.path}: {e}") from e

    def save(self, value: int) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".counter-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump({"sessionCounter": value}, f)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        logger.debug(f"Session counter persisted: {value}")
