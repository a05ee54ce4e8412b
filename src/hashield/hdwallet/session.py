"""Session key coordination.

A fresh session identity is derived for every dApp connection. The counter
only moves forward; restoring an older session re-derives it without
touching the counter, so the next connection still gets a never-used index.
"""

import logging
from typing import Optional

from hashield.hdwallet.base import (
    MasterIdentity,
    NoMasterIdentityError,
    SessionIdentity,
    SessionNotFoundError,
)
from hashield.hdwallet.counter import CounterStore, MemoryCounterStore

logger = logging.getLogger(__name__)


class SessionKeyCoordinator:
    """Derives and tracks session identities for one master identity.

    Usage:
        coordinator = SessionKeyCoordinator(FileCounterStore("data/counter.json"))
        coordinator.load_master(MasterIdentity(phrase))
        session = coordinator.derive_next()
    """

    def __init__(self, counter_store: Optional[CounterStore] = None):
        self._store = counter_store or MemoryCounterStore()
        self._counter = self._store.load()
        self._master: Optional[MasterIdentity] = None
        self._current: Optional[SessionIdentity] = None
        self._cache: dict[int, SessionIdentity] = {}

    @property
    def master(self) -> Optional[MasterIdentity]:
        return self._master

    @property
    def counter(self) -> int:
        """Highest index ever issued for the loaded master."""
        return self._counter

    def require_master(self) -> MasterIdentity:
        if self._master is None:
            raise NoMasterIdentityError()
        return self._master

    def load_master(self, master: MasterIdentity, reset_counter: bool = False) -> None:
        """Install a master identity.

        Args:
            master: The derivation root
            reset_counter: Start indexes over (used when a new phrase is imported)
        """
        self._master = master
        self._current = None
        self._cache.clear()
        if reset_counter:
            self._persist(0)
        if self._counter > 0:
            self._current = self._derive(self._counter)
        logger.info(f"Master identity loaded: {master.address} (session counter {self._counter})")

    def clear(self) -> None:
        """Destroy the master identity and session history (wallet clear)."""
        self._master = None
        self._current = None
        self._cache.clear()
        self._persist(0)
        logger.info("Wallet cleared")

    def current(self) -> Optional[SessionIdentity]:
        return self._current

    def derive_next(self) -> SessionIdentity:
        """Issue a new session identity at counter + 1.

        The incremented counter is persisted before derivation.

        Raises:
            NoMasterIdentityError: If no master is loaded
        """
        self.require_master()
        index = self._counter + 1
        self._persist(index)

        identity = self._derive(index)
        self._current = identity
        logger.info(f"Generated fresh session wallet #{index}: {identity.address}")
        return identity

    def restore(self, index: int) -> SessionIdentity:
        """Switch back to a previously issued session without advancing the counter.

        Raises:
            NoMasterIdentityError: If no master is loaded
            SessionNotFoundError: If the index was never issued
        """
        self.require_master()
        if index < 1 or index > self._counter:
            raise SessionNotFoundError(
                f"Session #{index} does not exist (issued: 1..{self._counter})"
            )

        identity = self._derive(index)
        self._current = identity
        logger.info(f"Switched to session #{index}: {identity.address}")
        return identity

    def history(self) -> list[SessionIdentity]:
        """All issued sessions, newest first."""
        if self._master is None:
            return []
        return [self._derive(i) for i in range(self._counter, 0, -1)]

    def _derive(self, index: int) -> SessionIdentity:
        if index not in self._cache:
            self._cache[index] = self.require_master().derive(index)
        return self._cache[index]

    def _persist(self, value: int) -> None:
        self._store.save(value)
        self._counter = value
