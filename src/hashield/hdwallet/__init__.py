"""HD wallet module: master identity and per-connection session keys."""

from hashield.hdwallet.base import (
    InvalidMnemonicError,
    MasterIdentity,
    NoMasterIdentityError,
    SessionIdentity,
    SessionNotFoundError,
    WalletError,
)
from hashield.hdwallet.counter import CounterStore, FileCounterStore, MemoryCounterStore
from hashield.hdwallet.session import SessionKeyCoordinator
from hashield.hdwallet.store import WalletStore

__all__ = [
    "MasterIdentity",
    "SessionIdentity",
    "SessionKeyCoordinator",
    "CounterStore",
    "FileCounterStore",
    "MemoryCounterStore",
    "WalletStore",
    "WalletError",
    "NoMasterIdentityError",
    "InvalidMnemonicError",
    "SessionNotFoundError",
]
