"""HD wallet identities.

The master identity is the BIP-39 root imported from a recovery phrase. Its
index-0 account controls the reserve pool. Session identities are derived from
the same root at increasing indexes, one per dApp connection, using the
standard Ethereum BIP44 path:

    m/44'/60'/0'/0/index

The phrase never leaves this process except through the encrypted wallet store.
"""

import logging
from dataclasses import dataclass, field

from bip_utils import (
    Bip39MnemonicValidator,
    Bip39SeedGenerator,
    Bip44,
    Bip44Changes,
    Bip44Coins,
)
from eth_account import Account
from eth_account.signers.local import LocalAccount

logger = logging.getLogger(__name__)

MASTER_INDEX = 0
MAX_INDEX = 2**31 - 1


class WalletError(Exception):
    """Base class for wallet errors."""

    pass


class NoMasterIdentityError(WalletError):
    """Raised when an operation needs the master identity and none is loaded."""

    def __init__(self, message: str = "No master wallet available"):
        super().__init__(message)


class InvalidMnemonicError(WalletError):
    """Raised when a recovery phrase fails BIP-39 validation."""

    def __init__(self, message: str = "Invalid seed phrase"):
        super().__init__(message)


class SessionNotFoundError(WalletError):
    """Raised when restoring a session index that was never derived."""

    pass


def derivation_path(index: int) -> str:
    """BIP44 Ethereum path for an address index."""
    return f"m/44'/60'/0'/0/{index}"


@dataclass(frozen=True)
class SessionIdentity:
    """An ephemeral signing identity derived at a session index."""

    index: int
    address: str
    derivation_path: str
    account: LocalAccount = field(repr=False, compare=False)

    def to_dict(self, is_current: bool = False) -> dict:
        return {
            "sessionNumber": self.index,
            "address": self.address,
            "isCurrent": is_current,
        }


class MasterIdentity:
    """Long-lived key-derivation root.

    Usage:
        master = MasterIdentity("abandon abandon ... about")
        session = master.derive(7)
    """

    def __init__(self, phrase: str):
        phrase = " ".join(phrase.split())
        if not Bip39MnemonicValidator().IsValid(phrase):
            raise InvalidMnemonicError()

        self._phrase = phrase
        seed = Bip39SeedGenerator(phrase).Generate()
        self._chain_ctx = (
            Bip44.FromSeed(seed, Bip44Coins.ETHEREUM)
            .Purpose()
            .Coin()
            .Account(0)
            .Change(Bip44Changes.CHAIN_EXT)
        )
        self._account = self._account_at(MASTER_INDEX)

    @property
    def phrase(self) -> str:
        return self._phrase

    @property
    def address(self) -> str:
        return self._account.address

    @property
    def account(self) -> LocalAccount:
        """Signing account of the pool controller (index 0)."""
        return self._account

    def _account_at(self, index: int) -> LocalAccount:
        node = self._chain_ctx.AddressIndex(index)
        return Account.from_key(node.PrivateKey().Raw().ToBytes())

    def derive(self, index: int) -> SessionIdentity:
        """Derive the session identity at an index (>= 1)."""
        if index < 1 or index > MAX_INDEX:
            raise ValueError(f"Session index out of range: {index}")

        account = self._account_at(index)
        return SessionIdentity(
            index=index,
            address=account.address,
            derivation_path=derivation_path(index),
            account=account,
        )

    def __repr__(self) -> str:
        return f"MasterIdentity(address={self.address})"

