"""Claim/refund secret generation for hash-locked escrows.

Each settlement order gets two independent 32-byte secrets. Only their
keccak256 hashes are published in escrow parameters; the raw secrets stay
off-chain until they are revealed to withdraw or refund.

The hash matches what the EVM escrow contracts compute over the raw
bytes32 secret, so a hash produced here at deployment time is the one the
contract checks at withdrawal time.
"""

import logging
import secrets
from dataclasses import dataclass
from typing import Union

from eth_utils import keccak

logger = logging.getLogger(__name__)

SECRET_SIZE = 32


class RandomSourceUnavailable(RuntimeError):
    """Raised when the platform cannot supply cryptographically secure randomness."""

    pass


@dataclass(frozen=True)
class HashLockSecretPair:
    """Claim and refund secrets with their published hashes (0x-prefixed hex)."""

    claim_secret: str
    refund_secret: str
    claim_secret_hash: str
    refund_secret_hash: str

    def public(self) -> dict:
        """Hashes only, safe to publish in escrow parameters or order records."""
        return {
            "claimSecretHash": self.claim_secret_hash,
            "refundSecretHash": self.refund_secret_hash,
        }

    def __repr__(self) -> str:
        return (
            f"HashLockSecretPair(claim_secret_hash={self.claim_secret_hash}, "
            f"refund_secret_hash={self.refund_secret_hash})"
        )


def _to_bytes(secret: Union[str, bytes]) -> bytes:
    if isinstance(secret, (bytes, bytearray)):
        raw = bytes(secret)
    else:
        value = secret[2:] if secret.startswith(("0x", "0X")) else secret
        try:
            raw = bytes.fromhex(value)
        except ValueError as e:
            raise ValueError(f"Secret is not valid hex: {e}") from e

    if len(raw) != SECRET_SIZE:
        raise ValueError(f"Secret must be {SECRET_SIZE} bytes, got {len(raw)}")
    return raw


def generate_secret() -> str:
    """Generate one 32-byte secret as 0x-prefixed hex.

    Raises:
        RandomSourceUnavailable: If the OS random source fails
    """
    try:
        raw = secrets.token_bytes(SECRET_SIZE)
    except (NotImplementedError, OSError) as e:
        logger.error(f"Secure random source unavailable: {e}")
        raise RandomSourceUnavailable(str(e)) from e
    return "0x" + raw.hex()


def hash_secret(secret: Union[str, bytes]) -> str:
    """keccak256 of the raw 32-byte secret, as 0x-prefixed hex."""
    return "0x" + keccak(_to_bytes(secret)).hex()


def verify_secret(secret: Union[str, bytes], expected_hash: str) -> bool:
    """Check a revealed secret against a published hash."""
    return hash_secret(secret).lower() == expected_hash.lower()


def generate_secret_pair() -> HashLockSecretPair:
    """Generate a claim/refund secret pair for one settlement order."""
    claim_secret = generate_secret()
    refund_secret = generate_secret()
    while refund_secret == claim_secret:
        refund_secret = generate_secret()

    return HashLockSecretPair(
        claim_secret=claim_secret,
        refund_secret=refund_secret,
        claim_secret_hash=hash_secret(claim_secret),
        refund_secret_hash=hash_secret(refund_secret),
    )
