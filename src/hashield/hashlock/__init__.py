"""Hash-lock secret management for escrow settlement."""

from hashield.hashlock.secret_pair import (
    HashLockSecretPair,
    RandomSourceUnavailable,
    generate_secret,
    generate_secret_pair,
    hash_secret,
    verify_secret,
)

__all__ = [
    "HashLockSecretPair",
    "RandomSourceUnavailable",
    "generate_secret",
    "generate_secret_pair",
    "hash_secret",
    "verify_secret",
]
