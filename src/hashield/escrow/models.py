"""Escrow call parameters and the local state log.

The on-chain escrow contracts are authoritative. The tracker here only records
what this process observed after each confirmed call.
"""

import logging
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

from eth_abi import encode
from eth_utils import keccak, to_bytes

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

IMMUTABLES_ABI_TYPE = "(bytes32,bytes32,uint256,uint256,uint256,uint256,uint256,uint256)"

Bytes32 = Union[str, bytes]
AddressLike = Union[str, int]


def as_bytes32(value: Bytes32) -> bytes:
    """Coerce a 0x-hex string or bytes to exactly 32 bytes."""
    raw = to_bytes(hexstr=value) if isinstance(value, str) else bytes(value)
    if len(raw) != 32:
        raise ValueError(f"Expected 32 bytes, got {len(raw)}")
    return raw


def as_uint_address(value: AddressLike) -> int:
    """Address type of the escrow ABI: an address packed into a uint256."""
    if isinstance(value, int):
        return value
    return int(value, 16)


@dataclass(frozen=True)
class Immutables:
    """Escrow immutables (order hash, hashlock, parties, amounts, timelocks)."""

    order_hash: Bytes32
    hashlock: Bytes32
    maker: AddressLike
    taker: AddressLike
    token: AddressLike
    amount: int
    safety_deposit: int
    timelocks: int

    @classmethod
    def from_dict(cls, data: Mapping) -> "Immutables":
        return cls(
            order_hash=data["orderHash"],
            hashlock=data["hashlock"],
            maker=data["maker"],
            taker=data["taker"],
            token=data["token"],
            amount=int(data["amount"]),
            safety_deposit=int(data["safetyDeposit"]),
            timelocks=int(data["timelocks"]),
        )

    def as_tuple(self) -> tuple:
        return (
            as_bytes32(self.order_hash),
            as_bytes32(self.hashlock),
            as_uint_address(self.maker),
            as_uint_address(self.taker),
            as_uint_address(self.token),
            self.amount,
            self.safety_deposit,
            self.timelocks,
        )

    def hash(self) -> str:
        """keccak256 of the ABI-encoded immutables, 0x-prefixed."""
        return "0x" + keccak(encode([IMMUTABLES_ABI_TYPE], [self.as_tuple()])).hex()


@dataclass(frozen=True)
class LimitOrder:
    """Limit order protocol v4 order struct."""

    salt: int
    maker: AddressLike
    receiver: AddressLike
    maker_asset: AddressLike
    taker_asset: AddressLike
    making_amount: int
    taking_amount: int
    maker_traits: int

    def as_tuple(self) -> tuple:
        return (
            self.salt,
            as_uint_address(self.maker),
            as_uint_address(self.receiver),
            as_uint_address(self.maker_asset),
            as_uint_address(self.taker_asset),
            self.making_amount,
            self.taking_amount,
            self.maker_traits,
        )


def abi_value(value: Any) -> Any:
    """Typed parameters become tuples; raw tuples and dicts pass through unchanged."""
    if hasattr(value, "as_tuple"):
        return value.as_tuple()
    return value


def escrow_key(immutables: Any) -> Optional[str]:
    """Identify an escrow by its immutables hash, when the shape allows it."""
    try:
        if isinstance(immutables, Immutables):
            return immutables.hash()
        if isinstance(immutables, Mapping):
            return Immutables.from_dict(immutables).hash()
        if isinstance(immutables, Sequence) and len(immutables) == 8:
            return Immutables(*immutables).hash()
    except (KeyError, TypeError, ValueError) as e:
        logger.debug(f"Cannot derive escrow key from immutables: {e}")
    return None


class EscrowState(str, Enum):
    UNDEPLOYED = "undeployed"
    SOURCE_DEPLOYED = "source_deployed"
    DESTINATION_DEPLOYED = "destination_deployed"
    WITHDRAWN = "withdrawn"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (EscrowState.WITHDRAWN, EscrowState.CANCELLED)


@dataclass
class EscrowObservation:
    state: EscrowState
    tx_hash: Optional[str] = None
    observed_at: float = field(default_factory=time.time)


class EscrowTracker:
    """One-way state log per escrow key.

    Never blocks a call: a transition the log considers impossible is logged
    and ignored, and the contract's own answer stands.
    """

    def __init__(self):
        self._states: dict[str, EscrowObservation] = {}

    def state(self, key: str) -> EscrowState:
        observation = self._states.get(key)
        return observation.state if observation else EscrowState.UNDEPLOYED

    def record(self, key: str, state: EscrowState, tx_hash: Optional[str] = None) -> EscrowState:
        current = self.state(key)
        if current.is_terminal:
            logger.warning(f"Escrow {key} already {current.value}, ignoring {state.value}")
            return current
        if current != EscrowState.UNDEPLOYED and state in (
            EscrowState.UNDEPLOYED,
            EscrowState.SOURCE_DEPLOYED,
            EscrowState.DESTINATION_DEPLOYED,
        ):
            logger.warning(f"Escrow {key} already {current.value}, ignoring {state.value}")
            return current

        self._states[key] = EscrowObservation(state, tx_hash)
        logger.info(f"Escrow {key}: {current.value} -> {state.value}")
        return state

    def history(self) -> dict[str, EscrowState]:
        return {key: obs.state for key, obs in self._states.items()}


@dataclass(frozen=True)
class EscrowReceipt:
    """Confirmed escrow operation."""

    tx_hash: str
    block_number: Optional[int]
    escrow: Optional[str]
    state: EscrowState

    def to_dict(self) -> dict:
        return {
            "transactionHash": self.tx_hash,
            "blockNumber": self.block_number,
            "escrow": self.escrow,
            "state": self.state.value,
        }


@dataclass(frozen=True)
class RelayerSignature:
    v: int
    r: bytes
    s: bytes
    signature: str
