"""Transaction request and pending-operation models.

Requests arrive from the page-injected provider as loosely typed dicts
({to, value, data, from, gas, ...}). They are validated into a
TransactionRequest before anything touches the network.
"""

import asyncio
import logging
import re
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
HEX_DATA_RE = re.compile(r"^0x([a-fA-F0-9]{2})*$")

# Calldata layout: 4-byte selector then 32-byte ABI words (hex chars)
SELECTOR_HEX_LEN = 8
WORD_HEX_LEN = 64


class InvalidRequestError(ValueError):
    """Malformed or incomplete request parameters."""

    pass


def _parse_quantity(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError("boolean is not a quantity")
    if isinstance(value, int):
        quantity = value
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        quantity = int(text, 16) if text.lower().startswith("0x") else int(text)
    else:
        raise ValueError(f"unsupported quantity type {type(value).__name__}")

    if quantity < 0:
        raise ValueError("quantity must not be negative")
    return quantity


class TransactionRequest(BaseModel):
    """A dApp transaction request.

    `sender` is whatever the dApp put in `from`; it may be the placeholder
    address when substitution is enabled. Gas estimation always uses it as-is.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    to: Optional[str] = Field(None, description="Destination address (None for contract creation)")
    value: int = Field(default=0, description="Value in wei")
    data: str = Field(default="0x", description="Calldata (hex)")
    sender: Optional[str] = Field(
        None, validation_alias=AliasChoices("from", "sender"), description="Original from field"
    )
    gas_limit: Optional[int] = Field(
        None, validation_alias=AliasChoices("gas", "gasLimit", "gas_limit")
    )
    gas_price: Optional[int] = Field(None, validation_alias=AliasChoices("gasPrice", "gas_price"))
    chain_id: Optional[int] = Field(None, validation_alias=AliasChoices("chainId", "chain_id"))

    @field_validator("value", "gas_limit", "gas_price", "chain_id", mode="before")
    @classmethod
    def _quantity(cls, v: Any) -> Optional[int]:
        return _parse_quantity(v)

    @field_validator("value", mode="after")
    @classmethod
    def _value_default(cls, v: Optional[int]) -> int:
        return v or 0

    @field_validator("to", "sender", mode="before")
    @classmethod
    def _address(cls, v: Any) -> Optional[str]:
        if v is None or v == "":
            return None
        if not isinstance(v, str) or not ADDRESS_RE.match(v):
            raise ValueError(f"invalid address: {v!r}")
        return v

    @field_validator("data", mode="before")
    @classmethod
    def _data(cls, v: Any) -> str:
        if v is None or v == "":
            return "0x"
        if not isinstance(v, str):
            raise ValueError("data must be a hex string")
        if not v.startswith("0x"):
            v = "0x" + v
        if not HEX_DATA_RE.match(v):
            raise ValueError("data must be even-length hex")
        return v

    @classmethod
    def parse(cls, params: Any) -> "TransactionRequest":
        """Validate raw provider params.

        Raises:
            InvalidRequestError: On any malformed field
        """
        if not isinstance(params, dict):
            raise InvalidRequestError("Transaction params must be an object")
        try:
            return cls.model_validate(params)
        except ValidationError as e:
            errors = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'params'}: {err['msg']}"
                for err in e.errors()
            )
            raise InvalidRequestError(f"Invalid transaction params: {errors}") from e

    @property
    def is_contract_call(self) -> bool:
        return self.data != "0x"

    def estimation_params(self) -> dict:
        """Params for gas estimation, with the original sender."""
        params = {"to": self.to, "value": self.value, "data": self.data}
        if self.sender:
            params["from"] = self.sender
        return params

    def to_display(self) -> dict:
        return {
            "to": self.to,
            "value": hex(self.value),
            "data": self.data,
            "from": self.sender,
            "gasLimit": self.gas_limit,
            "gasPrice": self.gas_price,
        }


@dataclass(frozen=True)
class AddressSubstitution:
    """Rewrites a placeholder address into the real session address.

    Only designated fields are touched: `to`, `sender`, and calldata argument
    words that are exactly the ABI-encoded placeholder (12 zero bytes followed
    by the 20 address bytes). Any other hex that merely contains the
    placeholder's digits is left alone.
    """

    placeholder: str
    replacement: str

    def _matches(self, address: Optional[str]) -> bool:
        return bool(address) and address.lower() == self.placeholder.lower()

    def _word(self, address: str) -> str:
        return "0" * 24 + address[2:].lower()

    def rewrite_calldata(self, data: str) -> str:
        body = data[2:]
        if len(body) < SELECTOR_HEX_LEN + WORD_HEX_LEN:
            return data

        selector, args = body[:SELECTOR_HEX_LEN], body[SELECTOR_HEX_LEN:]
        target = self._word(self.placeholder)
        replacement = self._word(self.replacement)

        full = len(args) - len(args) % WORD_HEX_LEN
        words = [args[i:i + WORD_HEX_LEN] for i in range(0, full, WORD_HEX_LEN)]
        rewritten = [replacement if w.lower() == target else w for w in words]
        replaced = sum(1 for old, new in zip(words, rewritten) if old is not new)
        if not replaced:
            return data

        logger.info(f"Substituted placeholder address in {replaced} calldata word(s)")
        return "0x" + selector + "".join(rewritten) + args[full:]

    def apply(self, request: TransactionRequest) -> TransactionRequest:
        updates: dict[str, Any] = {}
        if self._matches(request.to):
            updates["to"] = self.replacement
        if self._matches(request.sender):
            updates["sender"] = self.replacement

        data = self.rewrite_calldata(request.data)
        if data != request.data:
            updates["data"] = data

        if not updates:
            return request
        logger.info(f"Address substitution applied to fields: {', '.join(sorted(updates))}")
        return request.model_copy(update=updates)


class OperationStatus(str, Enum):
    """Lifecycle of a pending operation."""

    INTAKE = "intake"
    APPROVING = "approving"
    EXECUTING = "executing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self in (OperationStatus.SUCCEEDED, OperationStatus.FAILED, OperationStatus.REJECTED)


def _new_future() -> asyncio.Future:
    future = asyncio.get_running_loop().create_future()
    # Outcomes nobody awaits (e.g. rejected requests) must not warn at GC time
    future.add_done_callback(lambda f: f.cancelled() or f.exception())
    return future


@dataclass
class PendingOperation:
    """One transaction awaiting or undergoing execution.

    `outcome` resolves with the transaction hash once submission is accepted,
    or with the exception that ended the operation.
    """

    request: TransactionRequest
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: float = field(default_factory=time.time)
    processing: bool = False
    status: OperationStatus = OperationStatus.INTAKE
    outcome: asyncio.Future = field(default_factory=_new_future, repr=False)

    def resolve(self, tx_hash: str) -> None:
        if not self.outcome.done():
            self.outcome.set_result(tx_hash)

    def fail(self, error: BaseException) -> None:
        if not self.outcome.done():
            self.outcome.set_exception(error)

    def to_dict(self, from_address: Optional[str] = None) -> dict:
        return {
            "id": self.id,
            "txParams": self.request.to_display(),
            "timestamp": int(self.created_at * 1000),
            "from": from_address,
            "status": self.status.value,
        }
