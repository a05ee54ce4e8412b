"""Base interfaces for EVM chain access.

Transaction flow:
1. Estimate gas for the unsigned request
2. Read fee data and balances
3. Sign locally with the sending identity's account
4. Broadcast the raw transaction
5. Await the receipt (no client-side timeout)
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from eth_account.signers.local import LocalAccount

logger = logging.getLogger(__name__)

# Floor used when the node reports no fee data at all
DEFAULT_MAX_FEE_PER_GAS = 20 * 10**9


class ChainError(Exception):
    """Base class for chain access errors."""

    pass


class ContractRevertError(ChainError):
    """A contract call reverted. The reason is the contract's own text."""

    def __init__(self, reason: str, function: Optional[str] = None):
        self.reason = reason
        self.function = function
        prefix = f"{function}: " if function else ""
        super().__init__(f"{prefix}execution reverted: {reason}")


class TransactionRevertedError(ChainError):
    """A transaction was mined with status 0."""

    def __init__(self, tx_hash: str, receipt: Optional[dict] = None):
        self.tx_hash = tx_hash
        self.receipt = receipt
        super().__init__(f"Transaction {tx_hash} failed (reverted)")


class SubmissionError(ChainError):
    """The node rejected a signed transaction (nonce conflict, underpriced, ...)."""

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Transaction rejected by node: {detail}")


@dataclass(frozen=True)
class FeeData:
    """EIP-1559 fee parameters in wei."""

    max_fee_per_gas: int
    max_priority_fee_per_gas: int

    def as_tx_fields(self) -> dict:
        return {
            "maxFeePerGas": self.max_fee_per_gas,
            "maxPriorityFeePerGas": self.max_priority_fee_per_gas,
        }


class ChainClient(ABC):
    """Abstract EVM chain client.

    All methods suspend the calling task until the node answers. Amounts are
    integers in wei.
    """

    def __init__(self, chain_id: int):
        self.chain_id = chain_id

    @abstractmethod
    async def estimate_gas(self, tx: dict) -> int:
        """Estimate gas for an unsigned transaction dict."""
        pass

    @abstractmethod
    async def get_fee_data(self) -> FeeData:
        pass

    @abstractmethod
    async def get_balance(self, address: str) -> int:
        pass

    @abstractmethod
    async def get_nonce(self, address: str) -> int:
        """Pending transaction count for an address."""
        pass

    @abstractmethod
    async def send_transaction(self, account: LocalAccount, tx: dict) -> str:
        """Sign a transaction with the account and broadcast it.

        Missing nonce, chainId, gas and fee fields are filled in.

        Returns:
            Transaction hash (0x-prefixed hex)

        Raises:
            SubmissionError: If the node rejects the transaction
        """
        pass

    @abstractmethod
    async def send_contract_transaction(
        self,
        account: LocalAccount,
        address: str,
        abi: list,
        function: str,
        args: Sequence[Any],
        value: int = 0,
    ) -> str:
        """Build, sign and broadcast a contract call.

        Raises:
            ContractRevertError: If the call reverts during preparation
            SubmissionError: If the node rejects the estimate or the signed transaction
        """
        pass

    @abstractmethod
    async def call_contract(
        self, address: str, abi: list, function: str, args: Sequence[Any] = ()
    ) -> Any:
        """Read-only contract call.

        Raises:
            ContractRevertError: If the call reverts
            ChainError: If the node fails to answer
        """
        pass

    @abstractmethod
    async def wait_for_receipt(self, tx_hash: str) -> dict:
        """Wait until the transaction is mined.

        Raises:
            TransactionRevertedError: If it was mined with status 0
        """
        pass
