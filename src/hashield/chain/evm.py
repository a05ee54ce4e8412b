"""web3.py implementation of the chain client.

Signing happens locally with eth_account; only raw signed transactions are
sent to the node.
"""

import asyncio
import logging
from typing import Any, Optional, Sequence

from eth_account.signers.local import LocalAccount
from web3 import AsyncWeb3, Web3
from web3.exceptions import ContractLogicError, TransactionNotFound, Web3RPCError

from hashield.chain.base import (
    DEFAULT_MAX_FEE_PER_GAS,
    ChainClient,
    ChainError,
    ContractRevertError,
    FeeData,
    SubmissionError,
    TransactionRevertedError,
)

logger = logging.getLogger(__name__)


def _rpc_detail(error: Exception) -> str:
    """Extract the node's message from a web3 RPC error."""
    response = getattr(error, "rpc_response", None)
    if isinstance(response, dict) and isinstance(response.get("error"), dict):
        return str(response["error"].get("message", response["error"]))
    message = getattr(error, "message", None)
    if message:
        return str(message)
    if error.args and isinstance(error.args[0], dict):
        return str(error.args[0].get("message", error.args[0]))
    return str(error)


def _revert_reason(error: ContractLogicError) -> str:
    detail = str(getattr(error, "message", None) or _rpc_detail(error))
    return detail.removeprefix("execution reverted: ") or detail


class Web3ChainClient(ChainClient):
    """Chain client backed by AsyncWeb3 over HTTP.

    Example:
        client = Web3ChainClient("https://ethereum-sepolia-rpc.publicnode.com", 11155111)
        balance = await client.get_balance("0x...")
    """

    def __init__(
        self,
        rpc_url: str,
        chain_id: int,
        poll_interval: float = 2.0,
        w3: Optional[AsyncWeb3] = None,
    ):
        super().__init__(chain_id)
        self.rpc_url = rpc_url
        self.poll_interval = poll_interval
        self._w3 = w3

    @property
    def w3(self) -> AsyncWeb3:
        """Lazy load web3 instance."""
        if self._w3 is None:
            self._w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(self.rpc_url))
        return self._w3

    async def estimate_gas(self, tx: dict) -> int:
        try:
            return await self.w3.eth.estimate_gas(self._normalize(tx))
        except ContractLogicError as e:
            raise ContractRevertError(_revert_reason(e)) from e
        except Web3RPCError as e:
            raise SubmissionError(_rpc_detail(e)) from e

    async def get_fee_data(self) -> FeeData:
        try:
            block = await self.w3.eth.get_block("latest")
            base_fee = block.get("baseFeePerGas")

            if base_fee is not None:
                priority = await self.w3.eth.max_priority_fee
                return FeeData(
                    max_fee_per_gas=base_fee * 2 + priority,
                    max_priority_fee_per_gas=priority,
                )

            gas_price = await self.w3.eth.gas_price
        except Web3RPCError as e:
            raise ChainError(f"Fee data unavailable: {_rpc_detail(e)}") from e

        if not gas_price:
            gas_price = DEFAULT_MAX_FEE_PER_GAS
        return FeeData(max_fee_per_gas=gas_price, max_priority_fee_per_gas=gas_price)

    async def get_balance(self, address: str) -> int:
        try:
            return await self.w3.eth.get_balance(Web3.to_checksum_address(address))
        except Web3RPCError as e:
            raise ChainError(f"Balance lookup failed: {_rpc_detail(e)}") from e

    async def get_nonce(self, address: str) -> int:
        try:
            return await self.w3.eth.get_transaction_count(
                Web3.to_checksum_address(address), "pending"
            )
        except Web3RPCError as e:
            raise ChainError(f"Nonce lookup failed: {_rpc_detail(e)}") from e

    async def send_transaction(self, account: LocalAccount, tx: dict) -> str:
        tx = self._normalize(tx)
        tx.setdefault("from", account.address)
        tx.setdefault("chainId", self.chain_id)
        if "nonce" not in tx:
            tx["nonce"] = await self.get_nonce(account.address)
        if "gasPrice" not in tx and "maxFeePerGas" not in tx:
            tx.update((await self.get_fee_data()).as_tx_fields())
        if "gas" not in tx:
            tx["gas"] = await self.estimate_gas(tx)
        if "maxFeePerGas" in tx and "maxPriorityFeePerGas" not in tx:
            tx["maxPriorityFeePerGas"] = min(
                tx["maxFeePerGas"], (await self.get_fee_data()).max_priority_fee_per_gas
            )

        tx.pop("from", None)
        signed = account.sign_transaction(tx)
        return await self._broadcast(signed.raw_transaction)

    async def send_contract_transaction(
        self,
        account: LocalAccount,
        address: str,
        abi: list,
        function: str,
        args: Sequence[Any],
        value: int = 0,
    ) -> str:
        contract = self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)
        contract_fn = contract.get_function_by_name(function)(*args)

        fee_data = await self.get_fee_data()
        nonce = await self.get_nonce(account.address)
        try:
            # build_transaction runs eth_estimateGas against the node
            tx = await contract_fn.build_transaction({
                "from": account.address,
                "value": value,
                "nonce": nonce,
                "chainId": self.chain_id,
                **fee_data.as_tx_fields(),
            })
        except ContractLogicError as e:
            raise ContractRevertError(_revert_reason(e), function) from e
        except Web3RPCError as e:
            raise SubmissionError(f"{function}: {_rpc_detail(e)}") from e

        tx.pop("from", None)
        signed = account.sign_transaction(tx)
        tx_hash = await self._broadcast(signed.raw_transaction)
        logger.info(f"Contract call {function} sent to {address}: {tx_hash}")
        return tx_hash

    async def call_contract(
        self, address: str, abi: list, function: str, args: Sequence[Any] = ()
    ) -> Any:
        contract = self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)
        try:
            return await contract.get_function_by_name(function)(*args).call()
        except ContractLogicError as e:
            raise ContractRevertError(_revert_reason(e), function) from e
        except Web3RPCError as e:
            raise ChainError(f"{function} call failed: {_rpc_detail(e)}") from e

    async def wait_for_receipt(self, tx_hash: str) -> dict:
        while True:
            try:
                receipt = await self.w3.eth.get_transaction_receipt(tx_hash)
            except TransactionNotFound:
                receipt = None
            except Web3RPCError as e:
                raise ChainError(f"Receipt lookup failed: {_rpc_detail(e)}") from e

            if receipt is not None:
                receipt = dict(receipt)
                if receipt.get("status") == 0:
                    raise TransactionRevertedError(tx_hash, receipt)
                return receipt

            await asyncio.sleep(self.poll_interval)

    async def _broadcast(self, raw_tx: bytes) -> str:
        try:
            tx_hash = await self.w3.eth.send_raw_transaction(raw_tx)
        except (Web3RPCError, ValueError) as e:
            detail = _rpc_detail(e)
            logger.error(f"Broadcast error: {detail}")
            raise SubmissionError(detail) from e
        return Web3.to_hex(tx_hash)

    @staticmethod
    def _normalize(tx: dict) -> dict:
        tx = {k: v for k, v in tx.items() if v is not None}
        for key in ("to", "from"):
            if tx.get(key):
                tx[key] = Web3.to_checksum_address(tx[key])
        return tx
