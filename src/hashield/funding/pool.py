"""Reserve pool contract access and the pool funding path.

The pool holds deposits per owner. Only the master identity's deposit is
used: `withdraw(destination, amount)` is called with the master account and
pays out to a session address.
"""

import logging

from eth_account.signers.local import LocalAccount

from hashield.chain.base import ChainClient, ChainError
from hashield.chain.contracts import POOL_ABI
from hashield.funding.base import (
    BalanceVerifier,
    FundingPath,
    FundingResult,
    FundingStrategy,
    PoolCallFailed,
    PoolInsufficientFunds,
    format_eth,
)

logger = logging.getLogger(__name__)


class PoolContract:
    """Thin wrapper over the reserve pool contract. Writes wait for their receipt."""

    def __init__(self, chain: ChainClient, address: str):
        self.chain = chain
        self.address = address

    async def get_balance(self, owner: str) -> int:
        return await self.chain.call_contract(self.address, POOL_ABI, "getBalance", [owner])

    async def deposit(self, account: LocalAccount, amount: int) -> str:
        tx_hash = await self.chain.send_contract_transaction(
            account, self.address, POOL_ABI, "deposit", [], value=amount
        )
        await self.chain.wait_for_receipt(tx_hash)
        logger.info(f"Deposited {format_eth(amount)} to pool from {account.address}: {tx_hash}")
        return tx_hash

    async def withdraw(self, account: LocalAccount, destination: str, amount: int) -> str:
        tx_hash = await self.chain.send_contract_transaction(
            account, self.address, POOL_ABI, "withdraw", [destination, amount]
        )
        logger.info(f"Pool withdraw sent: {format_eth(amount)} -> {destination} ({tx_hash})")
        await self.chain.wait_for_receipt(tx_hash)
        logger.info(f"Pool withdraw confirmed: {tx_hash}")
        return tx_hash


class PoolFunder(FundingStrategy):
    """Primary funding path: withdraw from the master's pool deposit."""

    path = FundingPath.POOL

    def __init__(self, pool: PoolContract, controller: LocalAccount, verifier: BalanceVerifier):
        self.pool = pool
        self.controller = controller
        self.verifier = verifier

    async def fund(self, destination: str, amount: int, target_balance: int) -> FundingResult:
        try:
            available = await self.pool.get_balance(self.controller.address)
        except ChainError as e:
            raise PoolCallFailed(str(e)) from e

        if available == 0:
            logger.warning(
                f"Master {self.controller.address} has no deposit in pool {self.pool.address}"
            )
        if available < amount:
            raise PoolInsufficientFunds(available, amount)

        try:
            tx_hash = await self.pool.withdraw(self.controller, destination, amount)
        except ChainError as e:
            raise PoolCallFailed(str(e)) from e

        try:
            balance = await self.verifier.wait_for_balance(destination, target_balance)
        except ChainError as e:
            raise PoolCallFailed(f"Balance check failed after {tx_hash}: {e}") from e
        return FundingResult(self.path, amount, tx_hash, balance)
