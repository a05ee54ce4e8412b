"""Fallback funding path: plain value transfer from the master account."""

import logging

from eth_account.signers.local import LocalAccount

from hashield.chain.base import ChainClient, ChainError
from hashield.funding.base import (
    BalanceVerifier,
    FallbackInsufficientFunds,
    FallbackTransferFailed,
    FundingPath,
    FundingResult,
    FundingStrategy,
    format_eth,
)

logger = logging.getLogger(__name__)


class DirectTransferFunder(FundingStrategy):
    """Send the deficit straight from the master's own balance."""

    path = FundingPath.FALLBACK

    def __init__(
        self,
        chain: ChainClient,
        controller: LocalAccount,
        verifier: BalanceVerifier,
        gas_limit: int = 21000,
    ):
        self.chain = chain
        self.controller = controller
        self.verifier = verifier
        self.gas_limit = gas_limit

    async def fund(self, destination: str, amount: int, target_balance: int) -> FundingResult:
        try:
            available = await self.chain.get_balance(self.controller.address)
        except ChainError as e:
            raise FallbackTransferFailed(str(e)) from e
        logger.info(f"Master direct balance: {format_eth(available)}")
        if available < amount:
            raise FallbackInsufficientFunds(available, amount)

        try:
            tx_hash = await self.chain.send_transaction(
                self.controller,
                {"to": destination, "value": amount, "gas": self.gas_limit},
            )
            logger.info(f"Fallback transfer sent: {format_eth(amount)} -> {destination} ({tx_hash})")
            await self.chain.wait_for_receipt(tx_hash)
        except ChainError as e:
            raise FallbackTransferFailed(str(e)) from e

        try:
            balance = await self.verifier.wait_for_balance(destination, target_balance)
        except ChainError as e:
            raise FallbackTransferFailed(f"Balance check failed after {tx_hash}: {e}") from e
        return FundingResult(self.path, amount, tx_hash, balance)
