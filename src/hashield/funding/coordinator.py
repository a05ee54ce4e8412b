"""Liquidity funding coordinator.

Makes sure a session identity can pay for a pending transaction before it is
signed. The pool path runs first; any pool failure falls through to a direct
transfer from the master account.
"""

import logging
from typing import Callable, Optional

from hashield.chain.base import ChainClient
from hashield.config import Settings, get_settings
from hashield.funding.base import (
    BalanceVerifier,
    FundingError,
    FundingOutcome,
    FundingPath,
    FundingResult,
    FundingStrategy,
    format_eth,
)
from hashield.funding.direct import DirectTransferFunder
from hashield.funding.pool import PoolContract, PoolFunder
from hashield.hdwallet.base import SessionIdentity
from hashield.hdwallet.session import SessionKeyCoordinator

logger = logging.getLogger(__name__)

StepCallback = Callable[[str], None]


class FallbackFundingStrategy(FundingStrategy):
    """Primary strategy first, fallback on any FundingError from it.

    If the fallback fails too, its error is raised with `primary_error` set to
    the primary's failure.
    """

    def __init__(self, primary: FundingStrategy, fallback: FundingStrategy):
        self.primary = primary
        self.fallback = fallback

    async def fund(self, destination: str, amount: int, target_balance: int) -> FundingResult:
        try:
            return await self.primary.fund(destination, amount, target_balance)
        except FundingError as primary_error:
            logger.warning(f"Primary funding failed, attempting fallback: {primary_error}")
            try:
                return await self.fallback.fund(destination, amount, target_balance)
            except FundingError as fallback_error:
                fallback_error.primary_error = primary_error
                logger.error(f"Fallback funding failed: {fallback_error}")
                raise


class LiquidityFundingCoordinator:
    """Funds session identities from the reserve pool on demand.

    The master identity (pool controller) is read from the session coordinator
    at call time, so importing or clearing the wallet takes effect immediately.
    """

    def __init__(
        self,
        chain: ChainClient,
        sessions: SessionKeyCoordinator,
        pool_address: str,
        safety_margin: int = 10**16,
        verify_attempts: int = 5,
        verify_delay: float = 3.0,
        fallback_gas: int = 21000,
        strategy: Optional[FundingStrategy] = None,
    ):
        self.chain = chain
        self.sessions = sessions
        self.pool = PoolContract(chain, pool_address)
        self.safety_margin = safety_margin
        self.verifier = BalanceVerifier(chain, verify_attempts, verify_delay)
        self.fallback_gas = fallback_gas
        self._strategy = strategy

    @classmethod
    def from_settings(
        cls,
        chain: ChainClient,
        sessions: SessionKeyCoordinator,
        settings: Optional[Settings] = None,
    ) -> "LiquidityFundingCoordinator":
        settings = settings or get_settings()
        return cls(
            chain,
            sessions,
            settings.pool_contract_address,
            safety_margin=settings.funding_safety_margin_wei,
            verify_attempts=settings.funding_verify_attempts,
            verify_delay=settings.funding_verify_delay,
            fallback_gas=settings.fallback_transfer_gas,
        )

    def build_strategy(self) -> FundingStrategy:
        """Pool first, direct transfer second, both signed by the master account."""
        if self._strategy is not None:
            return self._strategy

        controller = self.sessions.require_master().account
        return FallbackFundingStrategy(
            PoolFunder(self.pool, controller, self.verifier),
            DirectTransferFunder(self.chain, controller, self.verifier, self.fallback_gas),
        )

    async def ensure_funded(
        self,
        identity: SessionIdentity,
        request,
        on_step: Optional[StepCallback] = None,
    ) -> FundingOutcome:
        """Make sure `identity` can pay for `request`.

        Gas is estimated with the request's original sender, never a
        substituted address.

        Raises:
            FundingError: If neither path could fund the identity
        """
        step = on_step or (lambda name: None)

        estimated_gas = await self.chain.estimate_gas(request.estimation_params())
        fee_data = await self.chain.get_fee_data()
        total_needed = estimated_gas * fee_data.max_fee_per_gas + request.value
        balance = await self.chain.get_balance(identity.address)

        outcome = FundingOutcome(
            estimated_gas=estimated_gas,
            fee_data=fee_data,
            total_needed=total_needed,
            initial_balance=balance,
        )
        logger.info(
            f"Funding check for session #{identity.index} {identity.address}: "
            f"gas={estimated_gas} total={format_eth(total_needed)} balance={format_eth(balance)}"
        )

        if balance >= total_needed:
            logger.info("Session has sufficient balance, no funding needed")
            step("Funding check completed")
            return outcome

        deficit = total_needed - balance + self.safety_margin
        step("Withdrawing from Pool contract...")
        logger.info(f"Funding session {identity.address} with {format_eth(deficit)}")

        result = await self.build_strategy().fund(identity.address, deficit, total_needed)

        outcome.funded = True
        outcome.funding_path = result.path
        outcome.funding_amount = result.amount
        outcome.funding_tx_hash = result.tx_hash
        if result.path == FundingPath.POOL:
            step("Pool withdraw completed successfully")
        else:
            step("Fallback transfer completed successfully")
        return outcome

    async def fund_if_needed(self, address: str, required_amount: int) -> FundingResult:
        """Top up an address to `required_amount` from the pool only."""
        balance = await self.chain.get_balance(address)
        if balance >= required_amount:
            logger.info(f"{address} already holds {format_eth(balance)}, no funding needed")
            return FundingResult(FundingPath.NONE, 0, None, balance)

        controller = self.sessions.require_master().account
        funder = PoolFunder(self.pool, controller, self.verifier)
        return await funder.fund(address, required_amount, required_amount)

    async def deposit_to_pool(self, amount: int) -> str:
        if amount <= 0:
            raise ValueError("Deposit amount must be positive")
        controller = self.sessions.require_master().account
        return await self.pool.deposit(controller, amount)

    async def pool_balance(self) -> int:
        """The master identity's deposit in the pool."""
        return await self.pool.get_balance(self.sessions.require_master().address)

    async def master_balance(self) -> int:
        return await self.chain.get_balance(self.sessions.require_master().address)
