"""Base interfaces for session funding.

Funding flow:
1. Estimate gas for the request with its original sender
2. totalNeeded = gas * maxFeePerGas + value
3. Balance already covers it: nothing to do
4. Otherwise withdraw the deficit (plus a safety margin) from the reserve pool
5. Poll the session balance until it reaches totalNeeded
6. On any pool failure, send the deficit directly from the master account
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from hashield.chain.base import ChainClient, FeeData

logger = logging.getLogger(__name__)

WEI_PER_ETH = 10**18


def format_eth(wei: int) -> str:
    """Render wei as an ETH amount for log and error text."""
    whole, frac = divmod(wei, WEI_PER_ETH)
    frac_text = f"{frac:018d}".rstrip("0")
    return f"{whole}.{frac_text or '0'} ETH"


class FundingError(Exception):
    """Base class for funding errors.

    When the fallback also failed, `primary_error` holds the pool failure that
    triggered it.
    """

    def __init__(self, message: str, primary_error: Optional["FundingError"] = None):
        super().__init__(message)
        self.message = message
        self.primary_error = primary_error

    def __str__(self) -> str:
        if self.primary_error is not None:
            return f"{self.message} (pool: {self.primary_error})"
        return self.message


class PoolInsufficientFunds(FundingError):
    """The master's pool balance does not cover the deficit."""

    def __init__(self, available: int, required: int):
        self.available = available
        self.required = required
        super().__init__(
            f"Pool contract insufficient funds: has {format_eth(available)}, "
            f"needs {format_eth(required)}"
        )


class PoolCallFailed(FundingError):
    """The pool withdrawal reverted or was rejected by the node."""

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Pool withdraw failed: {detail}")


class FallbackInsufficientFunds(FundingError):
    """The master's own balance does not cover the deficit."""

    def __init__(self, available: int, required: int):
        self.available = available
        self.required = required
        super().__init__(
            f"Direct wallet insufficient funds: has {format_eth(available)}, "
            f"needs {format_eth(required)}"
        )


class FallbackTransferFailed(FundingError):
    """The direct transfer reverted or was rejected by the node."""

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Fallback transfer failed: {detail}")


class FundingVerificationTimeout(FundingError):
    """Balance never reached the target within the polling budget."""

    def __init__(self, address: str, target: int, balance: int, attempts: int):
        self.address = address
        self.target = target
        self.balance = balance
        self.attempts = attempts
        super().__init__(
            f"Funding incomplete: {address} still needs {format_eth(target - balance)} "
            f"after {attempts} balance checks"
        )


class FundingPath(str, Enum):
    """Which path supplied the funds."""

    NONE = "none"
    POOL = "pool"
    FALLBACK = "fallback"


@dataclass
class FundingResult:
    """Result of one funding strategy run."""

    path: FundingPath
    amount: int
    tx_hash: Optional[str] = None
    final_balance: int = 0


@dataclass
class FundingOutcome:
    """What ensure_funded measured and did."""

    estimated_gas: int
    fee_data: FeeData
    total_needed: int
    initial_balance: int
    funded: bool = False
    funding_path: FundingPath = FundingPath.NONE
    funding_amount: int = 0
    funding_tx_hash: Optional[str] = None

    @property
    def max_fee_per_gas(self) -> int:
        return self.fee_data.max_fee_per_gas


class BalanceVerifier:
    """Bounded balance polling after a funding transfer is confirmed.

    Checks up to `attempts` times with `delay` seconds between checks. This is
    the only client-side timeout in the pipeline.
    """

    def __init__(self, chain: ChainClient, attempts: int = 5, delay: float = 3.0):
        if attempts < 1:
            raise ValueError("attempts must be at least 1")
        self.chain = chain
        self.attempts = attempts
        self.delay = delay

    async def wait_for_balance(self, address: str, target: int) -> int:
        """Poll until the balance reaches target.

        Returns:
            The balance that satisfied the target

        Raises:
            FundingVerificationTimeout: If every check came up short
        """
        balance = 0
        for attempt in range(1, self.attempts + 1):
            balance = await self.chain.get_balance(address)
            if balance >= target:
                logger.info(f"Funding verified for {address} on check {attempt}/{self.attempts}")
                return balance

            logger.info(
                f"Balance check {attempt}/{self.attempts} for {address}: "
                f"{format_eth(balance)} < {format_eth(target)}"
            )
            if attempt < self.attempts:
                await asyncio.sleep(self.delay)

        raise FundingVerificationTimeout(address, target, balance, self.attempts)


class FundingStrategy(ABC):
    """Moves native currency to a destination.

    Implementations either return a FundingResult once the destination's
    balance reached `target_balance`, or raise a FundingError.
    """

    path: FundingPath = FundingPath.NONE

    @abstractmethod
    async def fund(self, destination: str, amount: int, target_balance: int) -> FundingResult:
        """Send `amount` wei to `destination` and verify it arrived.

        Args:
            destination: Session address to fund
            amount: Wei to transfer (deficit plus safety margin)
            target_balance: Balance the destination must reach

        Raises:
            FundingError: On any failure
        """
        pass
