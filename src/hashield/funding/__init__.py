"""Session funding: reserve pool withdrawals with a direct-transfer fallback."""

from hashield.funding.base import (
    BalanceVerifier,
    FallbackInsufficientFunds,
    FallbackTransferFailed,
    FundingError,
    FundingOutcome,
    FundingPath,
    FundingResult,
    FundingStrategy,
    FundingVerificationTimeout,
    PoolCallFailed,
    PoolInsufficientFunds,
)
from hashield.funding.coordinator import FallbackFundingStrategy, LiquidityFundingCoordinator
from hashield.funding.direct import DirectTransferFunder
from hashield.funding.pool import PoolContract, PoolFunder

__all__ = [
    "BalanceVerifier",
    "DirectTransferFunder",
    "FallbackFundingStrategy",
    "FallbackInsufficientFunds",
    "FallbackTransferFailed",
    "FundingError",
    "FundingOutcome",
    "FundingPath",
    "FundingResult",
    "FundingStrategy",
    "FundingVerificationTimeout",
    "LiquidityFundingCoordinator",
    "PoolCallFailed",
    "PoolContract",
    "PoolFunder",
    "PoolInsufficientFunds",
]
