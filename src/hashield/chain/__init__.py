"""EVM chain access: client interface, web3 implementation and contract ABIs."""

from hashield.chain.base import (
    ChainClient,
    ChainError,
    ContractRevertError,
    FeeData,
    SubmissionError,
    TransactionRevertedError,
)
from hashield.chain.evm import Web3ChainClient

__all__ = [
    "ChainClient",
    "ChainError",
    "ContractRevertError",
    "FeeData",
    "SubmissionError",
    "TransactionRevertedError",
    "Web3ChainClient",
]
