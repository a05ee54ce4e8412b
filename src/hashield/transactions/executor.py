"""Approved-transaction execution.

Steps reported through the progress tracker (0 is "preparing"):
1. Checking funding (ensure the session can pay gas plus value)
2. Executing transaction (sign with the current session, submit)

The operation's outcome resolves as soon as the node accepts the transaction.
Confirmation is awaited in a background task that only updates progress.
"""

import asyncio
import logging
from typing import Optional

from hashield.chain.base import ChainClient
from hashield.hdwallet.base import SessionIdentity, WalletError
from hashield.hdwallet.session import SessionKeyCoordinator
from hashield.transactions.models import (
    AddressSubstitution,
    OperationStatus,
    PendingOperation,
    TransactionRequest,
)
from hashield.transactions.progress import ProgressStatus, ProgressTracker

logger = logging.getLogger(__name__)

STEP_FUNDING = 1
STEP_EXECUTING = 2


class NoSessionError(WalletError):
    """No session identity is active to sign with."""

    def __init__(self, message: str = "No session wallet available"):
        super().__init__(message)


class TransactionExecutor:
    """Funds, signs and submits approved operations.

    Args:
        chain: Chain client used for submission and confirmation
        sessions: Source of the current session identity
        funding: LiquidityFundingCoordinator (anything with ensure_funded)
        progress: Progress tracker shared with the UI
        placeholder_address: Address dApps see when substitution is enabled
        substitution_enabled: Rewrite the placeholder before signing
    """

    def __init__(
        self,
        chain: ChainClient,
        sessions: SessionKeyCoordinator,
        funding,
        progress: ProgressTracker,
        placeholder_address: Optional[str] = None,
        substitution_enabled: bool = False,
    ):
        self.chain = chain
        self.sessions = sessions
        self.funding = funding
        self.progress = progress
        self.placeholder_address = placeholder_address
        self.substitution_enabled = substitution_enabled

    def substitution_for(self, identity: SessionIdentity) -> Optional[AddressSubstitution]:
        if not self.substitution_enabled or not self.placeholder_address:
            return None
        return AddressSubstitution(self.placeholder_address, identity.address)

    def build_transaction(self, request: TransactionRequest, funding) -> dict:
        """Final transaction fields: the dApp's to/value/data with our gas and fees."""
        return {
            "to": request.to,
            "value": request.value,
            "data": request.data,
            "gas": funding.estimated_gas,
            **funding.fee_data.as_tx_fields(),
        }

    async def execute(self, operation: PendingOperation) -> Optional[asyncio.Task]:
        """Run an approved operation to submission.

        Never raises: failures end in an error progress record and a failed
        outcome.

        Returns:
            The background confirmation task, or None if submission failed
        """
        op_id = operation.id
        operation.status = OperationStatus.EXECUTING
        self.progress.update(op_id, 0, "Preparing transaction...")
        step_name = "Checking funding..."

        try:
            identity = self.sessions.current()
            if identity is None:
                self.sessions.require_master()
                raise NoSessionError()

            self.progress.update(op_id, STEP_FUNDING, step_name)
            funding = await self.funding.ensure_funded(
                identity,
                operation.request,
                on_step=lambda name: self.progress.update(op_id, STEP_FUNDING, name),
            )

            request = operation.request
            substitution = self.substitution_for(identity)
            if substitution is not None:
                request = substitution.apply(request)

            step_name = "Executing transaction..."
            self.progress.update(op_id, STEP_EXECUTING, step_name)
            tx_hash = await self.chain.send_transaction(
                identity.account, self.build_transaction(request, funding)
            )
        except Exception as e:
            logger.error(f"Transaction {op_id} failed during '{step_name}': {e}")
            self.progress.fail(op_id, "Transaction failed", str(e))
            operation.status = OperationStatus.FAILED
            operation.fail(e)
            return None

        logger.info(f"Transaction {op_id} submitted: {tx_hash}")
        self.progress.update(
            op_id,
            STEP_EXECUTING,
            "Transaction submitted successfully",
            ProgressStatus.COMPLETED,
            tx_hash=tx_hash,
        )
        operation.status = OperationStatus.SUCCEEDED
        operation.resolve(tx_hash)
        return asyncio.create_task(self._confirm(op_id, tx_hash))

    async def _confirm(self, op_id: str, tx_hash: str) -> None:
        try:
            receipt = await self.chain.wait_for_receipt(tx_hash)
        except Exception as e:
            logger.error(f"Transaction {tx_hash} failed after submission: {e}")
            self.progress.update(
                op_id,
                STEP_EXECUTING,
                "Transaction failed",
                ProgressStatus.ERROR,
                tx_hash=tx_hash,
                error=str(e),
            )
            return

        logger.info(
            f"Transaction {tx_hash} confirmed in block {receipt.get('blockNumber')}, "
            f"gas used {receipt.get('gasUsed')}"
        )
