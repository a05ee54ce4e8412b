"""Escrow settlement operations.

Every operation is a signed contract call that is awaited to confirmation
before returning. Contract reverts (too early to cancel, already withdrawn,
bad secret) propagate unchanged as ContractRevertError; nothing here retries
or second-guesses the contract.

Relayer withdrawal:
1. Build EIP-712 typed data RelayerWithdrawal{orderHash, secret, relayer, fee, salt}
   in the domain {name, version, chainId, verifyingContract=escrow src}
2. Sign with the relayer's own key and split into v, r, s
3. Call withdrawWithRelayer; the contract pays the relayer its fee
"""

import logging
import secrets
from typing import Any, Optional

from eth_abi import encode
from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_account.signers.local import LocalAccount
from web3 import Web3

from hashield.bridge.store import OrderStatus, OrderStore
from hashield.chain.base import ChainClient
from hashield.chain.contracts import ESCROW_SRC_ABI, RESOLVER_ABI
from hashield.config import Settings, get_settings
from hashield.escrow.models import (
    ZERO_ADDRESS,
    Bytes32,
    EscrowReceipt,
    EscrowState,
    EscrowTracker,
    RelayerSignature,
    abi_value,
    as_bytes32,
    escrow_key,
)
from hashield.hashlock import HashLockSecretPair

logger = logging.getLogger(__name__)

RELAYER_WITHDRAWAL_TYPES = {
    "RelayerWithdrawal": [
        {"name": "orderHash", "type": "bytes32"},
        {"name": "secret", "type": "bytes32"},
        {"name": "relayer", "type": "address"},
        {"name": "fee", "type": "uint256"},
        {"name": "salt", "type": "uint32"},
    ]
}

# Upper bound (exclusive) for generated relayer salts
SALT_RANGE = 1_000_000


class EscrowError(Exception):
    """Base class for escrow errors raised before any contract call."""

    pass


class RelayerKeyMissingError(EscrowError):
    def __init__(self):
        super().__init__("Relayer private key is not configured")


class OrderNotFoundError(EscrowError):
    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class MissingSecretError(EscrowError):
    """No secret was passed and the order store holds none for the order."""

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"No stored secrets for order: {order_id}")


def build_relayer_authorization(
    order_hash: Bytes32,
    secret: Bytes32,
    relayer: str,
    fee: int,
    salt: int,
    chain_id: int,
    verifying_contract: str,
    name: str = "XMREscrowSrc",
    version: str = "1",
) -> dict:
    """EIP-712 typed data authorizing a relayer withdrawal."""
    if not 0 <= salt < 2**32:
        raise ValueError("salt must fit in uint32")
    if fee < 0:
        raise ValueError("fee must not be negative")

    return {
        "domain": {
            "name": name,
            "version": version,
            "chainId": chain_id,
            "verifyingContract": Web3.to_checksum_address(verifying_contract),
        },
        "types": RELAYER_WITHDRAWAL_TYPES,
        "primaryType": "RelayerWithdrawal",
        "message": {
            "orderHash": as_bytes32(order_hash),
            "secret": as_bytes32(secret),
            "relayer": Web3.to_checksum_address(relayer),
            "fee": fee,
            "salt": salt,
        },
    }


def sign_relayer_authorization(account: LocalAccount, typed_data: dict) -> RelayerSignature:
    signable = encode_typed_data(
        domain_data=typed_data["domain"],
        message_types=typed_data["types"],
        message_data=typed_data["message"],
    )
    signed = account.sign_message(signable)
    sig_hex = signed.signature.hex()
    return RelayerSignature(
        v=signed.v,
        r=signed.r.to_bytes(32, "big"),
        s=signed.s.to_bytes(32, "big"),
        signature=sig_hex if sig_hex.startswith("0x") else "0x" + sig_hex,
    )


class EscrowSettlement:
    """Drives the resolver and escrow-src contracts as the relayer/resolver.

    Usage:
        settlement = EscrowSettlement.from_settings(chain)
        receipt = await settlement.withdraw(escrow_address, secret, immutables)
    """

    def __init__(
        self,
        chain: ChainClient,
        account: Optional[LocalAccount],
        resolver_address: str,
        escrow_src_address: str,
        domain_chain_id: Optional[int] = None,
        domain_name: str = "XMREscrowSrc",
        domain_version: str = "1",
        order_store: Optional[OrderStore] = None,
        tracker: Optional[EscrowTracker] = None,
    ):
        self.chain = chain
        self.account = account
        self.resolver_address = resolver_address
        self.escrow_src_address = escrow_src_address
        self.domain_chain_id = domain_chain_id or chain.chain_id
        self.domain_name = domain_name
        self.domain_version = domain_version
        self.order_store = order_store
        self.tracker = tracker or EscrowTracker()

    @classmethod
    def from_settings(
        cls,
        chain: ChainClient,
        settings: Optional[Settings] = None,
        order_store: Optional[OrderStore] = None,
    ) -> "EscrowSettlement":
        settings = settings or get_settings()
        account = (
            Account.from_key(settings.relayer_private_key)
            if settings.relayer_private_key else None
        )
        return cls(
            chain,
            account,
            settings.resolver_contract_address,
            settings.escrow_src_contract_address,
            domain_chain_id=settings.settlement_chain_id,
            domain_name=settings.relayer_domain_name,
            domain_version=settings.relayer_domain_version,
            order_store=order_store,
        )

    def _require_account(self) -> LocalAccount:
        if self.account is None:
            raise RelayerKeyMissingError()
        return self.account

    def _require_order(self, order_id: str) -> None:
        if self.order_store is not None and self.order_store.get(order_id) is None:
            raise OrderNotFoundError(order_id)

    def _stored_secrets(self, order_id: str) -> HashLockSecretPair:
        pair = self.order_store.secret_pair(order_id) if self.order_store else None
        if pair is None:
            raise MissingSecretError(order_id)
        return pair

    async def _call(
        self,
        address: str,
        abi: list,
        function: str,
        args: list,
        value: int = 0,
        account: Optional[LocalAccount] = None,
    ) -> tuple[str, dict]:
        sender = account or self._require_account()
        tx_hash = await self.chain.send_contract_transaction(
            sender, address, abi, function, args, value=value
        )
        receipt = await self.chain.wait_for_receipt(tx_hash)
        return tx_hash, receipt

    def _receipt(
        self, tx_hash: str, receipt: dict, key: Optional[str], state: EscrowState
    ) -> EscrowReceipt:
        if key is not None:
            state = self.tracker.record(key, state, tx_hash)
        return EscrowReceipt(tx_hash, receipt.get("blockNumber"), key, state)

    async def deploy_source(
        self,
        immutables: Any,
        order: Any,
        r: Bytes32,
        vs: Bytes32,
        amount: int,
        taker_traits: int,
        args: bytes | str,
        value: int = 0,
    ) -> EscrowReceipt:
        tx_hash, receipt = await self._call(
            self.resolver_address,
            RESOLVER_ABI,
            "deploySrc",
            [abi_value(immutables), abi_value(order), r, vs, amount, taker_traits, args],
            value=value,
        )
        logger.info(f"Deployed source escrow: {tx_hash} (block {receipt.get('blockNumber')})")
        return self._receipt(tx_hash, receipt, escrow_key(immutables), EscrowState.SOURCE_DEPLOYED)

    async def deploy_destination(
        self, dst_immutables: Any, src_cancellation_timestamp: int, value: int = 0
    ) -> EscrowReceipt:
        tx_hash, receipt = await self._call(
            self.resolver_address,
            RESOLVER_ABI,
            "deployDst",
            [abi_value(dst_immutables), src_cancellation_timestamp],
            value=value,
        )
        logger.info(f"Deployed destination escrow: {tx_hash} (block {receipt.get('blockNumber')})")
        return self._receipt(
            tx_hash, receipt, escrow_key(dst_immutables), EscrowState.DESTINATION_DEPLOYED
        )

    async def withdraw(self, escrow: str, secret: Bytes32, immutables: Any) -> EscrowReceipt:
        """Direct withdrawal through the resolver by the secret holder."""
        tx_hash, receipt = await self._call(
            self.resolver_address,
            RESOLVER_ABI,
            "withdraw",
            [escrow, as_bytes32(secret), abi_value(immutables)],
        )
        logger.info(f"Withdrew from escrow {escrow}: {tx_hash}")
        return self._receipt(
            tx_hash, receipt, escrow_key(immutables) or escrow, EscrowState.WITHDRAWN
        )

    async def cancel(self, escrow: str, immutables: Any) -> EscrowReceipt:
        """Return locked funds after the cancellation window opens."""
        tx_hash, receipt = await self._call(
            self.resolver_address, RESOLVER_ABI, "cancel", [escrow, abi_value(immutables)]
        )
        logger.info(f"Cancelled escrow {escrow}: {tx_hash}")
        return self._receipt(
            tx_hash, receipt, escrow_key(immutables) or escrow, EscrowState.CANCELLED
        )

    async def withdraw_via_relayer(
        self,
        order_hash: Bytes32,
        secret: Optional[Bytes32] = None,
        fee: int = 0,
        salt: Optional[int] = None,
        relayer: Optional[LocalAccount] = None,
    ) -> EscrowReceipt:
        """Withdraw from the escrow-src on behalf of the secret holder.

        Args:
            order_hash: Escrow order hash
            secret: Claim secret (defaults to the one stored with the order)
            fee: Relayer fee in wei, paid by the contract
            salt: uint32 salt (random below 1,000,000 if omitted)
            relayer: Relayer identity (defaults to the settlement account)
        """
        relayer = relayer or self._require_account()
        order_id = order_hash if isinstance(order_hash, str) else "0x" + order_hash.hex()
        self._require_order(order_id)
        if secret is None:
            secret = self._stored_secrets(order_id).claim_secret
        if salt is None:
            salt = secrets.randbelow(SALT_RANGE)

        typed_data = build_relayer_authorization(
            order_hash,
            secret,
            relayer.address,
            fee,
            salt,
            self.domain_chain_id,
            self.escrow_src_address,
            self.domain_name,
            self.domain_version,
        )
        sig = sign_relayer_authorization(relayer, typed_data)

        tx_hash, receipt = await self._call(
            self.escrow_src_address,
            ESCROW_SRC_ABI,
            "withdrawWithRelayer",
            [
                as_bytes32(order_hash),
                as_bytes32(secret),
                relayer.address,
                fee,
                salt,
                sig.v,
                sig.r,
                sig.s,
            ],
            account=relayer,
        )
        logger.info(f"Relayer withdrawal for order {order_id}: {tx_hash} (fee {fee} wei)")

        if self.order_store is not None:
            self.order_store.set_status(order_id, OrderStatus.COMPLETED)
        return self._receipt(tx_hash, receipt, order_id, EscrowState.WITHDRAWN)

    async def create_escrow(
        self,
        order_hash: Bytes32,
        token: str,
        amount: int,
        claim_hash: Optional[Bytes32] = None,
        refund_hash: Optional[Bytes32] = None,
        nonce: int = 0,
        value: int = 0,
    ) -> EscrowReceipt:
        """Create an escrow directly on the escrow-src contract.

        The two secret hashes and the nonce travel as ABI-encoded extra data.
        Hashes left out are taken from the order's stored secret pair, and
        the order moves to READY once the escrow is confirmed.
        """
        order_id = order_hash if isinstance(order_hash, str) else "0x" + order_hash.hex()
        self._require_order(order_id)
        if claim_hash is None or refund_hash is None:
            pair = self._stored_secrets(order_id)
            claim_hash = claim_hash or pair.claim_secret_hash
            refund_hash = refund_hash or pair.refund_secret_hash

        extra_data = encode(
            ["bytes32", "bytes32", "uint256"],
            [as_bytes32(claim_hash), as_bytes32(refund_hash), nonce],
        )
        tx_hash, receipt = await self._call(
            self.escrow_src_address,
            ESCROW_SRC_ABI,
            "createEscrow",
            [
                as_bytes32(order_hash),
                token or ZERO_ADDRESS,
                amount,
                # Maker, taker and timelocks are filled in by the contract
                ZERO_ADDRESS,
                ZERO_ADDRESS,
                0,
                0,
                extra_data,
            ],
            value=value,
        )
        logger.info(f"Created escrow for order {order_id}: {tx_hash}")

        if self.order_store is not None:
            self.order_store.set_status(order_id, OrderStatus.READY)
        return self._receipt(tx_hash, receipt, order_id, EscrowState.SOURCE_DEPLOYED)

    async def cancel_with_secret(
        self, order_hash: Bytes32, refund_secret: Optional[Bytes32] = None
    ) -> EscrowReceipt:
        """Refund the escrow-src by revealing the refund secret.

        The refund secret defaults to the one stored with the order.
        """
        order_id = order_hash if isinstance(order_hash, str) else "0x" + order_hash.hex()
        if refund_secret is None:
            refund_secret = self._stored_secrets(order_id).refund_secret
        tx_hash, receipt = await self._call(
            self.escrow_src_address,
            ESCROW_SRC_ABI,
            "cancelWithSecret",
            [as_bytes32(order_hash), as_bytes32(refund_secret)],
        )
        logger.info(f"Cancelled escrow for order {order_id} with refund secret: {tx_hash}")

        if self.order_store is not None:
            self.order_store.set_status(order_id, OrderStatus.CANCELLED)
        return self._receipt(tx_hash, receipt, order_id, EscrowState.CANCELLED)
