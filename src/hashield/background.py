"""Background service: the message surface used by the page provider and popup.

Messages are dicts with a `type` key. Read-only queries answer immediately;
`sendTransaction` answers with an operation id and settles later through the
approval queue. Every failure becomes `{"error": "<text>"}`.
"""

import asyncio
import logging
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

from eth_account.messages import encode_defunct

from hashield.bridge.orders import AtomicSwapOrderCreator
from hashield.bridge.store import OrderStore
from hashield.chain.base import ChainClient
from hashield.chain.evm import Web3ChainClient
from hashield.config import Settings, get_settings
from hashield.funding.base import FundingPath
from hashield.funding.coordinator import LiquidityFundingCoordinator
from hashield.hdwallet.base import MasterIdentity
from hashield.hdwallet.counter import FileCounterStore
from hashield.hdwallet.session import SessionKeyCoordinator
from hashield.hdwallet.store import WalletStore
from hashield.transactions.executor import TransactionExecutor
from hashield.transactions.models import PendingOperation, TransactionRequest
from hashield.transactions.progress import ProgressTracker
from hashield.transactions.queue import TransactionQueue

logger = logging.getLogger(__name__)

WEI_PER_ETH = Decimal(10**18)

Handler = Callable[[dict], Awaitable[Any]]


def parse_ether(amount: Any) -> int:
    """Convert an ETH amount ("0.25", 0.25) to wei."""
    try:
        wei = Decimal(str(amount)) * WEI_PER_ETH
    except InvalidOperation as e:
        raise ValueError(f"Invalid ETH amount: {amount!r}") from e
    if wei < 0 or wei != wei.to_integral_value():
        raise ValueError(f"Invalid ETH amount: {amount!r}")
    return int(wei)


def format_ether(wei: int, places: Optional[int] = None) -> str:
    value = Decimal(wei) / WEI_PER_ETH
    if places is not None:
        return f"{value:.{places}f}"
    return format(value.normalize(), "f")


def configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


class BackgroundService:
    """Owns the wallet, the approval queue and the funding pipeline.

    Usage:
        service = BackgroundService.from_settings()
        await service.start()
        address = await service.handle({"type": "connect"})
    """

    def __init__(
        self,
        chain: ChainClient,
        sessions: SessionKeyCoordinator,
        executor: TransactionExecutor,
        wallet_store: Optional[WalletStore] = None,
        order_creator: Optional[AtomicSwapOrderCreator] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.chain = chain
        self.sessions = sessions
        self.executor = executor
        self.funding: LiquidityFundingCoordinator = executor.funding
        self.progress: ProgressTracker = executor.progress
        self.wallet_store = wallet_store
        self.order_creator = order_creator
        self.queue = TransactionQueue(executor, on_submit=self._on_submit)
        self.chain_id = hex(chain.chain_id)
        self.network_version = str(chain.chain_id)
        self._tasks: set[asyncio.Task] = set()

        self._handlers: dict[str, Handler] = {
            "connect": self._connect,
            "getAccounts": self._get_accounts,
            "personalSign": self._personal_sign,
            "sendTransaction": self._send_transaction,
            "getPendingTransactions": self._get_pending_transactions,
            "approveTransaction": self._approve_transaction,
            "rejectTransaction": self._reject_transaction,
            "getTransactionProgress": self._get_transaction_progress,
            "importWallet": self._import_wallet,
            "getWalletInfo": self._get_wallet_info,
            "clearWallet": self._clear_wallet,
            "getChainId": self._get_chain_id,
            "getNetworkVersion": self._get_network_version,
            "switchChain": self._switch_chain,
            "getAllSessions": self._get_all_sessions,
            "switchToSession": self._switch_to_session,
            "getMasterBalance": self._get_master_balance,
            "getPoolBalance": self._get_pool_balance,
            "depositToPool": self._deposit_to_pool,
            "fundSessionIfNeeded": self._fund_session_if_needed,
            "setAddressSubstitution": self._set_address_substitution,
        }

    @classmethod
    def from_settings(
        cls, settings: Optional[Settings] = None, chain: Optional[ChainClient] = None
    ) -> "BackgroundService":
        settings = settings or get_settings()
        state_dir = Path(settings.state_dir)

        chain = chain or Web3ChainClient(
            settings.rpc_url, settings.chain_id, settings.receipt_poll_interval
        )
        sessions = SessionKeyCoordinator(FileCounterStore(state_dir / "session_counter.json"))
        progress = ProgressTracker(
            settings.progress_clear_delay_success, settings.progress_clear_delay_error
        )
        funding = LiquidityFundingCoordinator.from_settings(chain, sessions, settings)
        executor = TransactionExecutor(
            chain,
            sessions,
            funding,
            progress,
            placeholder_address=settings.placeholder_address,
            substitution_enabled=settings.address_substitution_enabled,
        )
        return cls(
            chain,
            sessions,
            executor,
            wallet_store=WalletStore(state_dir / "wallet.json", settings.master_key),
            order_creator=AtomicSwapOrderCreator.from_settings(
                settings, OrderStore(state_dir / "orders.json")
            ),
            settings=settings,
        )

    async def start(self) -> None:
        """Restore the master identity from the wallet store or the configured phrase."""
        configure_logging(self.settings.debug and not self.settings.is_production)
        logger.info(f"Starting hashield ({self.settings.environment}), chain {self.chain_id}")
        logger.debug(f"Configuration: {self.settings.get_safe_dict()}")

        phrase = self.wallet_store.load_phrase() if self.wallet_store else None
        phrase = phrase or self.settings.wallet_seed_phrase
        if phrase:
            self.sessions.load_master(MasterIdentity(phrase))
        else:
            logger.warning("No wallet configured - import a seed phrase to begin")

    async def shutdown(self) -> None:
        await self.queue.drain()
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self.progress.close()
        if self.order_creator is not None:
            await self.order_creator.orders.close()
            await self.order_creator.swapd.close()
        logger.info("Background service stopped")

    async def handle(self, message: dict) -> Any:
        """Dispatch one message. Never raises."""
        msg_type = message.get("type") if isinstance(message, dict) else None
        handler = self._handlers.get(msg_type)
        if handler is None:
            return {"error": "Unknown message type"}

        try:
            return await handler(message)
        except Exception as e:
            logger.error(f"{msg_type} failed: {e}")
            return {"error": str(e)}

    def _visible_address(self, address: str) -> str:
        if self.executor.substitution_enabled and self.executor.placeholder_address:
            return self.executor.placeholder_address
        return address

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _create_swap_order(self, request: TransactionRequest) -> None:
        if self.order_creator is None or request.value <= 0:
            return
        session = self.sessions.current()
        await self.order_creator.create_for_request(
            request, session.address if session else None
        )

    async def _on_submit(self, operation: PendingOperation) -> None:
        logger.info(f"Open extension to confirm transaction {operation.id}")
        await self._create_swap_order(operation.request)

    # ======================
    # Provider surface
    # ======================

    async def _connect(self, message: dict) -> Optional[str]:
        if self.sessions.master is None:
            return None
        session = self.sessions.derive_next()
        return self._visible_address(session.address)

    async def _get_accounts(self, message: dict) -> Optional[str]:
        session = self.sessions.current()
        return self._visible_address(session.address) if session else None

    async def _personal_sign(self, message: dict) -> Any:
        session = self.sessions.current()
        if session is None:
            return {"error": "No wallet connected"}

        text = message.get("message", "")
        if isinstance(text, str) and text.startswith("0x"):
            signable = encode_defunct(hexstr=text)
        else:
            signable = encode_defunct(text=str(text))
        signature = session.account.sign_message(signable).signature.hex()
        return signature if signature.startswith("0x") else "0x" + signature

    async def _send_transaction(self, message: dict) -> dict:
        request = TransactionRequest.parse(message.get("txParams"))

        if self.sessions.current() is None:
            # The swap order is still opened for value-carrying requests
            self._spawn(self._create_swap_order(request))
            return {"error": "No wallet connected"}

        return {"id": self.queue.submit(request)}

    async def _get_chain_id(self, message: dict) -> str:
        return self.chain_id

    async def _get_network_version(self, message: dict) -> str:
        return self.network_version

    async def _switch_chain(self, message: dict) -> None:
        """Accept a switch only to the chain transactions are signed for."""
        chain_id = message.get("chainId")
        if not isinstance(chain_id, str) or not chain_id.startswith("0x"):
            raise ValueError(f"Invalid chain id: {chain_id!r}")
        try:
            requested = int(chain_id, 16)
        except ValueError as e:
            raise ValueError(f"Invalid chain id: {chain_id!r}") from e
        if requested != self.chain.chain_id:
            raise ValueError(
                f"Unsupported chain {chain_id}: transactions are signed for {hex(self.chain.chain_id)}"
            )
        self.chain_id = hex(requested)
        self.network_version = str(requested)
        logger.info(f"Chain switch to {self.chain_id} accepted")
        return None

    # ======================
    # Approval queue
    # ======================

    async def _get_pending_transactions(self, message: dict) -> list[dict]:
        session = self.sessions.current()
        from_address = session.address if session else None
        return [op.to_dict(from_address) for op in self.queue.list()]

    async def _approve_transaction(self, message: dict) -> dict:
        await self.queue.approve(message.get("txId"))
        return {"success": True, "message": "Transaction approved and processing started"}

    async def _reject_transaction(self, message: dict) -> dict:
        await self.queue.reject(message.get("txId"))
        return {"success": True}

    async def _get_transaction_progress(self, message: dict) -> dict:
        progress = self.progress.current()
        return {"progress": progress.to_dict() if progress else None}

    # ======================
    # Wallet and sessions
    # ======================

    def _wallet_info(self) -> dict:
        master = self.sessions.require_master()
        session = self.sessions.current()
        return {
            "masterAddress": master.address,
            "currentSessionAddress": session.address if session else None,
            "sessionCount": self.sessions.counter,
        }

    async def _import_wallet(self, message: dict) -> dict:
        master = MasterIdentity(message.get("seedPhrase") or "")
        if self.wallet_store is not None:
            self.wallet_store.save_phrase(master.phrase)
        self.sessions.load_master(master, reset_counter=True)
        self.sessions.derive_next()
        logger.info(f"Wallet imported: {master.address}")
        return {"success": True, "walletInfo": self._wallet_info()}

    async def _get_wallet_info(self, message: dict) -> dict:
        if self.sessions.master is None:
            return {"error": "No wallet imported"}
        return self._wallet_info()

    async def _clear_wallet(self, message: dict) -> dict:
        self.sessions.clear()
        if self.wallet_store is not None:
            self.wallet_store.clear()
        return {"success": True}

    async def _get_all_sessions(self, message: dict) -> list[dict]:
        self.sessions.require_master()
        current = self.sessions.current()
        return [
            s.to_dict(is_current=current is not None and s.index == current.index)
            for s in self.sessions.history()
        ]

    async def _switch_to_session(self, message: dict) -> dict:
        session = self.sessions.restore(int(message.get("sessionNumber", 0)))
        return {"success": True, "address": session.address}

    async def _set_address_substitution(self, message: dict) -> dict:
        self.executor.substitution_enabled = bool(message.get("enabled"))
        logger.info(f"Address substitution enabled: {self.executor.substitution_enabled}")
        return {"success": True, "enabled": self.executor.substitution_enabled}

    # ======================
    # Pool
    # ======================

    async def _get_master_balance(self, message: dict) -> dict:
        balance = await self.funding.master_balance()
        return {"balance": format_ether(balance, 4)}

    async def _get_pool_balance(self, message: dict) -> dict:
        balance = await self.funding.pool_balance()
        return {"balance": format_ether(balance)}

    async def _deposit_to_pool(self, message: dict) -> dict:
        amount = message.get("amount")
        tx_hash = await self.funding.deposit_to_pool(parse_ether(amount))
        new_balance = await self.funding.pool_balance()
        return {
            "success": True,
            "txHash": tx_hash,
            "newPoolBalance": format_ether(new_balance),
            "message": f"Deposited {amount} ETH to Pool contract",
        }

    async def _fund_session_if_needed(self, message: dict) -> dict:
        required = message.get("requiredAmount")
        result = await self.funding.fund_if_needed(
            message.get("sessionAddress"), parse_ether(required)
        )
        if result.path == FundingPath.NONE:
            return {
                "success": True,
                "funded": False,
                "message": "Session already has sufficient balance",
            }
        return {
            "success": True,
            "funded": True,
            "txHash": result.tx_hash,
            "newBalance": format_ether(result.final_balance),
            "message": f"Session funded with {required} ETH via Pool contract",
        }
