"""Pytest configuration and fixtures."""

import asyncio
import itertools
import os
from typing import Any, Callable, Optional, Sequence

import pytest

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["DEBUG"] = "true"
os.environ["WALLET_SEED_PHRASE"] = ""

from hashield.chain.base import ChainClient, FeeData, TransactionRevertedError
from hashield.funding import LiquidityFundingCoordinator
from hashield.hdwallet.base import MasterIdentity
from hashield.hdwallet.counter import MemoryCounterStore
from hashield.hdwallet.session import SessionKeyCoordinator
from hashield.transactions import ProgressTracker, TransactionExecutor, TransactionQueue
from hashield.utils.locks import clear_operation_locks

TEST_MNEMONIC = (
    "abandon abandon abandon abandon abandon abandon "
    "abandon abandon abandon abandon abandon about"
)

POOL_ADDRESS = "0x" + "77" * 20
PLACEHOLDER_ADDRESS = "0xA6a49d09321f701AB4295e5eB115E65EcF9b83B5"
GWEI = 10**9
ETH = 10**18

ContractHandler = Callable[..., Any]


class FakeChain(ChainClient):
    """In-memory chain: balances, a call log and scripted contract handlers.

    Contract handlers are keyed by function name and receive
    (chain, account_or_none, address, args, value). Whatever a handler
    raises propagates to the caller, the same way a revert would.
    """

    def __init__(
        self,
        chain_id: int = 11155111,
        gas: int = 21000,
        fee_data: Optional[FeeData] = None,
    ):
        super().__init__(chain_id)
        self.gas = gas
        self.fee_data = fee_data or FeeData(20 * GWEI, GWEI)
        self.balances: dict[str, int] = {}
        self.calls: list[tuple] = []
        self.sent: list[dict] = []
        self.receipts: dict[str, dict] = {}
        self.handlers: dict[str, ContractHandler] = {}
        self.estimate_error: Optional[Exception] = None
        self.send_error: Optional[Exception] = None
        # When set, gas estimation waits on it (holds an execution in flight)
        self.gate: Optional[asyncio.Event] = None
        self._hashes = itertools.count(1)

    def _key(self, address: str) -> str:
        return address.lower()

    def set_balance(self, address: str, wei: int) -> None:
        self.balances[self._key(address)] = wei

    def credit(self, address: str, wei: int) -> None:
        key = self._key(address)
        self.balances[key] = self.balances.get(key, 0) + wei

    def calls_named(self, name: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == name]

    def _next_hash(self) -> str:
        tx_hash = "0x" + f"{next(self._hashes):064x}"
        self.receipts[tx_hash] = {
            "status": 1,
            "blockNumber": len(self.receipts) + 1,
            "gasUsed": self.gas,
        }
        return tx_hash

    async def estimate_gas(self, tx: dict) -> int:
        self.calls.append(("estimate_gas", tx))
        if self.gate is not None:
            await self.gate.wait()
        if self.estimate_error is not None:
            raise self.estimate_error
        return self.gas

    async def get_fee_data(self) -> FeeData:
        self.calls.append(("get_fee_data",))
        return self.fee_data

    async def get_balance(self, address: str) -> int:
        self.calls.append(("get_balance", address))
        return self.balances.get(self._key(address), 0)

    async def get_nonce(self, address: str) -> int:
        return 0

    async def send_transaction(self, account, tx: dict) -> str:
        self.calls.append(("send_transaction", account.address, tx))
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(dict(tx, sender=account.address))
        tx_hash = self._next_hash()
        if tx.get("to") and tx.get("value"):
            self.credit(tx["to"], tx["value"])
        return tx_hash

    async def send_contract_transaction(
        self,
        account,
        address: str,
        abi: list,
        function: str,
        args: Sequence[Any],
        value: int = 0,
    ) -> str:
        self.calls.append(("send_contract_transaction", function, address, list(args), value))
        handler = self.handlers.get(function)
        if handler is not None:
            handler(self, account, address, list(args), value)
        return self._next_hash()

    async def call_contract(
        self, address: str, abi: list, function: str, args: Sequence[Any] = ()
    ) -> Any:
        self.calls.append(("call_contract", function, address, list(args)))
        handler = self.handlers.get(function)
        if handler is None:
            raise AssertionError(f"No handler for {function}")
        return handler(self, None, address, list(args), 0)

    async def wait_for_receipt(self, tx_hash: str) -> dict:
        self.calls.append(("wait_for_receipt", tx_hash))
        receipt = self.receipts[tx_hash]
        if receipt["status"] == 0:
            raise TransactionRevertedError(tx_hash, receipt)
        return receipt


class FakePool:
    """Pool contract semantics on top of FakeChain handlers."""

    def __init__(self, chain: FakeChain, deposits: Optional[dict[str, int]] = None):
        self.chain = chain
        self.deposits = {k.lower(): v for k, v in (deposits or {}).items()}
        self.credit_on_withdraw = True
        chain.handlers["getBalance"] = self._get_balance
        chain.handlers["withdraw"] = self._withdraw
        chain.handlers["deposit"] = self._deposit

    def _get_balance(self, chain, account, address, args, value):
        return self.deposits.get(args[0].lower(), 0)

    def _withdraw(self, chain, account, address, args, value):
        destination, amount = args
        self.deposits[account.address.lower()] -= amount
        if self.credit_on_withdraw:
            chain.credit(destination, amount)

    def _deposit(self, chain, account, address, args, value):
        key = account.address.lower()
        self.deposits[key] = self.deposits.get(key, 0) + value


@pytest.fixture(autouse=True)
def reset_locks():
    """Clear operation locks before each test."""
    clear_operation_locks()
    yield
    clear_operation_locks()


@pytest.fixture(scope="session")
def master() -> MasterIdentity:
    return MasterIdentity(TEST_MNEMONIC)


@pytest.fixture
def counter_store() -> MemoryCounterStore:
    return MemoryCounterStore()


@pytest.fixture
def sessions(master, counter_store) -> SessionKeyCoordinator:
    coordinator = SessionKeyCoordinator(counter_store)
    coordinator.load_master(master)
    return coordinator


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def pool(chain, master) -> FakePool:
    """Pool holding a 1 ETH deposit for the master identity."""
    return FakePool(chain, {master.address: 1 * ETH})


@pytest.fixture
def funding(chain, sessions, pool) -> LiquidityFundingCoordinator:
    return LiquidityFundingCoordinator(
        chain, sessions, POOL_ADDRESS, safety_margin=10**16, verify_attempts=5, verify_delay=0
    )


@pytest.fixture
def progress():
    tracker = ProgressTracker(clear_delay_success=0.05, clear_delay_error=0.1)
    yield tracker
    tracker.close()


@pytest.fixture
def executor(chain, sessions, funding, progress) -> TransactionExecutor:
    return TransactionExecutor(
        chain, sessions, funding, progress, placeholder_address=PLACEHOLDER_ADDRESS
    )


@pytest.fixture
def queue(executor) -> TransactionQueue:
    return TransactionQueue(executor, lock_timeout=5.0)
