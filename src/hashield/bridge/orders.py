"""Order service client and best-effort swap order creation.

Every value-carrying dApp transaction also opens an ETH to XMR swap: an order
is registered with the order service, then an offer is advertised on swapd.
Neither step may hold up or fail the transaction itself.
"""

import logging
from decimal import Decimal
from typing import Optional

import httpx

from hashield.bridge.store import OrderStore
from hashield.bridge.swapd import BridgeError, SwapDaemonClient
from hashield.config import Settings, get_settings
from hashield.hashlock import HashLockSecretPair, RandomSourceUnavailable, generate_secret_pair

logger = logging.getLogger(__name__)

WEI_PER_ETH = Decimal(10**18)
NATIVE_TOKEN = "0x0000000000000000000000000000000000000000"
MONERO_CHAIN_ID = 0


def _decimal_text(value: Decimal) -> str:
    text = format(value.normalize(), "f")
    return text if text != "-0" else "0"


class OrderServiceClient:
    """HTTP client for the order microservice."""

    def __init__(
        self,
        base_url: str = "http://localhost:3000",
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    async def create_order(self, params: dict) -> dict:
        """POST /api/orders.

        Raises:
            BridgeError: On connection failure or a non-2xx response
        """
        client = await self._get_client()
        try:
            response = await client.post(f"{self.base_url}/api/orders", json=params)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            raise BridgeError(
                f"Order service returned {e.response.status_code}", e.response.status_code
            ) from e
        except httpx.HTTPError as e:
            raise BridgeError(f"Order service unreachable: {e}") from e
        except ValueError as e:
            raise BridgeError("Order service returned invalid JSON") from e


class AtomicSwapOrderCreator:
    """Creates the swap order and offer that mirror a dApp transaction.

    The claim/refund secret pair is generated here. Only the hashes go to the
    order service; the secrets are kept in the local order store.
    """

    def __init__(
        self,
        orders: OrderServiceClient,
        swapd: SwapDaemonClient,
        src_chain_id: int,
        exchange_rate: str = "15.5",
        spread: float = 0.05,
        relayer_endpoint: Optional[str] = None,
        order_store: Optional[OrderStore] = None,
    ):
        self.orders = orders
        self.swapd = swapd
        self.src_chain_id = src_chain_id
        self.exchange_rate = exchange_rate
        self.spread = Decimal(str(spread))
        self.relayer_endpoint = relayer_endpoint
        self.order_store = order_store

    @classmethod
    def from_settings(
        cls, settings: Optional[Settings] = None, order_store: Optional[OrderStore] = None
    ) -> "AtomicSwapOrderCreator":
        settings = settings or get_settings()
        return cls(
            OrderServiceClient(settings.order_service_url, settings.bridge_timeout),
            SwapDaemonClient(settings.swapd_rpc_url, settings.bridge_timeout),
            settings.chain_id,
            exchange_rate=settings.eth_xmr_rate,
            spread=settings.offer_spread,
            relayer_endpoint=settings.relayer_endpoint,
            order_store=order_store,
        )

    def offer_bounds(self, amount_eth: Decimal) -> tuple[str, str]:
        """Min/max XMR amounts around amount * rate."""
        target = amount_eth * Decimal(self.exchange_rate)
        return (
            _decimal_text(target * (1 - self.spread)),
            _decimal_text(target * (1 + self.spread)),
        )

    def _record_order(self, order: dict, params: dict, pair: HashLockSecretPair) -> None:
        order_id = order.get("orderId") if isinstance(order, dict) else None
        if self.order_store is None or not order_id:
            return
        try:
            self.order_store.create_order(order_id, params, pair)
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to record order {order_id} locally: {e}")

    async def create_for_request(
        self, request, wallet_address: Optional[str], xmr_address: Optional[str] = None
    ) -> Optional[dict]:
        """Open an order and offer for a value-carrying request.

        Never raises; failures are logged and the step is skipped.

        Returns:
            {"order": ..., "offer": ...} (either may be None), or None when
            the request carries no value
        """
        if request.value <= 0:
            return None

        amount_eth = Decimal(request.value) / WEI_PER_ETH
        logger.info(f"Creating atomic swap order for {_decimal_text(amount_eth)} ETH")

        params = {
            "srcChainId": self.src_chain_id,
            "dstChainId": MONERO_CHAIN_ID,
            "srcTokenAddress": NATIVE_TOKEN,
            "dstTokenAddress": "XMR",
            "amount": _decimal_text(amount_eth),
            "walletAddress": wallet_address or NATIVE_TOKEN,
            "xmrAddress": xmr_address,
        }

        order = None
        try:
            pair = generate_secret_pair()
            order = await self.orders.create_order({**params, **pair.public()})
            self._record_order(order, params, pair)
        except (BridgeError, RandomSourceUnavailable) as e:
            logger.warning(f"Failed to create order, continuing with swap offer: {e}")

        offer = None
        min_amount, max_amount = self.offer_bounds(amount_eth)
        try:
            offer = await self.swapd.make_offer(
                min_amount,
                max_amount,
                self.exchange_rate,
                relayer_endpoint=self.relayer_endpoint,
            )
            logger.info(f"Swap offer created: {offer}")
        except BridgeError as e:
            logger.warning(f"Failed to create swap daemon offer: {e}")

        return {"order": order, "offer": offer}
