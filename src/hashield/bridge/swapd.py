"""Swap daemon (swapd) JSON-RPC client.

swapd negotiates ETH/XMR atomic swaps with peers. It is an external service;
this client only forwards calls and returns the daemon's result payloads.
"""

import itertools
import logging
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)

SWAPD_DEFAULT_URL = "http://127.0.0.1:5000"


class BridgeError(Exception):
    """Swap daemon or order service call failed."""

    def __init__(self, message: str, code: Optional[int] = None):
        self.code = code
        super().__init__(message)


class SwapDaemonClient:
    """JSON-RPC 2.0 client for swapd.

    Example:
        client = SwapDaemonClient()
        offer = await client.make_offer("0.14725", "0.16275", "15.5")
    """

    def __init__(
        self,
        rpc_url: str = SWAPD_DEFAULT_URL,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.rpc_url = rpc_url
        self.timeout = timeout
        self._client = client
        self._ids = itertools.count()

    async def _get_client(self) -> httpx.AsyncClient:
        """Get HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    async def _rpc(self, method: str, params: Optional[dict] = None) -> Any:
        client = await self._get_client()
        payload = {
            "jsonrpc": "2.0",
            "id": str(next(self._ids)),
            "method": method,
            "params": params or {},
        }

        try:
            response = await client.post(self.rpc_url, json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            logger.error(f"swapd connection error on {method}: {e}")
            raise BridgeError(f"SwapD Connection Error: {e}") from e
        except ValueError as e:
            raise BridgeError(f"SwapD returned invalid JSON for {method}") from e

        error = data.get("error")
        if error:
            logger.error(f"swapd RPC error on {method}: {error}")
            code = error.get("code") if isinstance(error, dict) else None
            message = error.get("message") if isinstance(error, dict) else error
            raise BridgeError(f"SwapD RPC Error: {message}", code)

        return data.get("result")

    async def query_all_offers(self, search_time: int = 12) -> dict:
        """Discover peers with active offers via the DHT."""
        return await self._rpc("net_queryAll", {"searchTime": search_time})

    async def query_peer_offers(self, peer_id: str) -> dict:
        return await self._rpc("net_queryPeer", {"peerID": peer_id})

    async def make_offer(
        self,
        min_amount: str,
        max_amount: str,
        exchange_rate: str,
        eth_asset: str = "ETH",
        relayer_endpoint: Optional[str] = None,
        relayer_fee: Optional[str] = None,
    ) -> dict:
        """Advertise a swap offer.

        Returns:
            {"peerID": ..., "offerID": ...}
        """
        params = {
            "minAmount": min_amount,
            "maxAmount": max_amount,
            "exchangeRate": exchange_rate,
            "ethAsset": eth_asset,
        }
        if relayer_endpoint:
            params["relayerEndpoint"] = relayer_endpoint
            if relayer_fee:
                params["relayerFee"] = relayer_fee
        return await self._rpc("net_makeOffer", params)

    async def take_offer(self, peer_id: str, offer_id: str, provides_amount: str) -> Any:
        """Take an advertised offer; this starts the swap."""
        return await self._rpc(
            "net_takeOffer",
            {"peerID": peer_id, "offerID": offer_id, "providesAmount": provides_amount},
        )

    async def get_ongoing_swaps(self, offer_id: Optional[str] = None) -> dict:
        return await self._rpc("swap_getOngoing", {"offerID": offer_id} if offer_id else {})

    async def get_past_swaps(self, offer_id: Optional[str] = None) -> dict:
        return await self._rpc("swap_getPast", {"offerID": offer_id} if offer_id else {})

    async def get_swap_status(self, swap_id: str) -> dict:
        return await self._rpc("swap_getStatus", {"id": swap_id})

    async def cancel_swap(self, offer_id: str) -> dict:
        return await self._rpc("swap_cancel", {"offerID": offer_id})

    async def get_suggested_exchange_rate(self) -> dict:
        """Current XMR/ETH price ratio from the daemon's price feed."""
        return await self._rpc("swap_suggestedExchangeRate")

    async def get_balances(self) -> dict:
        """Monero and Ethereum addresses and balances held by the daemon."""
        return await self._rpc("personal_balances")

    async def ping(self) -> bool:
        """Check if swapd is reachable."""
        try:
            await self.get_suggested_exchange_rate()
            return True
        except BridgeError:
            return False
