"""Tests for the swap daemon client, order service client and order store."""

import json
from decimal import Decimal

import httpx
import pytest

from hashield.bridge import (
    AtomicSwapOrderCreator,
    BridgeError,
    OrderServiceClient,
    OrderStatus,
    OrderStore,
    SwapDaemonClient,
)
from hashield.hashlock import generate_secret_pair, verify_secret
from hashield.transactions.models import TransactionRequest

WALLET = "0x" + "ab" * 20


class RecordingTransport:
    """httpx.MockTransport handler that records requests and answers from a script."""

    def __init__(self, responder):
        self.requests: list[httpx.Request] = []
        self.responder = responder

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responder(request)

    def bodies(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests]

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


def rpc_result(result):
    def responder(request):
        body = json.loads(request.content)
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})
    return responder


class TestSwapDaemonClient:
    """Tests for the JSON-RPC client."""

    @pytest.mark.asyncio
    async def test_make_offer(self):
        transport = RecordingTransport(rpc_result({"peerID": "12D3Koo", "offerID": "0xoffer"}))
        client = SwapDaemonClient("http://swapd:5000", client=transport.client())

        offer = await client.make_offer(
            "0.14725", "0.16275", "15.5", relayer_endpoint="http://relayer", relayer_fee="0.001"
        )

        assert offer == {"peerID": "12D3Koo", "offerID": "0xoffer"}
        body = transport.bodies()[0]
        assert body["jsonrpc"] == "2.0"
        assert body["method"] == "net_makeOffer"
        assert isinstance(body["id"], str)
        assert body["params"] == {
            "minAmount": "0.14725",
            "maxAmount": "0.16275",
            "exchangeRate": "15.5",
            "ethAsset": "ETH",
            "relayerEndpoint": "http://relayer",
            "relayerFee": "0.001",
        }
        assert transport.requests[0].url.host == "swapd"

    @pytest.mark.asyncio
    async def test_methods_and_ids(self):
        transport = RecordingTransport(rpc_result({}))
        client = SwapDaemonClient(client=transport.client())

        await client.query_all_offers()
        await client.query_peer_offers("peer")
        await client.take_offer("peer", "offer", "1.5")
        await client.get_ongoing_swaps()
        await client.get_past_swaps("offer")
        await client.get_swap_status("swap")
        await client.cancel_swap("offer")
        await client.get_suggested_exchange_rate()
        await client.get_balances()

        bodies = transport.bodies()
        assert [b["method"] for b in bodies] == [
            "net_queryAll",
            "net_queryPeer",
            "net_takeOffer",
            "swap_getOngoing",
            "swap_getPast",
            "swap_getStatus",
            "swap_cancel",
            "swap_suggestedExchangeRate",
            "personal_balances",
        ]
        assert bodies[0]["params"] == {"searchTime": 12}
        assert bodies[2]["params"] == {"peerID": "peer", "offerID": "offer", "providesAmount": "1.5"}
        assert bodies[3]["params"] == {}
        assert len({b["id"] for b in bodies}) == len(bodies)

    @pytest.mark.asyncio
    async def test_rpc_error(self):
        def responder(request):
            return httpx.Response(
                200, json={"jsonrpc": "2.0", "id": "0", "error": {"code": -32000, "message": "no offers"}}
            )

        client = SwapDaemonClient(client=RecordingTransport(responder).client())
        with pytest.raises(BridgeError, match="SwapD RPC Error: no offers") as exc_info:
            await client.get_ongoing_swaps()
        assert exc_info.value.code == -32000

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def responder(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = SwapDaemonClient(client=RecordingTransport(responder).client())
        with pytest.raises(BridgeError, match="SwapD Connection Error"):
            await client.get_balances()
        assert await client.ping() is False

    @pytest.mark.asyncio
    async def test_ping(self):
        client = SwapDaemonClient(client=RecordingTransport(rpc_result({"exchangeRate": "15.5"})).client())
        assert await client.ping() is True
        await client.close()


class TestOrderServiceClient:
    @pytest.mark.asyncio
    async def test_create_order(self):
        def responder(request):
            return httpx.Response(201, json={"orderId": "o-1", **json.loads(request.content)})

        transport = RecordingTransport(responder)
        client = OrderServiceClient("http://orders:3000/", client=transport.client())

        order = await client.create_order({"amount": "1"})

        assert order["orderId"] == "o-1"
        assert transport.requests[0].url.path == "/api/orders"
        assert transport.requests[0].method == "POST"

    @pytest.mark.asyncio
    async def test_http_error(self):
        client = OrderServiceClient(
            client=RecordingTransport(lambda r: httpx.Response(500, json={})).client()
        )
        with pytest.raises(BridgeError) as exc_info:
            await client.create_order({})
        assert exc_info.value.code == 500


class TestAtomicSwapOrderCreator:
    """Best-effort order and offer creation for value-carrying requests."""

    def make_creator(self, order_responder, swapd_responder, order_store=None):
        orders = RecordingTransport(order_responder)
        swapd = RecordingTransport(swapd_responder)
        creator = AtomicSwapOrderCreator(
            OrderServiceClient(client=orders.client()),
            SwapDaemonClient(client=swapd.client()),
            src_chain_id=11155111,
            relayer_endpoint="http://localhost:3000/api/relayer",
            order_store=order_store,
        )
        return creator, orders, swapd

    def test_offer_bounds(self):
        creator = AtomicSwapOrderCreator(None, None, 1)
        assert creator.offer_bounds(Decimal("1")) == ("14.725", "16.275")

    @pytest.mark.asyncio
    async def test_creates_order_and_offer(self):
        creator, orders, swapd = self.make_creator(
            lambda r: httpx.Response(201, json={"orderId": "o-1"}),
            rpc_result({"peerID": "p", "offerID": "0x01"}),
        )
        request = TransactionRequest.parse({"to": "0x" + "11" * 20, "value": hex(10**16)})

        result = await creator.create_for_request(request, WALLET, "48xmr")

        assert result == {"order": {"orderId": "o-1"}, "offer": {"peerID": "p", "offerID": "0x01"}}
        body = orders.bodies()[0]
        claim_hash = body.pop("claimSecretHash")
        refund_hash = body.pop("refundSecretHash")
        assert claim_hash.startswith("0x") and len(claim_hash) == 66
        assert refund_hash != claim_hash
        assert body == {
            "srcChainId": 11155111,
            "dstChainId": 0,
            "srcTokenAddress": "0x0000000000000000000000000000000000000000",
            "dstTokenAddress": "XMR",
            "amount": "0.01",
            "walletAddress": WALLET,
            "xmrAddress": "48xmr",
        }
        params = swapd.bodies()[0]["params"]
        assert params["minAmount"] == "0.14725"
        assert params["maxAmount"] == "0.16275"
        assert params["exchangeRate"] == "15.5"
        assert params["relayerEndpoint"] == "http://localhost:3000/api/relayer"

    @pytest.mark.asyncio
    async def test_order_failure_still_makes_offer(self):
        creator, orders, swapd = self.make_creator(
            lambda r: httpx.Response(503, json={}),
            rpc_result({"offerID": "0x02"}),
        )
        request = TransactionRequest.parse({"to": "0x" + "11" * 20, "value": hex(10**18)})

        result = await creator.create_for_request(request, WALLET)

        assert result == {"order": None, "offer": {"offerID": "0x02"}}
        assert len(swapd.requests) == 1

    @pytest.mark.asyncio
    async def test_secrets_stay_in_local_store(self):
        store = OrderStore()
        creator, orders, swapd = self.make_creator(
            lambda r: httpx.Response(201, json={"orderId": "o-7"}),
            rpc_result({"offerID": "0x03"}),
            order_store=store,
        )
        request = TransactionRequest.parse({"to": "0x" + "11" * 20, "value": hex(10**17)})

        await creator.create_for_request(request, WALLET)

        body = orders.bodies()[0]
        assert "claimSecret" not in body and "refundSecret" not in body
        order = store.get("o-7")
        assert order["status"] == "PENDING"
        assert order["amount"] == "0.1"
        assert order["claimSecretHash"] == body["claimSecretHash"]
        assert verify_secret(order["claimSecret"], body["claimSecretHash"])
        assert verify_secret(order["refundSecret"], body["refundSecretHash"])

    @pytest.mark.asyncio
    async def test_failed_order_is_not_stored(self):
        store = OrderStore()
        creator, orders, swapd = self.make_creator(
            lambda r: httpx.Response(500, json={}),
            rpc_result({"offerID": "0x04"}),
            order_store=store,
        )
        request = TransactionRequest.parse({"to": "0x" + "11" * 20, "value": hex(10**17)})

        await creator.create_for_request(request, WALLET)

        assert store.all() == []

    @pytest.mark.asyncio
    async def test_zero_value_skipped(self):
        creator, orders, swapd = self.make_creator(
            lambda r: httpx.Response(201, json={}), rpc_result({})
        )
        request = TransactionRequest.parse({"to": "0x" + "11" * 20})

        assert await creator.create_for_request(request, WALLET) is None
        assert orders.requests == []
        assert swapd.requests == []


class TestOrderStore:
    def test_put_get_update(self):
        store = OrderStore()
        store.put({"orderId": "o-1", "status": OrderStatus.PENDING, "walletAddress": WALLET})

        order = store.get("o-1")
        assert order["status"] == "PENDING"
        assert order["createdAt"] == order["updatedAt"]

        updated = store.update("o-1", status=OrderStatus.READY, secretHash="0x01")
        assert updated["status"] == "READY"
        assert updated["secretHash"] == "0x01"
        assert store.update("missing", status="READY") is None
        assert store.set_status("missing", OrderStatus.COMPLETED) is None

    def test_get_returns_copy(self):
        store = OrderStore()
        store.put({"orderId": "o-1"})
        store.get("o-1")["status"] = "HACKED"
        assert "status" not in store.get("o-1")

    def test_requires_order_id(self):
        with pytest.raises(ValueError):
            OrderStore().put({"status": "PENDING"})

    def test_filters(self):
        store = OrderStore()
        store.put({"orderId": "a", "status": "PENDING", "walletAddress": WALLET})
        store.put({"orderId": "b", "status": "COMPLETED", "walletAddress": "0x" + "cd" * 20})

        assert [o["orderId"] for o in store.by_status(OrderStatus.PENDING)] == ["a"]
        assert [o["orderId"] for o in store.by_wallet(WALLET.upper().replace("0X", "0x"))] == ["a"]
        assert store.delete("a") is True
        assert store.delete("a") is False
        assert len(store.all()) == 1

    def test_persistence(self, tmp_path):
        path = tmp_path / "orders.json"
        store = OrderStore(path)
        store.put({"orderId": "o-1", "status": "PENDING"})
        store.set_status("o-1", OrderStatus.CANCELLED)

        reloaded = OrderStore(path)
        assert reloaded.get("o-1")["status"] == "CANCELLED"
        assert json.loads(path.read_text())[0]["orderId"] == "o-1"

    def test_create_order_keeps_secrets(self):
        store = OrderStore()
        params = {
            "srcChainId": 11155111,
            "dstChainId": 0,
            "srcTokenAddress": "0x0000000000000000000000000000000000000000",
            "dstTokenAddress": "XMR",
            "amount": "0.5",
            "walletAddress": WALLET,
        }

        order = store.create_order("o-1", params)

        assert order["status"] == "PENDING"
        assert order["swapId"] == ""
        assert order["dstChainId"] == 0
        assert order["xmrAddress"] is None
        assert verify_secret(order["claimSecret"], order["claimSecretHash"])
        assert verify_secret(order["refundSecret"], order["refundSecretHash"])
        assert order["claimSecret"] != order["refundSecret"]

        pair = store.secret_pair("o-1")
        assert pair.claim_secret == order["claimSecret"]
        assert pair.refund_secret_hash == order["refundSecretHash"]
        assert store.secret_pair("missing") is None

    def test_create_order_with_given_pair(self):
        store = OrderStore()
        pair = generate_secret_pair()
        params = {
            "srcChainId": 1,
            "dstChainId": 0,
            "srcTokenAddress": "0x0000000000000000000000000000000000000000",
            "dstTokenAddress": "XMR",
            "amount": "1",
            "walletAddress": WALLET,
        }

        store.create_order("o-2", params, pair)

        assert store.secret_pair("o-2") == pair

    @pytest.mark.parametrize("missing", ["srcChainId", "amount", "walletAddress"])
    def test_create_order_requires_fields(self, missing):
        params = {
            "srcChainId": 1,
            "dstChainId": 0,
            "srcTokenAddress": "0x0000000000000000000000000000000000000000",
            "dstTokenAddress": "XMR",
            "amount": "1",
            "walletAddress": WALLET,
        }
        params[missing] = "" if missing == "amount" else None

        with pytest.raises(ValueError, match=missing):
            OrderStore().create_order("o-3", params)

    def test_set_status(self):
        store = OrderStore()
        store.put({"orderId": "o-1", "status": "PENDING"})

        updated = store.set_status("o-1", "READY", swap_id="0xswap")
        assert updated["status"] == "READY"
        assert updated["swapId"] == "0xswap"

        with pytest.raises(ValueError, match="Invalid status"):
            store.set_status("o-1", "DONE")
        assert store.get("o-1")["status"] == "READY"
