"""File-backed order metadata store.

Orders are plain dicts keyed by `orderId` and persisted as a JSON array.
Last write wins; there are no transactions.

Order lifecycle:
1. create_order() generates the claim/refund secret pair, status PENDING
2. The escrow is created with the stored hashes, status READY
3. Relayer withdrawal reveals the claim secret, status COMPLETED
4. Or the refund secret cancels the escrow, status CANCELLED
"""

import json
import logging
import os
import tempfile
import time
from enum import Enum
from pathlib import Path
from typing import Optional

from hashield.hashlock import HashLockSecretPair, generate_secret_pair

logger = logging.getLogger(__name__)

REQUIRED_ORDER_FIELDS = (
    "srcChainId",
    "dstChainId",
    "srcTokenAddress",
    "dstTokenAddress",
    "amount",
    "walletAddress",
)


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    READY = "READY"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class OrderStore:
    """Keyed order records with JSON persistence.

    Pass `path=None` for an in-memory store.
    """

    def __init__(self, path: Optional[str | Path] = None):
        self.path = Path(path) if path else None
        self._orders: dict[str, dict] = {}
        self._load()

    def _load(self) -> None:
        if self.path is None or not self.path.exists():
            return
        data = json.loads(self.path.read_text(encoding="utf-8"))
        for order in data:
            self._orders[order["orderId"]] = order
        logger.info(f"Loaded {len(self._orders)} orders from {self.path}")

    def _save(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".orders-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(list(self._orders.values()), f, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def get(self, order_id: str) -> Optional[dict]:
        order = self._orders.get(order_id)
        return dict(order) if order is not None else None

    def put(self, order: dict) -> dict:
        """Insert or replace an order. Requires an `orderId` key."""
        if not order.get("orderId"):
            raise ValueError("Order requires an orderId")
        now = int(time.time() * 1000)
        record = {"createdAt": now, "updatedAt": now, **order}
        if isinstance(record.get("status"), OrderStatus):
            record["status"] = record["status"].value
        self._orders[record["orderId"]] = record
        self._save()
        return dict(record)

    def update(self, order_id: str, **updates) -> Optional[dict]:
        """Merge fields into an existing order. Returns None if it does not exist."""
        order = self._orders.get(order_id)
        if order is None:
            return None
        if isinstance(updates.get("status"), OrderStatus):
            updates["status"] = updates["status"].value
        updated = {**order, **updates, "updatedAt": int(time.time() * 1000)}
        self._orders[order_id] = updated
        self._save()
        return dict(updated)

    def set_status(
        self, order_id: str, status: OrderStatus | str, swap_id: Optional[str] = None
    ) -> Optional[dict]:
        """Move an order to one of the OrderStatus values.

        Raises:
            ValueError: If status is not an OrderStatus value
        """
        try:
            status = OrderStatus(status)
        except ValueError as e:
            raise ValueError(f"Invalid status: {status}") from e

        updates = {"status": status}
        if swap_id:
            updates["swapId"] = swap_id
        updated = self.update(order_id, **updates)
        if updated is None:
            logger.warning(f"Order {order_id} not found, status {status.value} not recorded")
        return updated

    def create_order(
        self, order_id: str, params: dict, pair: Optional[HashLockSecretPair] = None
    ) -> dict:
        """Record a new PENDING order together with its hash-lock secrets.

        A fresh secret pair is generated unless one is passed in. The raw
        secrets stay in this store; only the hashes are meant to leave it.

        Raises:
            ValueError: If a required order field is missing
        """
        missing = [
            name for name in REQUIRED_ORDER_FIELDS
            if params.get(name) is None or params.get(name) == ""
        ]
        if missing:
            raise ValueError(f"Missing required parameters: {', '.join(missing)}")

        pair = pair or generate_secret_pair()
        order = self.put({
            **{name: params[name] for name in REQUIRED_ORDER_FIELDS},
            "xmrAddress": params.get("xmrAddress"),
            "orderId": order_id,
            "swapId": "",
            "status": OrderStatus.PENDING,
            "claimSecret": pair.claim_secret,
            "refundSecret": pair.refund_secret,
            "claimSecretHash": pair.claim_secret_hash,
            "refundSecretHash": pair.refund_secret_hash,
        })
        logger.info(f"Order {order_id} recorded with claim hash {pair.claim_secret_hash}")
        return order

    def secret_pair(self, order_id: str) -> Optional[HashLockSecretPair]:
        """The stored secrets of an order, or None if it has none."""
        order = self._orders.get(order_id)
        if order is None or not order.get("claimSecret") or not order.get("refundSecret"):
            return None
        return HashLockSecretPair(
            claim_secret=order["claimSecret"],
            refund_secret=order["refundSecret"],
            claim_secret_hash=order["claimSecretHash"],
            refund_secret_hash=order["refundSecretHash"],
        )

    def delete(self, order_id: str) -> bool:
        if self._orders.pop(order_id, None) is None:
            return False
        self._save()
        return True

    def all(self) -> list[dict]:
        return [dict(o) for o in self._orders.values()]

    def by_status(self, status: OrderStatus | str) -> list[dict]:
        value = status.value if isinstance(status, OrderStatus) else status
        return [dict(o) for o in self._orders.values() if o.get("status") == value]

    def by_wallet(self, wallet_address: str) -> list[dict]:
        wallet = wallet_address.lower()
        return [
            dict(o) for o in self._orders.values()
            if str(o.get("walletAddress", "")).lower() == wallet
        ]
