"""Cross-chain bridge collaborators: swap daemon, order service and order store."""

from hashield.bridge.orders import AtomicSwapOrderCreator, OrderServiceClient
from hashield.bridge.store import OrderStatus, OrderStore
from hashield.bridge.swapd import BridgeError, SwapDaemonClient

__all__ = [
    "AtomicSwapOrderCreator",
    "BridgeError",
    "OrderServiceClient",
    "OrderStatus",
    "OrderStore",
    "SwapDaemonClient",
]
