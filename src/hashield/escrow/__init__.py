"""Hash-locked escrow settlement: deploy, withdraw (direct or via relayer), cancel."""

from hashield.escrow.models import (
    EscrowReceipt,
    EscrowState,
    EscrowTracker,
    Immutables,
    LimitOrder,
    RelayerSignature,
    escrow_key,
)
from hashield.escrow.settlement import (
    EscrowError,
    EscrowSettlement,
    MissingSecretError,
    OrderNotFoundError,
    RelayerKeyMissingError,
    build_relayer_authorization,
    sign_relayer_authorization,
)

__all__ = [
    "EscrowError",
    "EscrowReceipt",
    "EscrowSettlement",
    "EscrowState",
    "EscrowTracker",
    "Immutables",
    "LimitOrder",
    "MissingSecretError",
    "OrderNotFoundError",
    "RelayerKeyMissingError",
    "RelayerSignature",
    "build_relayer_authorization",
    "escrow_key",
    "sign_relayer_authorization",
]
