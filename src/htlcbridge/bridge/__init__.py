"""Bridge protocol: initiate, complete, refund and counterparty withdraw."""

from htlcbridge.bridge.events import (
    BridgeTransferCompleted,
    BridgeTransferInitiated,
    BridgeTransferRefunded,
)
from htlcbridge.bridge.protocol import BridgeProtocol, CallContext

__all__ = [
    "BridgeProtocol",
    "BridgeTransferCompleted",
    "BridgeTransferInitiated",
    "BridgeTransferRefunded",
    "CallContext",
]
