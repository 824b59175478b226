"""Notifications emitted by bridge operations."""

from dataclasses import dataclass

from htlcbridge.ledger.models import EventType
from htlcbridge.utils.identifiers import format_address, format_bytes32


@dataclass(frozen=True)
class BridgeTransferInitiated:
    """Funds locked under a hash lock."""

    transfer_id: bytes
    originator: bytes
    recipient: bytes
    amount: int
    hash_lock: bytes
    time_lock_delay: int

    event_type = EventType.INITIATED

    def to_payload(self) -> dict:
        return {
            "transfer_id": format_bytes32(self.transfer_id),
            "originator": format_address(self.originator),
            "recipient": format_bytes32(self.recipient),
            "amount": str(self.amount),
            "hash_lock": format_bytes32(self.hash_lock),
            "time_lock": self.time_lock_delay,
        }


@dataclass(frozen=True)
class BridgeTransferCompleted:
    """Pre-image revealed. The counterparty chain consumes it as proof."""

    transfer_id: bytes
    pre_image: bytes

    event_type = EventType.COMPLETED

    def to_payload(self) -> dict:
        return {
            "transfer_id": format_bytes32(self.transfer_id),
            "pre_image": format_bytes32(self.pre_image),
        }


@dataclass(frozen=True)
class BridgeTransferRefunded:
    transfer_id: bytes

    event_type = EventType.REFUNDED

    def to_payload(self) -> dict:
        return {"transfer_id": format_bytes32(self.transfer_id)}
