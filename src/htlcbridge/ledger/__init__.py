"""Ledger module for bridge transfers, balances and the bridge registry."""

from htlcbridge.ledger.database import get_db, init_db
from htlcbridge.ledger.models import (
    AccountBalance,
    BridgeEvent,
    BridgeState,
    BridgeTransfer,
    EventType,
    TokenAllowance,
    TokenBalance,
    TransferState,
)
from htlcbridge.ledger.repository import TransferLedger

__all__ = [
    # Models
    "AccountBalance",
    "BridgeEvent",
    "BridgeState",
    "BridgeTransfer",
    "TokenAllowance",
    "TokenBalance",
    # Enums
    "EventType",
    "TransferState",
    # Database
    "get_db",
    "init_db",
    "TransferLedger",
]
