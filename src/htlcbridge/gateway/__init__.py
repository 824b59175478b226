"""Token ledger adapter and the wrapped native token."""

from htlcbridge.gateway.base import FungibleLedger, TokenError, ValueGateway
from htlcbridge.gateway.token import WrappedNativeToken

__all__ = [
    "FungibleLedger",
    "TokenError",
    "ValueGateway",
    "WrappedNativeToken",
]
