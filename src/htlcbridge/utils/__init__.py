"""Utility modules for htlcbridge."""

from htlcbridge.utils.locks import BridgeOperationLock, get_bridge_lock

__all__ = ["BridgeOperationLock", "get_bridge_lock"]
