"""Operation ordering for bridge calls.

The host chain executes one transaction at a time. Inside an asyncio server
two requests can interleave at every ``await``, so each top-level bridge
operation holds the lock for its bridge until it commits or rolls back.

Only the service layer takes this lock. Re-entrant calls made from inside a
token callback run under the outer call's lock and must not take it again.
"""

import asyncio
import logging
from typing import Optional

logger = logging.getLogger(__name__)

# Global lock registry: bridge address -> asyncio.Lock
_bridge_locks: dict[bytes, asyncio.Lock] = {}
_registry_lock = asyncio.Lock()


async def get_bridge_lock(bridge_address: bytes) -> asyncio.Lock:
    """Get or create the lock for a bridge.

    Args:
        bridge_address: The bridge's own account

    Returns:
        asyncio.Lock for the bridge
    """
    async with _registry_lock:
        if bridge_address not in _bridge_locks:
            _bridge_locks[bridge_address] = asyncio.Lock()
        return _bridge_locks[bridge_address]


class LockTimeoutError(Exception):
    """Raised when a lock cannot be acquired within the timeout period."""

    pass


class BridgeOperationLock:
    """Context manager serializing operations against one bridge.

    Example:
        async with BridgeOperationLock(bridge_address, operation="refund"):
            async with get_db() as session:
                await BridgeProtocol(session, bridge_address).refund(ctx, transfer_id)
    """

    def __init__(
        self,
        bridge_address: bytes,
        timeout: Optional[float] = 30.0,
        operation: str = "bridge_operation",
    ):
        """Initialize the lock.

        Args:
            bridge_address: The bridge's own account
            timeout: Maximum time to wait for lock (None = wait forever)
            operation: Description of the operation for logging
        """
        self.bridge_address = bridge_address
        self.timeout = timeout
        self.operation = operation
        self._lock: Optional[asyncio.Lock] = None
        self._acquired = False

    async def __aenter__(self) -> "BridgeOperationLock":
        """Acquire the lock."""
        self._lock = await get_bridge_lock(self.bridge_address)

        try:
            if self.timeout:
                self._acquired = await asyncio.wait_for(
                    self._lock.acquire(),
                    timeout=self.timeout,
                )
            else:
                await self._lock.acquire()
                self._acquired = True

            logger.debug("Lock acquired for %s", self.operation)
            return self

        except asyncio.TimeoutError:
            logger.warning("Lock timeout after %ss: %s", self.timeout, self.operation)
            raise LockTimeoutError(
                f"Could not acquire bridge lock within {self.timeout}s for {self.operation}"
            )

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Release the lock."""
        if self._acquired and self._lock:
            self._lock.release()
            self._acquired = False
            logger.debug("Lock released for %s", self.operation)
        return False


def clear_bridge_locks() -> None:
    """Clear all bridge locks (useful for testing)."""
    _bridge_locks.clear()
