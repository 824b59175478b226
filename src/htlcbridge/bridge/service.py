"""Session and ordering plumbing around BridgeProtocol.

Top-level operations take the bridge lock, read the block height, open a
session and commit it when the operation returns. Read-only views skip
the lock and only ever see committed state.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from htlcbridge.bridge.protocol import BridgeProtocol, CallContext
from htlcbridge.chain import get_height_source
from htlcbridge.config import get_settings
from htlcbridge.ledger.database import get_db
from htlcbridge.utils.locks import BridgeOperationLock


@asynccontextmanager
async def bridge_operation(
    operation: str, sender: bytes, value: int = 0
) -> AsyncGenerator[tuple[BridgeProtocol, CallContext], None]:
    """Run one state-changing call in host-chain order.

    Example:
        async with bridge_operation("refund", sender) as (protocol, ctx):
            await protocol.refund(ctx, transfer_id)
    """
    settings = get_settings()
    bridge_address = settings.bridge_account

    async with BridgeOperationLock(
        bridge_address, timeout=settings.operation_lock_timeout, operation=operation
    ):
        height = await get_height_source().current_height()
        ctx = CallContext(sender=sender, height=height, value=value)
        async with get_db() as session:
            yield BridgeProtocol(session, bridge_address), ctx


@asynccontextmanager
async def bridge_view() -> AsyncGenerator[BridgeProtocol, None]:
    """Open a protocol for read-only queries."""
    settings = get_settings()
    async with get_db() as session:
        yield BridgeProtocol(session, settings.bridge_account)
