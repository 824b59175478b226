"""Initiating side of the hash-time-locked bridge.

State machine of one transfer:

    INITIALIZED --(correct pre-image, height <= time_lock)--> COMPLETED
    INITIALIZED --(height > time_lock)-----------------------> REFUNDED

Both targets are terminal. Completed transfers stay attributed to the
originator's balance until the counterparty settles them with ``withdraw``.

Each public method runs inside a SAVEPOINT on the caller's session. A
failure anywhere, including in the token after the ledger was already
updated, rolls back every write the method made. Ledger state is written
before value is pushed out, so a token that calls back into the bridge
sees the transfer already finalized.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from htlcbridge.access import AccessControl
from htlcbridge.bridge.events import (
    BridgeTransferCompleted,
    BridgeTransferInitiated,
    BridgeTransferRefunded,
)
from htlcbridge.errors import (
    AlreadyFinalizedError,
    BridgeError,
    InsufficientBalanceError,
    InvalidSecretError,
    TimelockExpiredError,
    TimelockNotExpiredError,
    ZeroAmountError,
)
from htlcbridge.gateway.base import FungibleLedger, ValueGateway
from htlcbridge.gateway.token import WrappedNativeToken
from htlcbridge.ledger.models import BridgeState, BridgeTransfer, TransferState
from htlcbridge.ledger.repository import TransferLedger
from htlcbridge.utils.amounts import checked_add, require_uint256
from htlcbridge.utils.identifiers import derive_transfer_id, keccak256, to_address, to_bytes32

logger = logging.getLogger(__name__)

BridgeEventType = Union[BridgeTransferInitiated, BridgeTransferCompleted, BridgeTransferRefunded]


@dataclass(frozen=True)
class CallContext:
    """What the host chain knows about a call.

    Attributes:
        sender: Authenticated caller account (20 bytes)
        height: Current block height
        value: Native currency attached to the call
    """

    sender: bytes
    height: int
    value: int = 0

    def __post_init__(self):
        to_address(self.sender)
        require_uint256(self.height, "height")
        require_uint256(self.value, "attached value")


class BridgeProtocol:
    """Public operations of the bridge, bound to one database session."""

    def __init__(
        self,
        session: AsyncSession,
        bridge_address: bytes,
        token: Optional[FungibleLedger] = None,
    ):
        """Initialize the protocol.

        Args:
            session: Session holding the bridge ledger
            bridge_address: The bridge's own account on the token ledger
            token: Token ledger override; defaults to the wrapped native
                token registered at initialization
        """
        self.session = session
        self.bridge_address = to_address(bridge_address)
        self.ledger = TransferLedger(session)
        self.access = AccessControl(self.ledger)
        self._token = token

    @asynccontextmanager
    async def _atomic(self, operation: str):
        """Run an operation all-or-nothing."""
        try:
            async with self.session.begin_nested():
                yield
        except BridgeError as exc:
            logger.warning("%s rejected (%s): %s", operation, exc.kind, exc)
            raise

    async def _gateway(self) -> ValueGateway:
        state = await self.access.require_initialized()
        token = self._token
        if token is None:
            token = WrappedNativeToken(self.session, state.token_address)
        return ValueGateway(token, self.bridge_address)

    async def _emit(self, event: BridgeEventType, height: int) -> None:
        payload = event.to_payload()
        await self.ledger.add_event(event.event_type, event.transfer_id, height, payload)
        logger.info("%s %s", event.event_type.value, payload)

    # Administration
    async def initialize(self, ctx: CallContext, token_address: bytes, owner: bytes) -> None:
        async with self._atomic("initialize"):
            await self.access.initialize(to_address(token_address), to_address(owner))

    async def set_counterparty(self, ctx: CallContext, counterparty: bytes) -> None:
        async with self._atomic("set_counterparty"):
            await self.access.set_counterparty(ctx.sender, to_address(counterparty))

    async def transfer_ownership(self, ctx: CallContext, new_owner: bytes) -> None:
        async with self._atomic("transfer_ownership"):
            await self.access.transfer_ownership(ctx.sender, to_address(new_owner))

    # Transfers
    async def initiate(
        self,
        ctx: CallContext,
        amount: int,
        recipient: bytes,
        hash_lock: bytes,
        time_lock_delay: int,
    ) -> bytes:
        """Lock ``amount`` wrapped units plus ``ctx.value`` native units.

        Args:
            ctx: Caller, height and attached native value
            amount: Already-wrapped units to pull from the caller
            recipient: Destination-chain recipient (32 bytes, opaque)
            hash_lock: keccak256 of the secret (32 bytes)
            time_lock_delay: Blocks until the transfer becomes refundable

        Returns:
            The 32-byte transfer id
        """
        async with self._atomic("initiate"):
            recipient = to_bytes32(recipient, "recipient")
            hash_lock = to_bytes32(hash_lock, "hash lock")
            require_uint256(amount)
            require_uint256(time_lock_delay, "time lock delay")

            total_amount = checked_add(amount, ctx.value)
            if total_amount == 0:
                raise ZeroAmountError()

            gateway = await self._gateway()
            if ctx.value > 0:
                await gateway.wrap_native(ctx.value)
            if amount > 0:
                await gateway.pull_from(ctx.sender, amount)

            await self.ledger.adjust_balance(ctx.sender, total_amount)

            nonce = await self.ledger.next_nonce()
            transfer_id = derive_transfer_id(
                ctx.sender, recipient, hash_lock, time_lock_delay, ctx.height, nonce
            )
            await self.ledger.record(
                transfer_id,
                amount=total_amount,
                originator=ctx.sender,
                recipient=recipient,
                hash_lock=hash_lock,
                time_lock=checked_add(ctx.height, time_lock_delay),
                created_height=ctx.height,
            )
            await self.ledger.record_inflow(total_amount)

            await self._emit(
                BridgeTransferInitiated(
                    transfer_id=transfer_id,
                    originator=ctx.sender,
                    recipient=recipient,
                    amount=total_amount,
                    hash_lock=hash_lock,
                    time_lock_delay=time_lock_delay,
                ),
                ctx.height,
            )
            return transfer_id

    async def complete(self, ctx: CallContext, transfer_id: bytes, pre_image: bytes) -> None:
        """Reveal the secret before the deadline. Callable by anyone."""
        async with self._atomic("complete"):
            transfer_id = to_bytes32(transfer_id, "transfer id")
            pre_image = to_bytes32(pre_image, "pre-image")

            transfer = await self.ledger.get(transfer_id)
            if transfer.state != TransferState.INITIALIZED:
                raise AlreadyFinalizedError(transfer_id, TransferState(transfer.state).value)
            if keccak256(pre_image) != transfer.hash_lock:
                raise InvalidSecretError(transfer_id)
            if ctx.height > transfer.time_lock:
                raise TimelockExpiredError(
                    f"Transfer 0x{transfer_id.hex()} expired at height {transfer.time_lock}"
                )

            await self.ledger.transition(
                transfer_id, TransferState.INITIALIZED, TransferState.COMPLETED, height=ctx.height
            )
            await self.ledger.reveal_pre_image(transfer_id, pre_image)

            await self._emit(BridgeTransferCompleted(transfer_id, pre_image), ctx.height)

    async def refund(self, ctx: CallContext, transfer_id: bytes) -> None:
        """Return an expired transfer to its originator. Callable by anyone."""
        async with self._atomic("refund"):
            transfer_id = to_bytes32(transfer_id, "transfer id")

            transfer = await self.ledger.get(transfer_id)
            if transfer.state != TransferState.INITIALIZED:
                raise AlreadyFinalizedError(transfer_id, TransferState(transfer.state).value)
            if ctx.height <= transfer.time_lock:
                raise TimelockNotExpiredError(
                    f"Transfer 0x{transfer_id.hex()} is locked until height {transfer.time_lock}"
                )

            originator = transfer.originator
            amount = transfer.amount

            await self.ledger.transition(
                transfer_id, TransferState.INITIALIZED, TransferState.REFUNDED, height=ctx.height
            )
            await self.ledger.adjust_balance(originator, -amount)
            await self.ledger.record_refund(amount)

            gateway = await self._gateway()
            await gateway.push_to(originator, amount)

            await self._emit(BridgeTransferRefunded(transfer_id), ctx.height)

    async def withdraw(self, ctx: CallContext, originator: bytes, amount: int) -> None:
        """Settle value of completed transfers. Counterparty only."""
        async with self._atomic("withdraw"):
            await self.access.require_counterparty(ctx.sender)

            originator = to_address(originator)
            require_uint256(amount)
            if amount == 0:
                raise ZeroAmountError()

            balance = await self.ledger.get_balance(originator)
            if balance < amount:
                raise InsufficientBalanceError(originator, have=balance, need=amount)

            await self.ledger.adjust_balance(originator, -amount)
            await self.ledger.record_withdrawal(amount)

            gateway = await self._gateway()
            await gateway.push_to(originator, amount)

            logger.info("withdraw %d for 0x%s", amount, originator.hex())

    # Views
    async def get_transfer(self, transfer_id: bytes) -> BridgeTransfer:
        return await self.ledger.get(to_bytes32(transfer_id, "transfer id"))

    async def get_balance(self, account: bytes) -> int:
        return await self.ledger.get_balance(to_address(account))

    async def get_state(self) -> BridgeState:
        return await self.ledger.get_state()
