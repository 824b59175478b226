"""Repository for bridge ledger operations.

``TransferLedger`` is the only code that writes bridge transfers and
account balances. It flushes after every mutation so that a nested call
on the same session observes the new state immediately.
"""

import json
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from htlcbridge.errors import (
    AmountOverflowError,
    DuplicateTransferIdError,
    InsufficientBalanceError,
    InvalidStateTransitionError,
    TransferNotFoundError,
)
from htlcbridge.ledger.models import (
    AccountBalance,
    BridgeEvent,
    BridgeState,
    BridgeTransfer,
    EventType,
    TransferState,
)
from htlcbridge.utils.amounts import UINT256_MAX, checked_add, require_uint256

BRIDGE_STATE_ID = 1

# Legal edges of the transfer state machine. Terminal states have none.
ALLOWED_TRANSITIONS = {
    TransferState.INITIALIZED: {TransferState.COMPLETED, TransferState.REFUNDED},
    TransferState.COMPLETED: set(),
    TransferState.REFUNDED: set(),
}


class TransferLedger:
    """Repository for bridge transfers, balances and the bridge registry."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # Transfer operations
    async def find(self, transfer_id: bytes) -> Optional[BridgeTransfer]:
        """Get a transfer by id, or None."""
        return await self.session.get(BridgeTransfer, transfer_id)

    async def get(self, transfer_id: bytes) -> BridgeTransfer:
        """Get a transfer by id. Raises TransferNotFoundError if absent."""
        transfer = await self.find(transfer_id)
        if transfer is None:
            raise TransferNotFoundError(transfer_id)
        return transfer

    async def record(
        self,
        transfer_id: bytes,
        amount: int,
        originator: bytes,
        recipient: bytes,
        hash_lock: bytes,
        time_lock: int,
        created_height: int,
    ) -> BridgeTransfer:
        """Insert a new transfer in the INITIALIZED state."""
        if await self.find(transfer_id) is not None:
            raise DuplicateTransferIdError(transfer_id)

        transfer = BridgeTransfer(
            id=transfer_id,
            amount=require_uint256(amount),
            originator=originator,
            recipient=recipient,
            hash_lock=hash_lock,
            time_lock=time_lock,
            state=TransferState.INITIALIZED,
            created_height=created_height,
        )
        self.session.add(transfer)
        await self.session.flush()
        return transfer

    async def transition(
        self,
        transfer_id: bytes,
        from_state: TransferState,
        to_state: TransferState,
        height: Optional[int] = None,
    ) -> BridgeTransfer:
        """Move a transfer from one state to another.

        The current state must equal from_state and the edge must be legal.
        """
        transfer = await self.get(transfer_id)
        current = TransferState(transfer.state)

        if current != from_state:
            raise InvalidStateTransitionError(
                f"Transfer 0x{transfer_id.hex()} is {current.value}, expected {from_state.value}"
            )
        if to_state not in ALLOWED_TRANSITIONS[from_state]:
            raise InvalidStateTransitionError(
                f"Illegal transition {from_state.value} -> {to_state.value}"
            )

        transfer.state = to_state
        transfer.finalized_height = height
        transfer.finalized_at = datetime.now(timezone.utc)
        await self.session.flush()
        return transfer

    async def reveal_pre_image(self, transfer_id: bytes, pre_image: bytes) -> BridgeTransfer:
        """Store the pre-image revealed by a completed transfer."""
        transfer = await self.get(transfer_id)
        transfer.pre_image = pre_image
        await self.session.flush()
        return transfer

    async def list_transfers(
        self,
        originator: Optional[bytes] = None,
        state: Optional[TransferState] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[BridgeTransfer]:
        """List transfers, newest first, optionally filtered."""
        stmt = select(BridgeTransfer)
        if originator is not None:
            stmt = stmt.where(BridgeTransfer.originator == originator)
        if state is not None:
            stmt = stmt.where(BridgeTransfer.state == state.value)
        # Heights are decimal text; order by length first to sort numerically
        stmt = (
            stmt.order_by(
                func.length(BridgeTransfer.created_height).desc(),
                BridgeTransfer.created_height.desc(),
                BridgeTransfer.created_at.desc(),
            )
            .limit(limit)
            .offset(offset)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    # Balance operations
    async def get_balance(self, account: bytes) -> int:
        """Get the locked balance of an account (zero if never used)."""
        balance = await self.session.get(AccountBalance, account)
        return balance.amount if balance is not None else 0

    async def adjust_balance(self, account: bytes, delta: int) -> int:
        """Apply a signed delta to an account balance.

        Raises InsufficientBalanceError if the result would be negative and
        AmountOverflowError if it would exceed uint256.
        """
        balance = await self.session.get(AccountBalance, account)
        if balance is None:
            balance = AccountBalance(account=account, amount=0)
            self.session.add(balance)

        new_amount = balance.amount + delta
        if new_amount < 0:
            raise InsufficientBalanceError(account, have=balance.amount, need=-delta)
        if new_amount > UINT256_MAX:
            raise AmountOverflowError(f"Balance of 0x{account.hex()} would overflow uint256")

        balance.amount = new_amount
        await self.session.flush()
        return new_amount

    async def get_all_balances(self) -> list[AccountBalance]:
        """Get every balance row."""
        result = await self.session.execute(select(AccountBalance).order_by(AccountBalance.account))
        return list(result.scalars().all())

    # Registry operations
    async def get_state(self) -> BridgeState:
        """Get the bridge registry row, creating the uninitialized row on first use."""
        state = await self.session.get(BridgeState, BRIDGE_STATE_ID)
        if state is None:
            state = BridgeState(
                id=BRIDGE_STATE_ID,
                initialized=False,
                nonce=0,
                total_initiated=0,
                total_refunded=0,
                total_withdrawn=0,
            )
            self.session.add(state)
            await self.session.flush()
        return state

    async def next_nonce(self) -> int:
        """Return the current nonce and advance it."""
        state = await self.get_state()
        nonce = state.nonce
        state.nonce = nonce + 1
        await self.session.flush()
        return nonce

    async def record_inflow(self, amount: int) -> None:
        """Count value entering through initiate."""
        state = await self.get_state()
        state.total_initiated = checked_add(state.total_initiated, amount)
        await self.session.flush()

    async def record_refund(self, amount: int) -> None:
        """Count value leaving through refund."""
        state = await self.get_state()
        state.total_refunded = checked_add(state.total_refunded, amount)
        await self.session.flush()

    async def record_withdrawal(self, amount: int) -> None:
        """Count value leaving through the counterparty withdraw."""
        state = await self.get_state()
        state.total_withdrawn = checked_add(state.total_withdrawn, amount)
        await self.session.flush()

    # Event operations
    async def add_event(
        self,
        event_type: EventType,
        transfer_id: bytes,
        height: int,
        payload: dict,
    ) -> BridgeEvent:
        """Persist a notification."""
        event = BridgeEvent(
            event_type=event_type,
            transfer_id=transfer_id,
            height=height,
            payload_json=json.dumps(payload, sort_keys=True),
        )
        self.session.add(event)
        await self.session.flush()
        return event

    async def get_events(self, transfer_id: bytes) -> list[BridgeEvent]:
        """Get the notifications of a transfer in emission order."""
        stmt = (
            select(BridgeEvent)
            .where(BridgeEvent.transfer_id == transfer_id)
            .order_by(BridgeEvent.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
