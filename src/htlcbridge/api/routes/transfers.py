"""Bridge transfer endpoints: the public operations and read-only views."""

from typing import Optional

from fastapi import APIRouter, Query

from htlcbridge.api.schemas import (
    BalanceResponse,
    BridgeInfo,
    CompleteRequest,
    EventResponse,
    InitiateRequest,
    SenderRequest,
    TransferResponse,
    WithdrawRequest,
)
from htlcbridge.bridge.service import bridge_operation, bridge_view
from htlcbridge.chain import get_height_source
from htlcbridge.ledger.models import TransferState
from htlcbridge.utils.identifiers import format_address, to_address, to_bytes32

router = APIRouter()


@router.get("/bridge", response_model=BridgeInfo)
async def get_bridge() -> BridgeInfo:
    """Registry: identities, token, nonce and running totals."""
    height = await get_height_source().current_height()
    async with bridge_view() as protocol:
        state = await protocol.get_state()
        return BridgeInfo.from_model(state, protocol.bridge_address, height)


@router.post("/transfers", response_model=TransferResponse)
async def initiate_transfer(request: InitiateRequest) -> TransferResponse:
    """Lock funds and create a bridge transfer."""
    sender = to_address(request.sender)
    async with bridge_operation("initiate", sender, value=int(request.native_amount)) as (
        protocol,
        ctx,
    ):
        transfer_id = await protocol.initiate(
            ctx,
            amount=int(request.amount),
            recipient=to_bytes32(request.recipient),
            hash_lock=to_bytes32(request.hash_lock),
            time_lock_delay=request.time_lock,
        )
        transfer = await protocol.get_transfer(transfer_id)
        return TransferResponse.from_model(transfer)


@router.get("/transfers", response_model=list[TransferResponse])
async def list_transfers(
    originator: Optional[str] = None,
    state: Optional[TransferState] = None,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
) -> list[TransferResponse]:
    """List transfers, newest first."""
    originator_bytes = to_address(originator) if originator else None
    async with bridge_view() as protocol:
        transfers = await protocol.ledger.list_transfers(
            originator=originator_bytes, state=state, limit=limit, offset=offset
        )
        return [TransferResponse.from_model(t) for t in transfers]


@router.get("/transfers/{transfer_id}", response_model=TransferResponse)
async def get_transfer(transfer_id: str) -> TransferResponse:
    """Get a transfer by id."""
    async with bridge_view() as protocol:
        transfer = await protocol.get_transfer(to_bytes32(transfer_id, "transfer id"))
        return TransferResponse.from_model(transfer)


@router.get("/transfers/{transfer_id}/events", response_model=list[EventResponse])
async def get_transfer_events(transfer_id: str) -> list[EventResponse]:
    """Notifications emitted for a transfer."""
    async with bridge_view() as protocol:
        transfer = await protocol.get_transfer(to_bytes32(transfer_id, "transfer id"))
        events = await protocol.ledger.get_events(transfer.id)
        return [EventResponse.from_model(e) for e in events]


@router.post("/transfers/{transfer_id}/complete", response_model=TransferResponse)
async def complete_transfer(transfer_id: str, request: CompleteRequest) -> TransferResponse:
    """Reveal the pre-image of a transfer."""
    tid = to_bytes32(transfer_id, "transfer id")
    async with bridge_operation("complete", to_address(request.sender)) as (protocol, ctx):
        await protocol.complete(ctx, tid, to_bytes32(request.pre_image))
        return TransferResponse.from_model(await protocol.get_transfer(tid))


@router.post("/transfers/{transfer_id}/refund", response_model=TransferResponse)
async def refund_transfer(transfer_id: str, request: SenderRequest) -> TransferResponse:
    """Return an expired transfer to its originator."""
    tid = to_bytes32(transfer_id, "transfer id")
    async with bridge_operation("refund", to_address(request.sender)) as (protocol, ctx):
        await protocol.refund(ctx, tid)
        return TransferResponse.from_model(await protocol.get_transfer(tid))


@router.post("/withdrawals", response_model=BalanceResponse)
async def withdraw(request: WithdrawRequest) -> BalanceResponse:
    """Counterparty settlement of an originator's balance."""
    originator = to_address(request.originator)
    async with bridge_operation("withdraw", to_address(request.sender)) as (protocol, ctx):
        await protocol.withdraw(ctx, originator, int(request.amount))
        remaining = await protocol.get_balance(originator)
        return BalanceResponse(account=format_address(originator), amount=str(remaining))


@router.get("/balances/{account}", response_model=BalanceResponse)
async def get_balance(account: str) -> BalanceResponse:
    """Value an account has locked in the bridge."""
    address = to_address(account)
    async with bridge_view() as protocol:
        amount = await protocol.get_balance(address)
        return BalanceResponse(account=format_address(address), amount=str(amount))
