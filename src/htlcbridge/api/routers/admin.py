"""Admin API endpoints (token-protected)."""

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel, Field, field_validator, model_validator

from htlcbridge.api.schemas import BridgeInfo, SenderRequest, parse_address
from htlcbridge.bridge.reconcile import reconcile
from htlcbridge.bridge.service import bridge_operation, bridge_view
from htlcbridge.chain import ManualHeightSource, get_height_source
from htlcbridge.config import get_settings
from htlcbridge.utils.identifiers import to_address

router = APIRouter(prefix="/admin", tags=["admin"])


async def require_admin_token(x_admin_token: str = Header(None)) -> bool:
    """Verify admin token from header.

    If ADMIN_TOKEN is not set, allows access (dev mode).
    """
    settings = get_settings()

    if not settings.admin_token:
        # Dev mode - no token required
        return True

    if x_admin_token != settings.admin_token:
        raise HTTPException(status_code=401, detail="Invalid admin token")

    return True


class InitializeRequest(SenderRequest):
    token_address: str
    owner: str

    @field_validator("token_address", "owner")
    @classmethod
    def validate_addresses(cls, v: str) -> str:
        return parse_address(v)


class CounterpartyRequest(SenderRequest):
    counterparty: str

    @field_validator("counterparty")
    @classmethod
    def validate_counterparty(cls, v: str) -> str:
        return parse_address(v)


class OwnerRequest(SenderRequest):
    new_owner: str

    @field_validator("new_owner")
    @classmethod
    def validate_new_owner(cls, v: str) -> str:
        return parse_address(v)


class HeightRequest(BaseModel):
    """Move the manual height source. Give exactly one of the fields."""

    height: Optional[int] = Field(default=None, ge=0)
    blocks: Optional[int] = Field(default=None, ge=0)

    @model_validator(mode="after")
    def exactly_one(self) -> "HeightRequest":
        if (self.height is None) == (self.blocks is None):
            raise ValueError("Provide either height or blocks")
        return self


async def _bridge_info(protocol) -> BridgeInfo:
    height = await get_height_source().current_height()
    state = await protocol.get_state()
    return BridgeInfo.from_model(state, protocol.bridge_address, height)


@router.post("/initialize", response_model=BridgeInfo)
async def initialize(
    request: InitializeRequest, _: bool = Depends(require_admin_token)
) -> BridgeInfo:
    """Set the token ledger and owner of the bridge."""
    async with bridge_operation("initialize", to_address(request.sender)) as (protocol, ctx):
        await protocol.initialize(
            ctx, to_address(request.token_address), to_address(request.owner)
        )
        return await _bridge_info(protocol)


@router.post("/counterparty", response_model=BridgeInfo)
async def set_counterparty(
    request: CounterpartyRequest, _: bool = Depends(require_admin_token)
) -> BridgeInfo:
    """Name the counterparty bridge."""
    async with bridge_operation("set_counterparty", to_address(request.sender)) as (
        protocol,
        ctx,
    ):
        await protocol.set_counterparty(ctx, to_address(request.counterparty))
        return await _bridge_info(protocol)


@router.post("/owner", response_model=BridgeInfo)
async def transfer_ownership(
    request: OwnerRequest, _: bool = Depends(require_admin_token)
) -> BridgeInfo:
    """Hand the owner role to another identity."""
    async with bridge_operation("transfer_ownership", to_address(request.sender)) as (
        protocol,
        ctx,
    ):
        await protocol.transfer_ownership(ctx, to_address(request.new_owner))
        return await _bridge_info(protocol)


@router.post("/height")
async def set_height(request: HeightRequest, _: bool = Depends(require_admin_token)) -> dict:
    """Move the manual block height forward."""
    source = get_height_source()
    if not isinstance(source, ManualHeightSource):
        raise HTTPException(
            status_code=409, detail=f"Height source '{source.name}' cannot be moved"
        )

    try:
        if request.height is not None:
            height = source.set_height(request.height)
        else:
            height = source.advance(request.blocks)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {"height": height}


@router.get("/reconcile")
async def run_reconcile(_: bool = Depends(require_admin_token)) -> dict:
    """Check ledger invariants."""
    async with bridge_view() as protocol:
        report = await reconcile(protocol.session, protocol.bridge_address)
        return report.to_dict()
