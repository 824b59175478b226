"""Wrapped native token endpoints.

Holders need these to obtain wrapped units and approve the bridge before
``initiate`` can pull from them.
"""

from fastapi import APIRouter
from pydantic import Field, field_validator

from htlcbridge.api.schemas import BalanceResponse, SenderRequest, parse_address, parse_amount
from htlcbridge.bridge.service import bridge_operation, bridge_view
from htlcbridge.errors import NotInitializedError, ValueTransferFailedError
from htlcbridge.gateway.base import TokenError
from htlcbridge.gateway.token import WrappedNativeToken
from htlcbridge.utils.identifiers import format_address, to_address

router = APIRouter(prefix="/token")


class DepositRequest(SenderRequest):
    """Wrap native currency into the token."""

    amount: str = Field(..., description="Native units to wrap")

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: str) -> str:
        return parse_amount(v)


class ApproveRequest(SenderRequest):
    """Grant a spender an allowance."""

    spender: str
    amount: str

    @field_validator("spender")
    @classmethod
    def validate_spender(cls, v: str) -> str:
        return parse_address(v)

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: str) -> str:
        return parse_amount(v)


async def _token(protocol) -> WrappedNativeToken:
    state = await protocol.get_state()
    if not state.initialized:
        raise NotInitializedError()
    return WrappedNativeToken(protocol.session, state.token_address)


@router.post("/deposit", response_model=BalanceResponse)
async def deposit(request: DepositRequest) -> BalanceResponse:
    """Wrap native units for the sender."""
    sender = to_address(request.sender)
    async with bridge_operation("token_deposit", sender) as (protocol, ctx):
        token = await _token(protocol)
        try:
            await token.deposit(sender, int(request.amount))
        except TokenError as e:
            raise ValueTransferFailedError(str(e)) from e
        balance = await token.balance_of(sender)
        return BalanceResponse(account=format_address(sender), amount=str(balance))


@router.post("/approve")
async def approve(request: ApproveRequest) -> dict:
    """Set the allowance of a spender (usually the bridge)."""
    sender = to_address(request.sender)
    spender = to_address(request.spender)
    async with bridge_operation("token_approve", sender) as (protocol, ctx):
        token = await _token(protocol)
        try:
            await token.approve(sender, spender, int(request.amount))
        except TokenError as e:
            raise ValueTransferFailedError(str(e)) from e
        return {
            "owner": format_address(sender),
            "spender": format_address(spender),
            "allowance": str(await token.allowance(sender, spender)),
        }


@router.get("/balances/{account}", response_model=BalanceResponse)
async def token_balance(account: str) -> BalanceResponse:
    """Wrapped token balance of an account."""
    address = to_address(account)
    async with bridge_view() as protocol:
        token = await _token(protocol)
        amount = await token.balance_of(address)
        return BalanceResponse(account=format_address(address), amount=str(amount))
