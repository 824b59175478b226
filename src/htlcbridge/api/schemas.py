"""Request and response models shared by the API routers.

Identifiers travel as 0x-prefixed hex and uint256 amounts as decimal
strings, so nothing is lost to JSON number precision.
"""

import json
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from htlcbridge.errors import BridgeError
from htlcbridge.ledger.models import BridgeEvent, BridgeState, BridgeTransfer, TransferState
from htlcbridge.utils.amounts import require_uint256
from htlcbridge.utils.identifiers import (
    format_address,
    format_bytes32,
    to_address,
    to_bytes32,
)


def parse_address(v: str) -> str:
    try:
        to_address(v)
    except BridgeError as e:
        raise ValueError(str(e))
    return v


def parse_bytes32(v: str) -> str:
    try:
        to_bytes32(v)
    except BridgeError as e:
        raise ValueError(str(e))
    return v


def parse_amount(v: str) -> str:
    """Validate amount is a uint256 in decimal."""
    v = v.strip()
    if not v.isdigit():
        raise ValueError(f"Invalid amount format: {v}")
    try:
        require_uint256(int(v))
    except BridgeError as e:
        raise ValueError(str(e))
    return v


class SenderRequest(BaseModel):
    """Any call made by an account."""

    sender: str = Field(..., description="Calling account (20-byte hex)")

    @field_validator("sender")
    @classmethod
    def validate_sender(cls, v: str) -> str:
        return parse_address(v)


class InitiateRequest(SenderRequest):
    """Lock funds under a hash lock and a time lock."""

    amount: str = Field(default="0", description="Wrapped units to pull from sender")
    native_amount: str = Field(default="0", description="Native units attached to the call")
    recipient: str = Field(..., description="Destination-chain recipient (32-byte hex)")
    hash_lock: str = Field(..., description="keccak256 of the secret (32-byte hex)")
    time_lock: int = Field(..., ge=0, description="Delay in blocks before refund is allowed")

    @field_validator("amount", "native_amount")
    @classmethod
    def validate_amounts(cls, v: str) -> str:
        return parse_amount(v)

    @field_validator("recipient", "hash_lock")
    @classmethod
    def validate_bytes32(cls, v: str) -> str:
        return parse_bytes32(v)


class CompleteRequest(SenderRequest):
    """Reveal the pre-image of a transfer's hash lock."""

    pre_image: str = Field(..., description="Secret (32-byte hex)")

    @field_validator("pre_image")
    @classmethod
    def validate_pre_image(cls, v: str) -> str:
        return parse_bytes32(v)


class WithdrawRequest(SenderRequest):
    """Counterparty settlement of an originator's balance."""

    originator: str
    amount: str

    @field_validator("originator")
    @classmethod
    def validate_originator(cls, v: str) -> str:
        return parse_address(v)

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: str) -> str:
        return parse_amount(v)


class TransferResponse(BaseModel):
    """A bridge transfer as seen by observers."""

    id: str
    amount: str
    originator: str
    recipient: str
    hash_lock: str
    time_lock: int
    state: str
    created_height: int
    finalized_height: Optional[int] = None
    pre_image: Optional[str] = None

    @classmethod
    def from_model(cls, transfer: BridgeTransfer) -> "TransferResponse":
        return cls(
            id=format_bytes32(transfer.id),
            amount=str(transfer.amount),
            originator=format_address(transfer.originator),
            recipient=format_bytes32(transfer.recipient),
            hash_lock=format_bytes32(transfer.hash_lock),
            time_lock=transfer.time_lock,
            state=TransferState(transfer.state).value,
            created_height=transfer.created_height,
            finalized_height=transfer.finalized_height,
            pre_image=format_bytes32(transfer.pre_image) if transfer.pre_image else None,
        )


class EventResponse(BaseModel):
    """A persisted notification."""

    id: int
    event_type: str
    height: int
    payload: dict

    @classmethod
    def from_model(cls, event: BridgeEvent) -> "EventResponse":
        return cls(
            id=event.id,
            event_type=str(getattr(event.event_type, "value", event.event_type)),
            height=event.height,
            payload=json.loads(event.payload_json),
        )


class BridgeInfo(BaseModel):
    """The bridge registry."""

    initialized: bool
    owner: Optional[str]
    counterparty: Optional[str]
    token_address: Optional[str]
    bridge_address: str
    nonce: int
    height: int
    total_initiated: str
    total_refunded: str
    total_withdrawn: str

    @classmethod
    def from_model(cls, state: BridgeState, bridge_address: bytes, height: int) -> "BridgeInfo":
        return cls(
            initialized=state.initialized,
            owner=format_address(state.owner) if state.owner else None,
            counterparty=format_address(state.counterparty) if state.counterparty else None,
            token_address=format_address(state.token_address) if state.token_address else None,
            bridge_address=format_address(bridge_address),
            nonce=state.nonce,
            height=height,
            total_initiated=str(state.total_initiated),
            total_refunded=str(state.total_refunded),
            total_withdrawn=str(state.total_withdrawn),
        )


class BalanceResponse(BaseModel):
    account: str
    amount: str
