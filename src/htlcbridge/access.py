"""Owner and counterparty identities.

The owner is set once by ``initialize`` and afterwards only the owner can
replace itself or name the counterparty. The counterparty is the only
identity allowed to settle completed transfers through ``withdraw``.
"""

import logging

from htlcbridge.errors import (
    AlreadyInitializedError,
    NotInitializedError,
    UnauthorizedError,
    ZeroAddressError,
)
from htlcbridge.ledger.models import BridgeState
from htlcbridge.ledger.repository import TransferLedger
from htlcbridge.utils.identifiers import ZERO_ADDRESS

logger = logging.getLogger(__name__)


class AccessControl:
    """Gatekeeper for privileged bridge operations."""

    def __init__(self, ledger: TransferLedger):
        self.ledger = ledger

    async def initialize(self, token_address: bytes, owner: bytes) -> BridgeState:
        """Set the token ledger and the owner. Allowed exactly once."""
        state = await self.ledger.get_state()
        if state.initialized:
            raise AlreadyInitializedError()
        if token_address == ZERO_ADDRESS:
            raise ZeroAddressError("token address")
        if owner == ZERO_ADDRESS:
            raise ZeroAddressError("owner")

        state.token_address = token_address
        state.owner = owner
        state.initialized = True
        await self.ledger.session.flush()

        logger.info("Bridge initialized: token=0x%s owner=0x%s", token_address.hex(), owner.hex())
        return state

    async def require_initialized(self) -> BridgeState:
        state = await self.ledger.get_state()
        if not state.initialized:
            raise NotInitializedError()
        return state

    async def require_owner(self, caller: bytes) -> BridgeState:
        state = await self.require_initialized()
        if caller != state.owner:
            raise UnauthorizedError(f"0x{caller.hex()} is not the owner")
        return state

    async def require_counterparty(self, caller: bytes) -> BridgeState:
        state = await self.require_initialized()
        if state.counterparty is None or caller != state.counterparty:
            raise UnauthorizedError(f"0x{caller.hex()} is not the counterparty")
        return state

    async def set_counterparty(self, caller: bytes, counterparty: bytes) -> BridgeState:
        """Name the counterparty bridge. Owner only."""
        state = await self.require_owner(caller)
        if counterparty == ZERO_ADDRESS:
            raise ZeroAddressError("counterparty")

        state.counterparty = counterparty
        await self.ledger.session.flush()

        logger.info("Counterparty set to 0x%s", counterparty.hex())
        return state

    async def transfer_ownership(self, caller: bytes, new_owner: bytes) -> BridgeState:
        """Hand the owner role to another identity. Owner only."""
        state = await self.require_owner(caller)
        if new_owner == ZERO_ADDRESS:
            raise ZeroAddressError("new owner")

        previous = state.owner
        state.owner = new_owner
        await self.ledger.session.flush()

        logger.info("Ownership transferred from 0x%s to 0x%s", previous.hex(), new_owner.hex())
        return state
