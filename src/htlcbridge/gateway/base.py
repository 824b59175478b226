"""Value movement through the external token ledger.

Flow:
1. ``initiate`` wraps attached native currency into the token (bridge-owned)
2. ``initiate`` pulls already-wrapped units from the originator
3. ``refund`` and ``withdraw`` push units from the bridge back to the originator

The token is externally authored code. Its calls may fail, return False,
or call back into the bridge; the gateway turns every failure into
``ValueTransferFailedError``.
"""

import logging
from abc import ABC, abstractmethod

from htlcbridge.errors import ValueTransferFailedError

logger = logging.getLogger(__name__)


class TokenError(Exception):
    """Raised by a token ledger for a call it rejects outright."""

    pass


class FungibleLedger(ABC):
    """Interface of the wrapped-native-currency token.

    ``sender`` is the account the call is made from, i.e. the caller the
    token authenticates.
    """

    def __init__(self, address: bytes):
        """Initialize ledger.

        Args:
            address: The token's own address
        """
        self.address = address

    @abstractmethod
    async def deposit(self, sender: bytes, amount: int) -> None:
        """Wrap native currency attached by sender, crediting sender."""
        pass

    @abstractmethod
    async def transfer(self, sender: bytes, to: bytes, amount: int) -> bool:
        """Move sender's units to another account.

        Returns:
            True on success, False if the token refuses the transfer
        """
        pass

    @abstractmethod
    async def transfer_from(self, sender: bytes, owner: bytes, to: bytes, amount: int) -> bool:
        """Move owner's units using the allowance owner granted to sender.

        Returns:
            True on success, False if balance or allowance is insufficient
        """
        pass

    @abstractmethod
    async def balance_of(self, account: bytes) -> int:
        """Get the token balance of an account."""
        pass


class ValueGateway:
    """Adapter between the bridge and its token ledger."""

    def __init__(self, token: FungibleLedger, bridge_address: bytes):
        self.token = token
        self.bridge_address = bridge_address

    async def wrap_native(self, amount: int) -> None:
        """Convert attached native currency into bridge-owned token units."""
        if amount == 0:
            return
        try:
            await self.token.deposit(self.bridge_address, amount)
        except Exception as exc:
            raise ValueTransferFailedError(f"Wrapping {amount} native units failed: {exc}") from exc
        logger.debug("Wrapped %d native units", amount)

    async def pull_from(self, account: bytes, amount: int) -> None:
        """Move token units from account into the bridge."""
        if amount == 0:
            return
        try:
            ok = await self.token.transfer_from(
                self.bridge_address, account, self.bridge_address, amount
            )
        except Exception as exc:
            raise ValueTransferFailedError(
                f"Pulling {amount} from 0x{account.hex()} failed: {exc}"
            ) from exc
        if not ok:
            raise ValueTransferFailedError(
                f"Token refused to pull {amount} from 0x{account.hex()}"
            )
        logger.debug("Pulled %d from 0x%s", amount, account.hex())

    async def push_to(self, account: bytes, amount: int) -> None:
        """Move token units from the bridge to account."""
        try:
            ok = await self.token.transfer(self.bridge_address, account, amount)
        except Exception as exc:
            raise ValueTransferFailedError(
                f"Pushing {amount} to 0x{account.hex()} failed: {exc}"
            ) from exc
        if not ok:
            raise ValueTransferFailedError(f"Token refused to push {amount} to 0x{account.hex()}")
        logger.debug("Pushed %d to 0x%s", amount, account.hex())
