"""Wrapped native token kept in the bridge database.

Stands in for the on-chain WETH-style contract. Living in the same session
as the bridge ledger means a rolled back bridge operation also rolls back
the token movements it made, as the host chain would.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from htlcbridge.errors import AmountOverflowError
from htlcbridge.gateway.base import FungibleLedger, TokenError
from htlcbridge.ledger.models import TokenAllowance, TokenBalance
from htlcbridge.utils.amounts import UINT256_MAX, require_uint256

logger = logging.getLogger(__name__)


class WrappedNativeToken(FungibleLedger):
    """ERC20-style wrapped native currency."""

    def __init__(self, session: AsyncSession, address: bytes):
        super().__init__(address)
        self.session = session

    async def _balance_row(self, account: bytes) -> TokenBalance:
        row = await self.session.get(TokenBalance, (self.address, account))
        if row is None:
            row = TokenBalance(token=self.address, account=account, amount=0)
            self.session.add(row)
            await self.session.flush()
        return row

    async def _allowance_row(self, owner: bytes, spender: bytes) -> TokenAllowance:
        row = await self.session.get(TokenAllowance, (self.address, owner, spender))
        if row is None:
            row = TokenAllowance(token=self.address, owner=owner, spender=spender, amount=0)
            self.session.add(row)
            await self.session.flush()
        return row

    def _check_amount(self, amount: int) -> None:
        try:
            require_uint256(amount)
        except AmountOverflowError as exc:
            raise TokenError(str(exc)) from exc

    async def balance_of(self, account: bytes) -> int:
        row = await self.session.get(TokenBalance, (self.address, account))
        return row.amount if row is not None else 0

    async def allowance(self, owner: bytes, spender: bytes) -> int:
        row = await self.session.get(TokenAllowance, (self.address, owner, spender))
        return row.amount if row is not None else 0

    async def total_supply(self) -> int:
        result = await self.session.execute(
            select(TokenBalance.amount).where(TokenBalance.token == self.address)
        )
        return sum(result.scalars().all())

    async def deposit(self, sender: bytes, amount: int) -> None:
        """Mint wrapped units for native currency the host moved in."""
        self._check_amount(amount)
        row = await self._balance_row(sender)
        if row.amount + amount > UINT256_MAX:
            raise TokenError("deposit overflows balance")
        row.amount += amount
        await self.session.flush()
        logger.info("Token deposit: %d to 0x%s", amount, sender.hex())

    async def approve(self, sender: bytes, spender: bytes, amount: int) -> bool:
        """Set the allowance sender grants to spender."""
        self._check_amount(amount)
        row = await self._allowance_row(sender, spender)
        row.amount = amount
        await self.session.flush()
        return True

    async def _move(self, source: bytes, to: bytes, amount: int) -> bool:
        source_row = await self._balance_row(source)
        if source_row.amount < amount:
            return False
        to_row = await self._balance_row(to)
        if to_row is not source_row and to_row.amount + amount > UINT256_MAX:
            raise TokenError("transfer overflows recipient balance")
        source_row.amount -= amount
        to_row.amount += amount
        await self.session.flush()
        return True

    async def transfer(self, sender: bytes, to: bytes, amount: int) -> bool:
        self._check_amount(amount)
        ok = await self._move(sender, to, amount)
        if not ok:
            logger.debug("Token transfer of %d from 0x%s refused", amount, sender.hex())
        return ok

    async def transfer_from(self, sender: bytes, owner: bytes, to: bytes, amount: int) -> bool:
        self._check_amount(amount)
        allowance = await self._allowance_row(owner, sender)
        if allowance.amount < amount:
            logger.debug("Token allowance of 0x%s for 0x%s too low", owner.hex(), sender.hex())
            return False
        if not await self._move(owner, to, amount):
            return False
        if allowance.amount != UINT256_MAX:
            allowance.amount -= amount
        await self.session.flush()
        return True
