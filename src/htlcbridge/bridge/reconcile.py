"""Ledger reconciliation.

Checks that hold after every committed operation:

1. No balance is negative
2. Value in equals value out plus value still held:
   total_initiated == total_refunded + total_withdrawn + sum(balances)
3. The bridge's token holdings cover the sum of balances

The counterparty may withdraw against a transfer that is still
INITIALIZED, so an originator whose balance is below its open transfers
is listed under ``settled_ahead`` for information, not as an issue.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from htlcbridge.gateway.token import WrappedNativeToken
from htlcbridge.ledger.models import BridgeTransfer, TransferState
from htlcbridge.ledger.repository import TransferLedger

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationReport:
    """Outcome of a reconciliation run."""

    total_initiated: int = 0
    total_refunded: int = 0
    total_withdrawn: int = 0
    total_balances: int = 0
    total_locked: int = 0
    token_holdings: Optional[int] = None
    issues: list[str] = field(default_factory=list)
    settled_ahead: dict[bytes, int] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.issues

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "total_initiated": str(self.total_initiated),
            "total_refunded": str(self.total_refunded),
            "total_withdrawn": str(self.total_withdrawn),
            "total_balances": str(self.total_balances),
            "total_locked": str(self.total_locked),
            "token_holdings": None if self.token_holdings is None else str(self.token_holdings),
            "issues": list(self.issues),
            "settled_ahead": {
                f"0x{account.hex()}": str(amount) for account, amount in self.settled_ahead.items()
            },
        }


async def reconcile(session: AsyncSession, bridge_address: bytes) -> ReconciliationReport:
    """Check the ledger invariants and return a report."""
    ledger = TransferLedger(session)
    state = await ledger.get_state()
    report = ReconciliationReport(
        total_initiated=state.total_initiated,
        total_refunded=state.total_refunded,
        total_withdrawn=state.total_withdrawn,
    )

    balances = {row.account: row.amount for row in await ledger.get_all_balances()}
    for account, amount in balances.items():
        if amount < 0:
            report.issues.append(f"Negative balance {amount} for 0x{account.hex()}")
    report.total_balances = sum(balances.values())

    outflow = state.total_refunded + state.total_withdrawn + report.total_balances
    if state.total_initiated != outflow:
        report.issues.append(
            f"Conservation broken: initiated {state.total_initiated} != "
            f"refunded + withdrawn + held {outflow}"
        )

    locked: dict[bytes, int] = defaultdict(int)
    result = await session.execute(
        select(BridgeTransfer.originator, BridgeTransfer.amount).where(
            BridgeTransfer.state == TransferState.INITIALIZED.value
        )
    )
    for originator, amount in result.all():
        locked[originator] += amount
    report.total_locked = sum(locked.values())

    for originator, amount in locked.items():
        held = balances.get(originator, 0)
        if held < amount:
            report.settled_ahead[originator] = amount - held
            logger.info(
                "0x%s has %d of open transfers already withdrawn", originator.hex(), amount - held
            )

    if state.initialized and state.token_address is not None:
        token = WrappedNativeToken(session, state.token_address)
        report.token_holdings = await token.balance_of(bridge_address)
        if report.token_holdings < report.total_balances:
            report.issues.append(
                f"Token holdings {report.token_holdings} below balances {report.total_balances}"
            )

    if report.ok:
        logger.info("Reconciliation clean: %d held", report.total_balances)
    else:
        for issue in report.issues:
            logger.error("Reconciliation issue: %s", issue)
    return report
