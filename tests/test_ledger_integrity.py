"""Ledger integrity tests.

These tests ensure that:
1. Balances never go negative
2. Value in equals value refunded plus withdrawn plus value still held
3. Open transfers stay covered unless the counterparty settled them early
4. The bridge's token holdings cover what it owes
"""

import pytest

from conftest import ALICE, BOB, BRIDGE, COUNTERPARTY, HASH_LOCK, RECIPIENT, SECRET
from htlcbridge.bridge.protocol import BridgeProtocol, CallContext
from htlcbridge.bridge.reconcile import reconcile
from htlcbridge.errors import BridgeError
from htlcbridge.ledger.models import AccountBalance


async def _run_mixed_history(bridge: BridgeProtocol, fund) -> dict[str, bytes]:
    """Initiate four transfers and finalize them in different ways."""
    await fund(ALICE, 1000)
    await fund(BOB, 1000)

    def at(height, sender=ALICE, value=0):
        return CallContext(sender=sender, height=height, value=value)

    ids = {
        "completed": await bridge.initiate(at(10), 100, RECIPIENT, HASH_LOCK, 20),
        "refunded": await bridge.initiate(at(10), 200, RECIPIENT, HASH_LOCK, 5),
        "open": await bridge.initiate(at(11, sender=BOB, value=50), 300, RECIPIENT, HASH_LOCK, 90),
        "withdrawn": await bridge.initiate(at(12, sender=BOB), 400, RECIPIENT, HASH_LOCK, 20),
    }

    await bridge.complete(at(15), ids["completed"], SECRET)
    await bridge.complete(at(15), ids["withdrawn"], SECRET)
    await bridge.refund(at(16), ids["refunded"])
    await bridge.withdraw(at(17, sender=COUNTERPARTY), BOB, 400)

    # Rejected calls in between must leave no trace
    for call in (
        bridge.refund(at(18), ids["refunded"]),
        bridge.complete(at(18), ids["open"], b"\x00" * 32),
        bridge.withdraw(at(18, sender=COUNTERPARTY), ALICE, 10**6),
        bridge.withdraw(at(18, sender=ALICE), ALICE, 1),
    ):
        with pytest.raises(BridgeError):
            await call

    return ids


@pytest.mark.asyncio
async def test_reconcile_clean_after_mixed_history(bridge: BridgeProtocol, fund, db_session):
    """Test every invariant holds after completes, refunds and withdrawals."""
    await _run_mixed_history(bridge, fund)

    report = await reconcile(db_session, BRIDGE)

    assert report.ok, report.issues
    assert report.total_initiated == 1050
    assert report.total_refunded == 200
    assert report.total_withdrawn == 400
    assert report.total_balances == 450
    assert report.total_locked == 350
    assert report.token_holdings == 450


@pytest.mark.asyncio
async def test_conservation(bridge: BridgeProtocol, fund):
    """Test initiated == refunded + withdrawn + held."""
    await _run_mixed_history(bridge, fund)

    state = await bridge.get_state()
    held = await bridge.get_balance(ALICE) + await bridge.get_balance(BOB)

    assert held == 450
    assert state.total_initiated == state.total_refunded + state.total_withdrawn + held


@pytest.mark.asyncio
async def test_balances_never_negative(bridge: BridgeProtocol, fund):
    """Test no sequence of operations drives a balance below zero."""
    await _run_mixed_history(bridge, fund)

    for row in await bridge.ledger.get_all_balances():
        assert row.amount >= 0


@pytest.mark.asyncio
async def test_open_transfers_covered(bridge: BridgeProtocol, fund):
    """Test open transfers are covered when nothing was withdrawn early."""
    ids = await _run_mixed_history(bridge, fund)

    open_transfer = await bridge.get_transfer(ids["open"])
    assert await bridge.get_balance(open_transfer.originator) >= open_transfer.amount


@pytest.mark.asyncio
async def test_reconcile_detects_tampering(bridge: BridgeProtocol, fund, db_session):
    """Test a balance edited outside the protocol is reported."""
    await _run_mixed_history(bridge, fund)

    row = await db_session.get(AccountBalance, BOB)
    row.amount = 1
    await db_session.flush()

    report = await reconcile(db_session, BRIDGE)

    assert not report.ok
    assert any("Conservation broken" in issue for issue in report.issues)
    assert report.settled_ahead == {BOB: 349}


@pytest.mark.asyncio
async def test_reconcile_empty_bridge(db_session):
    """Test a fresh ledger reconciles cleanly."""
    report = await reconcile(db_session, BRIDGE)

    assert report.ok
    assert report.token_holdings is None
    assert report.to_dict()["total_initiated"] == "0"


@pytest.mark.asyncio
async def test_reconcile_allows_early_withdrawal(bridge: BridgeProtocol, fund, db_session):
    """Test a withdraw against a still open transfer is not an issue."""
    await fund(ALICE, 100)
    await bridge.initiate(CallContext(sender=ALICE, height=1000), 100, RECIPIENT, HASH_LOCK, 50)
    await bridge.withdraw(CallContext(sender=COUNTERPARTY, height=1001), ALICE, 40)

    report = await reconcile(db_session, BRIDGE)

    assert report.ok, report.issues
    assert report.total_locked == 100
    assert report.total_balances == 60
    assert report.settled_ahead == {ALICE: 40}
    assert report.to_dict()["settled_ahead"] == {"0x" + ALICE.hex(): "40"}
