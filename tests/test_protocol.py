"""Tests for the bridge protocol operations."""

import json

import pytest

from conftest import (
    ALICE,
    BOB,
    BRIDGE,
    COUNTERPARTY,
    HASH_LOCK,
    OWNER,
    RECIPIENT,
    SECRET,
    TOKEN,
)
from htlcbridge.bridge.protocol import BridgeProtocol, CallContext
from htlcbridge.errors import (
    AlreadyFinalizedError,
    AmountOverflowError,
    InsufficientBalanceError,
    InvalidSecretError,
    NotInitializedError,
    TimelockExpiredError,
    TimelockNotExpiredError,
    TransferNotFoundError,
    UnauthorizedError,
    ValueTransferFailedError,
    ZeroAmountError,
)
from htlcbridge.gateway.token import WrappedNativeToken
from htlcbridge.ledger.models import TransferState
from htlcbridge.utils.amounts import UINT256_MAX
from htlcbridge.utils.identifiers import derive_transfer_id


class FlakyToken(WrappedNativeToken):
    """Wrapped token whose outgoing transfers can be switched off."""

    def __init__(self, session, address):
        super().__init__(session, address)
        self.refuse_transfers = False
        self.revert_transfers = False

    async def transfer(self, sender, to, amount):
        if self.revert_transfers:
            raise RuntimeError("token reverted")
        if self.refuse_transfers:
            return False
        return await super().transfer(sender, to, amount)


def at(height: int, sender: bytes = ALICE, value: int = 0) -> CallContext:
    return CallContext(sender=sender, height=height, value=value)


async def _initiate(bridge: BridgeProtocol, fund, amount: int = 100, height: int = 1000) -> bytes:
    await fund(ALICE, amount)
    return await bridge.initiate(at(height), amount, RECIPIENT, HASH_LOCK, 50)


class TestInitiate:
    """Tests for locking funds."""

    @pytest.mark.asyncio
    async def test_scenario_a_initiate_then_complete(self, bridge: BridgeProtocol, fund):
        """Test initiate at 1000 with delay 50, complete at 1040."""
        transfer_id = await _initiate(bridge, fund)

        transfer = await bridge.get_transfer(transfer_id)
        assert transfer.time_lock == 1050
        assert transfer.amount == 100
        assert transfer.originator == ALICE
        assert transfer.state == TransferState.INITIALIZED
        assert await bridge.get_balance(ALICE) == 100

        await bridge.complete(at(1040, sender=BOB), transfer_id, SECRET)

        transfer = await bridge.get_transfer(transfer_id)
        assert transfer.state == TransferState.COMPLETED
        assert transfer.pre_image == SECRET
        assert transfer.finalized_height == 1040
        # Completion moves no value
        assert await bridge.get_balance(ALICE) == 100

    @pytest.mark.asyncio
    async def test_pulls_wrapped_units(self, bridge: BridgeProtocol, fund, token):
        """Test the fungible amount moves from originator to bridge."""
        await _initiate(bridge, fund, amount=100)

        assert await token.balance_of(ALICE) == 0
        assert await token.balance_of(BRIDGE) == 100

    @pytest.mark.asyncio
    async def test_attached_native_value_is_wrapped(self, bridge: BridgeProtocol, token):
        """Test native value alone funds a transfer."""
        transfer_id = await bridge.initiate(at(5, value=70), 0, RECIPIENT, HASH_LOCK, 10)

        transfer = await bridge.get_transfer(transfer_id)
        assert transfer.amount == 70
        assert await token.balance_of(BRIDGE) == 70
        assert await bridge.get_balance(ALICE) == 70

    @pytest.mark.asyncio
    async def test_native_and_fungible_are_summed(self, bridge: BridgeProtocol, fund):
        """Test both sources add up into one transfer."""
        await fund(ALICE, 30)

        transfer_id = await bridge.initiate(at(5, value=12), 30, RECIPIENT, HASH_LOCK, 10)

        assert (await bridge.get_transfer(transfer_id)).amount == 42

    @pytest.mark.asyncio
    async def test_zero_amount_rejected(self, bridge: BridgeProtocol):
        """Test nothing attached and nothing pulled."""
        with pytest.raises(ZeroAmountError):
            await bridge.initiate(at(5), 0, RECIPIENT, HASH_LOCK, 10)

        state = await bridge.get_state()
        assert state.nonce == 0
        assert state.total_initiated == 0

    @pytest.mark.asyncio
    async def test_total_overflow_rejected(self, bridge: BridgeProtocol):
        """Test the summed amount must fit uint256."""
        with pytest.raises(AmountOverflowError):
            await bridge.initiate(at(5, value=1), UINT256_MAX, RECIPIENT, HASH_LOCK, 10)

    @pytest.mark.asyncio
    async def test_failed_pull_leaves_nothing(self, bridge: BridgeProtocol, token):
        """Test a pull without allowance aborts the whole initiate."""
        await token.deposit(ALICE, 100)

        with pytest.raises(ValueTransferFailedError):
            await bridge.initiate(at(5, value=10), 100, RECIPIENT, HASH_LOCK, 10)

        assert await bridge.get_balance(ALICE) == 0
        assert await token.balance_of(ALICE) == 100
        # The wrapped native value is rolled back too
        assert await token.balance_of(BRIDGE) == 0
        state = await bridge.get_state()
        assert state.nonce == 0
        assert await bridge.ledger.list_transfers() == []

    @pytest.mark.asyncio
    async def test_ids_unique_for_identical_requests(self, bridge: BridgeProtocol, fund):
        """Test identical requests in one block get distinct ids."""
        await fund(ALICE, 30)

        ids = {
            await bridge.initiate(at(7), 10, RECIPIENT, HASH_LOCK, 5) for _ in range(3)
        }

        assert len(ids) == 3

    @pytest.mark.asyncio
    async def test_id_derivation(self, bridge: BridgeProtocol, fund):
        """Test the id commits to the request and the nonce."""
        transfer_id = await _initiate(bridge, fund)

        assert transfer_id == derive_transfer_id(ALICE, RECIPIENT, HASH_LOCK, 50, 1000, 0)

    @pytest.mark.asyncio
    async def test_initiated_event(self, bridge: BridgeProtocol, fund):
        """Test the Initiated notification carries the request."""
        transfer_id = await _initiate(bridge, fund)

        events = await bridge.ledger.get_events(transfer_id)

        assert [e.event_type for e in events] == ["initiated"]
        payload = json.loads(events[0].payload_json)
        assert payload["amount"] == "100"
        assert payload["time_lock"] == 50
        assert payload["hash_lock"] == "0x" + HASH_LOCK.hex()
        assert events[0].height == 1000

    @pytest.mark.asyncio
    async def test_heights_beyond_int64(self, bridge: BridgeProtocol, fund):
        """Test heights past 2**63 are stored and compared exactly."""
        height = 2**63 + 7
        transfer_id = await _initiate(bridge, fund, height=height)

        transfer = await bridge.get_transfer(transfer_id)
        assert transfer.created_height == height
        assert transfer.time_lock == height + 50

        with pytest.raises(TimelockExpiredError):
            await bridge.complete(at(height + 51), transfer_id, SECRET)
        await bridge.complete(at(height + 50), transfer_id, SECRET)

        transfer = await bridge.get_transfer(transfer_id)
        assert transfer.finalized_height == height + 50
        events = await bridge.ledger.get_events(transfer_id)
        assert [e.height for e in events] == [height, height + 50]

    @pytest.mark.asyncio
    async def test_initiate_requires_initialization(self, protocol: BridgeProtocol):
        """Test the bridge must know its token first."""
        with pytest.raises(NotInitializedError):
            await protocol.initiate(at(5, value=1), 0, RECIPIENT, HASH_LOCK, 10)


class TestComplete:
    """Tests for revealing the secret."""

    @pytest.mark.asyncio
    async def test_scenario_b_complete_after_deadline(self, bridge: BridgeProtocol, fund):
        """Test completing at 1060 fails with TimelockExpired."""
        transfer_id = await _initiate(bridge, fund)

        with pytest.raises(TimelockExpiredError):
            await bridge.complete(at(1060), transfer_id, SECRET)

        transfer = await bridge.get_transfer(transfer_id)
        assert transfer.state == TransferState.INITIALIZED

    @pytest.mark.asyncio
    async def test_complete_at_deadline(self, bridge: BridgeProtocol, fund):
        """Test the deadline block itself still allows completion."""
        transfer_id = await _initiate(bridge, fund)

        await bridge.complete(at(1050), transfer_id, SECRET)

        assert (await bridge.get_transfer(transfer_id)).state == TransferState.COMPLETED

    @pytest.mark.asyncio
    async def test_wrong_secret(self, bridge: BridgeProtocol, fund):
        """Test a pre-image that does not hash to the lock."""
        transfer_id = await _initiate(bridge, fund)

        with pytest.raises(InvalidSecretError) as exc_info:
            await bridge.complete(at(1010), transfer_id, b"\x00" * 32)

        assert exc_info.value.category == "cryptographic"
        transfer = await bridge.get_transfer(transfer_id)
        assert transfer.pre_image is None

    @pytest.mark.asyncio
    async def test_complete_twice(self, bridge: BridgeProtocol, fund):
        """Test a second complete always fails with AlreadyFinalized."""
        transfer_id = await _initiate(bridge, fund)
        await bridge.complete(at(1010), transfer_id, SECRET)

        with pytest.raises(AlreadyFinalizedError):
            await bridge.complete(at(1011), transfer_id, SECRET)

    @pytest.mark.asyncio
    async def test_complete_unknown(self, bridge: BridgeProtocol):
        """Test unknown ids fail with NotFound."""
        with pytest.raises(TransferNotFoundError):
            await bridge.complete(at(1), b"\x01" * 32, SECRET)

    @pytest.mark.asyncio
    async def test_completed_event_carries_pre_image(self, bridge: BridgeProtocol, fund):
        """Test the Completed notification publishes the secret."""
        transfer_id = await _initiate(bridge, fund)
        await bridge.complete(at(1010), transfer_id, SECRET)

        events = await bridge.ledger.get_events(transfer_id)

        assert [e.event_type for e in events] == ["initiated", "completed"]
        assert json.loads(events[1].payload_json)["pre_image"] == "0x" + SECRET.hex()


class TestRefund:
    """Tests for returning expired transfers."""

    @pytest.mark.asyncio
    async def test_scenario_c_refund_after_deadline(self, bridge: BridgeProtocol, fund, token):
        """Test refund at 1051 restores the originator."""
        transfer_id = await _initiate(bridge, fund)

        await bridge.refund(at(1051, sender=BOB), transfer_id)

        transfer = await bridge.get_transfer(transfer_id)
        assert transfer.state == TransferState.REFUNDED
        assert await bridge.get_balance(ALICE) == 0
        assert await token.balance_of(ALICE) == 100
        assert await token.balance_of(BRIDGE) == 0
        assert (await bridge.get_state()).total_refunded == 100

    @pytest.mark.asyncio
    async def test_scenario_d_refund_twice(self, bridge: BridgeProtocol, fund, token):
        """Test the second refund fails with AlreadyFinalized."""
        transfer_id = await _initiate(bridge, fund)
        await bridge.refund(at(1051), transfer_id)

        with pytest.raises(AlreadyFinalizedError):
            await bridge.refund(at(1052), transfer_id)

        assert await token.balance_of(ALICE) == 100

    @pytest.mark.asyncio
    async def test_refund_at_deadline(self, bridge: BridgeProtocol, fund):
        """Test the deadline block is still too early to refund."""
        transfer_id = await _initiate(bridge, fund)

        with pytest.raises(TimelockNotExpiredError):
            await bridge.refund(at(1050), transfer_id)

    @pytest.mark.asyncio
    async def test_refund_after_complete(self, bridge: BridgeProtocol, fund):
        """Test complete and refund are mutually exclusive."""
        transfer_id = await _initiate(bridge, fund)
        await bridge.complete(at(1001), transfer_id, SECRET)

        with pytest.raises(AlreadyFinalizedError):
            await bridge.refund(at(2000), transfer_id)

    @pytest.mark.asyncio
    async def test_complete_after_refund(self, bridge: BridgeProtocol, fund):
        """Test a refunded transfer cannot be completed."""
        transfer_id = await _initiate(bridge, fund)
        await bridge.refund(at(1051), transfer_id)

        with pytest.raises(AlreadyFinalizedError):
            await bridge.complete(at(1051), transfer_id, SECRET)

    @pytest.mark.asyncio
    async def test_refund_unknown(self, bridge: BridgeProtocol):
        """Test unknown ids fail with NotFound."""
        with pytest.raises(TransferNotFoundError):
            await bridge.refund(at(1), b"\x01" * 32)

    @pytest.mark.asyncio
    async def test_failed_push_rolls_back_refund(self, bridge: BridgeProtocol, fund, db_session):
        """Test a refused payout undoes the state transition."""
        transfer_id = await _initiate(bridge, fund)
        flaky = FlakyToken(db_session, TOKEN)
        flaky_bridge = BridgeProtocol(db_session, BRIDGE, token=flaky)
        flaky.refuse_transfers = True

        with pytest.raises(ValueTransferFailedError):
            await flaky_bridge.refund(at(1051), transfer_id)

        transfer = await bridge.get_transfer(transfer_id)
        assert transfer.state == TransferState.INITIALIZED
        assert transfer.finalized_height is None
        assert await bridge.get_balance(ALICE) == 100
        assert (await bridge.get_state()).total_refunded == 0
        assert len(await bridge.ledger.get_events(transfer_id)) == 1

        # Retrying once the token accepts again succeeds
        flaky.refuse_transfers = False
        await flaky_bridge.refund(at(1052), transfer_id)
        assert (await bridge.get_transfer(transfer_id)).state == TransferState.REFUNDED


    @pytest.mark.asyncio
    async def test_token_exception_rolls_back_refund(self, bridge: BridgeProtocol, fund, db_session):
        """Test an exception inside the token fails the refund cleanly."""
        transfer_id = await _initiate(bridge, fund)
        flaky = FlakyToken(db_session, TOKEN)
        flaky_bridge = BridgeProtocol(db_session, BRIDGE, token=flaky)
        flaky.revert_transfers = True

        with pytest.raises(ValueTransferFailedError):
            await flaky_bridge.refund(at(1051), transfer_id)

        transfer = await bridge.get_transfer(transfer_id)
        assert transfer.state == TransferState.INITIALIZED
        assert await bridge.get_balance(ALICE) == 100

class TestWithdraw:
    """Tests for counterparty settlement."""

    @pytest.mark.asyncio
    async def test_scenario_e_unauthorized_withdraw(self, bridge: BridgeProtocol, fund):
        """Test a non-counterparty fails even with sufficient balance."""
        await _initiate(bridge, fund)

        for caller in (ALICE, BOB, OWNER):
            with pytest.raises(UnauthorizedError):
                await bridge.withdraw(at(1001, sender=caller), ALICE, 10)

        assert await bridge.get_balance(ALICE) == 100

    @pytest.mark.asyncio
    async def test_withdraw_completed_value(self, bridge: BridgeProtocol, fund, token):
        """Test the counterparty settles a completed transfer."""
        transfer_id = await _initiate(bridge, fund)
        await bridge.complete(at(1001), transfer_id, SECRET)

        await bridge.withdraw(at(1002, sender=COUNTERPARTY), ALICE, 100)

        assert await bridge.get_balance(ALICE) == 0
        assert await token.balance_of(ALICE) == 100
        assert (await bridge.get_state()).total_withdrawn == 100

    @pytest.mark.asyncio
    async def test_partial_withdraw(self, bridge: BridgeProtocol, fund):
        """Test withdrawing part of a balance."""
        await _initiate(bridge, fund)

        await bridge.withdraw(at(1002, sender=COUNTERPARTY), ALICE, 40)

        assert await bridge.get_balance(ALICE) == 60

    @pytest.mark.asyncio
    async def test_withdraw_more_than_balance(self, bridge: BridgeProtocol, fund):
        """Test InsufficientBalance without any effect."""
        await _initiate(bridge, fund)

        with pytest.raises(InsufficientBalanceError):
            await bridge.withdraw(at(1002, sender=COUNTERPARTY), ALICE, 101)

        assert await bridge.get_balance(ALICE) == 100

    @pytest.mark.asyncio
    async def test_withdraw_zero(self, bridge: BridgeProtocol):
        """Test a zero withdrawal is rejected."""
        with pytest.raises(ZeroAmountError):
            await bridge.withdraw(at(1, sender=COUNTERPARTY), ALICE, 0)

    @pytest.mark.asyncio
    async def test_failed_push_rolls_back_withdraw(self, bridge: BridgeProtocol, fund, db_session):
        """Test a refused payout leaves the balance in place."""
        await _initiate(bridge, fund)
        flaky = FlakyToken(db_session, TOKEN)
        flaky.refuse_transfers = True
        flaky_bridge = BridgeProtocol(db_session, BRIDGE, token=flaky)

        with pytest.raises(ValueTransferFailedError):
            await flaky_bridge.withdraw(at(1002, sender=COUNTERPARTY), ALICE, 100)

        assert await bridge.get_balance(ALICE) == 100
        assert (await bridge.get_state()).total_withdrawn == 0
