"""Pytest configuration and fixtures."""

import os
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["DEBUG"] = "false"
os.environ["ADMIN_TOKEN"] = ""
os.environ["HEIGHT_SOURCE"] = "manual"
os.environ["INITIAL_HEIGHT"] = "0"
os.environ["BRIDGE_ADDRESS"] = "0x" + "b1" * 20

from htlcbridge.bridge.protocol import BridgeProtocol, CallContext
from htlcbridge.chain import reset_height_source
from htlcbridge.config import get_settings
from htlcbridge.gateway.token import WrappedNativeToken
from htlcbridge.ledger.database import create_engine
from htlcbridge.ledger.models import Base
from htlcbridge.ledger.repository import TransferLedger
from htlcbridge.utils.identifiers import keccak256
from htlcbridge.utils.locks import clear_bridge_locks

BRIDGE = bytes.fromhex("b1" * 20)
TOKEN = bytes.fromhex("70" * 20)
OWNER = bytes.fromhex("0e" * 20)
COUNTERPARTY = bytes.fromhex("cc" * 20)
ALICE = bytes.fromhex("a1" * 20)
BOB = bytes.fromhex("b0" * 20)
RECIPIENT = bytes.fromhex("5e" * 32)
SECRET = bytes.fromhex("42" * 32)
HASH_LOCK = keccak256(SECRET)


@pytest.fixture(autouse=True)
def reset_globals():
    """Fresh settings, locks and height source for every test."""
    get_settings.cache_clear()
    clear_bridge_locks()
    reset_height_source()
    yield
    clear_bridge_locks()
    reset_height_source()


@pytest_asyncio.fixture
async def db_engine():
    """Create in-memory database engine for testing."""
    engine = create_engine("sqlite+aiosqlite:///:memory:")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for testing."""
    session_factory = async_sessionmaker(
        bind=db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def ledger(db_session: AsyncSession) -> TransferLedger:
    return TransferLedger(db_session)


@pytest_asyncio.fixture
async def token(db_session: AsyncSession) -> WrappedNativeToken:
    return WrappedNativeToken(db_session, TOKEN)


@pytest_asyncio.fixture
async def protocol(db_session: AsyncSession) -> BridgeProtocol:
    """Uninitialized bridge bound to the test session."""
    return BridgeProtocol(db_session, BRIDGE)


@pytest_asyncio.fixture
async def bridge(protocol: BridgeProtocol) -> BridgeProtocol:
    """Bridge initialized with the wrapped token and a counterparty."""
    ctx = CallContext(sender=OWNER, height=1)
    await protocol.initialize(ctx, TOKEN, OWNER)
    await protocol.set_counterparty(ctx, COUNTERPARTY)
    return protocol


@pytest.fixture
def fund(token: WrappedNativeToken):
    """Give an account wrapped units and approve the bridge to pull them."""

    async def _fund(account: bytes, amount: int, allowance=None) -> None:
        await token.deposit(account, amount)
        await token.approve(account, BRIDGE, amount if allowance is None else allowance)

    return _fund
