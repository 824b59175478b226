"""SQLAlchemy models for the bridge ledger."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import (
    BigInteger,
    DateTime,
    Index,
    LargeBinary,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class Uint256(TypeDecorator):
    """Exact uint256 storage as decimal text.

    SQLite NUMERIC degrades to floating point beyond 64 bits, so amounts
    are kept as strings in the database and ints in Python.
    """

    impl = String(78)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return str(int(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return int(value)


class TransferState(str, Enum):
    """Lifecycle of a bridge transfer."""

    INITIALIZED = "initialized"  # Funds locked, awaiting pre-image or deadline
    COMPLETED = "completed"      # Pre-image revealed before the deadline
    REFUNDED = "refunded"        # Deadline passed, funds returned


class EventType(str, Enum):
    """Notifications emitted by the bridge."""

    INITIATED = "initiated"
    COMPLETED = "completed"
    REFUNDED = "refunded"


class BridgeTransfer(Base):
    """One hash-time-locked transfer. Never deleted."""

    __tablename__ = "bridge_transfers"
    __table_args__ = (Index("ix_bridge_transfers_originator_state", "originator", "state"),)

    id: Mapped[bytes] = mapped_column(LargeBinary(32), primary_key=True)
    amount: Mapped[int] = mapped_column(Uint256, nullable=False)
    originator: Mapped[bytes] = mapped_column(LargeBinary(20), nullable=False, index=True)
    recipient: Mapped[bytes] = mapped_column(LargeBinary(32), nullable=False)
    hash_lock: Mapped[bytes] = mapped_column(LargeBinary(32), nullable=False)
    time_lock: Mapped[int] = mapped_column(Uint256, nullable=False)  # Absolute block height
    state: Mapped[TransferState] = mapped_column(
        String(20), default=TransferState.INITIALIZED, nullable=False
    )

    # Audit trail
    created_height: Mapped[int] = mapped_column(Uint256, nullable=False)
    finalized_height: Mapped[Optional[int]] = mapped_column(Uint256, nullable=True)
    pre_image: Mapped[Optional[bytes]] = mapped_column(LargeBinary(32), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )
    finalized_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class AccountBalance(Base):
    """Value locked by an originator and not yet refunded or withdrawn."""

    __tablename__ = "account_balances"

    account: Mapped[bytes] = mapped_column(LargeBinary(20), primary_key=True)
    amount: Mapped[int] = mapped_column(Uint256, default=0, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )


class BridgeState(Base):
    """Singleton registry row: identities, token, nonce and running totals."""

    __tablename__ = "bridge_state"

    id: Mapped[int] = mapped_column(primary_key=True)
    initialized: Mapped[bool] = mapped_column(default=False, nullable=False)
    owner: Mapped[Optional[bytes]] = mapped_column(LargeBinary(20), nullable=True)
    counterparty: Mapped[Optional[bytes]] = mapped_column(LargeBinary(20), nullable=True)
    token_address: Mapped[Optional[bytes]] = mapped_column(LargeBinary(20), nullable=True)
    nonce: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)

    total_initiated: Mapped[int] = mapped_column(Uint256, default=0, nullable=False)
    total_refunded: Mapped[int] = mapped_column(Uint256, default=0, nullable=False)
    total_withdrawn: Mapped[int] = mapped_column(Uint256, default=0, nullable=False)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )


class BridgeEvent(Base):
    """Persisted notification. Rolled back together with its operation."""

    __tablename__ = "bridge_events"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    event_type: Mapped[EventType] = mapped_column(String(20), nullable=False)
    transfer_id: Mapped[bytes] = mapped_column(LargeBinary(32), nullable=False, index=True)
    height: Mapped[int] = mapped_column(Uint256, nullable=False)
    payload_json: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )


class TokenBalance(Base):
    """Holder balance on the wrapped native token."""

    __tablename__ = "token_balances"

    token: Mapped[bytes] = mapped_column(LargeBinary(20), primary_key=True)
    account: Mapped[bytes] = mapped_column(LargeBinary(20), primary_key=True)
    amount: Mapped[int] = mapped_column(Uint256, default=0, nullable=False)


class TokenAllowance(Base):
    """Spender allowance on the wrapped native token."""

    __tablename__ = "token_allowances"

    token: Mapped[bytes] = mapped_column(LargeBinary(20), primary_key=True)
    owner: Mapped[bytes] = mapped_column(LargeBinary(20), primary_key=True)
    spender: Mapped[bytes] = mapped_column(LargeBinary(20), primary_key=True)
    amount: Mapped[int] = mapped_column(Uint256, default=0, nullable=False)
