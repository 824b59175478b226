"""Fixed-width identifiers and hashing.

Accounts are 20 bytes, everything else the bridge keys on (transfer ids,
recipients, hash locks, pre-images) is 32 bytes. Values are compared as
raw bytes; hex strings only exist at the API boundary.
"""

from typing import Union

from Crypto.Hash import keccak
from eth_utils import to_checksum_address

from htlcbridge.errors import InvalidIdentifierError

ADDRESS_LENGTH = 20
BYTES32_LENGTH = 32

ZERO_ADDRESS = b"\x00" * ADDRESS_LENGTH


def keccak256(data: bytes) -> bytes:
    """Ethereum-flavoured Keccak-256 digest."""
    k = keccak.new(digest_bits=256)
    k.update(data)
    return k.digest()


def _to_fixed_bytes(value: Union[str, bytes], length: int, name: str) -> bytes:
    if isinstance(value, str):
        text = value.strip()
        if text.startswith(("0x", "0X")):
            text = text[2:]
        try:
            raw = bytes.fromhex(text)
        except ValueError:
            raise InvalidIdentifierError(f"{name} is not valid hex: {value!r}")
    elif isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    else:
        raise InvalidIdentifierError(f"{name} must be bytes or hex string")

    if len(raw) != length:
        raise InvalidIdentifierError(f"{name} must be {length} bytes, got {len(raw)}")
    return raw


def to_address(value: Union[str, bytes]) -> bytes:
    """Parse a 20-byte account identifier."""
    return _to_fixed_bytes(value, ADDRESS_LENGTH, "address")


def to_bytes32(value: Union[str, bytes], name: str = "value") -> bytes:
    """Parse a 32-byte identifier."""
    return _to_fixed_bytes(value, BYTES32_LENGTH, name)


def format_address(address: bytes) -> str:
    """EIP-55 checksummed hex form of an account."""
    return to_checksum_address(address)


def format_bytes32(value: bytes) -> str:
    return "0x" + value.hex()


def _uint256_word(value: int) -> bytes:
    return value.to_bytes(32, "big")


def derive_transfer_id(
    originator: bytes,
    recipient: bytes,
    hash_lock: bytes,
    delay: int,
    height: int,
    nonce: int,
) -> bytes:
    """Deterministic transfer id over the packed request fields.

    The nonce makes otherwise identical requests in the same block distinct.
    """
    packed = (
        originator
        + recipient
        + hash_lock
        + _uint256_word(delay)
        + _uint256_word(height)
        + _uint256_word(nonce)
    )
    return keccak256(packed)
