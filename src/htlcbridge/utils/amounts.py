"""Checked uint256 arithmetic.

Python ints never wrap, so these helpers only have to reject results that
fall outside the 256-bit unsigned range the token ledger uses.
"""

from htlcbridge.errors import AmountOverflowError

UINT256_MAX = 2**256 - 1


def require_uint256(value: int, name: str = "amount") -> int:
    """Validate that value is an int in [0, 2**256 - 1]."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise AmountOverflowError(f"{name} must be an integer, got {type(value).__name__}")
    if value < 0:
        raise AmountOverflowError(f"{name} must not be negative: {value}")
    if value > UINT256_MAX:
        raise AmountOverflowError(f"{name} exceeds uint256: {value}")
    return value


def checked_add(a: int, b: int) -> int:
    """a + b, failing instead of exceeding uint256."""
    result = require_uint256(a, "left operand") + require_uint256(b, "right operand")
    if result > UINT256_MAX:
        raise AmountOverflowError(f"{a} + {b} overflows uint256")
    return result
