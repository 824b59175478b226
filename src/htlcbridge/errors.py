"""Failure taxonomy for bridge operations.

Every failure aborts the whole operation. The ``kind`` attribute is the
stable name callers match on; ``status_code`` is what the HTTP API returns.
"""


class BridgeError(Exception):
    """Base class for all bridge failures."""

    kind = "BridgeError"
    category = "bridge"
    status_code = 400

    def to_dict(self) -> dict:
        """Serialize for API responses."""
        return {"error": self.kind, "category": self.category, "detail": str(self)}


# Validation


class ValidationError(BridgeError):
    category = "validation"


class ZeroAddressError(ValidationError):
    kind = "ZeroAddress"

    def __init__(self, role: str = "address"):
        self.role = role
        super().__init__(f"{role} must not be the zero address")


class ZeroAmountError(ValidationError):
    kind = "ZeroAmount"

    def __init__(self, message: str = "Amount must be greater than zero"):
        super().__init__(message)


class AmountOverflowError(ValidationError):
    kind = "AmountOverflow"


class InvalidIdentifierError(ValidationError):
    kind = "InvalidIdentifier"


# Authorization


class AuthorizationError(BridgeError):
    category = "authorization"
    status_code = 403


class UnauthorizedError(AuthorizationError):
    kind = "Unauthorized"


class AlreadyInitializedError(AuthorizationError):
    kind = "AlreadyInitialized"
    status_code = 409

    def __init__(self):
        super().__init__("Bridge is already initialized")


# State


class StateError(BridgeError):
    category = "state"
    status_code = 409


class TransferNotFoundError(StateError):
    kind = "NotFound"
    status_code = 404

    def __init__(self, transfer_id: bytes):
        self.transfer_id = transfer_id
        super().__init__(f"Bridge transfer 0x{transfer_id.hex()} not found")


class AlreadyFinalizedError(StateError):
    kind = "AlreadyFinalized"

    def __init__(self, transfer_id: bytes, state: str):
        self.transfer_id = transfer_id
        self.state = state
        super().__init__(f"Bridge transfer 0x{transfer_id.hex()} is already {state}")


class InvalidStateTransitionError(StateError):
    kind = "InvalidStateTransition"


class DuplicateTransferIdError(StateError):
    kind = "DuplicateId"

    def __init__(self, transfer_id: bytes):
        self.transfer_id = transfer_id
        super().__init__(f"Bridge transfer 0x{transfer_id.hex()} already exists")


class NotInitializedError(StateError):
    kind = "NotInitialized"

    def __init__(self):
        super().__init__("Bridge has not been initialized")


# Temporal


class TemporalError(BridgeError):
    category = "temporal"
    status_code = 409


class TimelockExpiredError(TemporalError):
    kind = "TimelockExpired"


class TimelockNotExpiredError(TemporalError):
    kind = "TimelockNotExpired"


# Cryptographic


class InvalidSecretError(BridgeError):
    kind = "InvalidSecret"
    category = "cryptographic"

    def __init__(self, transfer_id: bytes):
        self.transfer_id = transfer_id
        super().__init__(f"Pre-image does not match hash lock of 0x{transfer_id.hex()}")


# Dependency


class DependencyError(BridgeError):
    category = "dependency"
    status_code = 409


class ValueTransferFailedError(DependencyError):
    kind = "ValueTransferFailed"
    status_code = 402


class InsufficientBalanceError(DependencyError):
    kind = "InsufficientBalance"

    def __init__(self, account: bytes, have: int, need: int):
        self.account = account
        self.have = have
        self.need = need
        super().__init__(
            f"Insufficient balance for 0x{account.hex()}: have {have}, need {need}"
        )
