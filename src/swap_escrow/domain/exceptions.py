"""Domain exceptions for the Swap Escrow.

These exceptions are framework-agnostic and represent business rule violations.
They are caught and translated to HTTP responses by the API layer's middleware.

Every escrow and ledger operation raises before it commits anything, so
catching one of these means no account was changed by the failed call.
"""


class EscrowError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, code: str = "ESCROW_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


# --- Validation Errors ---


class ValidationError(EscrowError):
    """Base for malformed input: bad amounts, addresses, seeds or layouts."""

    def __init__(self, message: str, code: str = "VALIDATION_ERROR") -> None:
        super().__init__(message=message, code=code)


class InvalidAmountError(ValidationError):
    """Raised for a zero deposit or an amount outside the u64 range."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="INVALID_AMOUNT")


class InvalidAddressError(ValidationError):
    """Raised when an address is not 32 bytes of lowercase hex."""

    def __init__(self, address: str) -> None:
        super().__init__(
            message=f"Invalid address: {address!r} (expected 64 hex characters)",
            code="INVALID_ADDRESS",
        )
        self.address = address


class InvalidSeedsError(ValidationError):
    """Raised when derivation seeds are too long, too many, or land on-curve."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="INVALID_SEEDS")


class ConstraintViolationError(ValidationError):
    """Raised when an account does not match the role it is used in.

    Example: a destination account holding the wrong mint, or a vault
    whose owner is not the escrow's derived authority.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="CONSTRAINT_VIOLATION")


class NonZeroBalanceError(ConstraintViolationError):
    """Raised when closing a holding account that still has a balance."""

    def __init__(self, address: str, amount: int) -> None:
        super().__init__(f"Account {address} still holds {amount} units and cannot be closed")
        self.code = "NON_ZERO_BALANCE"
        self.address = address
        self.amount = amount


class ArithmeticOverflowError(ValidationError):
    """Raised when a credit would push a u64 balance past its maximum."""

    def __init__(self, address: str) -> None:
        super().__init__(
            message=f"Balance overflow on account {address}",
            code="ARITHMETIC_OVERFLOW",
        )


# --- Authorization Errors ---


class AuthorizationError(EscrowError):
    """Base for a signer that is not allowed to perform the operation."""

    def __init__(self, message: str, code: str = "AUTHORIZATION_ERROR") -> None:
        super().__init__(message=message, code=code)


class UnauthorizedError(AuthorizationError):
    """Raised when the signer is not one of the parties the operation requires."""

    def __init__(self, signer: str, operation: str) -> None:
        super().__init__(
            message=f"Signer {signer} is not authorized to {operation}",
            code="UNAUTHORIZED",
        )
        self.signer = signer
        self.operation = operation


class OwnerMismatchError(AuthorizationError):
    """Raised by the ledger when the presented authority does not own the account."""

    def __init__(self, address: str) -> None:
        super().__init__(
            message=f"Authority does not own account {address}",
            code="OWNER_MISMATCH",
        )
        self.address = address


# --- Funds Errors ---


class InsufficientFundsError(EscrowError):
    """Raised when a source account cannot cover a transfer or rent deposit."""

    def __init__(self, address: str, required: int, available: int) -> None:
        super().__init__(
            message=(
                f"Insufficient funds in {address}: "
                f"required {required}, available {available}"
            ),
            code="INSUFFICIENT_FUNDS",
        )
        self.address = address
        self.required = required
        self.available = available


class InsufficientTakerTokensError(InsufficientFundsError):
    """Raised when Vault B does not satisfy the configured settlement policy."""

    def __init__(self, required: int, available: int, policy: str) -> None:
        super().__init__(address="vault_b", required=required, available=available)
        self.message = (
            f"Insufficient tokens in taker vault under '{policy}' policy: "
            f"required {required}, available {available}"
        )
        self.args = (self.message,)
        self.code = "INSUFFICIENT_TAKER_TOKENS"
        self.policy = policy


# --- Existence Errors ---


class AccountAlreadyInUseError(EscrowError):
    """Raised when creating an account at an address that is (or was) in use."""

    def __init__(self, address: str) -> None:
        super().__init__(
            message=f"Account already in use: {address}",
            code="ACCOUNT_ALREADY_IN_USE",
        )
        self.address = address


class AccountNotFoundError(EscrowError):
    """Raised when an account (record, vault or destination) does not exist."""

    def __init__(self, address: str, role: str = "account") -> None:
        super().__init__(
            message=f"{role.capitalize()} not found: {address}",
            code="ACCOUNT_NOT_FOUND",
        )
        self.address = address
        self.role = role


# --- State Machine Errors ---


class InvalidStateTransitionError(EscrowError):
    """Raised when an attempted lifecycle transition is not allowed.

    Example: EXCHANGED -> CANCELLED (both are final).
    """

    def __init__(self, current_state: str, attempted_event: str) -> None:
        super().__init__(
            message=f"Invalid state transition: {attempted_event} from {current_state}",
            code="INVALID_STATE_TRANSITION",
        )
        self.current_state = current_state
        self.attempted_event = attempted_event


# --- Idempotency Errors ---


class DuplicateOperationError(EscrowError):
    """Raised when a duplicate idempotency key is detected."""

    def __init__(self, idempotency_key: str) -> None:
        super().__init__(
            message=f"Duplicate operation detected for key: {idempotency_key}",
            code="DUPLICATE_OPERATION",
        )
