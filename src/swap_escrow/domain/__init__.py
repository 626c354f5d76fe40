"""Domain layer — pure business logic with zero framework dependencies."""

from swap_escrow.domain.enums import (
    EscrowStatus,
    EventType,
    ExchangeAuthority,
    SettlementPolicyType,
)
from swap_escrow.domain.exceptions import (
    AccountAlreadyInUseError,
    AccountNotFoundError,
    ConstraintViolationError,
    EscrowError,
    InsufficientFundsError,
    InsufficientTakerTokensError,
    InvalidAmountError,
    InvalidStateTransitionError,
    UnauthorizedError,
)
from swap_escrow.domain.layout import EscrowState, MintState, TokenAccountState
from swap_escrow.domain.settlement_protocol import SettlementCheck, SettlementPolicy
from swap_escrow.domain.state_machine import (
    EscrowLifecycle,
    validate_transition,
)

__all__ = [
    "EscrowStatus",
    "EventType",
    "ExchangeAuthority",
    "SettlementPolicyType",
    "AccountAlreadyInUseError",
    "AccountNotFoundError",
    "ConstraintViolationError",
    "EscrowError",
    "InsufficientFundsError",
    "InsufficientTakerTokensError",
    "InvalidAmountError",
    "InvalidStateTransitionError",
    "UnauthorizedError",
    "EscrowState",
    "MintState",
    "TokenAccountState",
    "SettlementCheck",
    "SettlementPolicy",
    "EscrowLifecycle",
    "validate_transition",
]
