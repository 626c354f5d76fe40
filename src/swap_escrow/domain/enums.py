"""Domain enumerations for the Swap Escrow.

These enums define the canonical states and types used throughout the system.
They are framework-agnostic (no SQLAlchemy, no FastAPI imports).
"""

import enum


class EscrowStatus(enum.StrEnum):
    """Lifecycle states of an escrow address.

    UNINITIALIZED is never stored; it is the status of an address with no
    audit history. See domain/state_machine.py for the transition table.
    """

    UNINITIALIZED = "UNINITIALIZED"
    OPEN = "OPEN"
    EXCHANGED = "EXCHANGED"
    CANCELLED = "CANCELLED"


class EventType(enum.StrEnum):
    """Types of audit events recorded in the escrow_events table.

    Every state transition MUST produce exactly one event.
    """

    ESCROW_INITIALIZED = "ESCROW_INITIALIZED"
    ESCROW_EXCHANGED = "ESCROW_EXCHANGED"
    ESCROW_CANCELLED = "ESCROW_CANCELLED"


class SettlementPolicyType(enum.StrEnum):
    """How exchange judges Vault B's live balance against the requested amount."""

    EXACT = "exact"
    MINIMUM = "minimum"
    THRESHOLD = "threshold"
    AVAILABLE = "available"


class ExchangeAuthority(enum.StrEnum):
    """Who may sign an exchange."""

    INITIALIZER = "initializer"
    PARTIES = "parties"
    PERMISSIONLESS = "permissionless"
