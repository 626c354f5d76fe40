"""Settlement Policy Protocol.

Defines the interface every settlement policy implements. Exchange asks the
configured policy whether Vault B's live balance is acceptable against the
amount the initializer requested; whatever the answer, the amount that
actually settles is Vault B's full balance.

This is a Protocol (structural subtyping) so concrete policies don't need
to inherit from a base class — they just need to match the shape.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class SettlementCheck:
    """Outcome of a settlement policy evaluation.

    Attributes:
        accepted: Whether exchange may proceed.
        required: The minimum balance the policy demanded.
        available: Vault B's balance at evaluation time.
        policy: Name of the policy that produced this result.
    """

    accepted: bool
    required: int
    available: int
    policy: str

    def to_dict(self) -> dict:
        """Serialize for storage in the audit event metadata."""
        return {
            "accepted": self.accepted,
            "required": self.required,
            "available": self.available,
            "policy": self.policy,
        }


@runtime_checkable
class SettlementPolicy(Protocol):
    """Protocol that all settlement policies must satisfy.

    Concrete implementations live in swap_escrow.settlement.
    """

    name: str

    def evaluate(self, requested: int, available: int) -> SettlementCheck:
        """Judge ``available`` units in Vault B against ``requested`` units."""
        ...
