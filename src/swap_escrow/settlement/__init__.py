"""Settlement policy implementations and factory.

Four policies:
    - ExactPolicy:      Vault B must hold exactly the requested amount
    - MinimumPolicy:    Vault B must hold at least the requested amount (default)
    - ThresholdPolicy:  Vault B must hold at least ``bps`` basis points of it
    - AvailablePolicy:  Anything goes; settle whatever is there

The SettlementPolicyFactory creates the configured policy from its name.
"""

from __future__ import annotations

from swap_escrow.domain.enums import SettlementPolicyType
from swap_escrow.domain.settlement_protocol import SettlementCheck, SettlementPolicy

BPS_DENOMINATOR = 10_000


class ExactPolicy:
    """Strict match: over- and under-funded vaults are both rejected."""

    name = SettlementPolicyType.EXACT.value

    def evaluate(self, requested: int, available: int) -> SettlementCheck:
        return SettlementCheck(
            accepted=available == requested,
            required=requested,
            available=available,
            policy=self.name,
        )


class MinimumPolicy:
    """Vault B must cover the request; any overflow goes to the initializer too."""

    name = SettlementPolicyType.MINIMUM.value

    def evaluate(self, requested: int, available: int) -> SettlementCheck:
        return SettlementCheck(
            accepted=available >= requested,
            required=requested,
            available=available,
            policy=self.name,
        )


class ThresholdPolicy:
    """Accept a vault funded to at least ``bps``/10000 of the request, rounded down.

    The default of 9500 bps accepts a taker who delivers 95% of the amount.
    """

    name = SettlementPolicyType.THRESHOLD.value

    def __init__(self, bps: int = 9500) -> None:
        if not 0 <= bps <= BPS_DENOMINATOR:
            raise ValueError(f"Threshold must be between 0 and {BPS_DENOMINATOR} bps, got {bps}")
        self.bps = bps

    def minimum_for(self, requested: int) -> int:
        return requested * self.bps // BPS_DENOMINATOR

    def evaluate(self, requested: int, available: int) -> SettlementCheck:
        required = self.minimum_for(requested)
        return SettlementCheck(
            accepted=available >= required,
            required=required,
            available=available,
            policy=self.name,
        )


class AvailablePolicy:
    """Best effort: settle Vault B's balance whatever it is, even zero."""

    name = SettlementPolicyType.AVAILABLE.value

    def evaluate(self, requested: int, available: int) -> SettlementCheck:
        return SettlementCheck(
            accepted=True,
            required=0,
            available=available,
            policy=self.name,
        )


class SettlementPolicyFactory:
    """Factory that creates the settlement policy named in configuration.

    Usage:
        policy = SettlementPolicyFactory.create("threshold", bps=9500)
        check = policy.evaluate(requested=1_000_000, available=960_000)
    """

    _registry: dict[str, type] = {
        SettlementPolicyType.EXACT.value: ExactPolicy,
        SettlementPolicyType.MINIMUM.value: MinimumPolicy,
        SettlementPolicyType.THRESHOLD.value: ThresholdPolicy,
        SettlementPolicyType.AVAILABLE.value: AvailablePolicy,
    }

    @classmethod
    def create(cls, policy_type: str, bps: int | None = None) -> SettlementPolicy:
        """Create a policy instance.

        Args:
            policy_type: One of the SettlementPolicyType values.
            bps: Basis points for the threshold policy; ignored by the others.

        Raises:
            ValueError: If the type is unknown.
        """
        policy_class = cls._registry.get(str(policy_type))
        if policy_class is None:
            raise ValueError(
                f"Unknown settlement policy: '{policy_type}'. "
                f"Valid policies: {list(cls._registry.keys())}"
            )
        if policy_class is ThresholdPolicy and bps is not None:
            return ThresholdPolicy(bps=bps)
        return policy_class()

    @classmethod
    def get_supported_types(cls) -> list[str]:
        """Return the list of supported policy names."""
        return list(cls._registry.keys())


__all__ = [
    "AvailablePolicy",
    "ExactPolicy",
    "MinimumPolicy",
    "SettlementCheck",
    "SettlementPolicy",
    "SettlementPolicyFactory",
    "ThresholdPolicy",
]
