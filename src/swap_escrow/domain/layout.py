"""Fixed-size binary layouts for ledger and escrow account data.

All integers are little-endian and every layout has a constant size, so an
account's data length alone tells whether it can hold the claimed type.

    EscrowState        discriminator(8) seed(u64) initializer(32) taker(32)
                       mint_a(32) mint_b(32) amount(u64) bump(u8)      = 153 bytes
    TokenAccountState  mint(32) owner(32) amount(u64) state(u8)        =  73 bytes
    MintState          mint_authority(32) supply(u64) decimals(u8)
                       is_initialized(u8)                              =  42 bytes
"""

from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass, replace
from typing import ClassVar

from swap_escrow.domain.addressing import decode_address, encode_address
from swap_escrow.domain.exceptions import ConstraintViolationError, InvalidAmountError

U64_MAX = 2**64 - 1

TOKEN_ACCOUNT_INITIALIZED = 1


def check_u64(value: int, field: str) -> int:
    """Return ``value`` if it fits in an unsigned 64-bit integer."""
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= U64_MAX:
        raise InvalidAmountError(f"{field} must be an integer in [0, 2**64), got {value!r}")
    return value


def _unpack(fmt: struct.Struct, data: bytes, kind: str) -> tuple:
    if len(data) != fmt.size:
        raise ConstraintViolationError(
            f"Account data is {len(data)} bytes, a {kind} needs {fmt.size}"
        )
    return fmt.unpack(data)


@dataclass(frozen=True)
class EscrowState:
    """The persisted terms of one swap deal."""

    DISCRIMINATOR: ClassVar[bytes] = hashlib.sha256(b"account:Escrow").digest()[:8]
    _STRUCT: ClassVar[struct.Struct] = struct.Struct("<8sQ32s32s32s32sQB")

    seed: int
    initializer: str
    taker: str
    mint_a: str
    mint_b: str
    amount: int
    bump: int

    @classmethod
    def size(cls) -> int:
        return cls._STRUCT.size

    def pack(self) -> bytes:
        return self._STRUCT.pack(
            self.DISCRIMINATOR,
            check_u64(self.seed, "seed"),
            decode_address(self.initializer),
            decode_address(self.taker),
            decode_address(self.mint_a),
            decode_address(self.mint_b),
            check_u64(self.amount, "amount"),
            self.bump,
        )

    @classmethod
    def unpack(cls, data: bytes) -> EscrowState:
        disc, seed, initializer, taker, mint_a, mint_b, amount, bump = _unpack(
            cls._STRUCT, data, "escrow record"
        )
        if disc != cls.DISCRIMINATOR:
            raise ConstraintViolationError("Account data is not an escrow record")
        return cls(
            seed=seed,
            initializer=encode_address(initializer),
            taker=encode_address(taker),
            mint_a=encode_address(mint_a),
            mint_b=encode_address(mint_b),
            amount=amount,
            bump=bump,
        )


@dataclass(frozen=True)
class TokenAccountState:
    """A holding account: how much of ``mint`` the ``owner`` controls here."""

    _STRUCT: ClassVar[struct.Struct] = struct.Struct("<32s32sQB")

    mint: str
    owner: str
    amount: int = 0
    state: int = TOKEN_ACCOUNT_INITIALIZED

    @classmethod
    def size(cls) -> int:
        return cls._STRUCT.size

    @property
    def is_initialized(self) -> bool:
        return self.state == TOKEN_ACCOUNT_INITIALIZED

    def with_amount(self, amount: int) -> TokenAccountState:
        return replace(self, amount=amount)

    def pack(self) -> bytes:
        return self._STRUCT.pack(
            decode_address(self.mint),
            decode_address(self.owner),
            check_u64(self.amount, "amount"),
            self.state,
        )

    @classmethod
    def unpack(cls, data: bytes) -> TokenAccountState:
        mint, owner, amount, state = _unpack(cls._STRUCT, data, "holding account")
        return cls(
            mint=encode_address(mint),
            owner=encode_address(owner),
            amount=amount,
            state=state,
        )


@dataclass(frozen=True)
class MintState:
    """An asset type. ``mint_authority`` is None once minting is frozen."""

    _STRUCT: ClassVar[struct.Struct] = struct.Struct("<32sQBB")

    mint_authority: str | None
    decimals: int
    supply: int = 0
    is_initialized: bool = True

    @classmethod
    def size(cls) -> int:
        return cls._STRUCT.size

    def with_supply(self, supply: int) -> MintState:
        return replace(self, supply=supply)

    def pack(self) -> bytes:
        authority = (
            decode_address(self.mint_authority) if self.mint_authority else bytes(32)
        )
        return self._STRUCT.pack(
            authority,
            check_u64(self.supply, "supply"),
            self.decimals,
            int(self.is_initialized),
        )

    @classmethod
    def unpack(cls, data: bytes) -> MintState:
        authority, supply, decimals, initialized = _unpack(cls._STRUCT, data, "mint")
        return cls(
            mint_authority=encode_address(authority) if any(authority) else None,
            decimals=decimals,
            supply=supply,
            is_initialized=bool(initialized),
        )
