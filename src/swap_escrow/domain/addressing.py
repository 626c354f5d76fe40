"""Deterministic addressing for escrow records and holding accounts.

Every account the escrow touches can be recomputed by any observer from
public inputs, so no lookup table is ever stored:

    escrow record   = derive([b"state", initializer, seed_le64], ESCROW_PROGRAM_ID)
    holding account = derive([owner, TOKEN_PROGRAM_ID, mint], ASSOCIATED_TOKEN_PROGRAM_ID)

A derived address is a SHA-256 digest that is guaranteed NOT to be a valid
ed25519 public key, so nobody holds a private key for it. The bump seed that
pushed the digest off the curve is stored in the escrow record; presenting
the full seed list back to the ledger (a ProgramSigner) is how the escrow
program signs for the vaults it owns.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass

from nacl.bindings import crypto_core_ed25519_is_valid_point
from nacl.signing import SigningKey

from swap_escrow.domain.exceptions import InvalidAddressError, InvalidSeedsError

ADDRESS_LENGTH = 32
MAX_SEED_LENGTH = 32
MAX_SEEDS = 16
PDA_MARKER = b"ProgramDerivedAddress"
ESCROW_SEED_PREFIX = b"state"


def _program_id(name: bytes) -> bytes:
    return hashlib.sha256(b"swap-escrow/program/" + name).digest()


SYSTEM_PROGRAM_ID = bytes(ADDRESS_LENGTH)
TOKEN_PROGRAM_ID = _program_id(b"token")
ASSOCIATED_TOKEN_PROGRAM_ID = _program_id(b"associated-token")
ESCROW_PROGRAM_ID = _program_id(b"escrow")


# ---------------------------------------------------------------------------
# Address codec
# ---------------------------------------------------------------------------


def encode_address(raw: bytes) -> str:
    """Render a 32-byte identity as lowercase hex."""
    if len(raw) != ADDRESS_LENGTH:
        raise InvalidAddressError(raw.hex())
    return raw.hex()


def decode_address(address: str) -> bytes:
    """Parse a 64-char hex address back into 32 bytes."""
    if not isinstance(address, str) or len(address) != ADDRESS_LENGTH * 2:
        raise InvalidAddressError(str(address))
    try:
        raw = bytes.fromhex(address)
    except ValueError as err:
        raise InvalidAddressError(address) from err
    if raw.hex() != address:
        # Upper-case hex would give two spellings of one account.
        raise InvalidAddressError(address)
    return raw


def is_on_curve(raw: bytes) -> bool:
    """True when ``raw`` decodes to a valid ed25519 point (i.e. someone could own its key)."""
    return bool(crypto_core_ed25519_is_valid_point(raw))


def new_identity() -> str:
    """Generate a fresh on-curve identity for a human party."""
    return encode_address(bytes(SigningKey.generate().verify_key))


# ---------------------------------------------------------------------------
# Derivation
# ---------------------------------------------------------------------------


def create_program_address(seeds: list[bytes], program_id: bytes) -> bytes:
    """Hash the seeds under ``program_id``; reject results that land on the curve."""
    if len(seeds) > MAX_SEEDS:
        raise InvalidSeedsError(f"At most {MAX_SEEDS} seeds allowed, got {len(seeds)}")
    hasher = hashlib.sha256()
    for seed in seeds:
        if len(seed) > MAX_SEED_LENGTH:
            raise InvalidSeedsError(
                f"Seed of {len(seed)} bytes exceeds the {MAX_SEED_LENGTH}-byte limit"
            )
        hasher.update(seed)
    hasher.update(program_id)
    hasher.update(PDA_MARKER)
    digest = hasher.digest()
    if is_on_curve(digest):
        raise InvalidSeedsError("Derived address lies on the ed25519 curve")
    return digest


def find_program_address(seeds: list[bytes], program_id: bytes) -> tuple[bytes, int]:
    """Search bump seeds 255..0 and return the first off-curve address with its bump."""
    for bump in range(255, -1, -1):
        try:
            return create_program_address([*seeds, bytes([bump])], program_id), bump
        except InvalidSeedsError:
            continue
    raise InvalidSeedsError("Unable to find a viable bump seed")


def seed_to_bytes(seed: int) -> bytes:
    """Little-endian u64 encoding of an escrow seed."""
    if not 0 <= seed < 2**64:
        raise InvalidSeedsError(f"Escrow seed must fit in 8 bytes, got {seed}")
    return seed.to_bytes(8, "little")


def escrow_seeds(initializer: str, seed: int) -> list[bytes]:
    return [ESCROW_SEED_PREFIX, decode_address(initializer), seed_to_bytes(seed)]


def find_escrow_address(initializer: str, seed: int) -> tuple[str, int]:
    """Return ``(escrow_address, bump)`` for an (initializer, seed) pair."""
    raw, bump = find_program_address(escrow_seeds(initializer, seed), ESCROW_PROGRAM_ID)
    return encode_address(raw), bump


def associated_token_address(owner: str, mint: str) -> str:
    """The canonical holding account of ``owner`` for ``mint``."""
    raw, _ = find_program_address(
        [decode_address(owner), TOKEN_PROGRAM_ID, decode_address(mint)],
        ASSOCIATED_TOKEN_PROGRAM_ID,
    )
    return encode_address(raw)


def vault_addresses(escrow: str, mint_a: str, mint_b: str) -> tuple[str, str]:
    """Return ``(vault_a, vault_b)`` for an escrow record."""
    return associated_token_address(escrow, mint_a), associated_token_address(escrow, mint_b)


# ---------------------------------------------------------------------------
# Signing capability
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProgramSigner:
    """Authority proof for an account owned by a derived address.

    The ledger accepts it only if re-hashing ``seeds`` (bump included) under
    ``program_id`` reproduces the account owner.
    """

    program_id: bytes
    seeds: tuple[bytes, ...]

    @classmethod
    def for_escrow(cls, initializer: str, seed: int, bump: int) -> ProgramSigner:
        return cls(
            program_id=ESCROW_PROGRAM_ID,
            seeds=(*escrow_seeds(initializer, seed), bytes([bump])),
        )

    @property
    def address(self) -> str:
        return encode_address(create_program_address(list(self.seeds), self.program_id))


Authority = str | ProgramSigner
"""Either a human identity (already authenticated by the transport) or a derived signer."""


def authority_address(authority: Authority) -> str:
    if isinstance(authority, ProgramSigner):
        return authority.address
    decode_address(authority)
    return authority
