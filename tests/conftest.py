"""Shared test fixtures for the Swap Escrow test suite.

Provides:
    - An in-memory SQLite engine with real SAVEPOINT semantics
    - A session per test (never committed; discarded with the engine)
    - Funded parties: two mints, an initializer holding asset A and a
      taker holding asset B
    - Async test support via pytest-asyncio
"""

from __future__ import annotations

from dataclasses import dataclass
from unittest.mock import patch

import pytest
import pytest_asyncio

from swap_escrow.config import Settings
from swap_escrow.domain.addressing import associated_token_address, new_identity
from swap_escrow.domain.exceptions import AccountNotFoundError
from swap_escrow.infrastructure.database.engine import (
    build_engine,
    build_session_factory,
    create_tables,
)
from swap_escrow.infrastructure.database.repositories import AccountRepository
from swap_escrow.services.escrow_service import EscrowService
from swap_escrow.services.ledger_service import LedgerService

SQLITE_URL = "sqlite+aiosqlite:///:memory:"
DECIMALS = 6
INITIALIZER_A = 1_000_000
TAKER_B = 2_000_000
AIRDROP = 1_000_000_000


# ---------------------------------------------------------------------------
# Settings & Database
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    """Default settings, isolated from any local .env file."""
    return Settings(_env_file=None, database_url=SQLITE_URL)


@pytest_asyncio.fixture
async def engine():
    engine = build_engine(SQLITE_URL)
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def ledger(session, settings) -> LedgerService:
    return LedgerService(session, settings)


@pytest_asyncio.fixture
async def escrow_service(session, settings) -> EscrowService:
    return EscrowService(session, settings)


@pytest.fixture
def locked_rows():
    """Record every address read through the row-locking query, in call order."""
    locked: list[str] = []
    original = AccountRepository.get_for_update

    async def recording(self, address):
        locked.append(address)
        return await original(self, address)

    with patch.object(AccountRepository, "get_for_update", recording):
        yield locked


# ---------------------------------------------------------------------------
# Parties
# ---------------------------------------------------------------------------


@dataclass
class Parties:
    """Everyone involved in a deal, with their associated holding accounts."""

    authority: str
    initializer: str
    taker: str
    mint_a: str
    mint_b: str

    @property
    def initializer_a(self) -> str:
        return associated_token_address(self.initializer, self.mint_a)

    @property
    def initializer_b(self) -> str:
        return associated_token_address(self.initializer, self.mint_b)

    @property
    def taker_a(self) -> str:
        return associated_token_address(self.taker, self.mint_a)

    @property
    def taker_b(self) -> str:
        return associated_token_address(self.taker, self.mint_b)

    async def deposit_b(self, ledger: LedgerService, escrow: str, amount: int) -> None:
        """The taker's plain transfer of asset B into Vault B."""
        await ledger.transfer_checked(
            source=self.taker_b,
            mint=self.mint_b,
            destination=associated_token_address(escrow, self.mint_b),
            authority=self.taker,
            amount=amount,
            decimals=DECIMALS,
        )

    @staticmethod
    async def balance(ledger: LedgerService, address: str) -> int:
        """Balance of a holding account; 0 once it has been closed or never existed."""
        try:
            return await ledger.get_balance(address)
        except AccountNotFoundError:
            return 0


@pytest_asyncio.fixture
async def parties(ledger: LedgerService) -> Parties:
    """Two mints; the initializer holds 1,000,000 A and the taker 2,000,000 B."""
    p = Parties(
        authority=new_identity(),
        initializer=new_identity(),
        taker=new_identity(),
        mint_a=new_identity(),
        mint_b=new_identity(),
    )
    for wallet in (p.authority, p.initializer, p.taker):
        await ledger.airdrop(wallet, AIRDROP)
    await ledger.create_mint(p.authority, p.mint_a, p.authority, DECIMALS)
    await ledger.create_mint(p.authority, p.mint_b, p.authority, DECIMALS)

    await ledger.create_associated_account(p.initializer, p.initializer, p.mint_a)
    await ledger.mint_to(p.mint_a, p.initializer_a, p.authority, INITIALIZER_A)
    await ledger.create_associated_account(p.taker, p.taker, p.mint_b)
    await ledger.mint_to(p.mint_b, p.taker_b, p.authority, TAKER_B)
    return p
