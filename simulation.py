#!/usr/bin/env python3
"""Swap Escrow — End-to-End Simulation.

Simulates three scenarios with InitializerBot and TakerBot parties:

    Scenario 1: Happy Path
        - Initializer locks 1,000,000 units of asset A, asks for 1,000,000 of asset B
        - Taker deposits 1,000,000 units of asset B into Vault B
        - Initializer exchanges -> both sides paid, all escrow accounts closed

    Scenario 2: Short Deposit
        - Same terms, but the taker deposits only 900,000 units of asset B
        - Exchange is rejected with InsufficientTakerTokens; nothing moves
        - Both parties cancel out cleanly afterwards

    Scenario 3: Cancel Without Deposit
        - Initializer locks asset A, nobody deposits asset B
        - Initializer cancels -> asset A fully restored, all escrow accounts closed

Usage:
    # Option A: With Docker (PostgreSQL):
    docker compose up -d
    uv run python simulation.py

    # Option B: Without Docker (SQLite in-memory):
    uv run python simulation.py --sqlite

    # Run a specific scenario under a different settlement policy:
    uv run python simulation.py --sqlite --scenario 2 --policy exact
"""

from __future__ import annotations

import argparse
import asyncio
from dataclasses import dataclass, field
from typing import Any

# ---------------------------------------------------------------------------
# Configure structured logging BEFORE importing app modules
# ---------------------------------------------------------------------------
from swap_escrow.logging_config import get_logger, setup_logging

setup_logging(log_level="INFO", json_logs=False)
logger = get_logger("simulation")

from swap_escrow.config import Settings, get_settings  # noqa: E402
from swap_escrow.domain.addressing import associated_token_address, new_identity  # noqa: E402
from swap_escrow.domain.exceptions import EscrowError  # noqa: E402
from swap_escrow.services.escrow_service import EscrowService  # noqa: E402
from swap_escrow.services.ledger_service import LedgerService  # noqa: E402

# Module-level state
_sqlite_engine = None
_sqlite_session_factory = None
_settings: Settings | None = None

DEAL_SIZE = 1_000_000
AIRDROP_LAMPORTS = 1_000_000_000
DECIMALS = 6


# ---------------------------------------------------------------------------
# Database lifecycle helpers
# ---------------------------------------------------------------------------
async def init_database(use_sqlite: bool = False):
    """Initialize database engine and create tables."""
    global _sqlite_engine, _sqlite_session_factory

    if use_sqlite:
        from swap_escrow.infrastructure.database.engine import (
            build_engine,
            build_session_factory,
            create_tables,
        )

        _sqlite_engine = build_engine("sqlite+aiosqlite:///:memory:")
        _sqlite_session_factory = build_session_factory(_sqlite_engine)
        await create_tables(_sqlite_engine)
        logger.info("database.sqlite_initialized")
    else:
        from swap_escrow.infrastructure.database.engine import init_db

        await init_db()


async def get_session():
    """Get a fresh database session."""
    if _sqlite_session_factory is not None:
        return _sqlite_session_factory()

    from swap_escrow.infrastructure.database.engine import _get_session_factory

    factory = _get_session_factory()
    return factory()


async def shutdown_database():
    """Close database connections."""
    global _sqlite_engine, _sqlite_session_factory

    if _sqlite_engine is not None:
        await _sqlite_engine.dispose()
        _sqlite_engine = None
        _sqlite_session_factory = None
    else:
        from swap_escrow.infrastructure.database.engine import close_db

        await close_db()


def escrow_service(session: Any) -> EscrowService:
    return EscrowService(session, _settings or get_settings())


# ---------------------------------------------------------------------------
# Parties
# ---------------------------------------------------------------------------
@dataclass
class Market:
    """Two freshly minted assets and the authority that issues them."""

    authority: str = field(default_factory=new_identity)
    mint_a: str = field(default_factory=new_identity)
    mint_b: str = field(default_factory=new_identity)

    async def open(self, session: Any) -> None:
        ledger = LedgerService(session)
        await ledger.airdrop(self.authority, AIRDROP_LAMPORTS)
        await ledger.create_mint(self.authority, self.mint_a, self.authority, DECIMALS)
        await ledger.create_mint(self.authority, self.mint_b, self.authority, DECIMALS)
        await session.commit()
        logger.info("🏦 MARKET: Mints created", mint_a=self.mint_a[:12], mint_b=self.mint_b[:12])

    async def fund(self, session: Any, owner: str, mint: str, amount: int) -> str:
        """Give ``owner`` an associated account for ``mint`` holding ``amount`` units."""
        ledger = LedgerService(session)
        await ledger.airdrop(owner, AIRDROP_LAMPORTS)
        account = await ledger.create_associated_account(owner, owner, mint, idempotent=True)
        await ledger.mint_to(mint, account, self.authority, amount)
        await session.commit()
        return account


@dataclass
class InitializerBot:
    """Simulated party that locks asset A and names its price in asset B."""

    wallet: str = field(default_factory=new_identity)

    async def initialize(
        self,
        session: Any,
        market: Market,
        taker: str,
        seed: int,
        deposit: int,
        receive: int,
    ) -> str:
        """Open an escrow. Returns the escrow address."""
        view = await escrow_service(session).initialize(
            initializer=self.wallet,
            seed=seed,
            deposit=deposit,
            receive=receive,
            taker=taker,
            mint_a=market.mint_a,
            mint_b=market.mint_b,
        )
        await session.commit()
        logger.info(
            "🔵 INITIALIZER: Escrow opened",
            escrow=view.address[:12],
            vault_a=view.vault_a_balance,
            wants=receive,
        )
        return view.address

    async def exchange(self, session: Any, escrow: str) -> dict:
        svc = escrow_service(session)
        try:
            receipt = await svc.exchange(escrow_address=escrow, signer=self.wallet)
        except EscrowError as exc:
            await session.rollback()
            logger.info("🔵 INITIALIZER: Exchange rejected ❌", code=exc.code, error=exc.message)
            return {"error": exc.code, "message": exc.message}
        await session.commit()
        logger.info(
            "🔵 INITIALIZER: Exchange settled ✅",
            received_b=receipt.asset_b_amount,
            sent_a=receipt.asset_a_amount,
        )
        return receipt.to_dict()

    async def cancel(self, session: Any, escrow: str) -> dict:
        receipt = await escrow_service(session).cancel(escrow_address=escrow, signer=self.wallet)
        await session.commit()
        logger.info(
            "🔵 INITIALIZER: Escrow cancelled",
            refunded_a=receipt.asset_a_amount,
            refunded_b=receipt.asset_b_amount,
        )
        return receipt.to_dict()


@dataclass
class TakerBot:
    """Simulated counterparty that pays asset B into Vault B."""

    wallet: str = field(default_factory=new_identity)

    async def deposit(self, session: Any, market: Market, escrow: str, amount: int) -> None:
        """A plain ledger transfer into Vault B; the escrow is not involved."""
        ledger = LedgerService(session)
        vault_b = associated_token_address(escrow, market.mint_b)
        await ledger.transfer_checked(
            source=associated_token_address(self.wallet, market.mint_b),
            mint=market.mint_b,
            destination=vault_b,
            authority=self.wallet,
            amount=amount,
            decimals=DECIMALS,
        )
        await session.commit()
        logger.info("🟢 TAKER: Deposited into Vault B", escrow=escrow[:12], amount=amount)


# ---------------------------------------------------------------------------
# Print helpers
# ---------------------------------------------------------------------------
def banner(text: str) -> None:
    """Print a prominent banner."""
    width = 70
    print("\n" + "=" * width)
    print(f"  {text}")
    print("=" * width + "\n")


def section(text: str) -> None:
    """Print a section header."""
    print(f"\n--- {text} ---\n")


async def token_balance(session: Any, owner: str, mint: str) -> int:
    ledger = LedgerService(session)
    try:
        return await ledger.get_balance(associated_token_address(owner, mint))
    except EscrowError:
        return 0


async def print_balances(
    session: Any,
    market: Market,
    initializer: InitializerBot,
    taker: TakerBot,
) -> dict[str, int]:
    """Print and return both parties' balances of both assets."""
    balances = {
        "initializer_a": await token_balance(session, initializer.wallet, market.mint_a),
        "initializer_b": await token_balance(session, initializer.wallet, market.mint_b),
        "taker_a": await token_balance(session, taker.wallet, market.mint_a),
        "taker_b": await token_balance(session, taker.wallet, market.mint_b),
    }
    print("  💰 Balances:")
    print(f"    initializer  A={balances['initializer_a']:>10,}  B={balances['initializer_b']:>10,}")
    print(f"    taker        A={balances['taker_a']:>10,}  B={balances['taker_b']:>10,}")
    return balances


async def print_escrow_accounts(session: Any, escrow: str, market: Market) -> None:
    ledger = LedgerService(session)
    vault_a = associated_token_address(escrow, market.mint_a)
    vault_b = associated_token_address(escrow, market.mint_b)
    alive = {
        "record": await ledger.get_lamports(escrow) > 0,
        "vault A": await ledger.get_lamports(vault_a) > 0,
        "vault B": await ledger.get_lamports(vault_b) > 0,
    }
    state = ", ".join(f"{name}={'open' if is_open else 'closed'}" for name, is_open in alive.items())
    print(f"  🗄️  Escrow accounts: {state}")


async def print_audit_trail(session: Any, escrow: str) -> None:
    """Print the full audit trail for an escrow address."""
    events = await escrow_service(session).get_events(escrow)
    print("\n  📜 Audit Trail:")
    for i, evt in enumerate(events, 1):
        old = evt.old_status or "—"
        print(f"    {i}. [{evt.event_type}] {old} → {evt.new_status} (by {evt.actor[:12]})")
    print()


async def setup_parties() -> tuple[Market, InitializerBot, TakerBot]:
    market = Market()
    initializer = InitializerBot()
    taker = TakerBot()
    session = await get_session()
    async with session:
        await market.open(session)
        await market.fund(session, initializer.wallet, market.mint_a, DEAL_SIZE)
        await market.fund(session, taker.wallet, market.mint_b, DEAL_SIZE)
    return market, initializer, taker


# ===========================================================================
# Scenario 1: Happy Path
# ===========================================================================
async def scenario_1_happy_path() -> None:
    banner("SCENARIO 1: Happy Path — full deposit, exchange settles")
    market, initializer, taker = await setup_parties()

    session = await get_session()
    async with session:
        section("Initializer opens the escrow")
        escrow = await initializer.initialize(
            session, market, taker.wallet, seed=1, deposit=DEAL_SIZE, receive=DEAL_SIZE
        )
        await print_balances(session, market, initializer, taker)

        section("Taker deposits asset B")
        await taker.deposit(session, market, escrow, DEAL_SIZE)

        section("Initializer exchanges")
        await initializer.exchange(session, escrow)
        balances = await print_balances(session, market, initializer, taker)
        await print_escrow_accounts(session, escrow, market)

        print(f"  ✅ Initializer received {balances['initializer_b']:,} B, taker received {balances['taker_a']:,} A")
        await print_audit_trail(session, escrow)


# ===========================================================================
# Scenario 2: Short Deposit
# ===========================================================================
async def scenario_2_short_deposit() -> None:
    banner("SCENARIO 2: Short Deposit — exchange rejected, nothing moves")
    market, initializer, taker = await setup_parties()

    session = await get_session()
    async with session:
        section("Initializer opens the escrow")
        escrow = await initializer.initialize(
            session, market, taker.wallet, seed=2, deposit=DEAL_SIZE, receive=DEAL_SIZE
        )

        section("Taker deposits only 900,000 of asset B")
        await taker.deposit(session, market, escrow, 900_000)
        before = await print_balances(session, market, initializer, taker)

        section("Initializer attempts the exchange")
        result = await initializer.exchange(session, escrow)
        after = await print_balances(session, market, initializer, taker)
        await print_escrow_accounts(session, escrow, market)
        unchanged = before == after
        print(f"  {'✅' if 'error' in result else '❌'} Exchange outcome: {result.get('error', 'SETTLED')}")
        print(f"  {'✅' if unchanged else '❌'} Balances unchanged: {unchanged}")

        section("Initializer cancels; both sides refunded")
        await initializer.cancel(session, escrow)
        await print_balances(session, market, initializer, taker)
        await print_audit_trail(session, escrow)


# ===========================================================================
# Scenario 3: Cancel Without Deposit
# ===========================================================================
async def scenario_3_cancel() -> None:
    banner("SCENARIO 3: Cancel — no deposit, initializer takes asset A back")
    market, initializer, taker = await setup_parties()

    session = await get_session()
    async with session:
        section("Initializer opens the escrow")
        escrow = await initializer.initialize(
            session, market, taker.wallet, seed=3, deposit=DEAL_SIZE, receive=DEAL_SIZE
        )
        await print_balances(session, market, initializer, taker)

        section("Initializer cancels")
        await initializer.cancel(session, escrow)
        balances = await print_balances(session, market, initializer, taker)
        await print_escrow_accounts(session, escrow, market)
        restored = balances["initializer_a"] == DEAL_SIZE
        print(f"  {'✅' if restored else '❌'} Asset A fully restored: {restored}")
        await print_audit_trail(session, escrow)


# ===========================================================================
# Main
# ===========================================================================
SCENARIOS = {
    1: scenario_1_happy_path,
    2: scenario_2_short_deposit,
    3: scenario_3_cancel,
}


def configure(policy: str | None) -> None:
    global _settings
    _settings = get_settings().model_copy(update={"settlement_policy": policy}) if policy else None


async def run_all(use_sqlite: bool = False, policy: str | None = None) -> None:
    """Run all scenarios sequentially."""
    configure(policy)
    await init_database(use_sqlite=use_sqlite)

    try:
        print("\n" + "🚀" * 35)
        print("  SWAP ESCROW — SIMULATION")
        db_type = "SQLite (in-memory)" if use_sqlite else "PostgreSQL"
        print(f"  Database: {db_type}")
        print(f"  Settlement policy: {(_settings or get_settings()).settlement_policy}")
        print("🚀" * 35 + "\n")

        for scenario in SCENARIOS.values():
            await scenario()

        print("\n" + "=" * 70)
        print("  ✅ ALL SCENARIOS COMPLETED SUCCESSFULLY")
        print("=" * 70 + "\n")

    finally:
        await shutdown_database()


async def run_scenario(num: int, use_sqlite: bool = False, policy: str | None = None) -> None:
    """Run a specific scenario."""
    configure(policy)
    await init_database(use_sqlite=use_sqlite)

    try:
        if num not in SCENARIOS:
            print(f"Unknown scenario {num}. Available: 1, 2, 3")
            return
        await SCENARIOS[num]()
    finally:
        await shutdown_database()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Swap Escrow Simulation")
    parser.add_argument(
        "--scenario",
        type=int,
        default=0,
        help="Run a specific scenario (1, 2, or 3). Default: run all.",
    )
    parser.add_argument(
        "--sqlite",
        action="store_true",
        help="Use SQLite in-memory instead of PostgreSQL (no Docker needed).",
    )
    parser.add_argument(
        "--policy",
        choices=["exact", "minimum", "threshold", "available"],
        default=None,
        help="Override the configured settlement policy.",
    )
    args = parser.parse_args()

    if args.scenario == 0:
        asyncio.run(run_all(use_sqlite=args.sqlite, policy=args.policy))
    else:
        asyncio.run(run_scenario(args.scenario, use_sqlite=args.sqlite, policy=args.policy))
