"""Tests for the MCP tools.

Each tool opens its own session from the engine's session factory, which is
pointed at the in-memory test database. Setup written through the test
session is committed first so the tools' sessions see it.
"""

from __future__ import annotations

from unittest.mock import patch

import pytest

from swap_escrow.domain.addressing import find_escrow_address, new_identity
from swap_escrow.mcp_server import tools

DEAL = 1_000_000


@pytest.fixture
def tool_sessions(session_factory):
    with patch("swap_escrow.mcp_server.tools._get_session_factory", return_value=session_factory):
        yield


async def _open(parties, seed: int = 1, deposit: int = DEAL) -> dict:
    return await tools.initialize_escrow(
        initializer=parties.initializer,
        seed=seed,
        deposit=deposit,
        receive=DEAL,
        taker=parties.taker,
        mint_a=parties.mint_a,
        mint_b=parties.mint_b,
    )


class TestLifecycleTools:
    @pytest.mark.asyncio
    async def test_initialize_check_exchange(self, session, ledger, parties, tool_sessions) -> None:
        await session.commit()

        opened = await _open(parties)
        assert opened["vault_a_balance"] == DEAL
        assert opened["vault_b"] in opened["next_step"]

        await parties.deposit_b(ledger, opened["address"], DEAL)
        await session.commit()

        check = await tools.check_escrow(opened["address"])
        assert check["status"] == "OPEN"
        assert check["escrow_details"]["vault_b_balance"] == DEAL

        receipt = await tools.exchange_escrow(opened["address"], parties.initializer)
        assert receipt["status"] == "EXCHANGED"
        assert receipt["asset_b_amount"] == DEAL

        assert await parties.balance(ledger, parties.taker_a) == DEAL
        assert await parties.balance(ledger, parties.initializer_b) == DEAL

        check = await tools.check_escrow(opened["address"])
        assert check["status"] == "EXCHANGED"
        assert "escrow_details" not in check

    @pytest.mark.asyncio
    async def test_cancel(self, session, ledger, parties, tool_sessions) -> None:
        await session.commit()
        opened = await _open(parties)

        receipt = await tools.cancel_escrow(opened["address"], parties.taker)
        assert receipt["status"] == "CANCELLED"
        assert await parties.balance(ledger, parties.initializer_a) == DEAL


class TestErrorContract:
    @pytest.mark.asyncio
    async def test_unauthorized_exchange(self, session, ledger, parties, tool_sessions) -> None:
        await session.commit()
        opened = await _open(parties)

        result = await tools.exchange_escrow(opened["address"], parties.taker)
        assert result["error"] == "UNAUTHORIZED"
        assert "message" in result

        check = await tools.check_escrow(opened["address"])
        assert check["status"] == "OPEN"

    @pytest.mark.asyncio
    async def test_zero_deposit(self, session, parties, tool_sessions) -> None:
        await session.commit()
        result = await _open(parties, deposit=0)
        assert result["error"] == "INVALID_AMOUNT"

    @pytest.mark.asyncio
    async def test_unknown_escrow(self, tool_sessions) -> None:
        result = await tools.check_escrow(new_identity())
        assert result["error"] == "ACCOUNT_NOT_FOUND"


class TestDeriveTool:
    @pytest.mark.asyncio
    async def test_matches_domain_derivation(self) -> None:
        initializer = new_identity()
        derived = await tools.derive_escrow_address(initializer, 42)
        assert (derived["escrow"], derived["bump"]) == find_escrow_address(initializer, 42)
        assert derived["vault_a"] is None

    @pytest.mark.asyncio
    async def test_seed_out_of_range(self) -> None:
        result = await tools.derive_escrow_address(new_identity(), -1)
        assert result["error"] == "INVALID_AMOUNT"
