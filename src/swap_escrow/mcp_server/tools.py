"""MCP Tool definitions for the Swap Escrow.

These tools expose the escrow lifecycle via the Model Context Protocol,
allowing agents to discover and call them programmatically.

Tools:
    - derive_escrow_address: Compute where an escrow and its vaults would live
    - initialize_escrow: Lock asset A and open an escrow
    - exchange_escrow: Settle both vaults and close the escrow
    - cancel_escrow: Refund both vaults and close the escrow
    - check_escrow: Current status, terms and vault balances

The MCP server is mounted into FastAPI at /mcp via app.mount().
Each tool manages its own database session (no FastAPI Depends available).
Domain errors are returned as ``{"error": code, "message": ...}`` dicts.
"""

from __future__ import annotations

from mcp.server.fastmcp import FastMCP

from swap_escrow.domain.exceptions import EscrowError
from swap_escrow.infrastructure.database.engine import _get_session_factory
from swap_escrow.logging_config import get_logger
from swap_escrow.services.escrow_service import EscrowService

logger = get_logger(__name__)

# Mounted into the FastAPI app in main.py
mcp = FastMCP(
    "Swap Escrow",
    json_response=True,
)


async def _get_session():
    """Create a database session for MCP tool context (not in FastAPI request)."""
    factory = _get_session_factory()
    return factory()


def _domain_error(tool: str, exc: EscrowError) -> dict:
    logger.warning(f"mcp.{tool}.rejected", code=exc.code, error=exc.message)
    return {"error": exc.code, "message": exc.message}


@mcp.tool()
async def derive_escrow_address(
    initializer: str,
    seed: int,
    mint_a: str | None = None,
    mint_b: str | None = None,
) -> dict:
    """Compute the escrow address for (initializer, seed) without touching state.

    Args:
        initializer: Hex address of the party who will open the escrow.
        seed: u64 chosen by the initializer to make the address unique.
        mint_a: Optional asset A mint; with mint_b, vault addresses are included.
        mint_b: Optional asset B mint.

    Returns:
        The escrow address, its bump seed and (optionally) both vault addresses.
    """
    try:
        return EscrowService.derive_escrow_address(initializer, seed, mint_a, mint_b)
    except EscrowError as exc:
        return _domain_error("derive_escrow_address", exc)


@mcp.tool()
async def initialize_escrow(
    initializer: str,
    seed: int,
    deposit: int,
    receive: int,
    taker: str,
    mint_a: str,
    mint_b: str,
) -> dict:
    """Lock ``deposit`` units of asset A and ask ``taker`` for ``receive`` units of asset B.

    Args:
        initializer: Your hex address; you pay rent and your asset-A account is debited.
        seed: u64 that makes this escrow's address unique among yours.
        deposit: Units of asset A to lock in Vault A (must be > 0).
        receive: Units of asset B you want in return.
        taker: Hex address of the counterparty.
        mint_a: Mint of the asset you deposit.
        mint_b: Mint of the asset you want.

    Returns:
        Escrow details including the escrow address and Vault B, where the
        taker must deposit asset B before an exchange.
    """
    session = await _get_session()
    try:
        async with session:
            svc = EscrowService(session)
            view = await svc.initialize(
                initializer=initializer,
                seed=seed,
                deposit=deposit,
                receive=receive,
                taker=taker,
                mint_a=mint_a,
                mint_b=mint_b,
            )
            await session.commit()
            return {
                **view.to_dict(),
                "next_step": f"Taker deposits {receive} units of asset B into vault {view.vault_b}",
            }
    except EscrowError as exc:
        return _domain_error("initialize_escrow", exc)
    except Exception as exc:
        logger.exception("mcp.initialize_escrow.error")
        return {"error": str(exc)}


@mcp.tool()
async def exchange_escrow(escrow: str, signer: str) -> dict:
    """Settle an escrow: Vault A to the taker, Vault B to the initializer.

    Args:
        escrow: Hex address of the escrow record.
        signer: Your hex address (the initializer, unless configured otherwise).

    Returns:
        A receipt with the amounts moved and the accounts closed.
    """
    session = await _get_session()
    try:
        async with session:
            svc = EscrowService(session)
            receipt = await svc.exchange(escrow_address=escrow, signer=signer)
            await session.commit()
            return receipt.to_dict()
    except EscrowError as exc:
        return _domain_error("exchange_escrow", exc)
    except Exception as exc:
        logger.exception("mcp.exchange_escrow.error")
        return {"error": str(exc)}


@mcp.tool()
async def cancel_escrow(escrow: str, signer: str) -> dict:
    """Cancel an escrow and refund both vaults to their depositors.

    Args:
        escrow: Hex address of the escrow record.
        signer: Your hex address; must be the initializer or the taker.

    Returns:
        A receipt with the amounts refunded and the accounts closed.
    """
    session = await _get_session()
    try:
        async with session:
            svc = EscrowService(session)
            receipt = await svc.cancel(escrow_address=escrow, signer=signer)
            await session.commit()
            return receipt.to_dict()
    except EscrowError as exc:
        return _domain_error("cancel_escrow", exc)
    except Exception as exc:
        logger.exception("mcp.cancel_escrow.error")
        return {"error": str(exc)}


@mcp.tool()
async def check_escrow(escrow: str) -> dict:
    """Check the lifecycle status of an escrow, with terms and balances while it is open.

    Args:
        escrow: Hex address of the escrow record.

    Returns:
        Status, allowed next actions and, for open escrows, vault balances.
    """
    session = await _get_session()
    try:
        async with session:
            svc = EscrowService(session)
            status = await svc.get_status(escrow)
            if status["is_open"]:
                status["escrow_details"] = (await svc.get_escrow(escrow)).to_dict()
            return status
    except EscrowError as exc:
        return _domain_error("check_escrow", exc)
    except Exception as exc:
        logger.exception("mcp.check_escrow.error")
        return {"error": str(exc)}
