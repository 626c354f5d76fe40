"""Ledger REST API routes.

Funding, mints, holding accounts and plain transfers. A taker deposits
asset B into Vault B with ``POST /transfer``; clients retrying that call
should send an ``Idempotency-Key`` header so a retry never pays twice.

Routes:
    POST   /api/v1/ledger/airdrop              — Credit native lamports
    POST   /api/v1/ledger/mints                — Create a mint
    POST   /api/v1/ledger/accounts             — Create an associated holding account
    POST   /api/v1/ledger/mint-to              — Issue new units
    POST   /api/v1/ledger/transfer             — Plain transfer between holding accounts
    GET    /api/v1/ledger/accounts/{address}   — Holding account view
"""

from __future__ import annotations

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from swap_escrow.api.deps import (
    get_app_settings,
    get_db_session,
    get_ledger_service,
    get_redis_client,
)
from swap_escrow.config import Settings
from swap_escrow.domain.addressing import new_identity
from swap_escrow.infrastructure.redis_client import (
    claim_idempotency_key,
    release_idempotency_key,
)
from swap_escrow.logging_config import get_logger
from swap_escrow.schemas.ledger import (
    AirdropRequest,
    AirdropResponse,
    CreateHoldingAccountRequest,
    CreateMintRequest,
    MintResponse,
    MintToRequest,
    TokenAccountResponse,
    TransferRequest,
    TransferResponse,
)
from swap_escrow.services.ledger_service import LedgerService

router = APIRouter(prefix="/api/v1/ledger", tags=["Ledger"])
logger = get_logger(__name__)


async def _token_account_view(ledger: LedgerService, address: str) -> TokenAccountResponse:
    state = await ledger.get_token_account(address)
    return TokenAccountResponse(
        address=address,
        mint=state.mint,
        owner=state.owner,
        amount=state.amount,
        lamports=await ledger.get_lamports(address),
    )


@router.post("/airdrop", response_model=AirdropResponse, summary="Credit native lamports")
async def airdrop(
    request: AirdropRequest,
    ledger: LedgerService = Depends(get_ledger_service),
) -> AirdropResponse:
    balance = await ledger.airdrop(request.address, request.lamports)
    return AirdropResponse(address=request.address, lamports=balance)


@router.post("/mints", response_model=MintResponse, status_code=201, summary="Create a mint")
async def create_mint(
    request: CreateMintRequest,
    ledger: LedgerService = Depends(get_ledger_service),
) -> MintResponse:
    mint = request.mint or new_identity()
    state = await ledger.create_mint(
        payer=request.payer,
        mint=mint,
        mint_authority=request.mint_authority,
        decimals=request.decimals,
    )
    return MintResponse(
        address=mint,
        mint_authority=state.mint_authority,
        decimals=state.decimals,
        supply=state.supply,
    )


@router.post(
    "/accounts",
    response_model=TokenAccountResponse,
    status_code=201,
    summary="Create an associated holding account",
)
async def create_holding_account(
    request: CreateHoldingAccountRequest,
    ledger: LedgerService = Depends(get_ledger_service),
) -> TokenAccountResponse:
    address = await ledger.create_associated_account(
        payer=request.payer,
        owner=request.owner,
        mint=request.mint,
        idempotent=request.idempotent,
    )
    return await _token_account_view(ledger, address)


@router.post("/mint-to", response_model=TokenAccountResponse, summary="Issue new units")
async def mint_to(
    request: MintToRequest,
    ledger: LedgerService = Depends(get_ledger_service),
) -> TokenAccountResponse:
    await ledger.mint_to(
        mint=request.mint,
        destination=request.destination,
        authority=request.authority,
        amount=request.amount,
    )
    return await _token_account_view(ledger, request.destination)


@router.post("/transfer", response_model=TransferResponse, summary="Plain transfer")
async def transfer(
    request: TransferRequest,
    session: AsyncSession = Depends(get_db_session),
    ledger: LedgerService = Depends(get_ledger_service),
    redis: aioredis.Redis | None = Depends(get_redis_client),
    settings: Settings = Depends(get_app_settings),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
) -> TransferResponse:
    """Move units between holding accounts; the source owner must sign.

    Commits before answering so a claimed idempotency key is only kept for a
    transfer that is durably stored.
    """
    if idempotency_key is not None:
        if redis is None:
            raise HTTPException(status_code=503, detail="Idempotency keys require Redis")
        await claim_idempotency_key(redis, idempotency_key, settings.redis_idempotency_ttl_seconds)

    try:
        await ledger.transfer_checked(
            source=request.source,
            mint=request.mint,
            destination=request.destination,
            authority=request.authority,
            amount=request.amount,
            decimals=request.decimals,
        )
        await session.commit()
    except Exception:
        if idempotency_key is not None:
            await release_idempotency_key(redis, idempotency_key)
        raise

    return TransferResponse(
        source=request.source,
        destination=request.destination,
        amount=request.amount,
        source_balance=await ledger.get_balance(request.source),
        destination_balance=await ledger.get_balance(request.destination),
    )


@router.get(
    "/accounts/{address}",
    response_model=TokenAccountResponse,
    summary="Holding account view",
)
async def get_holding_account(
    address: str,
    ledger: LedgerService = Depends(get_ledger_service),
) -> TokenAccountResponse:
    return await _token_account_view(ledger, address)
