"""Escrow REST API routes.

These endpoints provide the HTTP interface for opening, settling and
cancelling swap escrows. The MCP tools in mcp_server/tools.py call the same
service layer, ensuring consistency.

Routes:
    POST   /api/v1/escrow                      — Initialize a new escrow
    GET    /api/v1/escrow/derive               — Compute escrow + vault addresses
    GET    /api/v1/escrow/{address}            — Get record, vaults and balances
    GET    /api/v1/escrow/{address}/status     — Get lightweight status check
    GET    /api/v1/escrow/{address}/events     — Get audit trail
    POST   /api/v1/escrow/{address}/exchange   — Settle both vaults
    POST   /api/v1/escrow/{address}/cancel     — Refund both vaults
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from swap_escrow.api.deps import get_escrow_service
from swap_escrow.domain.layout import U64_MAX
from swap_escrow.logging_config import get_logger
from swap_escrow.schemas.escrow import (
    CancelRequest,
    DerivedAddressResponse,
    EscrowEventResponse,
    EscrowResponse,
    EscrowStatusResponse,
    ExchangeRequest,
    InitializeEscrowRequest,
    SettlementReceiptResponse,
)
from swap_escrow.services.escrow_service import EscrowService

router = APIRouter(prefix="/api/v1/escrow", tags=["Escrow"])
logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Initialize
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=EscrowResponse,
    status_code=201,
    summary="Initialize a new escrow",
)
async def initialize_escrow(
    request: InitializeEscrowRequest,
    svc: EscrowService = Depends(get_escrow_service),
) -> EscrowResponse:
    """Lock the initializer's deposit in Vault A and open the escrow."""
    view = await svc.initialize(
        initializer=request.initializer,
        seed=request.seed,
        deposit=request.deposit,
        receive=request.receive,
        taker=request.taker,
        mint_a=request.mint_a,
        mint_b=request.mint_b,
        source=request.source,
    )
    return EscrowResponse.model_validate(view)


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------


@router.get(
    "/derive",
    response_model=DerivedAddressResponse,
    summary="Compute the addresses an escrow would occupy",
)
async def derive_escrow(
    initializer: str = Query(..., min_length=64, max_length=64),
    seed: int = Query(..., ge=0, le=U64_MAX),
    mint_a: str | None = Query(default=None, min_length=64, max_length=64),
    mint_b: str | None = Query(default=None, min_length=64, max_length=64),
) -> DerivedAddressResponse:
    """Pure derivation; no state is read."""
    derived = EscrowService.derive_escrow_address(initializer, seed, mint_a, mint_b)
    return DerivedAddressResponse(**derived)


@router.get(
    "/{address}",
    response_model=EscrowResponse,
    summary="Get escrow details",
)
async def get_escrow(
    address: str,
    svc: EscrowService = Depends(get_escrow_service),
) -> EscrowResponse:
    """Retrieve an open escrow with its vault balances."""
    view = await svc.get_escrow(address)
    return EscrowResponse.model_validate(view)


@router.get(
    "/{address}/status",
    response_model=EscrowStatusResponse,
    summary="Lightweight status check",
)
async def get_escrow_status(
    address: str,
    svc: EscrowService = Depends(get_escrow_service),
) -> EscrowStatusResponse:
    """Get the lifecycle status and allowed events; answers for settled escrows too."""
    status = await svc.get_status(address)
    return EscrowStatusResponse(**status)


@router.get(
    "/{address}/events",
    response_model=list[EscrowEventResponse],
    summary="Get audit trail",
)
async def get_escrow_events(
    address: str,
    svc: EscrowService = Depends(get_escrow_service),
) -> list[EscrowEventResponse]:
    """Retrieve the append-only audit trail for an escrow address."""
    events = await svc.get_events(address)
    return [EscrowEventResponse.model_validate(e) for e in events]


# ---------------------------------------------------------------------------
# Settle
# ---------------------------------------------------------------------------


@router.post(
    "/{address}/exchange",
    response_model=SettlementReceiptResponse,
    summary="Exchange: settle both vaults and close the escrow",
)
async def exchange_escrow(
    address: str,
    request: ExchangeRequest,
    svc: EscrowService = Depends(get_escrow_service),
) -> SettlementReceiptResponse:
    """Vault A goes to the taker, Vault B to the initializer."""
    receipt = await svc.exchange(
        escrow_address=address,
        signer=request.signer,
        taker_destination=request.taker_destination,
        initializer_destination=request.initializer_destination,
    )
    return SettlementReceiptResponse.model_validate(receipt.to_dict())


@router.post(
    "/{address}/cancel",
    response_model=SettlementReceiptResponse,
    summary="Cancel: refund both vaults and close the escrow",
)
async def cancel_escrow(
    address: str,
    request: CancelRequest,
    svc: EscrowService = Depends(get_escrow_service),
) -> SettlementReceiptResponse:
    """Vault A goes back to the initializer, a non-empty Vault B to the taker."""
    receipt = await svc.cancel(
        escrow_address=address,
        signer=request.signer,
        initializer_destination=request.initializer_destination,
        taker_destination=request.taker_destination,
    )
    return SettlementReceiptResponse.model_validate(receipt.to_dict())
