"""Pydantic schemas for the Escrow API.

These schemas define the request/response shapes for the REST API and
MCP tools. They are separate from the service result objects to maintain
clean boundaries between the API and the application layer.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

from swap_escrow.domain.layout import U64_MAX

Address = Annotated[
    str,
    Field(
        min_length=64,
        max_length=64,
        pattern=r"^[0-9a-f]{64}$",
        description="32-byte address, lowercase hex",
        examples=["3b6a27bcceb6a42d62a3a8d02a6f0d73653215771de243a63ac048a18b59da29"],
    ),
]

U64 = Annotated[int, Field(ge=0, le=U64_MAX)]

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class InitializeEscrowRequest(BaseModel):
    """Request body for opening a new escrow."""

    initializer: Address
    seed: U64 = Field(..., description="Caller-chosen u64 that makes the escrow address unique")
    deposit: U64 = Field(..., description="Units of asset A locked in Vault A", examples=[1_000_000])
    receive: U64 = Field(..., description="Units of asset B requested from the taker", examples=[1_000_000])
    taker: Address
    mint_a: Address
    mint_b: Address
    source: Address | None = Field(
        default=None,
        description="Holding account to debit; defaults to the initializer's associated account",
    )


class ExchangeRequest(BaseModel):
    """Request body for settling an escrow."""

    signer: Address
    taker_destination: Address | None = Field(
        default=None,
        description="Taker's asset-A account; defaults to (and creates) its associated account",
    )
    initializer_destination: Address | None = Field(
        default=None,
        description="Initializer's asset-B account; defaults to (and creates) its associated account",
    )


class CancelRequest(BaseModel):
    """Request body for cancelling an escrow."""

    signer: Address
    initializer_destination: Address | None = Field(
        default=None,
        description="Initializer's asset-A refund account",
    )
    taker_destination: Address | None = Field(
        default=None,
        description="Taker's asset-B refund account (used only if Vault B is non-empty)",
    )


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class EscrowResponse(BaseModel):
    """Response schema for an open escrow."""

    model_config = ConfigDict(from_attributes=True)

    address: str
    seed: int
    initializer: str
    taker: str
    mint_a: str
    mint_b: str
    receive_amount: int
    bump: int
    vault_a: str
    vault_b: str
    vault_a_balance: int
    vault_b_balance: int
    status: str
    rent_lamports: int


class SettlementCheckResponse(BaseModel):
    accepted: bool
    required: int
    available: int
    policy: str


class SettlementReceiptResponse(BaseModel):
    """Response schema for exchange and cancel."""

    model_config = ConfigDict(from_attributes=True)

    escrow: str
    operation: str
    signer: str
    status: str
    asset_a_amount: int
    asset_a_destination: str
    asset_b_amount: int
    asset_b_destination: str | None
    closed_accounts: list[str]
    rent_reclaimed: int
    rent_receiver: str
    settlement: SettlementCheckResponse | None = None


class EscrowEventResponse(BaseModel):
    """Response schema for an audit event."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: int
    escrow_address: str
    event_type: str
    old_status: str | None
    new_status: str
    actor: str
    metadata: dict | None = Field(default=None, alias="metadata_json")
    created_at: datetime


class EscrowStatusResponse(BaseModel):
    """Lightweight status check response."""

    escrow: str
    status: str
    is_open: bool
    allowed_events: list[str] = Field(
        description="Lifecycle events that can fire from the current status"
    )


class DerivedAddressResponse(BaseModel):
    """Addresses an escrow would occupy, computed without touching state."""

    escrow: str
    bump: int
    vault_a: str | None = None
    vault_b: str | None = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = "0.1.0"
    database: str = "unknown"
    redis: str = "unknown"
