"""Pydantic API schemas."""

from swap_escrow.schemas.escrow import (
    CancelRequest,
    DerivedAddressResponse,
    EscrowEventResponse,
    EscrowResponse,
    EscrowStatusResponse,
    ExchangeRequest,
    HealthResponse,
    InitializeEscrowRequest,
    SettlementReceiptResponse,
)
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

__all__ = [
    "AirdropRequest",
    "AirdropResponse",
    "CancelRequest",
    "CreateHoldingAccountRequest",
    "CreateMintRequest",
    "DerivedAddressResponse",
    "EscrowEventResponse",
    "EscrowResponse",
    "EscrowStatusResponse",
    "ExchangeRequest",
    "HealthResponse",
    "InitializeEscrowRequest",
    "MintResponse",
    "MintToRequest",
    "SettlementReceiptResponse",
    "TokenAccountResponse",
    "TransferRequest",
    "TransferResponse",
]
