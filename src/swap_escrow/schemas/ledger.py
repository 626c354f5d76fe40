"""Pydantic schemas for the Ledger API (funding, mints, holding accounts, transfers)."""

from __future__ import annotations

from pydantic import BaseModel, Field

from swap_escrow.schemas.escrow import U64, Address


class AirdropRequest(BaseModel):
    address: Address
    lamports: int = Field(..., gt=0, le=2**63 - 1, description="Native units to credit")


class AirdropResponse(BaseModel):
    address: str
    lamports: int


class CreateMintRequest(BaseModel):
    """Create an asset type. A fresh mint address is generated unless one is given."""

    payer: Address
    mint_authority: Address
    decimals: int = Field(default=6, ge=0, le=18)
    mint: Address | None = None


class MintResponse(BaseModel):
    address: str
    mint_authority: str | None
    decimals: int
    supply: int


class CreateHoldingAccountRequest(BaseModel):
    """Create the associated holding account of ``owner`` for ``mint``."""

    payer: Address
    owner: Address
    mint: Address
    idempotent: bool = False


class MintToRequest(BaseModel):
    mint: Address
    destination: Address
    authority: Address
    amount: U64


class TransferRequest(BaseModel):
    """Plain transfer between holding accounts; the taker's Vault B deposit goes through here."""

    source: Address
    mint: Address
    destination: Address
    authority: Address = Field(..., description="Owner of the source account")
    amount: U64
    decimals: int = Field(..., ge=0, le=18)


class TransferResponse(BaseModel):
    source: str
    destination: str
    amount: int
    source_balance: int
    destination_balance: int


class TokenAccountResponse(BaseModel):
    """A holding account: which mint, who controls it, how much it holds."""

    address: str
    mint: str
    owner: str
    amount: int
    lamports: int
