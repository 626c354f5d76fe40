"""Application services — use case orchestration."""

from swap_escrow.services.escrow_service import EscrowService, EscrowView, SettlementReceipt
from swap_escrow.services.ledger_service import LedgerService

__all__ = ["EscrowService", "EscrowView", "LedgerService", "SettlementReceipt"]
