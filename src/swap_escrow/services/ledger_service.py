"""Ledger Service — the value transfer primitive the escrow is built on.

Implements a fungible-token ledger over the ``accounts`` table:

    - native lamports (rent deposits, airdrops)
    - mints and holding accounts (fixed layouts from domain/layout.py)
    - transfer_checked / close_account with strict mint, decimals, balance
      and ownership checks

Authority over a holding account is either its owner identity (a signer the
transport already authenticated) or a ProgramSigner whose seeds re-derive
the owner address; the latter is how the escrow moves funds out of vaults.

The service never commits or opens transactions: callers wrap a group of
ledger calls in ``session.begin_nested()`` when they must be all-or-nothing.
Every row whose balance changes is read with a row lock (see
AccountRepository.get_for_update), so concurrent operations on the same
accounts serialize instead of overwriting each other.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError

from swap_escrow.config import Settings, get_settings
from swap_escrow.domain.addressing import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    ESCROW_PROGRAM_ID,
    SYSTEM_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    Authority,
    associated_token_address,
    authority_address,
    decode_address,
    encode_address,
)
from swap_escrow.domain.exceptions import (
    AccountAlreadyInUseError,
    AccountNotFoundError,
    ArithmeticOverflowError,
    ConstraintViolationError,
    InsufficientFundsError,
    InvalidAmountError,
    NonZeroBalanceError,
    OwnerMismatchError,
)
from swap_escrow.domain.layout import U64_MAX, MintState, TokenAccountState, check_u64
from swap_escrow.infrastructure.database.repositories import AccountRepository
from swap_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from swap_escrow.infrastructure.database.orm_models import Account

logger = get_logger(__name__)

SYSTEM_PROGRAM = encode_address(SYSTEM_PROGRAM_ID)
TOKEN_PROGRAM = encode_address(TOKEN_PROGRAM_ID)
ASSOCIATED_TOKEN_PROGRAM = encode_address(ASSOCIATED_TOKEN_PROGRAM_ID)
ESCROW_PROGRAM = encode_address(ESCROW_PROGRAM_ID)

ACCOUNT_STORAGE_OVERHEAD = 128
MAX_DECIMALS = 18


class LedgerService:
    """Mint, transfer and close-account operations with rent accounting."""

    def __init__(self, session: AsyncSession, settings: Settings | None = None) -> None:
        self._session = session
        self._settings = settings or get_settings()
        self._accounts = AccountRepository(session)

    # ------------------------------------------------------------------
    # Rent
    # ------------------------------------------------------------------

    def minimum_balance(self, data_len: int) -> int:
        """Lamports an account of ``data_len`` bytes must deposit to exist."""
        per_year = (ACCOUNT_STORAGE_OVERHEAD + data_len) * self._settings.rent_lamports_per_byte_year
        return int(per_year * self._settings.rent_exemption_threshold)

    # ------------------------------------------------------------------
    # Native lamports
    # ------------------------------------------------------------------

    async def airdrop(self, address: str, lamports: int) -> int:
        """Credit ``lamports`` to a wallet, creating it if needed. Returns the new balance."""
        if lamports <= 0:
            raise InvalidAmountError(f"Airdrop must be positive, got {lamports}")
        account = await self._credit_lamports(address, lamports)
        logger.info("ledger.airdrop", address=address, lamports=lamports)
        return account.lamports

    async def get_lamports(self, address: str) -> int:
        """Native balance of ``address``; 0 for an address that holds nothing."""
        decode_address(address)
        account = await self._accounts.get(address)
        return account.lamports if account is not None else 0

    async def get_account_info(self, address: str) -> Account:
        account = await self._accounts.get(address)
        if account is None:
            raise AccountNotFoundError(address)
        return account

    async def create_account(
        self,
        payer: str,
        address: str,
        program_owner: str,
        data: bytes,
    ) -> Account:
        """Allocate ``address`` for ``program_owner``, funded by ``payer``'s rent deposit."""
        decode_address(address)
        if await self._accounts.exists(address):
            raise AccountAlreadyInUseError(address)
        rent = self.minimum_balance(len(data))
        await self._debit_lamports(payer, rent)
        try:
            account = await self._accounts.create(
                address=address,
                program_owner=program_owner,
                lamports=rent,
                data=data,
            )
        except IntegrityError as err:
            # Another transaction created the same address after our existence check.
            raise AccountAlreadyInUseError(address) from err
        logger.debug(
            "ledger.account_created",
            address=address,
            program_owner=program_owner,
            payer=payer,
            rent=rent,
        )
        return account

    async def close_program_account(
        self,
        address: str,
        program_owner: str,
        destination: str,
    ) -> int:
        """Delete a program-owned account and refund its lamports. Returns lamports moved."""
        account = await self._accounts.get_for_update(address)
        if account is None:
            raise AccountNotFoundError(address)
        if account.program_owner != program_owner:
            raise ConstraintViolationError(
                f"Account {address} is not owned by program {program_owner}"
            )
        reclaimed = account.lamports
        await self._accounts.delete(account)
        await self._credit_lamports(destination, reclaimed)
        logger.debug("ledger.account_closed", address=address, destination=destination, lamports=reclaimed)
        return reclaimed

    async def _debit_lamports(self, payer: str, lamports: int) -> None:
        account = await self._accounts.get_for_update(payer)
        available = account.lamports if account is not None else 0
        if account is None or available < lamports:
            raise InsufficientFundsError(payer, lamports, available)
        if account.program_owner != SYSTEM_PROGRAM:
            raise ConstraintViolationError(f"Payer {payer} is not a wallet account")
        account.lamports = available - lamports
        await self._accounts.save(account)

    async def _credit_lamports(self, address: str, lamports: int) -> Account:
        decode_address(address)
        account = await self._accounts.get_for_update(address)
        if account is None:
            return await self._accounts.create(
                address=address,
                program_owner=SYSTEM_PROGRAM,
                lamports=lamports,
            )
        account.lamports += lamports
        return await self._accounts.save(account)

    # ------------------------------------------------------------------
    # Mints
    # ------------------------------------------------------------------

    async def create_mint(
        self,
        payer: str,
        mint: str,
        mint_authority: str,
        decimals: int,
    ) -> MintState:
        """Create a new asset type at ``mint``."""
        if not 0 <= decimals <= MAX_DECIMALS:
            raise InvalidAmountError(f"Decimals must be between 0 and {MAX_DECIMALS}, got {decimals}")
        decode_address(mint_authority)
        state = MintState(mint_authority=mint_authority, decimals=decimals)
        await self.create_account(payer, mint, TOKEN_PROGRAM, state.pack())
        logger.info("ledger.mint_created", mint=mint, decimals=decimals, authority=mint_authority)
        return state

    async def get_mint(self, mint: str) -> MintState:
        account = await self._accounts.get(mint)
        if account is None:
            raise AccountNotFoundError(mint, role="mint")
        if account.program_owner != TOKEN_PROGRAM or len(account.data) != MintState.size():
            raise ConstraintViolationError(f"Account {mint} is not a mint")
        return MintState.unpack(account.data)

    async def mint_to(
        self,
        mint: str,
        destination: str,
        authority: Authority,
        amount: int,
    ) -> int:
        """Issue ``amount`` new units into ``destination``. Returns its new balance."""
        check_u64(amount, "amount")
        mint_account = await self._accounts.get_for_update(mint)
        mint_state = await self.get_mint(mint)
        if mint_state.mint_authority is None or authority_address(authority) != mint_state.mint_authority:
            raise OwnerMismatchError(mint)

        dest_account, dest_state = await self._load_token(destination, "destination account", lock=True)
        if dest_state.mint != mint:
            raise ConstraintViolationError(f"Account {destination} does not hold mint {mint}")

        new_supply = mint_state.supply + amount
        new_balance = dest_state.amount + amount
        if new_supply > U64_MAX or new_balance > U64_MAX:
            raise ArithmeticOverflowError(destination)

        mint_account.data = mint_state.with_supply(new_supply).pack()
        dest_account.data = dest_state.with_amount(new_balance).pack()
        await self._accounts.save(dest_account)
        logger.info("ledger.mint_to", mint=mint, destination=destination, amount=amount)
        return new_balance

    # ------------------------------------------------------------------
    # Holding accounts
    # ------------------------------------------------------------------

    async def create_token_account(
        self,
        payer: str,
        address: str,
        owner: str,
        mint: str,
    ) -> TokenAccountState:
        """Create an empty holding account for ``owner`` at an arbitrary address."""
        decode_address(owner)
        await self.get_mint(mint)
        state = TokenAccountState(mint=mint, owner=owner)
        await self.create_account(payer, address, TOKEN_PROGRAM, state.pack())
        return state

    async def create_associated_account(
        self,
        payer: str,
        owner: str,
        mint: str,
        idempotent: bool = False,
    ) -> str:
        """Create the canonical holding account of ``owner`` for ``mint``.

        With ``idempotent=True`` an existing, matching account is returned as-is.
        """
        address = associated_token_address(owner, mint)
        existing = await self._accounts.get(address)
        if existing is not None:
            if not idempotent:
                raise AccountAlreadyInUseError(address)
            state = self._unpack_token(existing, "associated account")
            if state.owner != owner or state.mint != mint:
                raise ConstraintViolationError(
                    f"Account {address} exists but is not {owner}'s account for {mint}"
                )
            return address
        await self.create_token_account(payer, address, owner, mint)
        logger.debug("ledger.associated_account_created", address=address, owner=owner, mint=mint)
        return address

    async def get_token_account(self, address: str, role: str = "token account") -> TokenAccountState:
        _, state = await self._load_token(address, role)
        return state

    async def get_balance(self, address: str) -> int:
        return (await self.get_token_account(address)).amount

    async def transfer_checked(
        self,
        source: str,
        mint: str,
        destination: str,
        authority: Authority,
        amount: int,
        decimals: int,
    ) -> None:
        """Move ``amount`` units of ``mint`` from ``source`` to ``destination``.

        Raises:
            ConstraintViolationError: Mint or decimals mismatch.
            OwnerMismatchError: ``authority`` does not own ``source``.
            InsufficientFundsError: ``source`` holds less than ``amount``.
            ArithmeticOverflowError: ``destination`` would exceed u64.
        """
        check_u64(amount, "amount")
        await self._accounts.lock(source, destination)
        mint_state = await self.get_mint(mint)
        if decimals != mint_state.decimals:
            raise ConstraintViolationError(
                f"Decimals mismatch for mint {mint}: expected {mint_state.decimals}, got {decimals}"
            )

        src_account, src_state = await self._load_token(source, "source account")
        if src_state.mint != mint:
            raise ConstraintViolationError(f"Source account {source} does not hold mint {mint}")
        if authority_address(authority) != src_state.owner:
            raise OwnerMismatchError(source)
        if src_state.amount < amount:
            raise InsufficientFundsError(source, amount, src_state.amount)

        if destination == source:
            return

        dst_account, dst_state = await self._load_token(destination, "destination account")
        if dst_state.mint != mint:
            raise ConstraintViolationError(f"Destination account {destination} does not hold mint {mint}")
        if dst_state.amount + amount > U64_MAX:
            raise ArithmeticOverflowError(destination)

        src_account.data = src_state.with_amount(src_state.amount - amount).pack()
        dst_account.data = dst_state.with_amount(dst_state.amount + amount).pack()
        await self._accounts.save(dst_account)
        logger.info(
            "ledger.transfer",
            mint=mint,
            source=source,
            destination=destination,
            amount=amount,
        )

    async def close_account(
        self,
        account: str,
        destination: str,
        authority: Authority,
    ) -> int:
        """Close an empty holding account, refunding its rent to ``destination``.

        Returns the lamports reclaimed.
        """
        _, state = await self._load_token(account, "account to close", lock=True)
        if authority_address(authority) != state.owner:
            raise OwnerMismatchError(account)
        if state.amount != 0:
            raise NonZeroBalanceError(account, state.amount)
        reclaimed = await self.close_program_account(account, TOKEN_PROGRAM, destination)
        logger.info("ledger.close", account=account, destination=destination, lamports=reclaimed)
        return reclaimed

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _load_token(
        self, address: str, role: str, lock: bool = False
    ) -> tuple[Account, TokenAccountState]:
        decode_address(address)
        if lock:
            account = await self._accounts.get_for_update(address)
        else:
            account = await self._accounts.get(address)
        if account is None:
            raise AccountNotFoundError(address, role=role)
        return account, self._unpack_token(account, role)

    @staticmethod
    def _unpack_token(account: Account, role: str) -> TokenAccountState:
        if account.program_owner != TOKEN_PROGRAM or len(account.data) != TokenAccountState.size():
            raise ConstraintViolationError(f"{role.capitalize()} {account.address} is not a holding account")
        state = TokenAccountState.unpack(account.data)
        if not state.is_initialized:
            raise ConstraintViolationError(f"{role.capitalize()} {account.address} is not initialized")
        return state
