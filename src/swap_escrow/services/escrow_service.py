"""Escrow Service — the swap escrow state machine.

This is the application layer that coordinates between:
    - Domain state machine (lifecycle guard)
    - Ledger service (vaults, transfers, rent)
    - Event log (audit trail)

Both REST routes and MCP tools call into this service,
ensuring a single source of truth for all business rules.

Each operation runs inside a SAVEPOINT: if any step raises, every ledger
write and audit event of that operation is rolled back and the escrow is
left exactly as it was.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING

from statemachine.exceptions import TransitionNotAllowed

from swap_escrow.config import Settings, get_settings
from swap_escrow.domain.addressing import (
    ProgramSigner,
    associated_token_address,
    decode_address,
    find_escrow_address,
    vault_addresses,
)
from swap_escrow.domain.enums import EscrowStatus, EventType, ExchangeAuthority
from swap_escrow.domain.exceptions import (
    AccountAlreadyInUseError,
    AccountNotFoundError,
    ConstraintViolationError,
    InsufficientFundsError,
    InsufficientTakerTokensError,
    InvalidAmountError,
    InvalidStateTransitionError,
    UnauthorizedError,
)
from swap_escrow.domain.layout import EscrowState, check_u64
from swap_escrow.domain.state_machine import EscrowLifecycle, validate_transition
from swap_escrow.infrastructure.database.repositories import (
    AccountRepository,
    EventRepository,
)
from swap_escrow.logging_config import get_logger
from swap_escrow.services.ledger_service import ESCROW_PROGRAM, LedgerService
from swap_escrow.settlement import SettlementPolicyFactory

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from swap_escrow.domain.settlement_protocol import SettlementPolicy
    from swap_escrow.infrastructure.database.orm_models import EscrowEvent

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EscrowView:
    """An open escrow: its terms, vaults and what they currently hold."""

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

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class SettlementReceipt:
    """What an ``exchange`` or ``cancel`` moved and tore down."""

    escrow: str
    operation: str
    signer: str
    status: str
    asset_a_amount: int
    asset_a_destination: str
    asset_b_amount: int
    asset_b_destination: str | None
    closed_accounts: list[str] = field(default_factory=list)
    rent_reclaimed: int = 0
    rent_receiver: str = ""
    settlement: dict | None = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class _LoadedEscrow:
    address: str
    record: EscrowState
    vault_a: str
    vault_b: str
    vault_a_balance: int
    vault_b_balance: int
    rent_lamports: int


class EscrowService:
    """Manages the swap escrow lifecycle: initialize, exchange, cancel."""

    def __init__(
        self,
        session: AsyncSession,
        settings: Settings | None = None,
        policy: SettlementPolicy | None = None,
    ) -> None:
        self._session = session
        self._settings = settings or get_settings()
        self._ledger = LedgerService(session, self._settings)
        self._accounts = AccountRepository(session)
        self._event_repo = EventRepository(session)
        self._policy = policy or SettlementPolicyFactory.create(
            self._settings.settlement_policy,
            bps=self._settings.settlement_threshold_bps,
        )
        self._exchange_authority = ExchangeAuthority(self._settings.exchange_authority)

    @property
    def ledger(self) -> LedgerService:
        return self._ledger

    # ------------------------------------------------------------------
    # Initialize
    # ------------------------------------------------------------------

    async def initialize(
        self,
        initializer: str,
        seed: int,
        deposit: int,
        receive: int,
        taker: str,
        mint_a: str,
        mint_b: str,
        source: str | None = None,
    ) -> EscrowView:
        """Open an escrow and lock ``deposit`` units of ``mint_a`` in Vault A.

        ``source`` defaults to the initializer's associated account for
        ``mint_a``. The initializer pays rent for the record and both vaults.

        Raises:
            InvalidAmountError: ``deposit`` is zero or an amount is out of u64 range.
            ConstraintViolationError: ``mint_a == mint_b`` or a bad source account.
            InsufficientFundsError: The source holds less than ``deposit``.
            AccountAlreadyInUseError: The escrow address is taken or was used before.
        """
        check_u64(seed, "seed")
        check_u64(deposit, "deposit")
        check_u64(receive, "receive")
        if deposit == 0:
            raise InvalidAmountError("Deposit must be greater than zero")
        for party in (initializer, taker, mint_a, mint_b):
            decode_address(party)
        if mint_a == mint_b:
            raise ConstraintViolationError("Asset A and asset B must be different mints")

        escrow, bump = find_escrow_address(initializer, seed)
        vault_a, vault_b = vault_addresses(escrow, mint_a, mint_b)

        async with self._session.begin_nested():
            if await self._accounts.exists(escrow):
                raise AccountAlreadyInUseError(escrow)
            current = await self._current_status(escrow)
            if current != EscrowStatus.UNINITIALIZED:
                # Settled deals leave an audit trail; their address is never reissued.
                raise AccountAlreadyInUseError(escrow)
            new_status = self._fire_transition(current, "initialize")

            mint_a_state = await self._ledger.get_mint(mint_a)
            await self._ledger.get_mint(mint_b)

            source = source or associated_token_address(initializer, mint_a)
            source_state = await self._ledger.get_token_account(source, role="deposit source")
            if source_state.mint != mint_a or source_state.owner != initializer:
                raise ConstraintViolationError(
                    f"Deposit source {source} must be the initializer's account for mint {mint_a}"
                )
            if source_state.amount < deposit:
                raise InsufficientFundsError(source, deposit, source_state.amount)

            record = EscrowState(
                seed=seed,
                initializer=initializer,
                taker=taker,
                mint_a=mint_a,
                mint_b=mint_b,
                amount=receive,
                bump=bump,
            )
            await self._ledger.create_account(initializer, escrow, ESCROW_PROGRAM, record.pack())

            await self._ledger.create_associated_account(initializer, escrow, mint_a, idempotent=True)
            stale = await self._ledger.get_balance(vault_a)
            if stale != 0:
                raise ConstraintViolationError(
                    f"Vault A {vault_a} already holds {stale} units; it must start empty"
                )
            await self._ledger.create_associated_account(initializer, escrow, mint_b, idempotent=True)

            await self._ledger.transfer_checked(
                source=source,
                mint=mint_a,
                destination=vault_a,
                authority=initializer,
                amount=deposit,
                decimals=mint_a_state.decimals,
            )

            await self._event_repo.record(
                escrow_address=escrow,
                event_type=EventType.ESCROW_INITIALIZED,
                old_status=None,
                new_status=new_status,
                actor=initializer,
                metadata={
                    "seed": str(seed),
                    "taker": taker,
                    "mint_a": mint_a,
                    "mint_b": mint_b,
                    "deposit": str(deposit),
                    "receive": str(receive),
                },
            )

        logger.info(
            "escrow.initialized",
            escrow=escrow,
            initializer=initializer,
            taker=taker,
            deposit=deposit,
            receive=receive,
        )
        return await self.get_escrow(escrow)

    # ------------------------------------------------------------------
    # Exchange
    # ------------------------------------------------------------------

    async def exchange(
        self,
        escrow_address: str,
        signer: str,
        taker_destination: str | None = None,
        initializer_destination: str | None = None,
    ) -> SettlementReceipt:
        """Settle both vaults to their counterparts and close the escrow.

        Vault A's balance goes to ``taker_destination`` (the taker's asset-A
        account), Vault B's full balance to ``initializer_destination`` (the
        initializer's asset-B account). Missing associated destinations are
        created with ``signer`` paying rent. All closed rent goes to the
        initializer.
        """
        decode_address(signer)

        async with self._session.begin_nested():
            loaded = await self._load_escrow(escrow_address, lock=True)
            record = loaded.record
            self._authorize_exchange(record, signer)
            new_status = self._fire_transition(await self._current_status(escrow_address), "exchange")

            check = self._policy.evaluate(record.amount, loaded.vault_b_balance)
            if not check.accepted:
                raise InsufficientTakerTokensError(check.required, check.available, check.policy)

            taker_dest = await self._resolve_destination(
                signer, record.taker, record.mint_a, taker_destination, "taker asset-A destination"
            )
            initializer_dest = await self._resolve_destination(
                signer, record.initializer, record.mint_b, initializer_destination,
                "initializer asset-B destination",
            )

            escrow_signer = ProgramSigner.for_escrow(record.initializer, record.seed, record.bump)
            await self._drain_vault(loaded.vault_a, record.mint_a, taker_dest, escrow_signer, loaded.vault_a_balance)
            await self._drain_vault(
                loaded.vault_b, record.mint_b, initializer_dest, escrow_signer, loaded.vault_b_balance
            )
            reclaimed = await self._close_escrow(loaded, escrow_signer)

            await self._event_repo.record(
                escrow_address=escrow_address,
                event_type=EventType.ESCROW_EXCHANGED,
                old_status=EscrowStatus.OPEN,
                new_status=new_status,
                actor=signer,
                metadata={
                    "asset_a_amount": str(loaded.vault_a_balance),
                    "asset_b_amount": str(loaded.vault_b_balance),
                    "settlement": check.to_dict(),
                },
            )

        logger.info(
            "escrow.exchanged",
            escrow=escrow_address,
            signer=signer,
            asset_a=loaded.vault_a_balance,
            asset_b=loaded.vault_b_balance,
            policy=check.policy,
        )
        return SettlementReceipt(
            escrow=escrow_address,
            operation="exchange",
            signer=signer,
            status=new_status.value,
            asset_a_amount=loaded.vault_a_balance,
            asset_a_destination=taker_dest,
            asset_b_amount=loaded.vault_b_balance,
            asset_b_destination=initializer_dest,
            closed_accounts=[loaded.vault_a, loaded.vault_b, escrow_address],
            rent_reclaimed=reclaimed,
            rent_receiver=record.initializer,
            settlement=check.to_dict(),
        )

    # ------------------------------------------------------------------
    # Cancel
    # ------------------------------------------------------------------

    async def cancel(
        self,
        escrow_address: str,
        signer: str,
        initializer_destination: str | None = None,
        taker_destination: str | None = None,
    ) -> SettlementReceipt:
        """Refund both vaults to their depositors and close the escrow.

        Either party may cancel. Vault A goes back to ``initializer_destination``;
        a non-empty Vault B goes to ``taker_destination``.
        """
        decode_address(signer)

        async with self._session.begin_nested():
            loaded = await self._load_escrow(escrow_address, lock=True)
            record = loaded.record
            if signer not in (record.initializer, record.taker):
                raise UnauthorizedError(signer, "cancel")
            new_status = self._fire_transition(await self._current_status(escrow_address), "cancel")

            initializer_dest = await self._resolve_destination(
                signer, record.initializer, record.mint_a, initializer_destination,
                "initializer asset-A destination",
            )
            taker_dest = None
            if loaded.vault_b_balance > 0:
                taker_dest = await self._resolve_destination(
                    signer, record.taker, record.mint_b, taker_destination, "taker asset-B destination"
                )

            escrow_signer = ProgramSigner.for_escrow(record.initializer, record.seed, record.bump)
            await self._drain_vault(
                loaded.vault_a, record.mint_a, initializer_dest, escrow_signer, loaded.vault_a_balance
            )
            if taker_dest is not None:
                await self._drain_vault(
                    loaded.vault_b, record.mint_b, taker_dest, escrow_signer, loaded.vault_b_balance
                )
            reclaimed = await self._close_escrow(loaded, escrow_signer)

            await self._event_repo.record(
                escrow_address=escrow_address,
                event_type=EventType.ESCROW_CANCELLED,
                old_status=EscrowStatus.OPEN,
                new_status=new_status,
                actor=signer,
                metadata={
                    "asset_a_refund": str(loaded.vault_a_balance),
                    "asset_b_refund": str(loaded.vault_b_balance),
                },
            )

        logger.info(
            "escrow.cancelled",
            escrow=escrow_address,
            signer=signer,
            asset_a_refund=loaded.vault_a_balance,
            asset_b_refund=loaded.vault_b_balance,
        )
        return SettlementReceipt(
            escrow=escrow_address,
            operation="cancel",
            signer=signer,
            status=new_status.value,
            asset_a_amount=loaded.vault_a_balance,
            asset_a_destination=initializer_dest,
            asset_b_amount=loaded.vault_b_balance,
            asset_b_destination=taker_dest,
            closed_accounts=[loaded.vault_a, loaded.vault_b, escrow_address],
            rent_reclaimed=reclaimed,
            rent_receiver=record.initializer,
        )

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    async def get_escrow(self, escrow_address: str) -> EscrowView:
        """Decoded record, vault balances and status of an open escrow."""
        loaded = await self._load_escrow(escrow_address)
        record = loaded.record
        return EscrowView(
            address=escrow_address,
            seed=record.seed,
            initializer=record.initializer,
            taker=record.taker,
            mint_a=record.mint_a,
            mint_b=record.mint_b,
            receive_amount=record.amount,
            bump=record.bump,
            vault_a=loaded.vault_a,
            vault_b=loaded.vault_b,
            vault_a_balance=loaded.vault_a_balance,
            vault_b_balance=loaded.vault_b_balance,
            status=(await self._current_status(escrow_address)).value,
            rent_lamports=loaded.rent_lamports,
        )

    @staticmethod
    def derive_escrow_address(
        initializer: str,
        seed: int,
        mint_a: str | None = None,
        mint_b: str | None = None,
    ) -> dict:
        """Compute the escrow address (and vaults, when mints are given) without touching state."""
        check_u64(seed, "seed")
        escrow, bump = find_escrow_address(initializer, seed)
        derived: dict = {"escrow": escrow, "bump": bump, "vault_a": None, "vault_b": None}
        if mint_a is not None and mint_b is not None:
            derived["vault_a"], derived["vault_b"] = vault_addresses(escrow, mint_a, mint_b)
        return derived

    async def get_status(self, escrow_address: str) -> dict:
        """Lifecycle status with allowed events; also answers for settled escrows."""
        decode_address(escrow_address)
        status = await self._current_status(escrow_address)
        if status == EscrowStatus.UNINITIALIZED and not await self._accounts.exists(escrow_address):
            raise AccountNotFoundError(escrow_address, role="escrow")
        sm = EscrowLifecycle(current_status=status.value)
        return {
            "escrow": escrow_address,
            "status": status.value,
            "is_open": await self._accounts.exists(escrow_address),
            "allowed_events": sm.get_allowed_events(),
        }

    async def get_events(self, escrow_address: str) -> list[EscrowEvent]:
        """Get audit trail."""
        decode_address(escrow_address)
        return await self._event_repo.get_by_escrow(escrow_address)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _current_status(self, escrow_address: str) -> EscrowStatus:
        latest = await self._event_repo.latest_status(escrow_address)
        return EscrowStatus(latest) if latest else EscrowStatus.UNINITIALIZED

    def _fire_transition(self, current: EscrowStatus, event_name: str) -> EscrowStatus:
        """Validate and fire a lifecycle transition, returning the new status.

        Raises InvalidStateTransitionError if the transition is illegal.
        """
        try:
            return EscrowStatus(validate_transition(current.value, event_name))
        except (TransitionNotAllowed, ValueError) as err:
            raise InvalidStateTransitionError(current.value, event_name) from err

    def _authorize_exchange(self, record: EscrowState, signer: str) -> None:
        if self._exchange_authority == ExchangeAuthority.PERMISSIONLESS:
            return
        allowed = {record.initializer}
        if self._exchange_authority == ExchangeAuthority.PARTIES:
            allowed.add(record.taker)
        if signer not in allowed:
            raise UnauthorizedError(signer, "exchange")

    async def _load_escrow(self, escrow_address: str, lock: bool = False) -> _LoadedEscrow:
        """Read and cross-check the record and both vaults.

        With ``lock=True`` the record row is locked first, then the vault rows,
        so settlements of one escrow run one at a time and see every deposit
        committed before them.
        """
        decode_address(escrow_address)
        if lock:
            account = await self._accounts.get_for_update(escrow_address)
        else:
            account = await self._accounts.get(escrow_address)
        if account is None:
            raise AccountNotFoundError(escrow_address, role="escrow")
        if account.program_owner != ESCROW_PROGRAM:
            raise ConstraintViolationError(f"Account {escrow_address} is not an escrow record")
        record = EscrowState.unpack(account.data)

        expected = ProgramSigner.for_escrow(record.initializer, record.seed, record.bump).address
        if expected != escrow_address:
            raise ConstraintViolationError(
                f"Escrow record {escrow_address} does not match its stored seeds"
            )

        vault_a, vault_b = vault_addresses(escrow_address, record.mint_a, record.mint_b)
        if lock:
            await self._accounts.lock(vault_a, vault_b)
        vault_a_state = await self._ledger.get_token_account(vault_a, role="vault A")
        vault_b_state = await self._ledger.get_token_account(vault_b, role="vault B")
        for vault, state, mint in (
            (vault_a, vault_a_state, record.mint_a),
            (vault_b, vault_b_state, record.mint_b),
        ):
            if state.owner != escrow_address or state.mint != mint:
                raise ConstraintViolationError(f"Vault {vault} is not owned by escrow {escrow_address}")

        return _LoadedEscrow(
            address=escrow_address,
            record=record,
            vault_a=vault_a,
            vault_b=vault_b,
            vault_a_balance=vault_a_state.amount,
            vault_b_balance=vault_b_state.amount,
            rent_lamports=account.lamports,
        )

    async def _resolve_destination(
        self,
        payer: str,
        owner: str,
        mint: str,
        explicit: str | None,
        role: str,
    ) -> str:
        """Return a holding account of ``owner`` for ``mint``, creating the associated one if needed."""
        if explicit is None:
            return await self._ledger.create_associated_account(payer, owner, mint, idempotent=True)
        state = await self._ledger.get_token_account(explicit, role=role)
        if state.owner != owner or state.mint != mint:
            raise ConstraintViolationError(
                f"The {role} {explicit} must hold mint {mint} and be owned by {owner}"
            )
        return explicit

    async def _drain_vault(
        self,
        vault: str,
        mint: str,
        destination: str,
        escrow_signer: ProgramSigner,
        amount: int,
    ) -> None:
        if amount == 0:
            return
        mint_state = await self._ledger.get_mint(mint)
        await self._ledger.transfer_checked(
            source=vault,
            mint=mint,
            destination=destination,
            authority=escrow_signer,
            amount=amount,
            decimals=mint_state.decimals,
        )

    async def _close_escrow(self, loaded: _LoadedEscrow, escrow_signer: ProgramSigner) -> int:
        """Close both vaults and the record; all rent goes to the initializer."""
        receiver = loaded.record.initializer
        reclaimed = await self._ledger.close_account(loaded.vault_a, receiver, escrow_signer)
        reclaimed += await self._ledger.close_account(loaded.vault_b, receiver, escrow_signer)
        reclaimed += await self._ledger.close_program_account(loaded.address, ESCROW_PROGRAM, receiver)
        return reclaimed
