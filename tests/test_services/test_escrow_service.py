"""Tests for the EscrowService: initialize, exchange, cancel.

Covers the three concrete deals:
    1. 1,000,000 A for 1,000,000 B, fully funded -> exchange settles.
    2. Same deal, 900,000 B deposited -> exchange rejected, nothing moves.
    3. No deposit -> cancel restores the initializer's asset A.
plus every rejection path and the all-or-nothing guarantee.
"""

from __future__ import annotations

import pytest

from swap_escrow.domain.addressing import (
    associated_token_address,
    find_escrow_address,
    new_identity,
    vault_addresses,
)
from swap_escrow.domain.enums import EscrowStatus
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
from swap_escrow.domain.layout import U64_MAX, EscrowState, TokenAccountState
from swap_escrow.services.escrow_service import EscrowService
from swap_escrow.settlement import ExactPolicy

DEAL = 1_000_000


async def _open(svc: EscrowService, parties, seed: int = 1, deposit: int = DEAL, receive: int = DEAL):
    return await svc.initialize(
        initializer=parties.initializer,
        seed=seed,
        deposit=deposit,
        receive=receive,
        taker=parties.taker,
        mint_a=parties.mint_a,
        mint_b=parties.mint_b,
    )


async def _escrow_accounts_closed(ledger, view) -> bool:
    for address in (view.address, view.vault_a, view.vault_b):
        if await ledger.get_lamports(address) != 0:
            return False
    return True


# ---------------------------------------------------------------------------
# Initialize
# ---------------------------------------------------------------------------


class TestInitialize:
    @pytest.mark.asyncio
    async def test_locks_deposit_in_vault_a(self, escrow_service, ledger, parties) -> None:
        view = await _open(escrow_service, parties)

        expected, bump = find_escrow_address(parties.initializer, 1)
        assert view.address == expected
        assert view.bump == bump
        assert (view.vault_a, view.vault_b) == vault_addresses(expected, parties.mint_a, parties.mint_b)
        assert view.vault_a_balance == DEAL
        assert view.vault_b_balance == 0
        assert view.receive_amount == DEAL
        assert view.status == "OPEN"
        assert await ledger.get_balance(parties.initializer_a) == 0

    @pytest.mark.asyncio
    async def test_vaults_owned_by_escrow(self, escrow_service, ledger, parties) -> None:
        view = await _open(escrow_service, parties)
        vault_a = await ledger.get_token_account(view.vault_a)
        vault_b = await ledger.get_token_account(view.vault_b)
        assert vault_a.owner == view.address
        assert vault_b.owner == view.address
        assert vault_a.mint == parties.mint_a
        assert vault_b.mint == parties.mint_b

    @pytest.mark.asyncio
    async def test_record_layout_persisted(self, escrow_service, ledger, parties) -> None:
        view = await _open(escrow_service, parties, seed=77, receive=123)
        account = await ledger.get_account_info(view.address)
        record = EscrowState.unpack(account.data)
        assert record.seed == 77
        assert record.initializer == parties.initializer
        assert record.taker == parties.taker
        assert record.amount == 123

    @pytest.mark.asyncio
    async def test_initializer_pays_all_rent(self, escrow_service, ledger, parties) -> None:
        before = await ledger.get_lamports(parties.initializer)
        await _open(escrow_service, parties)
        rent = ledger.minimum_balance(EscrowState.size()) + 2 * ledger.minimum_balance(
            TokenAccountState.size()
        )
        assert await ledger.get_lamports(parties.initializer) == before - rent

    @pytest.mark.asyncio
    async def test_records_audit_event(self, escrow_service, parties) -> None:
        view = await _open(escrow_service, parties)
        events = await escrow_service.get_events(view.address)
        assert len(events) == 1
        assert events[0].event_type == "ESCROW_INITIALIZED"
        assert events[0].old_status is None
        assert events[0].new_status == "OPEN"
        assert events[0].actor == parties.initializer

    @pytest.mark.asyncio
    async def test_zero_deposit(self, escrow_service, ledger, parties) -> None:
        with pytest.raises(InvalidAmountError):
            await _open(escrow_service, parties, deposit=0)
        escrow, _ = find_escrow_address(parties.initializer, 1)
        assert await ledger.get_lamports(escrow) == 0

    @pytest.mark.asyncio
    async def test_receive_out_of_range(self, escrow_service, parties) -> None:
        with pytest.raises(InvalidAmountError):
            await _open(escrow_service, parties, receive=U64_MAX + 1)

    @pytest.mark.asyncio
    async def test_insufficient_funds_leaves_nothing_behind(
        self, escrow_service, ledger, parties
    ) -> None:
        lamports_before = await ledger.get_lamports(parties.initializer)
        with pytest.raises(InsufficientFundsError):
            await _open(escrow_service, parties, deposit=DEAL + 1)

        escrow, _ = find_escrow_address(parties.initializer, 1)
        vault_a, vault_b = vault_addresses(escrow, parties.mint_a, parties.mint_b)
        for address in (escrow, vault_a, vault_b):
            assert await ledger.get_lamports(address) == 0
        assert await ledger.get_lamports(parties.initializer) == lamports_before
        assert await ledger.get_balance(parties.initializer_a) == DEAL
        assert await escrow_service.get_events(escrow) == []

    @pytest.mark.asyncio
    async def test_same_seed_twice(self, escrow_service, ledger, parties) -> None:
        await _open(escrow_service, parties, deposit=400_000)
        with pytest.raises(AccountAlreadyInUseError):
            await _open(escrow_service, parties, deposit=400_000)
        assert await ledger.get_balance(parties.initializer_a) == 600_000

    @pytest.mark.asyncio
    async def test_distinct_seeds_coexist(self, escrow_service, parties) -> None:
        first = await _open(escrow_service, parties, seed=1, deposit=400_000)
        second = await _open(escrow_service, parties, seed=2, deposit=600_000)
        assert first.address != second.address
        assert (await escrow_service.get_escrow(first.address)).vault_a_balance == 400_000
        assert (await escrow_service.get_escrow(second.address)).vault_a_balance == 600_000

    @pytest.mark.asyncio
    async def test_same_mint_on_both_sides(self, escrow_service, parties) -> None:
        with pytest.raises(ConstraintViolationError):
            await escrow_service.initialize(
                initializer=parties.initializer,
                seed=1,
                deposit=DEAL,
                receive=DEAL,
                taker=parties.taker,
                mint_a=parties.mint_a,
                mint_b=parties.mint_a,
            )

    @pytest.mark.asyncio
    async def test_source_must_belong_to_initializer(self, escrow_service, parties) -> None:
        with pytest.raises(ConstraintViolationError):
            await escrow_service.initialize(
                initializer=parties.initializer,
                seed=1,
                deposit=DEAL,
                receive=DEAL,
                taker=parties.taker,
                mint_a=parties.mint_b,
                mint_b=parties.mint_a,
                source=parties.taker_b,
            )

    @pytest.mark.asyncio
    async def test_address_not_reissued_after_settlement(self, escrow_service, parties) -> None:
        view = await _open(escrow_service, parties, deposit=400_000)
        await escrow_service.cancel(view.address, parties.initializer)
        with pytest.raises(AccountAlreadyInUseError):
            await _open(escrow_service, parties, deposit=400_000)

    @pytest.mark.asyncio
    async def test_prefunded_vault_b_is_adopted(self, escrow_service, ledger, parties) -> None:
        escrow, _ = find_escrow_address(parties.initializer, 1)
        vault_b = await ledger.create_associated_account(parties.taker, escrow, parties.mint_b)
        await parties.deposit_b(ledger, escrow, 250_000)

        view = await _open(escrow_service, parties)
        assert view.vault_b == vault_b
        assert view.vault_b_balance == 250_000

    @pytest.mark.asyncio
    async def test_prefunded_vault_a_rejected(self, escrow_service, ledger, parties) -> None:
        escrow, _ = find_escrow_address(parties.initializer, 1)
        vault_a = await ledger.create_associated_account(parties.initializer, escrow, parties.mint_a)
        await ledger.transfer_checked(
            parties.initializer_a, parties.mint_a, vault_a, parties.initializer, 5, 6
        )
        with pytest.raises(ConstraintViolationError):
            await _open(escrow_service, parties, deposit=100)
        assert await ledger.get_lamports(escrow) == 0

    @pytest.mark.asyncio
    async def test_failure_after_writes_rolls_everything_back(
        self, escrow_service, ledger, parties
    ) -> None:
        # Enough lamports for the record and Vault A, not for Vault B.
        initializer = new_identity()
        source = await ledger.create_associated_account(parties.authority, initializer, parties.mint_a)
        await ledger.mint_to(parties.mint_a, source, parties.authority, 500)
        budget = ledger.minimum_balance(EscrowState.size()) + ledger.minimum_balance(
            TokenAccountState.size()
        )
        await ledger.airdrop(initializer, budget)

        with pytest.raises(InsufficientFundsError):
            await escrow_service.initialize(
                initializer=initializer,
                seed=9,
                deposit=500,
                receive=DEAL,
                taker=parties.taker,
                mint_a=parties.mint_a,
                mint_b=parties.mint_b,
            )

        escrow, _ = find_escrow_address(initializer, 9)
        vault_a, vault_b = vault_addresses(escrow, parties.mint_a, parties.mint_b)
        assert await ledger.get_lamports(initializer) == budget
        for address in (escrow, vault_a, vault_b):
            assert await ledger.get_lamports(address) == 0
        assert await ledger.get_balance(source) == 500
        assert await escrow_service.get_events(escrow) == []


# ---------------------------------------------------------------------------
# Exchange
# ---------------------------------------------------------------------------


class TestExchange:
    @pytest.mark.asyncio
    async def test_full_deposit_settles(self, escrow_service, ledger, parties) -> None:
        view = await _open(escrow_service, parties)
        await parties.deposit_b(ledger, view.address, DEAL)
        taker_b_before = await parties.balance(ledger, parties.taker_b)

        receipt = await escrow_service.exchange(view.address, parties.initializer)

        assert await parties.balance(ledger, parties.initializer_b) == DEAL
        assert await parties.balance(ledger, parties.taker_a) == DEAL
        assert await parties.balance(ledger, parties.taker_b) == taker_b_before
        assert await _escrow_accounts_closed(ledger, view)
        assert receipt.status == "EXCHANGED"
        assert receipt.asset_a_amount == DEAL
        assert receipt.asset_b_amount == DEAL
        assert receipt.asset_a_destination == parties.taker_a
        assert receipt.asset_b_destination == parties.initializer_b
        assert receipt.closed_accounts == [view.vault_a, view.vault_b, view.address]
        assert receipt.settlement["accepted"] is True

    @pytest.mark.asyncio
    async def test_locks_record_then_vaults(self, escrow_service, ledger, parties, locked_rows) -> None:
        view = await _open(escrow_service, parties)
        await parties.deposit_b(ledger, view.address, DEAL)
        locked_rows.clear()

        await escrow_service.exchange(view.address, parties.initializer)

        assert locked_rows[0] == view.address
        assert locked_rows[1:3] == sorted([view.vault_a, view.vault_b])

    @pytest.mark.asyncio
    async def test_rent_returns_to_initializer(self, escrow_service, ledger, parties) -> None:
        before = await ledger.get_lamports(parties.initializer)
        view = await _open(escrow_service, parties)
        await parties.deposit_b(ledger, view.address, DEAL)
        receipt = await escrow_service.exchange(view.address, parties.initializer)

        # The signer paid for the two destination accounts it created.
        destinations = 2 * ledger.minimum_balance(TokenAccountState.size())
        assert await ledger.get_lamports(parties.initializer) == before - destinations
        assert receipt.rent_receiver == parties.initializer
        assert receipt.rent_reclaimed == ledger.minimum_balance(EscrowState.size()) + destinations

    @pytest.mark.asyncio
    async def test_short_deposit_rejected_without_side_effects(
        self, escrow_service, ledger, parties
    ) -> None:
        view = await _open(escrow_service, parties)
        await parties.deposit_b(ledger, view.address, 900_000)
        lamports_before = await ledger.get_lamports(parties.initializer)

        with pytest.raises(InsufficientTakerTokensError) as exc_info:
            await escrow_service.exchange(view.address, parties.initializer)
        assert exc_info.value.code == "INSUFFICIENT_TAKER_TOKENS"

        after = await escrow_service.get_escrow(view.address)
        assert after.vault_a_balance == DEAL
        assert after.vault_b_balance == 900_000
        assert after.status == "OPEN"
        assert await parties.balance(ledger, parties.taker_a) == 0
        assert await parties.balance(ledger, parties.initializer_b) == 0
        assert await ledger.get_lamports(parties.initializer) == lamports_before
        assert len(await escrow_service.get_events(view.address)) == 1

    @pytest.mark.asyncio
    async def test_short_deposit_rejected_under_exact_policy(self, session, settings, ledger, parties) -> None:
        svc = EscrowService(session, settings, policy=ExactPolicy())
        view = await _open(svc, parties)
        await parties.deposit_b(ledger, view.address, 900_000)
        with pytest.raises(InsufficientTakerTokensError):
            await svc.exchange(view.address, parties.initializer)

    @pytest.mark.asyncio
    async def test_exact_policy_rejects_overfunding(self, session, settings, ledger, parties) -> None:
        svc = EscrowService(session, settings.model_copy(update={"settlement_policy": "exact"}))
        view = await _open(svc, parties)
        await parties.deposit_b(ledger, view.address, DEAL + 1)
        with pytest.raises(InsufficientTakerTokensError):
            await svc.exchange(view.address, parties.initializer)

    @pytest.mark.asyncio
    async def test_minimum_policy_settles_full_overfunded_balance(
        self, escrow_service, ledger, parties
    ) -> None:
        view = await _open(escrow_service, parties)
        await parties.deposit_b(ledger, view.address, 1_500_000)
        receipt = await escrow_service.exchange(view.address, parties.initializer)
        assert receipt.asset_b_amount == 1_500_000
        assert await parties.balance(ledger, parties.initializer_b) == 1_500_000

    @pytest.mark.asyncio
    async def test_threshold_policy_accepts_95_percent(self, session, settings, ledger, parties) -> None:
        svc = EscrowService(session, settings.model_copy(update={"settlement_policy": "threshold"}))
        view = await _open(svc, parties)
        await parties.deposit_b(ledger, view.address, 960_000)
        receipt = await svc.exchange(view.address, parties.initializer)
        assert receipt.asset_b_amount == 960_000
        assert receipt.settlement["required"] == 950_000
        assert await parties.balance(ledger, parties.initializer_b) == 960_000

    @pytest.mark.asyncio
    async def test_available_policy_settles_empty_vault(self, session, settings, ledger, parties) -> None:
        svc = EscrowService(session, settings.model_copy(update={"settlement_policy": "available"}))
        view = await _open(svc, parties)
        receipt = await svc.exchange(view.address, parties.initializer)
        assert receipt.asset_b_amount == 0
        assert await parties.balance(ledger, parties.taker_a) == DEAL
        assert await _escrow_accounts_closed(ledger, view)

    @pytest.mark.asyncio
    async def test_third_party_deposits_count(self, escrow_service, ledger, parties) -> None:
        view = await _open(escrow_service, parties)
        donor = new_identity()
        await ledger.airdrop(donor, 10_000_000)
        donor_b = await ledger.create_associated_account(donor, donor, parties.mint_b)
        await ledger.mint_to(parties.mint_b, donor_b, parties.authority, 400_000)
        await ledger.transfer_checked(donor_b, parties.mint_b, view.vault_b, donor, 400_000, 6)
        await parties.deposit_b(ledger, view.address, 600_000)

        receipt = await escrow_service.exchange(view.address, parties.initializer)
        assert receipt.asset_b_amount == DEAL

    @pytest.mark.asyncio
    async def test_taker_cannot_exchange_by_default(self, escrow_service, ledger, parties) -> None:
        view = await _open(escrow_service, parties)
        await parties.deposit_b(ledger, view.address, DEAL)
        with pytest.raises(UnauthorizedError):
            await escrow_service.exchange(view.address, parties.taker)
        assert (await escrow_service.get_escrow(view.address)).vault_a_balance == DEAL

    @pytest.mark.asyncio
    async def test_parties_authority_lets_taker_exchange(self, session, settings, ledger, parties) -> None:
        svc = EscrowService(session, settings.model_copy(update={"exchange_authority": "parties"}))
        view = await _open(svc, parties)
        await parties.deposit_b(ledger, view.address, DEAL)
        receipt = await svc.exchange(view.address, parties.taker)
        assert receipt.signer == parties.taker
        assert await parties.balance(ledger, parties.taker_a) == DEAL

    @pytest.mark.asyncio
    async def test_permissionless_exchange(self, session, settings, ledger, parties) -> None:
        svc = EscrowService(session, settings.model_copy(update={"exchange_authority": "permissionless"}))
        view = await _open(svc, parties)
        await parties.deposit_b(ledger, view.address, DEAL)
        keeper = new_identity()
        await ledger.airdrop(keeper, 10_000_000)
        await svc.exchange(view.address, keeper)
        assert await parties.balance(ledger, parties.initializer_b) == DEAL

    @pytest.mark.asyncio
    async def test_second_exchange_not_found(self, escrow_service, ledger, parties) -> None:
        view = await _open(escrow_service, parties)
        await parties.deposit_b(ledger, view.address, DEAL)
        await escrow_service.exchange(view.address, parties.initializer)
        with pytest.raises(AccountNotFoundError):
            await escrow_service.exchange(view.address, parties.initializer)

    @pytest.mark.asyncio
    async def test_cancel_after_exchange_not_found(self, escrow_service, ledger, parties) -> None:
        view = await _open(escrow_service, parties)
        await parties.deposit_b(ledger, view.address, DEAL)
        await escrow_service.exchange(view.address, parties.initializer)
        with pytest.raises(AccountNotFoundError):
            await escrow_service.cancel(view.address, parties.initializer)

    @pytest.mark.asyncio
    async def test_unknown_escrow(self, escrow_service, parties) -> None:
        with pytest.raises(AccountNotFoundError):
            await escrow_service.exchange(new_identity(), parties.initializer)

    @pytest.mark.asyncio
    async def test_explicit_destinations(self, escrow_service, ledger, parties) -> None:
        view = await _open(escrow_service, parties)
        await parties.deposit_b(ledger, view.address, DEAL)
        taker_a = await ledger.create_associated_account(parties.taker, parties.taker, parties.mint_a)
        initializer_b = await ledger.create_associated_account(
            parties.initializer, parties.initializer, parties.mint_b
        )
        receipt = await escrow_service.exchange(
            view.address,
            parties.initializer,
            taker_destination=taker_a,
            initializer_destination=initializer_b,
        )
        assert receipt.asset_a_destination == taker_a
        assert await ledger.get_balance(initializer_b) == DEAL

    @pytest.mark.asyncio
    async def test_destination_with_wrong_owner(self, escrow_service, ledger, parties) -> None:
        view = await _open(escrow_service, parties)
        await parties.deposit_b(ledger, view.address, DEAL)
        # The initializer's own (now empty) asset-A account is not the taker's.
        with pytest.raises(ConstraintViolationError):
            await escrow_service.exchange(
                view.address, parties.initializer, taker_destination=parties.initializer_a
            )
        assert (await escrow_service.get_escrow(view.address)).vault_b_balance == DEAL

    @pytest.mark.asyncio
    async def test_destination_with_wrong_mint(self, escrow_service, ledger, parties) -> None:
        view = await _open(escrow_service, parties)
        await parties.deposit_b(ledger, view.address, DEAL)
        with pytest.raises(ConstraintViolationError):
            await escrow_service.exchange(
                view.address, parties.initializer, taker_destination=parties.taker_b
            )

    @pytest.mark.asyncio
    async def test_audit_trail(self, escrow_service, ledger, parties) -> None:
        view = await _open(escrow_service, parties)
        await parties.deposit_b(ledger, view.address, DEAL)
        await escrow_service.exchange(view.address, parties.initializer)

        events = await escrow_service.get_events(view.address)
        assert [e.event_type for e in events] == ["ESCROW_INITIALIZED", "ESCROW_EXCHANGED"]
        assert events[1].old_status == "OPEN"
        assert events[1].new_status == "EXCHANGED"
        assert events[1].metadata_json["settlement"]["policy"] == "minimum"


# ---------------------------------------------------------------------------
# Cancel
# ---------------------------------------------------------------------------


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_restores_asset_a(self, escrow_service, ledger, parties) -> None:
        view = await _open(escrow_service, parties)
        receipt = await escrow_service.cancel(view.address, parties.initializer)

        assert await ledger.get_balance(parties.initializer_a) == DEAL
        assert await _escrow_accounts_closed(ledger, view)
        assert receipt.status == "CANCELLED"
        assert receipt.asset_a_amount == DEAL
        assert receipt.asset_b_amount == 0
        assert receipt.asset_b_destination is None

    @pytest.mark.asyncio
    async def test_cancel_returns_all_rent(self, escrow_service, ledger, parties) -> None:
        before = await ledger.get_lamports(parties.initializer)
        view = await _open(escrow_service, parties)
        await escrow_service.cancel(view.address, parties.initializer)
        assert await ledger.get_lamports(parties.initializer) == before

    @pytest.mark.asyncio
    async def test_locks_record_then_vaults(self, escrow_service, parties, locked_rows) -> None:
        view = await _open(escrow_service, parties)
        locked_rows.clear()
        await escrow_service.cancel(view.address, parties.taker)
        assert locked_rows[:3] == [view.address, *sorted([view.vault_a, view.vault_b])]

    @pytest.mark.asyncio
    async def test_taker_cancel_refunds_both_sides(self, escrow_service, ledger, parties) -> None:
        view = await _open(escrow_service, parties)
        await parties.deposit_b(ledger, view.address, 700_000)
        receipt = await escrow_service.cancel(view.address, parties.taker)

        assert await ledger.get_balance(parties.initializer_a) == DEAL
        assert await ledger.get_balance(parties.taker_b) == 2_000_000
        assert receipt.asset_b_destination == parties.taker_b
        assert await _escrow_accounts_closed(ledger, view)

    @pytest.mark.asyncio
    async def test_stranger_cannot_cancel(self, escrow_service, ledger, parties) -> None:
        view = await _open(escrow_service, parties)
        with pytest.raises(UnauthorizedError):
            await escrow_service.cancel(view.address, new_identity())
        after = await escrow_service.get_escrow(view.address)
        assert after.vault_a_balance == DEAL
        assert after.status == "OPEN"

    @pytest.mark.asyncio
    async def test_second_cancel_not_found(self, escrow_service, parties) -> None:
        view = await _open(escrow_service, parties)
        await escrow_service.cancel(view.address, parties.initializer)
        with pytest.raises(AccountNotFoundError):
            await escrow_service.cancel(view.address, parties.initializer)

    @pytest.mark.asyncio
    async def test_missing_vault(self, escrow_service, ledger, parties) -> None:
        view = await _open(escrow_service, parties)
        account = await ledger.get_account_info(view.vault_b)
        await ledger._accounts.delete(account)
        with pytest.raises(AccountNotFoundError):
            await escrow_service.cancel(view.address, parties.initializer)


# ---------------------------------------------------------------------------
# Read side
# ---------------------------------------------------------------------------


class TestReadHelpers:
    @pytest.mark.asyncio
    async def test_derive_matches_initialize(self, escrow_service, parties) -> None:
        derived = EscrowService.derive_escrow_address(
            parties.initializer, 9, parties.mint_a, parties.mint_b
        )
        view = await _open(escrow_service, parties, seed=9)
        assert derived["escrow"] == view.address
        assert derived["bump"] == view.bump
        assert derived["vault_a"] == view.vault_a
        assert derived["vault_b"] == associated_token_address(view.address, parties.mint_b)

    @pytest.mark.asyncio
    async def test_status_of_open_escrow(self, escrow_service, parties) -> None:
        view = await _open(escrow_service, parties)
        status = await escrow_service.get_status(view.address)
        assert status["status"] == "OPEN"
        assert status["is_open"] is True
        assert sorted(status["allowed_events"]) == ["cancel", "exchange"]

    @pytest.mark.asyncio
    async def test_status_survives_settlement(self, escrow_service, parties) -> None:
        view = await _open(escrow_service, parties)
        await escrow_service.cancel(view.address, parties.taker)
        status = await escrow_service.get_status(view.address)
        assert status["status"] == "CANCELLED"
        assert status["is_open"] is False
        assert status["allowed_events"] == []

    @pytest.mark.asyncio
    async def test_status_of_unknown_address(self, escrow_service) -> None:
        with pytest.raises(AccountNotFoundError):
            await escrow_service.get_status(new_identity())


class TestLifecycleGuard:
    @pytest.mark.asyncio
    async def test_legal_transition(self, escrow_service) -> None:
        assert escrow_service._fire_transition(EscrowStatus.OPEN, "exchange") == EscrowStatus.EXCHANGED

    @pytest.mark.asyncio
    async def test_settled_escrow_is_final(self, escrow_service) -> None:
        with pytest.raises(InvalidStateTransitionError):
            escrow_service._fire_transition(EscrowStatus.CANCELLED, "exchange")

    @pytest.mark.asyncio
    async def test_unknown_event(self, escrow_service) -> None:
        with pytest.raises(InvalidStateTransitionError):
            escrow_service._fire_transition(EscrowStatus.OPEN, "refund_partially")
