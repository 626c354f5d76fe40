"""Repository classes for database access.

Repositories encapsulate all SQL queries and provide a clean interface
to the service layer. They accept an AsyncSession and never manage
their own transactions (that's the caller's responsibility).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import Select, select

from swap_escrow.infrastructure.database.orm_models import Account, EscrowEvent

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from swap_escrow.domain.enums import EscrowStatus, EventType


def locking_select(address: str) -> Select:
    """``SELECT ... FOR UPDATE`` for one account, refreshing any identity-map copy."""
    return (
        select(Account)
        .where(Account.address == address)
        .with_for_update()
        .execution_options(populate_existing=True)
    )


class AccountRepository:
    """Data access for ledger accounts."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, address: str) -> Account | None:
        """Fetch an account by address, always reading current row state.

        ``populate_existing`` refreshes identity-map copies that a rolled-back
        savepoint may have expired.
        """
        result = await self._session.execute(
            select(Account)
            .where(Account.address == address)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_for_update(self, address: str) -> Account | None:
        """Fetch an account and hold its row lock until the transaction ends.

        Every balance read-modify-write goes through here: a second writer
        blocks on the lock and then reads the committed row, so its checks
        run against current state. SQLite ignores ``FOR UPDATE`` and
        serializes writers on the database file instead.
        """
        result = await self._session.execute(locking_select(address))
        return result.scalar_one_or_none()

    async def lock(self, *addresses: str) -> None:
        """Lock several account rows, always in ascending address order."""
        for address in sorted(set(addresses)):
            await self.get_for_update(address)

    async def exists(self, address: str) -> bool:
        return await self.get(address) is not None

    async def create(
        self,
        address: str,
        program_owner: str,
        lamports: int,
        data: bytes = b"",
    ) -> Account:
        """Insert a new account."""
        account = Account(
            address=address,
            program_owner=program_owner,
            lamports=lamports,
            data=data,
        )
        self._session.add(account)
        await self._session.flush()
        return account

    async def save(self, account: Account) -> Account:
        """Flush pending changes on an account."""
        await self._session.flush()
        return account

    async def delete(self, account: Account) -> None:
        """Remove an account row (the ledger's close operation)."""
        await self._session.delete(account)
        await self._session.flush()

class EventRepository:
    """Data access for the append-only audit event log."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def record(
        self,
        escrow_address: str,
        event_type: EventType,
        old_status: EscrowStatus | None,
        new_status: EscrowStatus,
        actor: str,
        metadata: dict | None = None,
    ) -> EscrowEvent:
        """Append a new audit event. This is the ONLY write operation allowed."""
        evt = EscrowEvent(
            escrow_address=escrow_address,
            event_type=event_type.value,
            old_status=old_status.value if old_status else None,
            new_status=new_status.value,
            actor=actor,
            metadata_json=metadata,
        )
        self._session.add(evt)
        await self._session.flush()
        return evt

    async def get_by_escrow(self, escrow_address: str) -> list[EscrowEvent]:
        """Fetch all events for an escrow address in insertion order."""
        result = await self._session.execute(
            select(EscrowEvent)
            .where(EscrowEvent.escrow_address == escrow_address)
            .order_by(EscrowEvent.id.asc())
        )
        return list(result.scalars().all())

    async def latest_status(self, escrow_address: str) -> str | None:
        """Return the ``new_status`` of the most recent event, or None if there is none."""
        result = await self._session.execute(
            select(EscrowEvent.new_status)
            .where(EscrowEvent.escrow_address == escrow_address)
            .order_by(EscrowEvent.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()
