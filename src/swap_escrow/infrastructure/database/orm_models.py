"""SQLAlchemy 2.0 ORM models for the Swap Escrow.

Two tables:
    1. accounts       — Every ledger account: system wallets, mints, holding
                        accounts and escrow records. Typed state lives in
                        ``data`` as a fixed-size binary layout (domain/layout.py).
    2. escrow_events  — Append-only audit log of every escrow state transition.

Design decisions:
    - Hex addresses as primary keys (derivable by anyone, no sequential ids).
    - ``program_owner`` says which program may interpret and mutate ``data``.
    - ``lamports`` is the rent deposit held by the account; it is returned to a
      designated receiver when the account is closed.
    - escrow_events outlives the accounts it describes: closing a record never
      touches its history.
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    LargeBinary,
    String,
    event,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def _set_updated_at(mapper, connection, target):  # noqa: ANN001
    """SQLAlchemy event listener that updates `updated_at` before flush."""
    if hasattr(target, "updated_at"):
        target.updated_at = datetime.now(UTC)


# ---------------------------------------------------------------------------
# 1. accounts
# ---------------------------------------------------------------------------
class Account(Base):
    """A ledger account at a 32-byte address."""

    __tablename__ = "accounts"

    address: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        comment="Hex-encoded 32-byte account address",
    )
    program_owner: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="Program allowed to mutate this account's data",
    )
    lamports: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
        comment="Native balance / rent deposit held by the account",
    )
    data: Mapped[bytes] = mapped_column(
        LargeBinary,
        nullable=False,
        default=b"",
        comment="Program-specific fixed-size state",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    __table_args__ = (
        CheckConstraint("lamports >= 0", name="ck_account_non_negative_lamports"),
        Index("idx_account_program_owner", "program_owner"),
    )

    def __repr__(self) -> str:
        return (
            f"<Account address={self.address[:8]}… owner={self.program_owner[:8]}… "
            f"lamports={self.lamports} data_len={len(self.data or b'')}>"
        )


# ---------------------------------------------------------------------------
# 2. escrow_events (Append-Only Audit Log)
# ---------------------------------------------------------------------------
class EscrowEvent(Base):
    """Immutable audit record of one escrow lifecycle transition.

    This table is APPEND-ONLY. No UPDATE or DELETE operations are permitted
    at the application level.
    """

    __tablename__ = "escrow_events"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
        comment="Insertion order; the latest event carries the current status",
    )
    escrow_address: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="Derived address of the escrow record",
    )
    event_type: Mapped[str] = mapped_column(
        String(40),
        nullable=False,
        comment="EventType enum value",
    )
    old_status: Mapped[str | None] = mapped_column(
        String(20),
        nullable=True,
        comment="Lifecycle status before this event (null for initialize)",
    )
    new_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="Lifecycle status after this event",
    )
    actor: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="Signer that triggered the transition",
    )
    metadata_json: Mapped[dict | None] = mapped_column(
        "metadata",
        JSON,
        nullable=True,
        default=None,
        comment="Amounts moved, accounts closed, settlement check",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )

    __table_args__ = (
        Index("idx_event_escrow", "escrow_address"),
        Index("idx_event_type", "event_type"),
        Index("idx_event_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<EscrowEvent escrow={self.escrow_address[:8]}… type={self.event_type} "
            f"{self.old_status}->{self.new_status}>"
        )


event.listen(Account, "before_update", _set_updated_at)
