"""Database infrastructure — engine, ORM models, and repositories."""

from swap_escrow.infrastructure.database.engine import (
    build_engine,
    build_session_factory,
    close_db,
    create_tables,
    get_async_session,
    init_db,
)
from swap_escrow.infrastructure.database.orm_models import (
    Account,
    Base,
    EscrowEvent,
)
from swap_escrow.infrastructure.database.repositories import (
    AccountRepository,
    EventRepository,
)

__all__ = [
    "Account",
    "Base",
    "EscrowEvent",
    "AccountRepository",
    "EventRepository",
    "build_engine",
    "build_session_factory",
    "create_tables",
    "get_async_session",
    "init_db",
    "close_db",
]
