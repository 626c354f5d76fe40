"""FastAPI dependency injection providers.

These are used with Depends() in route handlers to inject database sessions,
services, Redis clients, and configuration.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

import redis.asyncio as aioredis
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from swap_escrow.config import Settings, get_settings
from swap_escrow.infrastructure.database.engine import get_async_session
from swap_escrow.infrastructure.redis_client import get_redis
from swap_escrow.services.escrow_service import EscrowService
from swap_escrow.services.ledger_service import LedgerService


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session for a request."""
    async for session in get_async_session():
        yield session


def get_app_settings() -> Settings:
    """Provide the application settings."""
    return get_settings()


async def get_escrow_service(
    session: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_app_settings),
) -> EscrowService:
    """Provide an EscrowService bound to the current session."""
    return EscrowService(session, settings)


async def get_ledger_service(
    session: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_app_settings),
) -> LedgerService:
    """Provide a LedgerService bound to the current session."""
    return LedgerService(session, settings)


def get_redis_client() -> aioredis.Redis | None:
    """Provide the Redis client, or None when it was not initialized at startup."""
    try:
        return get_redis()
    except RuntimeError:
        return None
