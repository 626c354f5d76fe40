"""Redis client for idempotency keys on ledger transfers.

A plain transfer (e.g. the taker's deposit into Vault B) is not naturally
idempotent: a client retrying after a timeout would deposit twice. Callers
may send an ``Idempotency-Key`` header; the key is remembered here for a TTL.

Usage:
    from swap_escrow.infrastructure.redis_client import get_redis, close_redis

    redis = get_redis()
    await redis.set("key", "value", ex=3600)
"""

from __future__ import annotations

import redis.asyncio as aioredis

from swap_escrow.config import get_settings
from swap_escrow.domain.exceptions import DuplicateOperationError
from swap_escrow.logging_config import get_logger

logger = get_logger(__name__)

_redis_client: aioredis.Redis | None = None

IDEMPOTENCY_PREFIX = "swap-escrow:idempotency:"


async def init_redis() -> aioredis.Redis:
    """Initialize and return the Redis client. Called during app startup."""
    global _redis_client
    settings = get_settings()
    _redis_client = aioredis.from_url(
        settings.redis_url,
        decode_responses=True,
    )
    await _redis_client.ping()
    logger.info("redis.connected", url=settings.redis_url)
    return _redis_client


def get_redis() -> aioredis.Redis:
    """Return the Redis client singleton. Must call init_redis() first."""
    if _redis_client is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis_client


async def close_redis() -> None:
    """Close the Redis connection. Called during app shutdown."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        logger.info("redis.disconnected")
        _redis_client = None


# --- Idempotency Helpers ---


async def claim_idempotency_key(redis: aioredis.Redis, key: str, ttl_seconds: int) -> None:
    """Atomically reserve ``key``; raise DuplicateOperationError if it was already used.

    ``SET NX`` makes check-and-set a single round trip, so two concurrent
    retries cannot both pass.
    """
    claimed = await redis.set(f"{IDEMPOTENCY_PREFIX}{key}", "1", ex=ttl_seconds, nx=True)
    if not claimed:
        logger.warning("idempotency.duplicate", key=key)
        raise DuplicateOperationError(key)


async def release_idempotency_key(redis: aioredis.Redis, key: str) -> None:
    """Forget ``key`` so a failed operation can be retried with it."""
    await redis.delete(f"{IDEMPOTENCY_PREFIX}{key}")
