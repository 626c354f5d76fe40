"""FastAPI application entry point for the Swap Escrow.

Startup order: logging, database tables, then Redis. Redis is optional;
without it the service runs and only ``Idempotency-Key`` transfers are
refused. The MCP tools are mounted at /mcp next to the REST API at
/api/v1/* unless ``MCP_TRANSPORT=disabled``.

Run with:
    uv run uvicorn swap_escrow.main:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI
from sqlalchemy.engine import make_url

from swap_escrow.config import Settings, get_settings
from swap_escrow.logging_config import get_logger, setup_logging

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Bring up logging, the ledger database and Redis; tear them down on exit."""
    from swap_escrow.infrastructure.database.engine import close_db, init_db
    from swap_escrow.infrastructure.redis_client import close_redis, init_redis

    settings = get_settings()
    setup_logging(
        log_level=settings.app_log_level,
        json_logs=not settings.is_development,
        echo_sql=settings.db_echo_sql,
    )
    logger = get_logger(__name__)
    logger.info(
        "app.starting",
        env=settings.app_env,
        database=make_url(settings.database_url).get_backend_name(),
        settlement_policy=settings.settlement_policy,
        exchange_authority=settings.exchange_authority,
        mcp=settings.mcp_transport,
    )

    await init_db()

    redis_ready = True
    try:
        await init_redis()
    except Exception as exc:
        redis_ready = False
        logger.warning("app.redis_unavailable", error=str(exc), idempotent_transfers=False)

    logger.info("app.started", host=settings.app_host, port=settings.app_port, redis=redis_ready)

    yield

    logger.info("app.shutting_down")
    await close_db()
    await close_redis()
    logger.info("app.stopped")


def _include_routers(app: FastAPI) -> None:
    from swap_escrow.api.routes.escrow import router as escrow_router
    from swap_escrow.api.routes.health import router as health_router
    from swap_escrow.api.routes.ledger import router as ledger_router

    for router in (health_router, escrow_router, ledger_router):
        app.include_router(router)


def _mount_mcp(app: FastAPI, settings: Settings) -> None:
    if settings.mcp_transport == "disabled":
        return
    from swap_escrow.mcp_server.tools import mcp

    app.mount("/mcp", mcp.sse_app())


def create_app() -> FastAPI:
    """Application factory: middleware, REST routers and the MCP mount."""
    from swap_escrow.api.middleware import setup_middleware

    settings = get_settings()
    app = FastAPI(
        title="Swap Escrow",
        description=(
            "Trustless two-party token swaps: lock asset A, receive asset B, "
            "or get everything back."
        ),
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.app_debug,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )
    setup_middleware(app)
    _include_routers(app)
    _mount_mcp(app, settings)
    return app


# The app instance used by Uvicorn
app = create_app()
