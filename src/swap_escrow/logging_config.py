"""Structured logging configuration using structlog.

Ledger and escrow events carry 64-character hex addresses in most fields.
Production runs emit one JSON object per line with every address intact;
development runs render to a colored console where addresses are cut to
``9f1c2ab0…e41d`` so a settlement fits on a screen.

Usage:
    from swap_escrow.logging_config import setup_logging, get_logger
    setup_logging(log_level="DEBUG", json_logs=False)
    logger = get_logger(__name__)
    logger.info("escrow.initialized", escrow="9f1c...", deposit=1_000_000)
"""

from __future__ import annotations

import logging
import re
import sys
from typing import Any

import structlog

# Third-party loggers and the level they are held at. SQL statements are
# only shown when ``echo_sql`` is requested.
THIRD_PARTY_LEVELS: dict[str, int] = {
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "aiosqlite": logging.WARNING,
    "asyncio": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "mcp": logging.INFO,
}

_HEX_ADDRESS = re.compile(r"^[0-9a-f]{64}$")


def abbreviate_addresses(
    _logger: Any, _method: str, event_dict: structlog.types.EventDict
) -> structlog.types.EventDict:
    """Shorten hex address values (top level and inside lists) for console output."""

    def _short(value: Any) -> Any:
        if isinstance(value, str) and _HEX_ADDRESS.match(value):
            return f"{value[:8]}…{value[-4:]}"
        if isinstance(value, list):
            return [_short(item) for item in value]
        return value

    return {key: _short(value) for key, value in event_dict.items()}


def setup_logging(log_level: str = "DEBUG", json_logs: bool = False, echo_sql: bool = False) -> None:
    """Configure structlog and route the stdlib root logger through it.

    Args:
        log_level: Standard Python log level string (DEBUG, INFO, WARNING, etc.)
        json_logs: If True, render JSON lines. If False, colored console output.
        echo_sql: Let SQLAlchemy's statement log through at INFO.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    render_chain: list[structlog.types.Processor] = [
        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
    ]
    if json_logs:
        render_chain.append(structlog.processors.JSONRenderer())
    else:
        render_chain += [abbreviate_addresses, structlog.dev.ConsoleRenderer(colors=True)]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=render_chain,
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.DEBUG))

    for name, level in THIRD_PARTY_LEVELS.items():
        logging.getLogger(name).setLevel(level)
    if echo_sql:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger; pass ``__name__``."""
    return structlog.get_logger(name)
