"""
Logging setup — structlog over stdlib logging.

Library modules only call `structlog.get_logger(__name__)`; applications
(and the examples) call `configure_logging()` once at startup.

    from cartsync import configure_logging
    configure_logging(level="DEBUG")
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import structlog

# ═══════════════════════════════════════════════════════════════════════════════
# Levels
# ═══════════════════════════════════════════════════════════════════════════════

_LEVELS_BY_ENV = {
    "production": "INFO",
    "staging": "INFO",
    "development": "DEBUG",
    "test": "WARNING",
}


def get_log_level() -> str:
    """LOG_LEVEL wins, otherwise derived from ENVIRONMENT."""
    env = os.getenv("ENVIRONMENT", "development").lower()
    return os.getenv("LOG_LEVEL", _LEVELS_BY_ENV.get(env, "INFO"))


# ═══════════════════════════════════════════════════════════════════════════════
# Setup
# ═══════════════════════════════════════════════════════════════════════════════


def configure_logging(*, level: str | None = None, json: bool | None = None) -> None:
    """
    Configure stdlib logging and structlog processors.

    json=None picks JSON output for production/staging, console otherwise.
    """
    log_level = level or get_log_level()
    env = os.getenv("ENVIRONMENT", "development").lower()
    use_json = json if json is not None else env in ("production", "staging")

    root = logging.getLogger()
    root.setLevel(log_level)
    root.handlers = []
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    root.addHandler(handler)

    logging.getLogger("asyncio").setLevel(logging.WARNING)

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if use_json:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def bind_context(**kwargs: Any) -> None:
    """Bind values (e.g. customer_id) into every subsequent log line."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "configure_logging",
    "get_log_level",
    "bind_context",
    "clear_context",
)
