import sys
import logging
from typing import Optional

import structlog
from sprintkeeper.config import settings


def setup_logging(level: Optional[str] = None, json_logs: Optional[bool] = None):
    """
    Configures structured logging.
    - JSON when APP_ENV is production (batch runs feed the log pipeline)
    - Console renderer everywhere else
    Safe to call more than once; the last call wins.
    """
    level = (level or settings.LOG_LEVEL).upper()
    if json_logs is None:
        json_logs = settings.APP_ENV == "production"

    # stdlib logging carries the level
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
        force=True,
    )

    # owner_id arrives through contextvars (see bind_owner)
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_logs:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=shared_processors + [renderer],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def bind_owner(owner_id: str):
    """Every log line emitted in the current context carries this owner id."""
    structlog.contextvars.bind_contextvars(owner_id=owner_id)


def clear_owner():
    structlog.contextvars.unbind_contextvars("owner_id")


def get_logger(name: str):
    return structlog.get_logger(name)
