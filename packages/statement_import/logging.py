"""Structured logging for the import pipeline.

Every event carries component="statement_import" and whatever import
context is bound (user and account ids during a duplicate check).

Usage:
    import structlog
    logger = structlog.get_logger()
    logger.info("csv_parsed", delimiter=",", row_count=42)
"""

import logging
import sys
from typing import Optional

import structlog

COMPONENT = "statement_import"

# Chatty HTTP clients used by the Supabase SDK
QUIET_LOGGERS = ("httpx", "httpcore", "hpack")


def add_component(logger, method_name, event_dict):
    event_dict.setdefault("component", COMPONENT)
    return event_dict


def setup_logging(log_level: Optional[str] = None, json_output: Optional[bool] = None) -> None:
    """Configure structlog for the import pipeline.

    Args:
        log_level: Python log level string; defaults to settings.LOG_LEVEL.
        json_output: JSON lines if True, colorized console if False;
                     defaults to settings.json_logs.
    """
    from .config import settings

    if log_level is None:
        log_level = settings.LOG_LEVEL
    if json_output is None:
        json_output = settings.json_logs

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            add_component,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def import_context(**context):
    """Bind key/value context to every log event emitted inside the block.

    Usage:
        with import_context(user_id=user_id, account_id=account_id):
            logger.info("duplicate_check_complete", duplicates=2)
    """
    return structlog.contextvars.bound_contextvars(**context)
