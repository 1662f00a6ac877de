"""Structlog configuration helpers for the approval bot."""

from __future__ import annotations

import logging

import structlog

LOG_LEVEL = "INFO"
SLACK_LOGGERS = ("slack_bolt", "slack_sdk")


def configure_logging(level: str = LOG_LEVEL) -> None:
    """Configure structlog to emit JSON lines at *level* through the stdlib root logger.

    The Bolt and Web API client loggers follow the same level so listener
    errors reported through the Bolt ``logger`` argument are not filtered out.
    """

    timestamper = structlog.processors.TimeStamper(fmt="iso")
    numeric_level = logging.getLevelName(level.upper())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            timestamper,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(level=numeric_level, format="%(message)s")
    for name in SLACK_LOGGERS:
        logging.getLogger(name).setLevel(numeric_level)
