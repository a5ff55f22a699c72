"""Structured logging setup."""

from __future__ import annotations

import logging

import structlog


def configure_logging(verbose: bool = False, json_output: bool = False) -> None:
    """
    Configure structlog on top of the standard library logger.

    Context bound with ``structlog.contextvars`` (worker, test name) is merged
    into every event.

    Args:
        verbose: Log at DEBUG instead of INFO
        json_output: Render JSON lines instead of the console format
    """
    level = "DEBUG" if verbose else "INFO"
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(level=getattr(logging, level))
    logging.getLogger("uiqa").setLevel(getattr(logging, level))
    # Selenium and urllib3 log every wire command at DEBUG
    for noisy in ("selenium", "urllib3", "WDM"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
