"""
Structured Logging
==================
One structlog configuration for the whole service. Every component binds
its own ``component`` name and per-invoice ``correlation_id``.
"""

import logging

import structlog


def configure_logging(level: str = "INFO") -> None:
    """Configure structlog with the JSON processor chain"""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
