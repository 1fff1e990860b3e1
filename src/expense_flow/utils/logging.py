"""structlog setup driven by the ``logging`` section of the app config."""

from __future__ import annotations

import logging
import sys

import structlog

from expense_flow.models import LoggingConfig


def setup_logging(config: LoggingConfig | None = None, *, verbose: bool = False) -> None:
    """Configure structlog for the host process.

    Usage:
        config = load_config()
        setup_logging(config.logging)

    Args:
        config: Level, renderer and noisy stdlib loggers. Defaults to LoggingConfig().
        verbose: Force DEBUG whatever level the config names.
    """
    config = config or LoggingConfig()
    log_level = logging.DEBUG if verbose else getattr(logging, config.level.upper())

    if config.json_output:
        renderer = structlog.processors.JSONRenderer()
        exc_processor = structlog.processors.dict_tracebacks
    else:
        renderer = structlog.dev.ConsoleRenderer()
        exc_processor = structlog.processors.format_exc_info

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            exc_processor,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.WriteLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )

    # Request logs from the HTTP stack go through stdlib logging
    logging.basicConfig(level=log_level, stream=sys.stderr, format="%(message)s")
    quiet_level = logging.DEBUG if log_level == logging.DEBUG else logging.WARNING
    for name in config.quiet_loggers:
        logging.getLogger(name).setLevel(quiet_level)
