from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

from dissect.xva.helpers.logging import TRACE_LEVEL

# Logging levels by the number of times -v was given
VERBOSITY_LEVELS = {
    0: logging.WARNING,
    1: logging.INFO,
    2: logging.DEBUG,
}


def stringify_values(
    logger: structlog.types.WrappedLogger,
    name: str,
    event_dict: structlog.types.EventDict,
) -> dict[Any, str]:
    """Render paths, exceptions and other event dict values with ``str()``."""
    return {key: str(value) for key, value in event_dict.items()}


def render_stacktrace_only_in_debug_or_less(
    logger: structlog.types.WrappedLogger,
    name: str,
    event_dict: structlog.types.EventDict,
) -> structlog.types.EventDict:
    """Only keep the stack trace of a logged exception if ``logger`` is configured at ``DEBUG`` or lower.

    Otherwise only the ``str()`` representation of the exception is rendered, in the ``exc`` key.
    """
    if event_dict.get("exc_info") and logger.getEffectiveLevel() > logging.DEBUG:
        event_dict.pop("exc_info")
        _, exc, _ = sys.exc_info()
        if exc is not None:
            event_dict["exc"] = str(exc)
    return event_dict


def level_for(verbose_value: int, be_quiet: bool) -> int:
    """Return the logging level for the given verbosity count and quiet flag."""
    if be_quiet:
        return logging.CRITICAL
    if verbose_value > max(VERBOSITY_LEVELS):
        return TRACE_LEVEL
    return VERBOSITY_LEVELS[max(verbose_value, 0)]


def configure_logging(verbose_value: int, be_quiet: bool, as_plain_text: bool = True) -> None:
    """Configure logging for the ``dissect`` root logger.

    Without ``-v`` the level is ``WARNING``, ``-v`` gives ``INFO``, ``-vv`` gives ``DEBUG`` and anything more
    enables the per block ``TRACE`` messages. If ``be_quiet`` is set, only ``CRITICAL`` messages are shown.
    """

    renderer = (
        structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty(), pad_event=10)
        if as_plain_text
        else structlog.processors.JSONRenderer(sort_keys=True)
    )

    attr_processors = [
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    structlog.configure(
        processors=(
            [
                # Drop the entry early if the level is filtered
                structlog.stdlib.filter_by_level,
            ]
            + attr_processors
            + [
                structlog.stdlib.PositionalArgumentsFormatter(),
                structlog.processors.StackInfoRenderer(),
                stringify_values,
                render_stacktrace_only_in_debug_or_less,
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ]
        ),
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Redirect warnings of the ``warnings`` module to the ``py.warnings`` logger
    logging.captureWarnings(True)

    logging.getLogger("dissect").setLevel(level_for(verbose_value, be_quiet))

    formatter = structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=attr_processors)

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    logging.getLogger().handlers = [handler]
