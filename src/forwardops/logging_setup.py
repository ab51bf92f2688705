"""Structured logging setup using structlog.

Modules log through ``structlog.get_logger(__name__)`` with an event string
and key/value fields. The CLI calls configure_logging() once per invocation;
output goes to stderr so command output on stdout stays clean. Standard
library logging (LiteLLM, httpx) is routed through the same renderer.

Document text is never logged, only ids, sizes and counts.
"""

from __future__ import annotations

import logging
import os
import sys

import structlog

_DEFAULT_LEVEL = os.environ.get("FORWARDOPS_LOG_LEVEL", "WARNING")

# Third-party loggers that are noisy at INFO/DEBUG.
_QUIET_LOGGERS = ("LiteLLM", "LiteLLM Router", "LiteLLM Proxy", "httpx", "httpcore")


def _level_number(level: str | int) -> int:
    if isinstance(level, int):
        return level
    number = logging.getLevelName(level.upper())
    if not isinstance(number, int):
        raise ValueError(f"Unknown log level {level!r}")
    return number


def configure_logging(level: str | int = _DEFAULT_LEVEL, json_output: bool | None = None) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        level: Minimum level, as a name ("DEBUG") or number (logging.DEBUG).
        json_output: Render JSON lines instead of console output. Defaults to
            FORWARDOPS_LOG_FORMAT=json.
    """
    number = _level_number(level)
    if json_output is None:
        json_output = os.environ.get("FORWARDOPS_LOG_FORMAT", "").lower() == "json"

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if json_output:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    # Not cached: each CLI invocation may run with a different stderr.
    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(number),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=shared_processors,
    )
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(number)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(number, logging.WARNING))


def get_logger(name: str = "forwardops") -> structlog.BoundLogger:
    """Return a named logger, configuring structlog with defaults on first call."""
    if not structlog.is_configured():
        configure_logging()
    return structlog.get_logger(logger_name=name)


__all__ = ["configure_logging", "get_logger"]
