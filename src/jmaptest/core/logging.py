"""Structured logging configuration for jmaptest.

Non-TTY stderr (CI logs): structured JSON with ISO timestamps.
TTY stderr: colored console output for readability.

Transport and tester events carry whole JMAP payloads at debug level;
``truncate_payloads`` keeps those lines bounded.
"""

import json
import logging
import sys

import structlog


_PRIORITY_KEYS = ("timestamp", "level", "component", "event", "call_id")
_PAYLOAD_KEYS = ("request", "response", "arguments")
MAX_PAYLOAD_CHARS = 2000


def reorder_keys(
    logger: object, method_name: str, event_dict: dict[str, object]
) -> dict[str, object]:
    """Put priority fields first so JSON lines scan left to right."""
    ordered: dict[str, object] = {}
    for key in _PRIORITY_KEYS:
        if key in event_dict:
            ordered[key] = event_dict[key]
    for key, value in event_dict.items():
        if key not in ordered:
            ordered[key] = value
    return ordered


def truncate_payloads(
    logger: object, method_name: str, event_dict: dict[str, object]
) -> dict[str, object]:
    """Serialize JMAP payload fields and cut them at MAX_PAYLOAD_CHARS."""
    for key in _PAYLOAD_KEYS:
        if key not in event_dict:
            continue
        value = event_dict[key]
        text = value if isinstance(value, str) else json.dumps(value, default=str)
        if len(text) > MAX_PAYLOAD_CHARS:
            text = f"{text[:MAX_PAYLOAD_CHARS]}... ({len(text)} chars)"
        event_dict[key] = text
    return event_dict


def configure_logging(log_level: str = "info") -> None:
    """Configure structlog for JSON output (CI) or console (terminal).

    Args:
        log_level: Logging level name (debug, info, warning, error, critical).
                   Fed from the ``logging.level`` setting.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    shared_processors: list[structlog.types.Processor] = [
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        truncate_payloads,
        structlog.processors.format_exc_info,
    ]

    if sys.stderr.isatty():
        renderer: structlog.types.Processor = structlog.dev.ConsoleRenderer()
    else:
        shared_processors.append(structlog.processors.dict_tracebacks)
        shared_processors.append(reorder_keys)
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def get_logger(**initial_context: object) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger, optionally with bound context."""
    return structlog.get_logger(**initial_context)
