"""Structured logging setup shared by the API and background helpers."""

import logging
import re
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor

_KEY_PARAM = re.compile(r'([?&]key=)[^&\s]+')
_GOOGLE_KEY = re.compile(r'(AIza[0-9A-Za-z\-_]{35})')


def redact_api_keys(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Scrub API keys from any string value in the event dict.

    Directions and geocoding URLs carry the Maps key as a ``key=`` query
    parameter; this runs before rendering so neither console nor file output
    ever contains one.
    """

    def scrub(v):
        if isinstance(v, str):
            v = _KEY_PARAM.sub(r'\1REDACTED', v)
            return _GOOGLE_KEY.sub('REDACTED', v)
        if isinstance(v, list):
            return [scrub(x) for x in v]
        if isinstance(v, tuple):
            return tuple(scrub(x) for x in v)
        if isinstance(v, dict):
            return {k: scrub(vv) for k, vv in v.items()}
        return v

    for k, v in list(event_dict.items()):
        event_dict[k] = scrub(v)
    return event_dict


def configure_logging(log_level: str = "INFO", json_logs: bool = True) -> None:
    """
    Configure structlog and route stdlib logging through the same stream.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: Render JSON lines instead of the colourised console format
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        redact_api_keys,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if json_logs:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
