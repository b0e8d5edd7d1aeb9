"""
structlog configuration.

Log events are privacy-first: any key that could carry a secret, a
fingerprint or a raw metric value is masked before rendering, whatever the
caller passed.
"""

from __future__ import annotations

import logging
import sys
from typing import Any, MutableMapping

import structlog

REDACTED = "[REDACTED]"

SENSITIVE_KEYS = frozenset({
    "private_inputs",
    "user_secret",
    "supporter_secret",
    "secret",
    "fingerprint",
    "witness",
    "assignment",
    "proving_key",
    "metric_vector",
    "vector",
    "value",
    "values",
    "exact_sum",
    "statistic",
    "mood_history",
    "interaction_history",
})


def redact_sensitive(
    _logger: Any, _method: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    for key in event_dict:
        if key in SENSITIVE_KEYS or key.endswith("_secret"):
            event_dict[key] = REDACTED
    return event_dict


def configure_logging(level: str = "INFO", json: bool = False) -> None:
    """Install the structlog pipeline (redaction first, then rendering)."""
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        raise ValueError(f"unknown log level: {level}")

    renderer = (
        structlog.processors.JSONRenderer()
        if json
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            redact_sensitive,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )
