"""
Structured logging for the discovery events service.

JSON lines on stdout via structlog over stdlib logging. Request-scoped fields
(request_id, path) are bound as contextvars by RequestContextMiddleware and
merged into every entry.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.stdlib import LoggerFactory

NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def _add_trace_context(logger, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Tag entries emitted while serving an HTTP request."""
    if "request_id" in event_dict:
        event_dict.setdefault("trace", "http")
    return event_dict


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            _add_trace_context,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    # The catalog fan-out issues many requests per page; keep per-request noise out
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def log_fetch_summary(
    slug: str,
    mode: str,
    cache_status: str,
    total_events: int,
    duration_ms: float,
    stale: bool = False,
):
    """One line per discovery fetch outcome, with the same fields every time."""
    logger = get_logger("discovery")
    fields = {
        "event_type": "discovery_fetch",
        "slug": slug,
        "mode": mode,
        "cache_status": cache_status,
        "total_events": total_events,
        "duration_ms": duration_ms,
    }

    if stale:
        logger.warning("Served stale discovery payload", stale=True, **fields)
    else:
        logger.info("Discovery fetch completed", **fields)
