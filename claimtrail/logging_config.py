"""Structured JSON logging for claimtrail.

Provides a JSON formatter and correlation ID support using stdlib logging.

Usage:
    from claimtrail.logging_config import configure_logging, log_context

    configure_logging(level="INFO", json_output=True)
    with log_context(claim_id="C1", event="payment.issued"):
        logger.info("dispatching")
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

# Correlation context, propagated to all log records in the current async task / thread.
_correlation: contextvars.ContextVar[dict[str, str] | None] = contextvars.ContextVar("_correlation", default=None)

_EXTRA_FIELDS = ("duration_sec", "claim_id", "event", "source", "request_id", "outcome")


def set_correlation_id(**kwargs: str) -> contextvars.Token:
    """Set correlation IDs (request_id, claim_id, etc.) for the current context."""
    current = (_correlation.get() or {}).copy()
    current.update({k: v for k, v in kwargs.items() if v is not None})
    return _correlation.set(current)


def clear_correlation_id() -> None:
    """Clear all correlation IDs."""
    _correlation.set(None)


class log_context:
    """Context manager that injects correlation IDs into all log records within
    its scope, even across async awaits.

    Example::

        with log_context(claim_id="C1", source="payment-gateway"):
            logger.info("payment recorded")
    """

    def __init__(self, **kwargs: Any) -> None:
        self._kwargs = {k: str(v) for k, v in kwargs.items() if v is not None}
        self._token: contextvars.Token | None = None

    def __enter__(self) -> log_context:
        self._token = set_correlation_id(**self._kwargs)
        return self

    def __exit__(self, *_: Any) -> None:
        if self._token is not None:
            _correlation.reset(self._token)


class JSONFormatter(logging.Formatter):
    """Emit log records as single-line JSON objects.

    Fields: timestamp, level, logger, message, correlation IDs, exc_info.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        corr = _correlation.get()
        if corr:
            entry["correlation"] = corr

        # Extra fields (e.g. logger.info("msg", extra={"duration_sec": 1.2}))
        for key in _EXTRA_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                entry[key] = val

        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False, default=str)


def configure_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: str | None = None,
) -> None:
    """Configure root logger for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
        json_output: If True, emit JSON; otherwise human-readable.
        log_file: Optional file path for log output (in addition to stderr).
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Remove existing handlers to avoid duplicates on re-configure
    for h in root.handlers[:]:
        root.removeHandler(h)

    if json_output:
        fmt: logging.Formatter = JSONFormatter()
    else:
        fmt = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(fmt)
    root.addHandler(stderr_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(fmt)
        root.addHandler(file_handler)
