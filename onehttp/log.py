"""Logging helpers for onehttp.

Library code only emits records; setup_logging is for the CLI and for
applications that want a quick default configuration.
"""

from __future__ import annotations

import logging
import os
from datetime import timedelta

DEFAULT_LOG_LEVEL = os.getenv("ONEHTTP_LOG_LEVEL", "WARNING").upper()


def setup_logging(level: str | None = None) -> None:
    """Configure standard logging for CLI use."""
    effective_level = (level or DEFAULT_LOG_LEVEL).upper()
    logging.basicConfig(
        level=getattr(logging, effective_level, logging.WARNING),
        format="%(levelname)s %(name)s: %(message)s",
    )


def log_request_starting(logger: logging.Logger | None, method: str, url: str) -> None:
    """Record that a request is about to be sent. No-op without a logger."""
    if logger is None:
        return
    logger.info(
        "Request starting %s %s",
        method,
        url,
        extra={"http_method": method, "request_uri": url},
    )


def log_request_finished(
    logger: logging.Logger | None,
    elapsed: timedelta,
    status_code: int,
) -> None:
    """Record that a response was fully read. No-op without a logger."""
    if logger is None:
        return
    elapsed_ms = elapsed.total_seconds() * 1000
    logger.info(
        "Request finished in %.1f ms [%d]",
        elapsed_ms,
        status_code,
        extra={"elapsed_ms": elapsed_ms, "status_code": status_code},
    )


__all__ = ["DEFAULT_LOG_LEVEL", "log_request_finished", "log_request_starting", "setup_logging"]
