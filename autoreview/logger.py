from __future__ import annotations

import os
import sys
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from loguru import logger as _logger

_CONFIGURED = False
LOG_DIR_ENV = "APP_LOG_DIR"
LOG_LEVEL_ENV = "APP_LOG_LEVEL"


def _resolve_log_dir(explicit: str | Path | None) -> Path | None:
    """Determine the directory to store log files, if any."""

    if explicit is not None:
        return Path(explicit).expanduser().resolve()
    env_value = os.getenv(LOG_DIR_ENV)
    if env_value:
        return Path(env_value).expanduser().resolve()
    return None


def configure_logger(
    *, log_dir: str | Path | None = None, level: str | None = None, force: bool = False
) -> None:
    """Configure the Loguru logger exactly once per process.

    ``force`` re-applies the sinks, which the CLI uses after parsing ``--log-level``.
    """

    global _CONFIGURED
    if _CONFIGURED and not force:
        return

    log_level = (level or os.getenv(LOG_LEVEL_ENV, "INFO")).upper()

    _logger.remove()
    log_format = (
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
        "<level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
    )

    # stdout is left alone so the CLI output stays machine-readable
    _logger.add(
        sys.stderr,
        level=log_level,
        format=log_format,
        colorize=sys.stderr.isatty(),
    )

    target_dir = _resolve_log_dir(log_dir)
    if target_dir is not None:
        target_dir.mkdir(parents=True, exist_ok=True)
        _logger.add(
            target_dir / "autoreview-{time:YYYY-MM-DD}.log",
            rotation="50 MB",
            retention="10 days",
            level="DEBUG",
            format=log_format,
            enqueue=True,
            backtrace=True,
            diagnose=False,
        )

    _CONFIGURED = True


def get_logger(*, log_dir: str | Path | None = None, level: str | None = None):
    """Return the configured logger, configuring it on first access."""

    configure_logger(log_dir=log_dir, level=level)
    return _logger


def log_with_context(logger_instance, **context: str | int | None) -> Any:
    """Add context fields to log messages.

    Usage:
        logger = log_with_context(get_logger(), change_set=42, path="src/app.py")
        logger.info("Dispatching analysis")
    """
    return logger_instance.bind(**{k: v for k, v in context.items() if v is not None})


def log_timing(logger_instance, operation: str, **context: str | int | None):
    """Context manager to log operation timing.

    Usage:
        with log_timing(logger, "load_diff", change_set=42):
            # operation code
    """
    @contextmanager
    def _timing():
        start_time = time.monotonic()
        ctx_logger = log_with_context(logger_instance, **context)
        ctx_logger.debug(f"Starting {operation}")
        try:
            yield ctx_logger
            duration = time.monotonic() - start_time
            ctx_logger.debug(f"Completed {operation} in {duration:.3f}s")
        except Exception as exc:
            duration = time.monotonic() - start_time
            ctx_logger.error(f"Failed {operation} after {duration:.3f}s: {exc}")
            raise
    return _timing()


def log_success(logger_instance, message: str, **context: str | int | None) -> None:
    """Log a success message with context."""
    log_with_context(logger_instance, **context).info(f"=== SUCCESS: {message} ===")


def log_failure(logger_instance, message: str, error: Exception | None = None, **context: str | int | None) -> None:
    """Log a failure message with context and optional error."""
    ctx_logger = log_with_context(logger_instance, **context)
    if error:
        ctx_logger.error(f"=== FAILURE: {message} | Error: {error} ===")
    else:
        ctx_logger.error(f"=== FAILURE: {message} ===")
