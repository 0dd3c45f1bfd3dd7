"""Observability for settle: loguru setup helpers."""

from settle.observability.logging import (
    LogConfig,
    LogLevel,
    logging_enabled,
    setup_logging,
    teardown_logging,
)

__all__ = [
    "LogConfig",
    "LogLevel",
    "logging_enabled",
    "setup_logging",
    "teardown_logging",
]
