"""Core types shared across settle."""

from settle.core.exceptions import (
    ConfigurationError,
    EmptyResultError,
    NotFoundError,
    SettleError,
    UnexpectedStateError,
    WaitCancelledError,
    WaitTimeoutError,
)

__all__ = [
    "SettleError",
    "ConfigurationError",
    "NotFoundError",
    "EmptyResultError",
    "UnexpectedStateError",
    "WaitTimeoutError",
    "WaitCancelledError",
]
