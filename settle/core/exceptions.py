"""Custom exception hierarchy for settle.

All settle-specific exceptions inherit from SettleError, enabling
users to catch all settle exceptions with a single except clause.
Errors raised by a probe are never wrapped; they reach the caller unchanged.
"""

from __future__ import annotations

import builtins
from collections.abc import Iterable

from settle.duration import format_duration


class SettleError(Exception):
    """Base exception for all settle errors."""


class ConfigurationError(SettleError):
    """Raised for an invalid WaitSpec or config profile."""


class NotFoundError(SettleError):
    """Raised when a resource stays invisible past the not-found budget.

    Probes may also raise it (or a subclass) to report that the resource
    does not exist yet; the evaluator tolerates it up to ``not_found_checks``
    times.
    """

    def __init__(
        self,
        message: str = "",
        *,
        last_error: BaseException | None = None,
        retries: int = 0,
    ) -> None:
        self.message = message
        self.last_error = last_error
        self.retries = retries
        super().__init__(str(self))

    def __str__(self) -> str:
        if self.message:
            return self.message
        if self.retries > 0:
            text = f"couldn't find resource ({self.retries} retries)"
        else:
            text = "couldn't find resource"
        if self.last_error is not None:
            return f"{text}: {self.last_error}"
        return text


class EmptyResultError(NotFoundError):
    """Raised by finders when a lookup succeeded but returned nothing."""

    def __init__(self, query: object = None) -> None:
        self.query = query
        super().__init__("empty result")


class UnexpectedStateError(SettleError):
    """Raised when a probe reports a state that is neither pending nor target."""

    def __init__(
        self,
        state: str,
        expected: Iterable[str],
        *,
        last_error: BaseException | None = None,
    ) -> None:
        self.state = state
        self.expected = tuple(expected)
        self.last_error = last_error
        super().__init__(str(self))

    def __str__(self) -> str:
        text = f"unexpected state '{self.state}', wanted target '{', '.join(self.expected)}'"
        if self.last_error is not None:
            return f"{text}. last error: {self.last_error}"
        return text


class _WaitAbortedError(SettleError):
    """Shared shape of timeout and cancellation errors."""

    def __init__(
        self,
        *,
        expected: Iterable[str] = (),
        last_state: str = "",
        timeout: float = 0.0,
        last_error: BaseException | None = None,
    ) -> None:
        self.expected = tuple(expected)
        self.last_state = last_state
        self.timeout = timeout
        self.last_error = last_error
        super().__init__(str(self))

    def _describe(self, verb: str) -> str:
        if self.expected:
            expected = f"state to become '{', '.join(self.expected)}'"
        else:
            expected = "resource to be gone"

        extra: list[str] = []
        if self.last_state:
            extra.append(f"last state: '{self.last_state}'")
        if self.timeout > 0:
            extra.append(f"timeout: {format_duration(self.timeout)}")
        suffix = f" ({', '.join(extra)})" if extra else ""

        text = f"{verb} while waiting for {expected}{suffix}"
        if self.last_error is not None:
            return f"{text}: {self.last_error}"
        return text


class WaitTimeoutError(_WaitAbortedError, builtins.TimeoutError):
    """Raised when the wait deadline passes before a terminal outcome."""

    def __str__(self) -> str:
        return self._describe("timeout")


class WaitCancelledError(_WaitAbortedError):
    """Raised when the wait is cancelled externally before a terminal outcome."""

    def __str__(self) -> str:
        return self._describe("cancelled")
