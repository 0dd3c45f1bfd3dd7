"""Helpers for building probes.

Probes are plain callables returning ``(value, state)``. These helpers cover
the two shapes call sites keep writing by hand: turning a finder that raises
NotFoundError into an absence-aware probe, and retrying transient failures
inside the probe (the poller itself never retries).
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any

from loguru import logger
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_fixed,
)

from settle.constants import Absence
from settle.core.exceptions import NotFoundError
from settle.spec import Observation, Probe


def not_found(error: BaseException | None) -> bool:
    """True if ``error`` means the resource isn't there (yet)."""
    return isinstance(error, NotFoundError)


def status_probe[R, T](
    find: Callable[[], R] | Callable[[], Awaitable[R]],
    status: Callable[[R], str],
    *,
    value: Callable[[R], T] | None = None,
) -> Probe[T]:
    """Build a probe from a finder and a status extractor.

    A NotFoundError from ``find`` becomes ``(None, "")`` so the wait can
    treat it as absence. Any other error propagates to the wait.

    Example:
        probe = status_probe(
            lambda: find_workspace(client, workspace_id),
            lambda ws: ws["status"]["statusCode"],
        )
    """
    project = value or (lambda found: found)

    if inspect.iscoroutinefunction(find):

        async def probe_async() -> Observation[T]:
            try:
                found = await find()
            except NotFoundError:
                return None, Absence.GONE
            return project(found), status(found)

        return probe_async

    def probe() -> Observation[T]:
        try:
            found = find()
        except NotFoundError:
            return None, Absence.GONE
        return project(found), status(found)  # type: ignore[arg-type]

    return probe


def _log_retry(state: RetryCallState) -> None:
    error = state.outcome.exception() if state.outcome else None
    logger.bind(component="probe").warning(
        "Probe attempt {n} failed, retrying: {error}",
        n=state.attempt_number,
        error=error,
    )


def retrying[T](
    probe: Probe[T],
    *,
    attempts: int = 3,
    wait: float = 1.0,
    backoff: bool = False,
    on: type[BaseException] | tuple[type[BaseException], ...] = (ConnectionError, OSError),
) -> Probe[T]:
    """Wrap a probe so transient errors are retried before reaching the wait.

    NotFoundError is never retried here; the wait's not-found budget owns it.

    Args:
        probe: The probe to wrap.
        attempts: Total attempts per poll.
        wait: Seconds between attempts (initial wait when ``backoff``).
        backoff: Use exponential backoff instead of a fixed wait.
        on: Exception types considered transient.
    """
    policy: dict[str, Any] = {
        "stop": stop_after_attempt(attempts),
        "wait": wait_exponential(multiplier=wait, min=wait, max=wait * 8) if backoff else wait_fixed(wait),
        "retry": retry_if_exception_type(on) & retry_if_not_exception_type(NotFoundError),
        "before_sleep": _log_retry,
        "reraise": True,
    }

    if inspect.iscoroutinefunction(probe):

        @retry(**policy)
        @wraps(probe)
        async def retried_async() -> Observation[T]:
            return await probe()

        return retried_async

    @retry(**policy)
    @wraps(probe)
    def retried() -> Observation[T]:
        return probe()  # type: ignore[return-value]

    return retried
