"""Ready-made waits for common call-site shapes.

Each helper builds a WaitSpec and hands it to wait_for_state, so timeouts,
grace periods and error types behave exactly as for a hand-written spec.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from settle.constants import DEFAULT_NOT_FOUND_CHECKS, DEFAULT_REFRESH_GRACE_PERIOD, Absence
from settle.core.exceptions import NotFoundError
from settle.spec import Observation, Probe, WaitSpec
from settle.supervisor import wait_for_state

_READY = "ready"
_PENDING = "pending"
_TERMINAL = "terminal"
_FOUND = "found"


async def wait_until_gone[T](
    probe: Probe[T],
    *,
    pending: Iterable[str],
    timeout: float,
    poll_interval: float = 0.0,
    delay: float = 0.0,
    refresh_grace_period: float = DEFAULT_REFRESH_GRACE_PERIOD,
    name: str = "",
) -> None:
    """Wait until ``probe`` stops seeing the resource.

    The probe reports absence by returning a None value or raising
    NotFoundError. Any state outside ``pending`` fails the wait.
    """
    spec = WaitSpec(
        probe=probe,
        pending=tuple(pending),
        target=(),
        timeout=timeout,
        poll_interval=poll_interval,
        delay=delay,
        refresh_grace_period=refresh_grace_period,
        name=name,
    )
    await wait_for_state(spec)


async def wait_for_ready[T](
    poll_fn: Callable[[], Awaitable[T | None]],
    ready_check: Callable[[T], bool],
    *,
    terminal_check: Callable[[T], bool] | None = None,
    timeout: float = 300.0,
    interval: float = 5.0,
    not_found_checks: int = DEFAULT_NOT_FOUND_CHECKS,
    description: str = "resource",
) -> T:
    """Wait until poll_fn returns something that passes ready_check.

    Args:
        poll_fn: Async function that polls for the resource state. None
            means the resource isn't visible yet.
        ready_check: Function that returns True when resource is ready.
        terminal_check: Optional function that returns True if resource reached
            a terminal failure state (e.g., terminated, failed).
        timeout: Maximum time to wait in seconds.
        interval: Time between polls in seconds.
        not_found_checks: How many None results to tolerate.
        description: Description used in log records.

    Returns:
        The ready resource.

    Raises:
        WaitTimeoutError: If timeout is exceeded.
        UnexpectedStateError: If resource reaches terminal state.
        NotFoundError: If poll_fn keeps returning None past the budget.
    """

    async def probe() -> Observation[T]:
        result = await poll_fn()
        if result is None:
            return None, Absence.NOT_FOUND
        if ready_check(result):
            return result, _READY
        if terminal_check is not None and terminal_check(result):
            return result, _TERMINAL
        return result, _PENDING

    spec = WaitSpec(
        probe=probe,
        pending=(_PENDING,),
        target=(_READY,),
        timeout=timeout,
        poll_interval=interval,
        not_found_checks=not_found_checks,
        name=description,
    )
    return await wait_for_state(spec)  # type: ignore[return-value]


async def retry_until_not_found(
    fn: Callable[[], Any] | Callable[[], Awaitable[Any]],
    *,
    timeout: float,
    poll_interval: float = 0.0,
    name: str = "",
) -> None:
    """Call ``fn`` until it raises NotFoundError.

    Used after a delete to wait out read-after-delete inconsistency.
    Errors other than NotFoundError propagate unchanged.
    """
    if inspect.iscoroutinefunction(fn):

        async def probe_async() -> Observation[bool]:
            try:
                await fn()
            except NotFoundError:
                return None, Absence.GONE
            return True, _FOUND

        probe: Probe[bool] = probe_async
    else:

        def probe_sync() -> Observation[bool]:
            try:
                fn()
            except NotFoundError:
                return None, Absence.GONE
            return True, _FOUND

        probe = probe_sync

    spec = WaitSpec(
        probe=probe,
        pending=(_FOUND,),
        target=(),
        timeout=timeout,
        poll_interval=poll_interval,
        name=name,
    )
    await wait_for_state(spec)
