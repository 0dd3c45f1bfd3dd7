"""Deadline and cancellation supervision for waits.

``wait_for_state`` is the entry point of the library. It runs a PollLoop as
a task and races it against the spec's timeout and an optional external
cancellation event.

On deadline the in-flight probe, if any, gets ``refresh_grace_period`` to
return. A result landing inside the grace window is still evaluated and can
complete the wait; otherwise WaitTimeoutError is raised. On external
cancellation, grace window included, the wait is torn down at once and
WaitCancelledError is raised.
Either way the coordinating task is released within
``timeout + refresh_grace_period``, whatever the probe is doing: an
abandoned invocation keeps running in the background and its result is
discarded.
"""

from __future__ import annotations

import asyncio
import threading
from contextlib import suppress
from typing import TYPE_CHECKING

from loguru import logger

from settle.constants import CANCEL_RELAY_STEP
from settle.duration import format_duration
from settle.poller import PollLoop

if TYPE_CHECKING:
    from settle.spec import WaitSpec


async def _discard(task: asyncio.Task[object]) -> None:
    task.cancel()
    with suppress(asyncio.CancelledError, Exception):
        await task


async def wait_for_state[T](
    spec: WaitSpec[T],
    *,
    cancel: asyncio.Event | None = None,
) -> T | None:
    """Poll ``spec.probe`` until the resource converges.

    Args:
        spec: The wait contract.
        cancel: Optional event; setting it aborts the wait.

    Returns:
        The value returned with the last target observation (None for
        waits on absence).

    Raises:
        WaitTimeoutError: The deadline passed first.
        WaitCancelledError: ``cancel`` was set first.
        UnexpectedStateError: The probe reported an unknown state.
        NotFoundError: The resource stayed invisible past the budget.
        Exception: Anything the probe raised, unchanged.
    """
    poll_loop = PollLoop(spec)
    log = logger.bind(component="supervisor", wait=spec.name)

    runner = asyncio.create_task(poll_loop.run(), name=f"settle-wait-{spec.name or 'anonymous'}")
    watched: set[asyncio.Future[object]] = {runner}
    canceller: asyncio.Task[object] | None = None
    if cancel is not None:
        canceller = asyncio.create_task(cancel.wait())
        watched.add(canceller)

    try:
        done, _ = await asyncio.wait(watched, timeout=spec.timeout, return_when=asyncio.FIRST_COMPLETED)
        if runner in done:
            return runner.result()

        if canceller not in done:
            log.warning("Wait timed out after {timeout}", timeout=format_duration(spec.timeout))
            poll_loop.expire()
            if poll_loop.probing and spec.refresh_grace_period > 0:
                log.warning(
                    "Starting {grace} refresh grace period",
                    grace=format_duration(spec.refresh_grace_period),
                )
                done, _ = await asyncio.wait(
                    watched,
                    timeout=spec.refresh_grace_period,
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if runner in done:
                    return runner.result()
    except asyncio.CancelledError:
        await _discard(runner)
        raise
    finally:
        if canceller is not None:
            canceller.cancel()

    if canceller is not None and canceller in done:
        log.warning("Wait cancelled after {n} polls", n=poll_loop.evaluator.state.polls)
        await _discard(runner)
        raise poll_loop.evaluator.cancel()

    if poll_loop.probing:
        log.error("Wait exceeded refresh grace period, abandoning in-flight probe")
    await _discard(runner)
    raise poll_loop.evaluator.expire()


def _relay_cancel(
    source: threading.Event,
    target: asyncio.Event,
    stop: threading.Event,
) -> threading.Thread:
    loop = asyncio.get_running_loop()

    def watch() -> None:
        while not stop.is_set():
            if source.wait(CANCEL_RELAY_STEP):
                loop.call_soon_threadsafe(target.set)
                return

    thread = threading.Thread(target=watch, name="settle-cancel-relay", daemon=True)
    thread.start()
    return thread


def wait_for_state_blocking[T](
    spec: WaitSpec[T],
    *,
    cancel: threading.Event | None = None,
) -> T | None:
    """Synchronous ``wait_for_state`` for callers without an event loop.

    ``cancel`` is a threading.Event that another thread may set to abort
    the wait. Must not be called from a running event loop.
    """

    async def main() -> T | None:
        if cancel is None:
            return await wait_for_state(spec)

        event = asyncio.Event()
        if cancel.is_set():
            event.set()
            return await wait_for_state(spec, cancel=event)

        stop = threading.Event()
        relay = _relay_cancel(cancel, event, stop)
        try:
            return await wait_for_state(spec, cancel=event)
        finally:
            stop.set()
            await asyncio.to_thread(relay.join)

    return asyncio.run(main())
