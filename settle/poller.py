"""Poll loop and probe worker.

The probe runs off the coordinating task: synchronous probes on a daemon
thread, coroutine probes as their own asyncio task. Each invocation hands
exactly one PollResult back through a one-shot future, and the loop never
starts a new invocation while one is outstanding. When the supervisor stops
waiting, an in-flight invocation is simply left to finish on its own and its
result is dropped.
"""

from __future__ import annotations

import asyncio
import inspect
import itertools
import threading
from concurrent.futures import ThreadPoolExecutor
from contextlib import suppress
from typing import TYPE_CHECKING

from loguru import logger

from settle.constants import INITIAL_BACKOFF, MAX_BACKOFF, MAX_POLL_INTERVAL
from settle.evaluator import ConvergenceEvaluator, Phase
from settle.spec import PollResult

if TYPE_CHECKING:
    from settle.spec import Probe, WaitSpec

_worker_ids = itertools.count(1)


def _complete[T](future: asyncio.Future[PollResult[T]], result: PollResult[T]) -> None:
    if not future.done():
        future.set_result(result)


def next_wait(spec: WaitSpec, previous: float, target_occurrence: int) -> float:
    """Seconds to sleep before the next poll.

    A fixed ``poll_interval`` wins, bounded below by ``min_timeout``.
    Without one, the previous wait doubles after every poll that didn't see the
    target, is held while a target streak is being reconfirmed, and is
    clamped to ``[min_timeout, MAX_BACKOFF]``.
    """
    if 0 < spec.poll_interval < MAX_POLL_INTERVAL:
        return max(spec.poll_interval, spec.min_timeout)

    wait = previous * 2 if target_occurrence == 0 else previous
    return max(spec.min_timeout, min(wait, MAX_BACKOFF))


class ProbeWorker[T]:
    """Runs one probe invocation at a time outside the coordinating task."""

    def __init__(self, probe: Probe[T], *, name: str = "") -> None:
        self._probe = probe
        self._name = name or getattr(probe, "__name__", "probe")
        self._is_async = inspect.iscoroutinefunction(probe) or inspect.iscoroutinefunction(
            getattr(probe, "__call__", None)
        )
        self._inflight: asyncio.Future[PollResult[T]] | None = None
        self._background: set[asyncio.Task[None]] = set()

    @property
    def busy(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def submit(self) -> asyncio.Future[PollResult[T]]:
        if self.busy:
            raise RuntimeError(f"probe {self._name} is already in flight")

        loop = asyncio.get_running_loop()
        future: asyncio.Future[PollResult[T]] = loop.create_future()
        self._inflight = future

        if self._is_async:
            task = loop.create_task(self._run_async(future), name=f"settle-probe-{self._name}")
            self._background.add(task)
            task.add_done_callback(self._background.discard)
        else:
            thread = threading.Thread(
                target=self._run_sync,
                args=(loop, future),
                name=f"settle-probe-{self._name}-{next(_worker_ids)}",
                daemon=True,
            )
            thread.start()
        return future

    def _invoke_sync(self) -> PollResult[T]:
        try:
            observation = self._probe()
        except Exception as e:
            return PollResult.failed(e)
        try:
            return PollResult.from_observation(observation)  # type: ignore[arg-type]
        except TypeError as e:
            return PollResult.failed(e)

    def _run_sync(self, loop: asyncio.AbstractEventLoop, future: asyncio.Future[PollResult[T]]) -> None:
        result = self._invoke_sync()
        # The loop is gone once the wait returned and its owner shut it down.
        with suppress(RuntimeError):
            loop.call_soon_threadsafe(_complete, future, result)

    async def _run_async(self, future: asyncio.Future[PollResult[T]]) -> None:
        try:
            observation = await self._probe()  # type: ignore[misc]
            result = PollResult.from_observation(observation)
        except Exception as e:
            result = PollResult.failed(e)
        _complete(future, result)


class PollLoop[T]:
    """Drives strictly serialized probe invocations through the evaluator.

    ``run()`` returns the converged value or raises the terminal error.
    ``expire()`` marks the deadline as passed: the result of an invocation
    already in flight is still evaluated, and unless it completes the wait
    the loop raises WaitTimeoutError instead of polling again.
    """

    def __init__(
        self,
        spec: WaitSpec[T],
        evaluator: ConvergenceEvaluator[T] | None = None,
        worker: ProbeWorker[T] | None = None,
    ) -> None:
        self.spec = spec
        self.evaluator = evaluator or ConvergenceEvaluator(spec)
        self.worker = worker or ProbeWorker(spec.probe, name=spec.name)
        self._expired = False
        self._hooks: set[asyncio.Future[object]] = set()
        self._hook_pool: ThreadPoolExecutor | None = None
        self._log = logger.bind(component="poller", wait=spec.name)

    @property
    def probing(self) -> bool:
        return self.worker.busy

    def expire(self) -> None:
        self._expired = True

    async def run(self) -> T | None:
        spec = self.spec
        evaluator = self.evaluator

        if spec.delay > 0:
            self._log.debug("Waiting {delay:.3f}s before first poll", delay=spec.delay)
            await asyncio.sleep(spec.delay)

        wait = INITIAL_BACKOFF
        try:
            while True:
                result = await self.worker.submit()
                phase = evaluator.observe(result)
                self._log.trace(
                    "Poll {n}: state={state!r} phase={phase}",
                    n=evaluator.state.polls,
                    state=result.state,
                    phase=phase,
                )
                self._notify()

                match phase:
                    case Phase.SUCCEEDED:
                        self._log.debug("Converged after {n} polls", n=evaluator.state.polls)
                        return evaluator.state.value
                    case Phase.FAILED:
                        error = evaluator.state.error
                        if error is None:
                            raise RuntimeError("wait failed without recording an error")
                        if self._expired:
                            raise evaluator.expire(error=error) from error
                        raise error
                    case _ if self._expired:
                        raise evaluator.expire()

                wait = next_wait(spec, wait, evaluator.state.target_occurrence)
                await asyncio.sleep(wait)
        finally:
            self._close_hooks()

    def _notify(self) -> None:
        hook = self.spec.on_poll
        if hook is None:
            return
        event = self.evaluator.event()
        try:
            if inspect.iscoroutinefunction(hook) or inspect.iscoroutinefunction(
                getattr(hook, "__call__", None)
            ):
                future = asyncio.ensure_future(hook(event))
            else:
                # One worker keeps sync hooks in poll order.
                if self._hook_pool is None:
                    self._hook_pool = ThreadPoolExecutor(
                        max_workers=1,
                        thread_name_prefix=f"settle-hook-{self.spec.name or 'wait'}",
                    )
                future = asyncio.get_running_loop().run_in_executor(self._hook_pool, hook, event)
        except Exception:
            self._log.opt(exception=True).warning("Poll hook failed")
            return
        self._hooks.add(future)
        future.add_done_callback(self._hook_done)

    def _close_hooks(self) -> None:
        if self._hook_pool is not None:
            self._hook_pool.shutdown(wait=False)
            self._hook_pool = None

    def _hook_done(self, task: asyncio.Future[object]) -> None:
        self._hooks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            self._log.opt(exception=task.exception()).warning("Poll hook failed")
