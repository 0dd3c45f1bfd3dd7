from __future__ import annotations

import asyncio
import threading
import time

import pytest

from settle import (
    NotFoundError,
    UnexpectedStateError,
    WaitCancelledError,
    WaitSpec,
    WaitTimeoutError,
    wait_for_state,
    wait_for_state_blocking,
)

pytestmark = [pytest.mark.timing, pytest.mark.timeout(30)]


class TestInconsistentProbe:
    @pytest.mark.asyncio
    async def test_succeeds_on_third_consecutive_target(self, inconsistent):
        spec = WaitSpec(
            probe=inconsistent,
            pending=("replicating",),
            target=("done",),
            timeout=5.0,
            poll_interval=0.01,
            continuous_target_occurrence=3,
        )

        assert await wait_for_state(spec) == 4
        assert inconsistent.calls == 5

    @pytest.mark.asyncio
    async def test_times_out_when_streak_never_reaches_four(self, inconsistent):
        spec = WaitSpec(
            probe=inconsistent,
            pending=("replicating",),
            target=("done",),
            timeout=0.25,
            poll_interval=0.01,
            continuous_target_occurrence=4,
            refresh_grace_period=0.05,
        )

        with pytest.raises(WaitTimeoutError) as exc_info:
            await wait_for_state(spec)

        assert inconsistent.calls >= 6
        assert str(exc_info.value).startswith("timeout while waiting for state to become 'done'")
        assert exc_info.value.last_state == "replicating"


class TestTimeout:
    @pytest.mark.asyncio
    async def test_hung_probe_is_abandoned_after_grace(self, blocking):
        probe = blocking()
        spec = WaitSpec(
            probe=probe,
            pending=("pending", "incomplete"),
            target=("running",),
            timeout=0.001,
            refresh_grace_period=0.005,
        )

        with pytest.raises(WaitTimeoutError) as exc_info:
            await wait_for_state(spec)

        assert str(exc_info.value) == (
            "timeout while waiting for state to become 'running' (timeout: 1ms)"
        )
        assert probe.started.is_set()
        assert not probe.finished.is_set()

    @pytest.mark.asyncio
    async def test_probe_returning_in_grace_is_still_evaluated(self, blocking):
        probe = blocking("pending")
        spec = WaitSpec(
            probe=probe,
            pending=("pending", "incomplete"),
            target=("running",),
            timeout=0.01,
            poll_interval=10.0,
        )

        waiter = asyncio.create_task(wait_for_state(spec))
        await asyncio.sleep(0.05)
        assert not waiter.done()

        probe.release()
        with pytest.raises(WaitTimeoutError) as exc_info:
            await asyncio.wait_for(waiter, timeout=1.0)

        assert str(exc_info.value).startswith(
            "timeout while waiting for state to become 'running'"
        )
        assert exc_info.value.last_state == "pending"

    @pytest.mark.asyncio
    async def test_target_arriving_in_grace_succeeds(self):
        def slow() -> tuple[str, str]:
            time.sleep(0.1)
            return "ready", "running"

        spec = WaitSpec(
            probe=slow,
            pending=("pending",),
            target=("running",),
            timeout=0.02,
            refresh_grace_period=2.0,
        )

        assert await wait_for_state(spec) == "ready"

    @pytest.mark.asyncio
    async def test_returns_within_timeout_plus_grace(self, blocking):
        probe = blocking()
        spec = WaitSpec(
            probe=probe,
            pending=("pending",),
            target=("running",),
            timeout=0.05,
            refresh_grace_period=0.05,
        )

        started = time.monotonic()
        with pytest.raises(WaitTimeoutError):
            await wait_for_state(spec)

        assert time.monotonic() - started < 1.0
        assert not probe.finished.is_set()

    @pytest.mark.asyncio
    async def test_absence_wait_reports_last_state(self):
        spec = WaitSpec(
            probe=lambda: (42, "pending"),
            pending=("pending", "incomplete"),
            target=(),
            not_found_checks=1,
            poll_interval=0.01,
            timeout=0.1,
        )

        with pytest.raises(WaitTimeoutError) as exc_info:
            await wait_for_state(spec)

        assert str(exc_info.value) == (
            "timeout while waiting for resource to be gone (last state: 'pending', timeout: 100ms)"
        )

    @pytest.mark.asyncio
    async def test_slow_hook_does_not_delay_the_deadline(self):
        def hook(event) -> None:
            time.sleep(0.5)

        spec = WaitSpec(
            probe=lambda: (1, "pending"),
            pending=("pending",),
            target=("running",),
            timeout=0.1,
            poll_interval=0.05,
            refresh_grace_period=0.05,
            on_poll=hook,
        )

        started = time.monotonic()
        with pytest.raises(WaitTimeoutError):
            await wait_for_state(spec)

        assert time.monotonic() - started < 0.4

    @pytest.mark.asyncio
    async def test_timeout_is_a_builtin_timeout_error(self, blocking):
        spec = WaitSpec(
            probe=blocking(),
            target=("running",),
            timeout=0.01,
            refresh_grace_period=0.01,
        )

        with pytest.raises(TimeoutError):
            await wait_for_state(spec)


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_event_releases_blocked_wait(self, blocking):
        probe = blocking()
        cancel = asyncio.Event()
        spec = WaitSpec(
            probe=probe,
            pending=("pending", "incomplete"),
            target=("running",),
            timeout=10.0,
        )

        waiter = asyncio.create_task(wait_for_state(spec, cancel=cancel))
        await asyncio.sleep(0.02)
        assert not waiter.done()

        cancel.set()
        with pytest.raises(WaitCancelledError) as exc_info:
            await asyncio.wait_for(waiter, timeout=1.0)

        assert not isinstance(exc_info.value, WaitTimeoutError)
        assert probe.started.is_set()
        assert not probe.finished.is_set()

    @pytest.mark.asyncio
    async def test_cancel_during_sleep(self):
        cancel = asyncio.Event()
        spec = WaitSpec(
            probe=lambda: (1, "pending"),
            pending=("pending",),
            target=("running",),
            timeout=10.0,
            poll_interval=5.0,
        )

        waiter = asyncio.create_task(wait_for_state(spec, cancel=cancel))
        await asyncio.sleep(0.05)
        cancel.set()

        with pytest.raises(WaitCancelledError) as exc_info:
            await asyncio.wait_for(waiter, timeout=1.0)
        assert exc_info.value.last_state == "pending"

    @pytest.mark.asyncio
    async def test_caller_task_cancellation_propagates(self, blocking):
        spec = WaitSpec(probe=blocking(), target=("running",), timeout=10.0)

        waiter = asyncio.create_task(wait_for_state(spec))
        await asyncio.sleep(0.02)
        waiter.cancel()

        with pytest.raises(asyncio.CancelledError):
            await waiter

    def test_blocking_wait_honours_threading_event(self, blocking):
        probe = blocking()
        cancel = threading.Event()
        spec = WaitSpec(
            probe=probe,
            pending=("pending",),
            target=("running",),
            timeout=10.0,
        )

        timer = threading.Timer(0.05, cancel.set)
        timer.start()
        started = time.monotonic()
        try:
            with pytest.raises(WaitCancelledError):
                wait_for_state_blocking(spec, cancel=cancel)
        finally:
            timer.cancel()

        assert time.monotonic() - started < 2.0
        assert not probe.finished.is_set()

    @pytest.mark.asyncio
    async def test_cancel_during_grace_window(self, blocking):
        probe = blocking()
        cancel = asyncio.Event()
        spec = WaitSpec(
            probe=probe,
            pending=("pending",),
            target=("running",),
            timeout=0.02,
            refresh_grace_period=10.0,
        )

        waiter = asyncio.create_task(wait_for_state(spec, cancel=cancel))
        await asyncio.sleep(0.1)
        assert not waiter.done()

        cancel.set()
        with pytest.raises(WaitCancelledError):
            await asyncio.wait_for(waiter, timeout=1.0)
        assert not probe.finished.is_set()

    def test_blocking_wait_leaves_no_relay_thread(self, sequence):
        for _ in range(3):
            spec = WaitSpec(
                probe=sequence(["pending", "running"]),
                pending=("pending",),
                target=("running",),
                timeout=3600.0,
                poll_interval=0.01,
            )
            assert wait_for_state_blocking(spec, cancel=threading.Event()) == 1

        relays = [t for t in threading.enumerate() if t.name == "settle-cancel-relay"]
        assert relays == []

    def test_blocking_wait_with_preset_cancel(self):
        cancel = threading.Event()
        cancel.set()
        spec = WaitSpec(probe=lambda: (1, "pending"), target=("running",), timeout=10.0)

        with pytest.raises(WaitCancelledError):
            wait_for_state_blocking(spec, cancel=cancel)


class TestOutcomes:
    @pytest.mark.asyncio
    async def test_first_poll_success(self, eventually):
        events = []
        spec = WaitSpec(
            probe=lambda: ("instance", "running"),
            pending=("pending", "incomplete"),
            target=("running",),
            timeout=200.0,
            on_poll=events.append,
        )

        assert await wait_for_state(spec) == "instance"
        await eventually(lambda: len(events) == 1)

    @pytest.mark.asyncio
    async def test_unknown_states_are_pending_without_pending_set(self, sequence):
        probe = sequence(["unknown1", "unknown2", "done"])
        spec = WaitSpec(probe=probe, target=("done",), timeout=10.0, poll_interval=0.01)

        assert await wait_for_state(spec) == 2

    @pytest.mark.asyncio
    async def test_absent_resource_satisfies_empty_target(self):
        spec = WaitSpec(
            probe=lambda: (None, ""),
            pending=("pending", "incomplete"),
            target=(),
            timeout=200.0,
        )

        assert await wait_for_state(spec) is None

    @pytest.mark.asyncio
    async def test_probe_error_is_returned_verbatim(self):
        error = ValueError("failed")
        calls = 0

        def failing() -> tuple[None, str]:
            nonlocal calls
            calls += 1
            raise error

        spec = WaitSpec(
            probe=failing,
            pending=("pending", "incomplete"),
            target=("running",),
            timeout=200.0,
        )

        with pytest.raises(ValueError) as exc_info:
            await wait_for_state(spec)

        assert exc_info.value is error
        assert str(exc_info.value) == "failed"
        assert calls == 1

    @pytest.mark.asyncio
    async def test_unexpected_state_fails(self):
        spec = WaitSpec(
            probe=lambda: (1, "exploded"),
            pending=("pending",),
            target=("running",),
            timeout=10.0,
        )

        with pytest.raises(UnexpectedStateError) as exc_info:
            await wait_for_state(spec)

        assert exc_info.value.state == "exploded"
        assert exc_info.value.expected == ("running",)

    @pytest.mark.asyncio
    async def test_not_found_budget(self):
        calls = 0

        def flaky() -> tuple[str, str]:
            nonlocal calls
            calls += 1
            if calls <= 2:
                raise NotFoundError("workspace ws-1 not found")
            return "ws-1", "ACTIVE"

        spec = WaitSpec(
            probe=flaky,
            pending=("CREATING",),
            target=("ACTIVE",),
            timeout=10.0,
            poll_interval=0.01,
            not_found_checks=2,
        )

        assert await wait_for_state(spec) == "ws-1"

    @pytest.mark.asyncio
    async def test_not_found_budget_exhausted(self):
        missing = NotFoundError("workspace ws-1 not found")

        def gone() -> tuple[str, str]:
            raise missing

        spec = WaitSpec(
            probe=gone,
            pending=("CREATING",),
            target=("ACTIVE",),
            timeout=10.0,
            poll_interval=0.01,
            not_found_checks=1,
        )

        with pytest.raises(NotFoundError) as exc_info:
            await wait_for_state(spec)

        assert exc_info.value is missing

    @pytest.mark.asyncio
    async def test_classified_error_propagates_unchanged(self):
        class MissingError(Exception):
            pass

        missing = MissingError("no such workspace")
        calls = 0

        def describe() -> tuple[str, str]:
            nonlocal calls
            calls += 1
            raise missing

        spec = WaitSpec(
            probe=describe,
            pending=("CREATING",),
            target=("ACTIVE",),
            timeout=10.0,
            poll_interval=0.01,
            not_found_checks=1,
            is_not_found=lambda e: isinstance(e, MissingError),
        )

        with pytest.raises(MissingError) as exc_info:
            await wait_for_state(spec)

        assert exc_info.value is missing
        assert calls == 2

    @pytest.mark.asyncio
    async def test_async_probe(self, sequence):
        states = sequence(["CREATING", "CREATING", "ACTIVE"])

        async def describe() -> tuple[int, str]:
            await asyncio.sleep(0)
            return states()

        spec = WaitSpec(
            probe=describe,
            pending=("CREATING",),
            target=("ACTIVE",),
            timeout=10.0,
            poll_interval=0.01,
        )

        assert await wait_for_state(spec) == 2

    @pytest.mark.asyncio
    async def test_initial_delay(self):
        spec = WaitSpec(
            probe=lambda: (1, "running"),
            target=("running",),
            timeout=10.0,
            delay=0.05,
        )

        started = time.monotonic()
        await wait_for_state(spec)
        assert time.monotonic() - started >= 0.05

    @pytest.mark.asyncio
    async def test_same_spec_same_outcome(self, sequence):
        outcomes = []
        for _ in range(2):
            spec = WaitSpec(
                probe=sequence(["a", "b", "done", "done"]),
                target=("done",),
                timeout=10.0,
                poll_interval=0.01,
                continuous_target_occurrence=2,
            )
            outcomes.append(await wait_for_state(spec))

        assert outcomes == [3, 3]

    def test_blocking_success(self, sequence):
        spec = WaitSpec(
            probe=sequence(["pending", "running"]),
            pending=("pending",),
            target=("running",),
            timeout=10.0,
            poll_interval=0.01,
        )

        assert wait_for_state_blocking(spec) == 1
