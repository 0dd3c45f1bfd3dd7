from __future__ import annotations

import asyncio
import threading
import time
from collections.abc import Awaitable, Callable, Sequence

import pytest

from settle.spec import Observation


class StateSequence:
    """Probe that walks through a fixed list of states.

    The value of each observation is its index in the sequence. Once the
    sequence is exhausted the probe either raises or keeps reporting
    ``then``.
    """

    def __init__(self, states: Sequence[str], *, then: str | None = None) -> None:
        self.states = list(states)
        self.then = then
        self.calls = 0
        self._lock = threading.Lock()

    def __call__(self) -> Observation[int]:
        with self._lock:
            position = self.calls
            self.calls += 1
        if position < len(self.states):
            return position, self.states[position]
        if self.then is not None:
            return position, self.then
        raise LookupError("No more states available")


class BlockingProbe:
    """Probe that blocks until released, then reports ``state``."""

    def __init__(self, state: str = "pending", *, limit: float = 10.0) -> None:
        self.state = state
        self.limit = limit
        self.started = threading.Event()
        self.released = threading.Event()
        self.finished = threading.Event()

    def __call__(self) -> Observation[object]:
        self.started.set()
        self.released.wait(self.limit)
        self.finished.set()
        return None if self.state == "" else object(), self.state

    def release(self) -> None:
        self.released.set()


INCONSISTENT = [
    "done", "replicating",
    "done", "done", "done",
    "replicating",
    "done", "done", "done",
]


@pytest.fixture
def inconsistent() -> StateSequence:
    return StateSequence(INCONSISTENT, then="replicating")


@pytest.fixture
def sequence() -> Callable[..., StateSequence]:
    return StateSequence


@pytest.fixture
def blocking():
    probes: list[BlockingProbe] = []

    def make(state: str = "pending", *, limit: float = 10.0) -> BlockingProbe:
        probe = BlockingProbe(state, limit=limit)
        probes.append(probe)
        return probe

    yield make

    for probe in probes:
        probe.release()


async def _eventually(condition: Callable[[], bool], *, timeout: float = 2.0) -> None:
    deadline = time.monotonic() + timeout
    while not condition():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def eventually() -> Callable[..., Awaitable[None]]:
    """Wait for something a background thread (e.g. a sync poll hook) does."""
    return _eventually
