"""Convergence evaluator.

A small state machine that classifies each poll result against the pending
and target sets of a WaitSpec and decides whether the wait continues,
succeeds or fails. It does no I/O and no timing; the poll loop feeds it
results in production order and the supervisor tells it when time is up.

Phases:
    POLLING     - still waiting, no target streak in progress
    CONVERGING  - target observed, waiting for it to be reconfirmed
    SUCCEEDED   - target observed continuous_target_occurrence times in a row
    FAILED      - probe error, unexpected state, exhausted not-found budget
                  or external cancellation
    TIMED_OUT   - deadline passed before a terminal outcome
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from loguru import logger

from settle.core.exceptions import (
    NotFoundError,
    UnexpectedStateError,
    WaitCancelledError,
    WaitTimeoutError,
)

if TYPE_CHECKING:
    from settle.spec import PollResult, WaitSpec


class Phase(StrEnum):
    POLLING = "polling"
    CONVERGING = "converging"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    @property
    def terminal(self) -> bool:
        return self in (Phase.SUCCEEDED, Phase.FAILED, Phase.TIMED_OUT)


@dataclass(slots=True)
class RunState[T]:
    """Mutable bookkeeping of a single wait, owned by the coordinating task."""

    started_at: float
    phase: Phase = Phase.POLLING
    last_result: PollResult[T] | None = None
    target_occurrence: int = 0
    not_found_tick: int = 0
    polls: int = 0
    cancelled: bool = False
    value: T | None = None
    error: BaseException | None = None


@dataclass(frozen=True, slots=True)
class PollEvent[T]:
    """What the observation hook sees after every poll."""

    poll: int
    result: PollResult[T]
    phase: Phase
    elapsed: float
    target_occurrence: int
    not_found_tick: int


@dataclass(slots=True)
class ConvergenceEvaluator[T]:
    spec: WaitSpec[T]
    clock: Callable[[], float] = time.monotonic
    state: RunState[T] = field(init=False)

    def __post_init__(self) -> None:
        self.state = RunState(started_at=self.clock())

    @property
    def phase(self) -> Phase:
        return self.state.phase

    @property
    def elapsed(self) -> float:
        return self.clock() - self.state.started_at

    @property
    def last_state(self) -> str:
        result = self.state.last_result
        return result.state if result is not None else ""

    def observe(self, result: PollResult[T]) -> Phase:
        """Fold one poll result into the run state and return the new phase."""
        st = self.state
        if st.phase.terminal:
            raise RuntimeError(f"wait already {st.phase}, cannot observe more results")

        st.polls += 1
        st.last_result = result

        if result.error is not None:
            if self.spec.is_not_found(result.error):
                if self.spec.waits_for_absence:
                    return self._target_hit(result)
                return self._not_found(result.error)
            return self._fail(result.error)

        if result.value is None:
            if self.spec.waits_for_absence:
                return self._target_hit(result)
            return self._not_found(None)

        st.not_found_tick = 0

        if result.state in self.spec.target:
            return self._target_hit(result)

        if not self.spec.pending or result.state in self.spec.pending:
            st.target_occurrence = 0
            return self._move(Phase.POLLING)

        return self._fail(UnexpectedStateError(result.state, self.spec.target))

    def event(self) -> PollEvent[T]:
        st = self.state
        if st.last_result is None:
            raise RuntimeError("no poll result observed yet")
        return PollEvent(
            poll=st.polls,
            result=st.last_result,
            phase=st.phase,
            elapsed=self.elapsed,
            target_occurrence=st.target_occurrence,
            not_found_tick=st.not_found_tick,
        )

    def expire(self, *, error: BaseException | None = None) -> WaitTimeoutError:
        """Mark the run timed out and build the error the caller receives.

        ``error`` is a terminal error that arrived during the grace period;
        otherwise the last tolerated not-found error, if any, is attached.
        """
        st = self.state
        last_error = error if error is not None else self._last_error()
        st.phase = Phase.TIMED_OUT
        st.error = WaitTimeoutError(
            expected=self.spec.target,
            last_state=self.last_state,
            timeout=self.spec.timeout,
            last_error=last_error,
        )
        return st.error

    def cancel(self) -> WaitCancelledError:
        st = self.state
        st.cancelled = True
        st.phase = Phase.FAILED
        st.error = WaitCancelledError(
            expected=self.spec.target,
            last_state=self.last_state,
            timeout=self.spec.timeout,
            last_error=self._last_error(),
        )
        return st.error

    def _last_error(self) -> BaseException | None:
        result = self.state.last_result
        return result.error if result is not None else None

    def _target_hit(self, result: PollResult[T]) -> Phase:
        st = self.state
        st.target_occurrence += 1
        if st.target_occurrence >= self.spec.continuous_target_occurrence:
            st.value = result.value
            return self._move(Phase.SUCCEEDED)
        return self._move(Phase.CONVERGING)

    def _not_found(self, error: BaseException | None) -> Phase:
        st = self.state
        st.target_occurrence = 0
        st.not_found_tick += 1
        if st.not_found_tick <= self.spec.not_found_checks:
            return self._move(Phase.POLLING)
        if error is not None:
            return self._fail(error)
        return self._fail(NotFoundError(retries=st.not_found_tick))

    def _fail(self, error: BaseException) -> Phase:
        self.state.error = error
        return self._move(Phase.FAILED)

    def _move(self, phase: Phase) -> Phase:
        st = self.state
        if phase is not st.phase:
            logger.bind(component="evaluator", wait=self.spec.name).debug(
                "{previous} -> {phase} after poll {poll} (state={state!r})",
                previous=st.phase,
                phase=phase,
                poll=st.polls,
                state=self.last_state,
            )
        st.phase = phase
        return phase
