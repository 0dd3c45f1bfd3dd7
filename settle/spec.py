"""Wait specification types.

A WaitSpec is the immutable contract of a single wait: which states mean
"keep going", which mean "done", how often to poll, and how long to tolerate
a resource that isn't visible yet. It is built per call and never shared.

Example:
    from settle import WaitSpec, wait_for_state

    def describe() -> tuple[Workspace | None, str]:
        ws = client.get_workspace(workspace_id)
        return ws, ws.status

    spec = WaitSpec(
        probe=describe,
        pending=("CREATING",),
        target=("ACTIVE",),
        timeout=300,
    )
    workspace = await wait_for_state(spec)
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from settle.constants import (
    DEFAULT_CONTINUOUS_TARGET_OCCURRENCE,
    DEFAULT_NOT_FOUND_CHECKS,
    DEFAULT_REFRESH_GRACE_PERIOD,
)
from settle.core.exceptions import ConfigurationError, NotFoundError

if TYPE_CHECKING:
    from settle.evaluator import PollEvent

type Observation[T] = tuple[T | None, str]
type SyncProbe[T] = Callable[[], Observation[T]]
type AsyncProbe[T] = Callable[[], Awaitable[Observation[T]]]
type Probe[T] = SyncProbe[T] | AsyncProbe[T]
type PollHook = Callable[[PollEvent], Any]


def is_not_found(error: BaseException) -> bool:
    """Default transient-error classifier: the resource isn't visible yet."""
    return isinstance(error, NotFoundError)


@dataclass(frozen=True, slots=True)
class PollResult[T]:
    """Outcome of one probe invocation.

    ``value`` is None when the probe could not see the resource. ``error``
    holds whatever the probe raised; ``state`` is empty in that case.
    """

    value: T | None = None
    state: str = ""
    error: BaseException | None = None

    @classmethod
    def from_observation(cls, observation: Observation[T]) -> PollResult[T]:
        match observation:
            case (value, str() as state):
                return cls(value=value, state=state)
            case (value, None):
                return cls(value=value)
            case _:
                raise TypeError(
                    f"probe must return a (value, state) tuple, got {observation!r}"
                )

    @classmethod
    def failed(cls, error: BaseException) -> PollResult[T]:
        return cls(error=error)


def _labels(labels: Iterable[str] | str) -> tuple[str, ...]:
    if isinstance(labels, str):
        return (labels,)
    return tuple(dict.fromkeys(labels))


@dataclass(frozen=True, slots=True, kw_only=True)
class WaitSpec[T]:
    """Immutable description of a wait.

    Attributes:
        probe: Callable (sync or async) returning ``(value, state)``. Raising
            signals an error; returning a None value signals absence.
        target: States that count as converged. Empty means the wait
            succeeds once the resource is gone.
        pending: States that mean "still in progress". Empty means anything
            that isn't a target is treated as pending.
        timeout: Overall deadline in seconds, including ``delay``.
        poll_interval: Fixed seconds between polls. 0 selects an
            exponential backoff (100ms doubling up to 10s).
        min_timeout: Lower bound in seconds for the wait between polls.
        delay: Seconds to wait before the first poll.
        continuous_target_occurrence: Consecutive target observations
            required before the wait succeeds.
        not_found_checks: How many "not found" observations are tolerated
            before giving up.
        refresh_grace_period: Seconds an in-flight probe may keep running
            past the deadline before it is abandoned.
        is_not_found: Classifies probe errors as transient "not found yet".
        on_poll: Observation hook called after every poll.
        name: Label used in log records.
    """

    probe: Probe[T]
    target: tuple[str, ...] = ()
    pending: tuple[str, ...] = ()
    timeout: float
    poll_interval: float = 0.0
    min_timeout: float = 0.0
    delay: float = 0.0
    continuous_target_occurrence: int = DEFAULT_CONTINUOUS_TARGET_OCCURRENCE
    not_found_checks: int = DEFAULT_NOT_FOUND_CHECKS
    refresh_grace_period: float = DEFAULT_REFRESH_GRACE_PERIOD
    is_not_found: Callable[[BaseException], bool] = field(default=is_not_found)
    on_poll: PollHook | None = None
    name: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "target", _labels(self.target))
        object.__setattr__(self, "pending", _labels(self.pending))
        self._validate()

    def _validate(self) -> None:
        if not callable(self.probe):
            raise ConfigurationError(f"probe must be callable, got {type(self.probe).__name__}")

        overlap = set(self.pending) & set(self.target)
        if overlap:
            raise ConfigurationError(
                f"states cannot be both pending and target: {', '.join(sorted(overlap))}"
            )

        if self.timeout <= 0:
            raise ConfigurationError(f"timeout must be positive, got {self.timeout}")

        for name in ("poll_interval", "min_timeout", "delay", "refresh_grace_period"):
            if getattr(self, name) < 0:
                raise ConfigurationError(f"{name} must not be negative, got {getattr(self, name)}")

        if self.continuous_target_occurrence < 1:
            raise ConfigurationError(
                "continuous_target_occurrence must be at least 1, "
                f"got {self.continuous_target_occurrence}"
            )

        if self.not_found_checks < 0:
            raise ConfigurationError(
                f"not_found_checks must not be negative, got {self.not_found_checks}"
            )

    @property
    def waits_for_absence(self) -> bool:
        return not self.target
