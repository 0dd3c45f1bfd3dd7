"""settle - Wait for eventually-consistent resources to converge.

Example:

    from settle import WaitSpec, wait_for_state

    def describe():
        ws = client.describe_workspace(workspace_id)
        return ws, ws["status"]

    spec = WaitSpec(
        probe=describe,
        pending=("CREATING",),
        target=("ACTIVE",),
        timeout=300,
        continuous_target_occurrence=2,
    )
    workspace = await wait_for_state(spec)
"""

from loguru import logger

# Config profiles
from settle.config import load_config, resolve_profile, resolve_wait

# Durations
from settle.duration import format_duration, parse_duration

# Errors
from settle.core.exceptions import (
    ConfigurationError,
    EmptyResultError,
    NotFoundError,
    SettleError,
    UnexpectedStateError,
    WaitCancelledError,
    WaitTimeoutError,
)

# Evaluation
from settle.evaluator import ConvergenceEvaluator, Phase, PollEvent, RunState

# Logging
from settle.observability import LogConfig, logging_enabled

# Polling
from settle.poller import PollLoop, ProbeWorker

# Probe helpers
from settle.probes import not_found, retrying, status_probe

# Wait contract
from settle.spec import PollResult, Probe, WaitSpec

# Entry points
from settle.supervisor import wait_for_state, wait_for_state_blocking
from settle.waiters import retry_until_not_found, wait_for_ready, wait_until_gone

# Library behavior: silent until the application opts in
logger.disable("settle")

__version__ = "0.1.0"

__all__ = [
    # Wait contract
    "WaitSpec",
    "PollResult",
    "Probe",
    # Entry points
    "wait_for_state",
    "wait_for_state_blocking",
    "wait_until_gone",
    "wait_for_ready",
    "retry_until_not_found",
    # Evaluation
    "ConvergenceEvaluator",
    "Phase",
    "PollEvent",
    "RunState",
    # Polling
    "PollLoop",
    "ProbeWorker",
    # Probe helpers
    "not_found",
    "retrying",
    "status_probe",
    # Errors
    "SettleError",
    "ConfigurationError",
    "NotFoundError",
    "EmptyResultError",
    "UnexpectedStateError",
    "WaitTimeoutError",
    "WaitCancelledError",
    # Config
    "load_config",
    "resolve_profile",
    "resolve_wait",
    # Durations
    "parse_duration",
    "format_duration",
    # Logging
    "LogConfig",
    "logging_enabled",
    # Version
    "__version__",
]
