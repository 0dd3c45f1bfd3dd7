"""Centralized constants for settle.

Default timings and budgets used when a WaitSpec or config profile does not
set them explicitly. Nothing here is mutated at runtime; per-call values live
on the WaitSpec.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Final

# =============================================================================
# Poll Schedule (seconds)
# =============================================================================

INITIAL_BACKOFF: Final = 0.1
MAX_BACKOFF: Final = 10.0
MAX_POLL_INTERVAL: Final = 180.0
CANCEL_RELAY_STEP: Final = 0.05


# =============================================================================
# Budgets
# =============================================================================

DEFAULT_NOT_FOUND_CHECKS: Final = 20
DEFAULT_CONTINUOUS_TARGET_OCCURRENCE: Final = 1
DEFAULT_REFRESH_GRACE_PERIOD: Final = 30.0


# =============================================================================
# Config Files
# =============================================================================

SETTLE_DIR: Final = ".settle"
PROJECT_CONFIG_NAME: Final = "settle.toml"
GLOBAL_CONFIG_NAME: Final = "defaults.toml"


# =============================================================================
# Probe Labels
# =============================================================================


class Absence(StrEnum):
    """Labels a probe may report when the resource cannot be observed."""

    GONE = ""
    NOT_FOUND = "not-found"
