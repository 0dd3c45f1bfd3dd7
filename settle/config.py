"""TOML-based wait profiles.

Loads ~/.settle/defaults.toml (global) and settle.toml (project), merges
them, and resolves named profiles into WaitSpec instances. Files are read on
every call; nothing is cached at module level.

Example settle.toml:

    [waits.workspace-created]
    pending = ["CREATING"]
    target = ["ACTIVE"]
    timeout = "5m"
    poll_interval = "10s"

    [waits.workspace-deleted]
    pending = ["DELETING"]
    target = []
    timeout = "5m"
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any

from settle.constants import GLOBAL_CONFIG_NAME, PROJECT_CONFIG_NAME, SETTLE_DIR
from settle.core.exceptions import ConfigurationError
from settle.duration import parse_duration
from settle.spec import Probe, WaitSpec

type RawConfig = dict[str, Any]

GLOBAL_CONFIG_PATH = Path.home() / SETTLE_DIR / GLOBAL_CONFIG_NAME

_DURATION_KEYS = frozenset({
    "timeout", "poll_interval", "min_timeout", "delay", "refresh_grace_period",
})
_COUNT_KEYS = frozenset({"continuous_target_occurrence", "not_found_checks"})
_LABEL_KEYS = frozenset({"pending", "target"})
_PROFILE_KEYS = _DURATION_KEYS | _COUNT_KEYS | _LABEL_KEYS


def _deep_merge(base: RawConfig, override: RawConfig) -> RawConfig:
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _read_toml(path: Path) -> RawConfig:
    if not path.is_file():
        return {}
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid TOML in {path}: {e}") from e


def load_config(
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> RawConfig:
    global_cfg = _read_toml(global_path or GLOBAL_CONFIG_PATH)
    project_path = (project_dir or Path.cwd()) / PROJECT_CONFIG_NAME
    project_cfg = _read_toml(project_path)

    merged = _deep_merge(global_cfg, project_cfg)
    merged.setdefault("defaults", {})
    merged.setdefault("waits", {})
    return merged


def _coerce(name: str, key: str, value: Any) -> Any:
    if key in _DURATION_KEYS:
        try:
            return parse_duration(value)
        except ValueError as e:
            raise ConfigurationError(f"Wait '{name}': {key}: {e}") from e

    if key in _COUNT_KEYS:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigurationError(f"Wait '{name}': {key} must be an integer, got {value!r}")
        return value

    match value:
        case str():
            return (value,)
        case list() if all(isinstance(v, str) for v in value):
            return tuple(value)
        case _:
            raise ConfigurationError(
                f"Wait '{name}': {key} must be a string or list of strings, got {value!r}"
            )


def _build_profile(name: str, raw: RawConfig) -> RawConfig:
    unknown = set(raw) - _PROFILE_KEYS
    if unknown:
        raise ConfigurationError(
            f"Wait '{name}' has unknown keys: {', '.join(sorted(unknown))}. "
            f"Valid: {', '.join(sorted(_PROFILE_KEYS))}"
        )
    return {key: _coerce(name, key, value) for key, value in raw.items()}


def resolve_profile(
    name: str,
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> RawConfig:
    """Return the WaitSpec keyword arguments for profile ``name``.

    Values under ``[defaults]`` apply to every profile; the profile's own
    table wins.
    """
    config = load_config(project_dir=project_dir, global_path=global_path)

    waits = config["waits"]
    if name not in waits:
        raise KeyError(f"Wait '{name}' not found. Available: {', '.join(waits) or 'none'}")

    merged = _deep_merge(config["defaults"], waits[name])
    return _build_profile(name, merged)


def resolve_wait[T](
    name: str,
    probe: Probe[T],
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
    **overrides: Any,
) -> WaitSpec[T]:
    """Build a WaitSpec from profile ``name``, with keyword overrides."""
    profile = resolve_profile(name, project_dir=project_dir, global_path=global_path)
    kwargs = {**profile, **overrides}
    if "timeout" not in kwargs:
        raise ConfigurationError(f"Wait '{name}' missing 'timeout' field")
    kwargs.setdefault("name", name)
    return WaitSpec(probe=probe, **kwargs)
