"""
pkgsmith — config schema, defaults and validation.

Purpose
- Define the ``pkgsmith.toml`` sections and their built-in defaults.
- Validate a config mapping and report every problem by dotted path.
- Deep-merge layers and apply named profile overlays.

Sections
- ``meta``: ``schema_version``.
- ``paths``: ``repos_dir``, ``build_dir``, ``elpa_dir``, ``modified_dir``,
  ``registry``, optional ``pins``, ``log_dir``.
- ``git``: ``remote``, ``clone_depth``, ``timeout_seconds``.
- ``observability``: ``log_level``, ``log_to_stdout``.
- ``profiles.<name>``: partial overlays of the sections above.
"""

from __future__ import annotations

import copy
import math
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, TypedDict

from pkgsmith.constants import (
    BUILD_DIR,
    CONFIG_SCHEMA_VERSION,
    DEFAULT_GIT_TIMEOUT_SECONDS,
    DEFAULT_REMOTE,
    ELPA_DIR,
    LOG_DIR,
    MODIFIED_DIR,
    REGISTRY_FILE,
    REPOS_DIR,
)

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION

_PROFILE_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_-]*$")
_LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")

PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("paths", "repos_dir"),
    ("paths", "build_dir"),
    ("paths", "elpa_dir"),
    ("paths", "modified_dir"),
    ("paths", "registry"),
    ("paths", "pins"),
    ("paths", "log_dir"),
)

_PATH_KEYS: Final[frozenset[str]] = frozenset(field[1] for field in PATH_FIELDS)
_REQUIRED_PATH_KEYS: Final[frozenset[str]] = _PATH_KEYS - {"pins"}
_GIT_KEYS: Final[frozenset[str]] = frozenset({"remote", "clone_depth", "timeout_seconds"})
_OBSERVABILITY_KEYS: Final[frozenset[str]] = frozenset({"log_level", "log_to_stdout"})
_OVERLAY_SECTIONS: Final[tuple[str, ...]] = ("git", "observability", "paths")


class MetaConfig(TypedDict):
    schema_version: int


class PathsConfig(TypedDict, total=False):
    repos_dir: str
    build_dir: str
    elpa_dir: str
    modified_dir: str
    registry: str
    pins: str
    log_dir: str


class GitConfig(TypedDict):
    remote: str
    clone_depth: int
    timeout_seconds: float


class ObservabilityConfig(TypedDict):
    log_level: str
    log_to_stdout: bool


class ProfileOverlay(TypedDict, total=False):
    paths: PathsConfig
    git: GitConfig
    observability: ObservabilityConfig


class PkgsmithConfig(TypedDict):
    meta: MetaConfig
    paths: PathsConfig
    git: GitConfig
    observability: ObservabilityConfig
    profiles: dict[str, ProfileOverlay]


DEFAULT_CONFIG: Final[PkgsmithConfig] = {
    "meta": {"schema_version": ConfigSchemaVersion},
    "paths": {
        "repos_dir": REPOS_DIR.as_posix(),
        "build_dir": BUILD_DIR.as_posix(),
        "elpa_dir": ELPA_DIR.as_posix(),
        "modified_dir": MODIFIED_DIR.as_posix(),
        "registry": REGISTRY_FILE,
        "log_dir": LOG_DIR.as_posix(),
    },
    "git": {
        "remote": DEFAULT_REMOTE,
        "clone_depth": 0,
        "timeout_seconds": float(DEFAULT_GIT_TIMEOUT_SECONDS),
    },
    "observability": {"log_level": "INFO", "log_to_stdout": False},
    "profiles": {},
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


def default_config() -> PkgsmithConfig:
    """Return a deep copy of the built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "upgrade pkgsmith.toml to the current schema"
        )
    if found_version > ConfigSchemaVersion:
        return (
            f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
            "upgrade pkgsmith"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deterministically deep-merge ``overlay`` onto ``base``."""

    merged = _deep_copy_mapping(base)
    _merge_into(merged, overlay)
    return merged


def apply_profile_overlay(config: Mapping[str, object], profile: str | None) -> dict[str, Any]:
    """Apply a named profile overlay and re-validate the result."""

    materialized = _deep_copy_mapping(config)
    if profile is None or not profile.strip():
        return materialized
    selected = profile.strip()

    profiles = materialized.get("profiles")
    overlay = profiles.get(selected) if isinstance(profiles, Mapping) else None
    if overlay is None:
        raise ConfigValidationError(
            (ConfigValidationIssue("profiles", f"profile {selected!r} is not defined"),)
        )
    if not isinstance(overlay, Mapping):
        raise ConfigValidationError(
            (ConfigValidationIssue(f"profiles.{selected}", "profile overlay must be an object"),)
        )

    return assert_valid_config(merge_config(materialized, overlay), active_profile=selected)


def validate_config(
    config: Mapping[str, object] | object,
    *,
    active_profile: str | None = None,
) -> ConfigValidationResult:
    """Validate config and return structured issues with dotted paths."""

    issues = _IssueCollector()
    root = _as_object(config, "<root>", issues)
    if root is None:
        return ConfigValidationResult(config=None, issues=issues.items())

    normalized = _validate_root(root, issues)

    selected = active_profile.strip() if isinstance(active_profile, str) else None
    if selected:
        profiles = normalized.get("profiles", {})
        if selected not in profiles:
            issues.add("profiles", f"profile {selected!r} is not defined")

    if issues.has_issues:
        return ConfigValidationResult(config=None, issues=issues.items())
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(
    config: Mapping[str, object] | object,
    *,
    active_profile: str | None = None,
) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""

    result = validate_config(config, active_profile=active_profile)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def _validate_root(payload: Mapping[str, object], issues: _IssueCollector) -> dict[str, Any]:
    _reject_unknown_keys(
        payload, {"meta", "paths", "git", "observability", "profiles"}, "", issues
    )
    _require_keys(payload, {"meta", "paths", "git", "observability"}, "", issues)

    out: dict[str, Any] = {}
    meta = _section(payload, "meta", "", issues)
    if meta is not None:
        out["meta"] = _validate_meta(meta, "meta", issues)
    _validate_sections(payload, "", issues, out, partial=False)

    out["profiles"] = {}
    profiles = _section(payload, "profiles", "", issues)
    if profiles is not None:
        out["profiles"] = _validate_profiles(profiles, "profiles", issues)
    return out


def _validate_sections(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    out: dict[str, Any],
    *,
    partial: bool,
) -> None:
    for key in _OVERLAY_SECTIONS:
        section = _section(payload, key, path, issues)
        if section is None:
            continue
        section_path = _join(path, key)
        if key == "paths":
            out[key] = _validate_paths(section, section_path, issues, partial=partial)
        elif key == "git":
            out[key] = _validate_git(section, section_path, issues, partial=partial)
        else:
            out[key] = _validate_observability(section, section_path, issues, partial=partial)


def _section(
    payload: Mapping[str, object], key: str, path: str, issues: _IssueCollector
) -> dict[str, object] | None:
    raw = payload.get(key)
    if raw is None:
        return None
    return _as_object(raw, _join(path, key), issues)


def _validate_meta(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"schema_version"}, path, issues)
    _require_keys(payload, {"schema_version"}, path, issues)

    out: dict[str, Any] = {}
    if "schema_version" in payload:
        key_path = _join(path, "schema_version")
        parsed = _as_int(payload["schema_version"], key_path, issues, minimum=1)
        if parsed is not None:
            out["schema_version"] = parsed
            if parsed != ConfigSchemaVersion:
                issues.add(key_path, migration_guidance(parsed))
    return out


def _validate_paths(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    *,
    partial: bool,
) -> dict[str, Any]:
    _reject_unknown_keys(payload, set(_PATH_KEYS), path, issues)
    if not partial:
        _require_keys(payload, set(_REQUIRED_PATH_KEYS), path, issues)

    out: dict[str, Any] = {}
    for key in sorted(_PATH_KEYS):
        if key in payload:
            parsed = _as_path_text(payload[key], _join(path, key), issues)
            if parsed is not None:
                out[key] = parsed
    return out


def _validate_git(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    *,
    partial: bool,
) -> dict[str, Any]:
    _reject_unknown_keys(payload, set(_GIT_KEYS), path, issues)
    if not partial:
        _require_keys(payload, set(_GIT_KEYS), path, issues)

    out: dict[str, Any] = {}
    if "remote" in payload:
        remote = _as_str(payload["remote"], _join(path, "remote"), issues)
        if remote is not None:
            out["remote"] = remote
    if "clone_depth" in payload:
        depth = _as_int(payload["clone_depth"], _join(path, "clone_depth"), issues, minimum=0)
        if depth is not None:
            out["clone_depth"] = depth
    if "timeout_seconds" in payload:
        timeout = _as_float(
            payload["timeout_seconds"], _join(path, "timeout_seconds"), issues, minimum=1.0
        )
        if timeout is not None:
            out["timeout_seconds"] = timeout
    return out


def _validate_observability(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    *,
    partial: bool,
) -> dict[str, Any]:
    _reject_unknown_keys(payload, set(_OBSERVABILITY_KEYS), path, issues)
    if not partial:
        _require_keys(payload, set(_OBSERVABILITY_KEYS), path, issues)

    out: dict[str, Any] = {}
    if "log_level" in payload:
        level = payload["log_level"]
        parsed_level = _as_enum(
            level.upper() if isinstance(level, str) else level,
            _join(path, "log_level"),
            issues,
            allowed_values=_LOG_LEVELS,
        )
        if parsed_level is not None:
            out["log_level"] = parsed_level
    if "log_to_stdout" in payload:
        parsed_stdout = _as_bool(payload["log_to_stdout"], _join(path, "log_to_stdout"), issues)
        if parsed_stdout is not None:
            out["log_to_stdout"] = parsed_stdout
    return out


def _validate_profiles(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for profile_name in sorted(payload):
        profile_path = _join(path, profile_name)
        if not _PROFILE_NAME_PATTERN.fullmatch(profile_name):
            issues.add(profile_path, "profile name must match ^[a-z][a-z0-9_-]*$")
            continue
        overlay = _as_object(payload[profile_name], profile_path, issues)
        if overlay is None:
            continue
        _reject_unknown_keys(overlay, set(_OVERLAY_SECTIONS), profile_path, issues)
        validated: dict[str, Any] = {}
        _validate_sections(overlay, profile_path, issues, validated, partial=True)
        out[profile_name] = validated
    return out


def _as_object(value: object, path: str, issues: _IssueCollector) -> dict[str, object] | None:
    if not isinstance(value, Mapping):
        issues.add(path, f"expected object, got {type(value).__name__}")
        return None
    out: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            issues.add(path, f"object key must be string, got {type(key).__name__}")
            continue
        out[key] = item
    return out


def _as_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    parsed = value.strip()
    if not parsed:
        issues.add(path, "must not be empty")
        return None
    return parsed


def _as_path_text(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if "\x00" in parsed:
        issues.add(path, "must not contain NUL bytes")
        return None
    return parsed


def _as_bool(value: object, path: str, issues: _IssueCollector) -> bool | None:
    if isinstance(value, bool):
        return value
    issues.add(path, f"expected boolean, got {type(value).__name__}")
    return None


def _as_int(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: int | None = None,
) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, f"expected integer, got {type(value).__name__}")
        return None
    if minimum is not None and value < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return value


def _as_float(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: float | None = None,
) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        issues.add(path, f"expected number, got {type(value).__name__}")
        return None
    parsed = float(value)
    if not math.isfinite(parsed):
        issues.add(path, "must be finite")
        return None
    if minimum is not None and parsed < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return parsed


def _as_enum(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    allowed_values: tuple[str, ...],
) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if parsed not in allowed_values:
        expected = ", ".join(sorted(allowed_values))
        issues.add(path, f"invalid value {parsed!r}; expected one of: {expected}")
        return None
    return parsed


def _reject_unknown_keys(
    payload: Mapping[str, object],
    allowed: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(payload):
        if key not in allowed:
            issues.add(_join(path, key), "unknown field")


def _require_keys(
    payload: Mapping[str, object],
    required: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(required):
        if key not in payload:
            issues.add(_join(path, key), "missing required field")


def _join(path: str, key: str) -> str:
    if not path:
        return key
    return f"{path}.{key}"


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key in sorted(overlay):
        value = overlay[key]
        if isinstance(value, Mapping):
            existing = target.get(key)
            nested = existing if isinstance(existing, dict) else {}
            _merge_into(nested, value)
            target[key] = nested
        else:
            target[key] = copy.deepcopy(value)


def _deep_copy_mapping(value: Mapping[str, object]) -> dict[str, Any]:
    return {key: copy.deepcopy(value[key]) for key in sorted(value)}


__all__ = [
    "DEFAULT_CONFIG",
    "PATH_FIELDS",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "PkgsmithConfig",
    "ProfileOverlay",
    "apply_profile_overlay",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "migration_guidance",
    "validate_config",
]
