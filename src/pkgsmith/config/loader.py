"""
pkgsmith — runtime config loader.

Purpose
- Build the effective config from defaults, ``pkgsmith.toml``, the selected
  profile, ``PKGSMITH_*`` environment variables and CLI overrides, in that
  order (later layers win).
- Every scalar setting has one environment variable named after its dotted
  path: ``git.clone_depth`` -> ``PKGSMITH_GIT_CLONE_DEPTH``.
- Path settings are resolved against the directory holding the config file,
  or the working directory when there is none.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any, Final

from pkgsmith.config.schema import (
    PATH_FIELDS,
    apply_profile_overlay,
    assert_valid_config,
    default_config,
    merge_config,
)

DEFAULT_CONFIG_FILE: Final[str] = "pkgsmith.toml"
ENV_PREFIX: Final[str] = "PKGSMITH_"

_TRUE_WORDS: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_FALSE_WORDS: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})


class ConfigLoadError(ValueError):
    """Raised when config cannot be loaded or overrides cannot be coerced."""


def _as_bool(raw: str) -> bool:
    lowered = raw.lower()
    if lowered in _TRUE_WORDS:
        return True
    if lowered in _FALSE_WORDS:
        return False
    raise ValueError(raw)


_COERCERS: Final[dict[str, tuple[Callable[[str], object], str]]] = {
    "str": (str, "a string"),
    "int": (int, "an integer"),
    "float": (float, "a number"),
    "bool": (_as_bool, "a boolean (true/false/1/0/yes/no/on/off)"),
}

_ENV_SETTINGS: Final[tuple[tuple[tuple[str, ...], str], ...]] = (
    *((field, "str") for field in PATH_FIELDS),
    (("git", "remote"), "str"),
    (("git", "clone_depth"), "int"),
    (("git", "timeout_seconds"), "float"),
    (("observability", "log_level"), "str"),
    (("observability", "log_to_stdout"), "bool"),
)


def _env_name(path: tuple[str, ...]) -> str:
    return ENV_PREFIX + "_".join(part.upper() for part in path)


def load_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Load the effective config: CLI > env > profile > file > defaults."""

    env = os.environ if environ is None else environ
    path = _config_path(config_path, env)
    file_payload = _read_toml(path, required=config_path is not None)
    selected = _selected_profile(profile, env)

    config = assert_valid_config(merge_config(default_config(), file_payload))
    if selected is not None:
        config = apply_profile_overlay(config, selected)
    config = merge_config(config, _env_overrides(env))
    config = merge_config(config, _cli_overrides(cli_overrides or {}))
    config = assert_valid_config(config, active_profile=selected)

    _resolve_paths(config, base_dir=path.parent)
    return config


def dump_effective_config(config: Mapping[str, object]) -> str:
    """Deterministic JSON dump of the effective config."""

    return json.dumps(config, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _config_path(config_path: str | Path | None, env: Mapping[str, str]) -> Path:
    if config_path is None:
        from_env = env.get(f"{ENV_PREFIX}CONFIG", "").strip()
        config_path = from_env or Path.cwd() / DEFAULT_CONFIG_FILE
    return Path(config_path).expanduser().resolve()


def _read_toml(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}
    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc


def _selected_profile(profile: str | None, env: Mapping[str, str]) -> str | None:
    if profile is None:
        profile = env.get(f"{ENV_PREFIX}PROFILE")
    if profile is None:
        return None
    return profile.strip() or None


def _env_overrides(env: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for path, kind in _ENV_SETTINGS:
        name = _env_name(path)
        raw = env.get(name)
        if raw is None:
            continue
        coerce, expected = _COERCERS[kind]
        try:
            value = coerce(raw.strip())
        except ValueError as exc:
            raise ConfigLoadError(f"{name} -> {'.'.join(path)} must be {expected}") from exc
        _set_nested(overrides, path, value)
    return overrides


def _cli_overrides(cli_overrides: Mapping[str, object]) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    for key, value in cli_overrides.items():
        if value is None:
            continue
        path = tuple(part for part in key.split(".") if part)
        if not path:
            raise ConfigLoadError(f"invalid CLI override key {key!r}")
        _set_nested(payload, path, value)
    return payload


def _set_nested(target: dict[str, Any], path: tuple[str, ...], value: object) -> None:
    for part in path[:-1]:
        target = target.setdefault(part, {})
    target[path[-1]] = value


def _resolve_paths(config: dict[str, Any], *, base_dir: Path) -> None:
    paths = config["paths"]
    for _, key in PATH_FIELDS:
        raw = paths.get(key)
        if not isinstance(raw, str):
            continue
        candidate = Path(os.path.expandvars(raw)).expanduser()
        if not candidate.is_absolute():
            candidate = base_dir / candidate
        paths[key] = Path(os.path.normpath(candidate)).as_posix()


__all__ = [
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "ConfigLoadError",
    "dump_effective_config",
    "load_config",
]
