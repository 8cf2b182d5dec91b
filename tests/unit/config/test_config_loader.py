"""
pkgsmith — unit tests for config loading and validation.

File: tests/unit/config/test_config_loader.py

Purpose
- Validate precedence CLI > env > file > defaults, profile overlays and path normalization.
- Validate schema errors are reported with dotted paths.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from pkgsmith.config import (
    ConfigLoadError,
    ConfigValidationError,
    default_config,
    dump_effective_config,
    load_config,
    validate_config,
)


def write_config(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "pkgsmith.toml"
    path.write_text(text, encoding="utf-8")
    return path


def test_defaults_resolve_against_config_directory(tmp_path: Path) -> None:
    path = write_config(tmp_path, "")

    config = load_config(path, environ={})

    base = tmp_path.resolve()
    assert config["paths"]["repos_dir"] == (base / "repos").as_posix()
    assert config["paths"]["registry"] == (base / "packages.yaml").as_posix()
    assert config["git"] == {"remote": "origin", "clone_depth": 0, "timeout_seconds": 600.0}
    assert config["observability"] == {"log_level": "INFO", "log_to_stdout": False}
    assert "pins" not in config["paths"]


def test_missing_default_file_falls_back_to_defaults(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.chdir(tmp_path)

    config = load_config(environ={})

    assert config["paths"]["build_dir"] == (tmp_path.resolve() / "build").as_posix()


def test_explicit_missing_file_is_an_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadError, match="config file not found"):
        load_config(tmp_path / "absent.toml", environ={})


def test_invalid_toml_is_an_error(tmp_path: Path) -> None:
    path = write_config(tmp_path, "[git\nremote = 'x'\n")

    with pytest.raises(ConfigLoadError, match="invalid TOML"):
        load_config(path, environ={})


def test_precedence_cli_over_env_over_file(tmp_path: Path) -> None:
    path = write_config(
        tmp_path,
        """
[git]
remote = "file-remote"
clone_depth = 5

[observability]
log_level = "warning"
""",
    )
    environ = {
        "PKGSMITH_GIT_REMOTE": "env-remote",
        "PKGSMITH_GIT_TIMEOUT_SECONDS": "30",
        "PKGSMITH_OBSERVABILITY_LOG_TO_STDOUT": "yes",
    }

    config = load_config(
        path,
        environ=environ,
        cli_overrides={"git.remote": "cli-remote", "git.clone_depth": None},
    )

    assert config["git"]["remote"] == "cli-remote"
    assert config["git"]["clone_depth"] == 5
    assert config["git"]["timeout_seconds"] == 30.0
    assert config["observability"]["log_level"] == "WARNING"
    assert config["observability"]["log_to_stdout"] is True


def test_config_path_and_pins_from_environment(tmp_path: Path) -> None:
    path = write_config(tmp_path, "")
    environ = {"PKGSMITH_CONFIG": str(path), "PKGSMITH_PATHS_PINS": "locks/pins.yaml"}

    config = load_config(environ=environ)

    assert config["paths"]["pins"] == (tmp_path.resolve() / "locks" / "pins.yaml").as_posix()


@pytest.mark.parametrize(
    ("name", "value", "fragment"),
    [
        ("PKGSMITH_GIT_CLONE_DEPTH", "deep", "must be an integer"),
        ("PKGSMITH_GIT_TIMEOUT_SECONDS", "soon", "must be a number"),
        ("PKGSMITH_OBSERVABILITY_LOG_TO_STDOUT", "maybe", "must be a boolean"),
    ],
)
def test_bad_environment_values_are_rejected(
    tmp_path: Path, name: str, value: str, fragment: str
) -> None:
    path = write_config(tmp_path, "")

    with pytest.raises(ConfigLoadError, match=fragment):
        load_config(path, environ={name: value})


def test_profile_overlay_applies_before_env(tmp_path: Path) -> None:
    path = write_config(
        tmp_path,
        """
[profiles.ci.git]
clone_depth = 1
remote = "mirror"

[profiles.ci.paths]
repos_dir = "/var/cache/pkgsmith/repos"
""",
    )

    config = load_config(path, profile="ci", environ={"PKGSMITH_GIT_REMOTE": "env-remote"})

    assert config["git"]["clone_depth"] == 1
    assert config["git"]["remote"] == "env-remote"
    assert config["paths"]["repos_dir"] == "/var/cache/pkgsmith/repos"


def test_profile_from_environment(tmp_path: Path) -> None:
    path = write_config(tmp_path, "[profiles.fast.git]\ntimeout_seconds = 5.0\n")

    config = load_config(path, environ={"PKGSMITH_PROFILE": "fast"})

    assert config["git"]["timeout_seconds"] == 5.0


def test_unknown_profile_is_rejected(tmp_path: Path) -> None:
    path = write_config(tmp_path, "")

    with pytest.raises(ConfigValidationError, match="profile 'nope' is not defined"):
        load_config(path, profile="nope", environ={})


def test_validation_reports_every_issue_by_dotted_path(tmp_path: Path) -> None:
    path = write_config(
        tmp_path,
        """
colour = "blue"

[meta]
schema_version = 2

[git]
clone_depth = -1
timeout_seconds = 0.5

[observability]
log_level = "LOUD"

[profiles.Bad]
""",
    )

    with pytest.raises(ConfigValidationError) as exc_info:
        load_config(path, environ={})

    paths = {issue.path for issue in exc_info.value.issues}
    assert paths == {
        "colour",
        "meta.schema_version",
        "git.clone_depth",
        "git.timeout_seconds",
        "observability.log_level",
        "profiles.Bad",
    }
    assert "upgrade pkgsmith" in str(exc_info.value)


def test_validate_config_accepts_defaults() -> None:
    result = validate_config(default_config())

    assert result.is_valid
    assert result.config["profiles"] == {}


def test_validate_config_flags_missing_sections() -> None:
    result = validate_config({"meta": {"schema_version": 1}})

    assert not result.is_valid
    assert {issue.path for issue in result.issues} == {"git", "observability", "paths"}


def test_dump_effective_config_is_deterministic(tmp_path: Path) -> None:
    config = load_config(write_config(tmp_path, ""), environ={})

    dumped = dump_effective_config(config)

    assert dumped == dump_effective_config(json.loads(dumped))
    assert dumped.startswith('{"git":')
