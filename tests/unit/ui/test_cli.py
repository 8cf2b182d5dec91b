"""
pkgsmith — unit tests for the CLI router, renderer and exit-code contract.

File: tests/unit/ui/test_cli.py

Purpose
- Validate argument parsing for every subcommand.
- Validate exit codes: success, partial failure, config error, user abort, internal error.
"""

from __future__ import annotations

import io
from contextlib import contextmanager
from typing import TYPE_CHECKING

import pytest
from rich.console import Console

from pkgsmith.domain.errors import UserAbort
from pkgsmith.main import ExitCode, cli_entrypoint
from pkgsmith.ui.cli import CLIError, build_parser
from pkgsmith.ui.render import CLIRenderer

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


def write_workspace(tmp_path: Path, registry: str = "packages: []\n") -> Path:
    (tmp_path / "packages.yaml").write_text(registry, encoding="utf-8")
    config = tmp_path / "pkgsmith.toml"
    config.write_text('[paths]\nlog_dir = "logs"\n', encoding="utf-8")
    return config


@pytest.fixture(autouse=True)
def _no_color(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NO_COLOR", "1")
    for name in ("PKGSMITH_CONFIG", "PKGSMITH_PROFILE"):
        monkeypatch.delenv(name, raising=False)


def test_parser_routes_subcommands_and_flags() -> None:
    parser = build_parser()

    build_args = parser.parse_args(["build", "--force", "-v"])
    assert build_args.command == "build"
    assert build_args.force is True
    assert build_args.verbose is True

    purge_args = parser.parse_args(["purge", "--no-elpa", "-g", "--config", "x.toml"])
    assert purge_args.no_elpa is True
    assert purge_args.no_builds is False
    assert purge_args.regraft is True
    assert purge_args.config_path == "x.toml"

    install_args = parser.parse_args(["install", "--profile", "ci"])
    assert install_args.profile == "ci"


def test_missing_subcommand_is_a_usage_error(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli_entrypoint([]) == 2
    assert "usage" in capsys.readouterr().err


@pytest.mark.parametrize("command", ["install", "update", "build"])
def test_commands_on_empty_registry_succeed(
    tmp_path: Path, capsys: pytest.CaptureFixture[str], command: str
) -> None:
    config = write_workspace(tmp_path)

    assert cli_entrypoint([command, "--config", str(config)]) == ExitCode.SUCCESS

    out = capsys.readouterr().out
    assert out.strip()
    session_logs = list((tmp_path / "logs").glob("*/pkgsmith.jsonl"))
    assert len(session_logs) == 1


def test_purge_with_nothing_to_do(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    config = write_workspace(tmp_path)

    assert cli_entrypoint(["purge", "--config", str(config)]) == ExitCode.SUCCESS
    assert "Nothing to purge" in capsys.readouterr().out


def test_purge_removes_orphans(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    config = write_workspace(tmp_path)
    (tmp_path / "build" / "orphan").mkdir(parents=True)
    (tmp_path / "repos" / "orphan").mkdir(parents=True)
    (tmp_path / "elpa" / "legacy-1.0").mkdir(parents=True)

    assert cli_entrypoint(["purge", "--config", str(config)]) == ExitCode.SUCCESS

    out = capsys.readouterr().out
    assert "Purged builds:" in out
    assert "Purged repos:" in out
    assert "Purged legacy installs:" in out
    assert not (tmp_path / "build" / "orphan").exists()
    assert not (tmp_path / "repos" / "orphan").exists()


def test_missing_config_file_is_a_config_error(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    assert cli_entrypoint(["update", "--config", str(tmp_path / "nope.toml")]) == 2
    assert "config file not found" in capsys.readouterr().err


def test_missing_registry_is_a_config_error(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    config = write_workspace(tmp_path)
    (tmp_path / "packages.yaml").unlink()

    assert cli_entrypoint(["install", "--config", str(config)]) == ExitCode.CONFIG_ERROR
    err = capsys.readouterr().err
    assert "error: recipe file not found" in err
    assert "super(" not in err


def test_cli_error_propagates_through_a_context_manager() -> None:
    @contextmanager
    def scope() -> Iterator[None]:
        yield

    with pytest.raises(CLIError) as exc_info:
        with scope():
            raise CLIError("registry broken", exit_code=2)

    assert exc_info.value.exit_code == 2
    assert str(exc_info.value) == "registry broken"
    assert exc_info.value.__traceback__ is not None


def test_invalid_config_is_a_config_error(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    config = tmp_path / "pkgsmith.toml"
    config.write_text("[git]\nclone_depth = -3\n", encoding="utf-8")

    assert cli_entrypoint(["build", "--config", str(config)]) == ExitCode.CONFIG_ERROR
    assert "git.clone_depth" in capsys.readouterr().err


def test_local_package_without_checkout_is_a_partial_failure(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    config = write_workspace(
        tmp_path,
        f"packages:\n  - name: mine\n    type: local\n    repo: {tmp_path / 'missing'}\n",
    )

    assert cli_entrypoint(["install", "--config", str(config)]) == ExitCode.PARTIAL_FAILURE

    out = capsys.readouterr().out
    assert "1 error(s) in 1 package(s)" in out
    assert "mine" in out


def test_user_abort_maps_to_exit_code_three(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    config = write_workspace(tmp_path)

    def abort(self, session=None) -> int:
        raise UserAbort("aborted by user")

    monkeypatch.setattr("pkgsmith.engine.manager.PackageManager.update", abort)

    assert cli_entrypoint(["update", "--config", str(config)]) == ExitCode.USER_ABORT
    assert "aborted by user" in capsys.readouterr().err


def test_unexpected_exception_is_an_internal_error(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    config = write_workspace(tmp_path)

    def explode(self, *, force=False, session=None) -> int:
        raise RuntimeError("kaboom")

    monkeypatch.setattr("pkgsmith.engine.manager.PackageManager.build", explode)

    assert cli_entrypoint(["build", "--config", str(config)]) == ExitCode.INTERNAL_ERROR
    assert "RuntimeError: kaboom" in capsys.readouterr().err


def test_renderer_plain_output_and_verbose_details() -> None:
    buffer = io.StringIO()
    console = Console(file=buffer, no_color=True, width=120)
    quiet = CLIRenderer(no_color=True, console=console)

    quiet.changed("magit: 1234abcd -> 5678ef01 [3 commits]")
    quiet.detail("hidden")
    quiet.fail("dash: fetch failed [link]")
    quiet.items(["one", "two"])

    text = buffer.getvalue()
    assert ">   magit: 1234abcd -> 5678ef01 [3 commits]" in text
    assert "hidden" not in text
    assert "FAIL  dash: fetch failed [link]" in text
    assert "  - one" in text

    buffer_verbose = io.StringIO()
    verbose = CLIRenderer(
        no_color=True, verbose=True, console=Console(file=buffer_verbose, no_color=True)
    )
    verbose.detail("shown")
    verbose.table(("repo", "before"), [("magit", "1.0MB")], title="Regrafted:")
    verbose.table(("repo",), [], title="Empty:")

    verbose_text = buffer_verbose.getvalue()
    assert "shown" in verbose_text
    assert "Regrafted:" in verbose_text
    assert "magit" in verbose_text
    assert "Empty:" not in verbose_text
