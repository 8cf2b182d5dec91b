"""Command-line interface router for pkgsmith."""

from __future__ import annotations

import argparse
import sys
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from typing import Any

from pkgsmith.config import ConfigLoadError, ConfigValidationError, load_config
from pkgsmith.domain.models import OutcomeStatus, short_commit
from pkgsmith.engine.manager import PackageManager
from pkgsmith.engine.session import SessionContext, new_session_id
from pkgsmith.observability.logging import (
    LoggingConfig,
    correlation_scope,
    setup_structured_logging,
    shutdown_logging,
)
from pkgsmith.registry.loader import RegistryLoadError
from pkgsmith.ui.render import CLIRenderer, create_renderer
from pkgsmith.utils.fs import format_size


class CLIError(RuntimeError):
    """CLI failure with an explicit process exit code."""

    def __init__(self, message: str, *, exit_code: int = 1) -> None:
        super().__init__(message)
        self.message = message
        self.exit_code = exit_code

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router."""

    parser = argparse.ArgumentParser(
        prog="pkgsmith",
        description=(
            "pkgsmith — keep local package checkouts and builds in sync with a recipe file.\n\n"
            "Common workflows:\n"
            "  pkgsmith install            Clone and build every declared package\n"
            "  pkgsmith update             Move repos to their pins or upstream, rebuild\n"
            "  pkgsmith build --force      Rebuild every package\n"
            "  pkgsmith purge --regraft    Delete orphans and compact repo history\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to pkgsmith TOML config (default: ./pkgsmith.toml if present).",
    )
    common.add_argument("--profile", default=None, help="Optional config profile overlay name.")
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Show per-package detail and debug logs.",
    )
    common.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Disable colored output (also respects NO_COLOR env var).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    install_parser = subparsers.add_parser(
        "install",
        parents=[common],
        help="Clone and build every declared package that is missing",
    )
    install_parser.set_defaults(handler=_cmd_install)

    update_parser = subparsers.add_parser(
        "update",
        parents=[common],
        help="Bring every repo to its pin or upstream and rebuild what changed",
    )
    update_parser.set_defaults(handler=_cmd_update)

    build_parser_ = subparsers.add_parser(
        "build",
        parents=[common],
        help="Rebuild modified packages (or all of them with --force)",
    )
    build_parser_.add_argument(
        "--force",
        "-f",
        action="store_true",
        default=False,
        help="Rebuild every package, not only modified ones.",
    )
    build_parser_.set_defaults(handler=_cmd_build)

    purge_parser = subparsers.add_parser(
        "purge",
        parents=[common],
        help="Delete orphaned builds, repos and legacy installs",
    )
    purge_parser.add_argument(
        "--no-elpa", action="store_true", default=False, help="Keep the legacy flat-install tree."
    )
    purge_parser.add_argument(
        "--no-builds", action="store_true", default=False, help="Keep orphaned builds."
    )
    purge_parser.add_argument(
        "--no-repos", action="store_true", default=False, help="Keep orphaned repos."
    )
    purge_parser.add_argument(
        "--regraft",
        "-g",
        action="store_true",
        default=False,
        help="Compact history of retained repos into a single root commit.",
    )
    purge_parser.set_defaults(handler=_cmd_purge)

    return parser


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_install(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    renderer = _get_renderer(args)
    with _command_session(config, verbose=args.verbose) as session:
        manager = _build_manager(config)
        installed = manager.install(session)

    _render_repo_outcomes(renderer, session)
    if installed:
        renderer.heading(f"Installed {installed} package(s)")
    else:
        renderer.heading("Everything is already installed")
    return _finish(renderer, session)


def _cmd_update(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    renderer = _get_renderer(args)
    with _command_session(config, verbose=args.verbose) as session:
        manager = _build_manager(config)
        updated = manager.update(session)

    _render_repo_outcomes(renderer, session)
    if updated or session.built:
        renderer.heading(f"Updated {updated} repo(s), rebuilt {len(session.built)} package(s)")
    else:
        renderer.heading("Everything is up to date")
    return _finish(renderer, session)


def _cmd_build(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    renderer = _get_renderer(args)
    with _command_session(config, verbose=args.verbose) as session:
        manager = _build_manager(config)
        built = manager.build(force=args.force, session=session)

    for package in session.built:
        renderer.ok(package)
    if built:
        renderer.heading(f"Built {built} package(s)")
    else:
        renderer.heading("No packages needed rebuilding")
    return _finish(renderer, session)


def _cmd_purge(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    renderer = _get_renderer(args)
    with _command_session(config, verbose=args.verbose):
        manager = _build_manager(config)
        effect = manager.purge(
            elpa=not args.no_elpa,
            builds=not args.no_builds,
            repos=not args.no_repos,
            regraft=args.regraft,
        )

    report = manager.last_purge_report
    if report is None:
        return 0

    if report.deleted_elpa:
        renderer.section("Purged legacy installs:")
        renderer.items(report.deleted_elpa)
    if report.deleted_builds:
        renderer.section("Purged builds:")
        renderer.items(report.deleted_builds)
    if report.deleted_repos:
        renderer.section("Purged repos:")
        renderer.items(report.deleted_repos)
    renderer.table(
        ("repo", "before", "after"),
        [
            (item.repo, format_size(item.size_before), format_size(item.size_after))
            for item in report.regrafted
        ],
        title="Regrafted:",
    )
    for repo in report.already_compact:
        renderer.detail(f"  {repo} is already compact")
    for repo in report.skipped:
        renderer.detail(f"  {repo} is not a git checkout, skipped")

    renderer.heading("Purge finished" if effect else "Nothing to purge")
    if report.errors:
        renderer.section("Errors:")
        for error in report.errors:
            renderer.fail(str(error))
        return 1
    return 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_effective_config(args: argparse.Namespace) -> dict[str, Any]:
    try:
        return load_config(getattr(args, "config_path", None), profile=args.profile)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def _build_manager(config: Mapping[str, Any]) -> PackageManager:
    try:
        return PackageManager.from_config(config)
    except RegistryLoadError as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def _get_renderer(args: argparse.Namespace) -> CLIRenderer:
    return create_renderer(no_color=args.no_color, verbose=args.verbose)


@contextmanager
def _command_session(config: Mapping[str, Any], *, verbose: bool) -> Iterator[SessionContext]:
    """Structured logging for one command, with the session id bound as correlation."""

    observability = config["observability"]
    session = SessionContext(session_id=new_session_id())
    handle = setup_structured_logging(
        LoggingConfig(
            session_id=session.session_id,
            base_log_dir=config["paths"]["log_dir"],
            level="DEBUG" if verbose else observability["log_level"],
            log_to_stdout=observability["log_to_stdout"],
        )
    )
    try:
        with correlation_scope(session_id=session.session_id):
            yield session
    finally:
        shutdown_logging(handle)


def _render_repo_outcomes(renderer: CLIRenderer, session: SessionContext) -> None:
    for package, outcome in session.outcomes:
        if outcome.status is OutcomeStatus.UPDATED:
            count = f" [{outcome.commit_count} commits]" if outcome.commit_count else ""
            renderer.changed(
                f"{package}: {short_commit(outcome.old_commit)} -> "
                f"{short_commit(outcome.new_commit)}{count}"
            )
        elif outcome.status is OutcomeStatus.INDIRECT:
            renderer.changed(f"{package}: updated with {outcome.repo}")
        elif outcome.status is OutcomeStatus.SKIPPED:
            renderer.detail(f"  {package}: skipped ({outcome.reason})")
        elif outcome.status is OutcomeStatus.UP_TO_DATE:
            renderer.detail(f"  {package}: up to date")


def _finish(renderer: CLIRenderer, session: SessionContext) -> int:
    if not session.errors:
        return 0

    failing = session.errors.distinct_packages()
    renderer.section(f"{len(session.errors)} error(s) in {len(failing)} package(s):")
    for package, error in session.errors:
        renderer.fail(f"{package}: {error.detail} ({error.kind})")
        if renderer.verbose and error.output:
            renderer.items(error.output.splitlines(), prefix="| ")
    return 1


__all__ = ["CLIError", "build_parser", "run_cli"]
