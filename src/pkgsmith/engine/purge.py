"""
Purge engine: garbage-collect on-disk artifacts that the live registry no longer references.

GC roots are the profile set (package names) and the live repo set. The disk
inventory is rescanned on every call. Each deletion is verified by checking
that the entry is gone afterwards; survivors become ``PurgeIOError`` entries
in the report and the remaining entries are still processed.
"""

from __future__ import annotations

from pathlib import Path, PurePath
from typing import TYPE_CHECKING, Any

import structlog

from pkgsmith.domain.errors import PurgeIOError, RecoverableError, UserAbort, wrap_unexpected
from pkgsmith.domain.models import PurgeReport, RegraftRecord
from pkgsmith.utils.fs import delete_entry, directory_size, list_entries, list_subdirectories
from pkgsmith.vcs.base import VcsError

if TYPE_CHECKING:
    from pkgsmith.build.base import Builder
    from pkgsmith.build.modified import ModificationProbe
    from pkgsmith.registry.accessor import RegistryAccessor
    from pkgsmith.vcs.base import VcsBackend


class PurgeEngine:
    def __init__(
        self,
        registry: RegistryAccessor,
        vcs: VcsBackend,
        builder: Builder,
        *,
        repos_root: Path | str,
        elpa_dir: Path | str,
        probe: ModificationProbe | None = None,
        logger: Any | None = None,
    ) -> None:
        self.registry = registry
        self.vcs = vcs
        self.builder = builder
        self.repos_root = Path(repos_root)
        self.elpa_dir = Path(elpa_dir)
        self.probe = probe
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self.last_report: PurgeReport | None = None

    def purge(
        self,
        *,
        elpa: bool = True,
        builds: bool = True,
        repos: bool = True,
        regraft: bool = False,
    ) -> bool:
        """Run the selected sub-operations; ``True`` when any of them had an effect."""

        report = PurgeReport()
        self.last_report = report
        if elpa:
            self._purge_elpa(report)
        if builds:
            self._purge_builds(report)
        if repos:
            self._purge_repos(report)
        if regraft:
            self._regraft_repos(report)

        self._logger.info(
            "purge_finished",
            deleted_builds=len(report.deleted_builds),
            deleted_repos=len(report.deleted_repos),
            deleted_elpa=len(report.deleted_elpa),
            regrafted=len(report.regrafted),
            errors=len(report.errors),
        )
        return report.any_effect

    def orphaned_builds(self) -> tuple[str, ...]:
        live = self.registry.profile_set()
        return tuple(
            name for name in list_subdirectories(self.builder.build_root) if name not in live
        )

    def orphaned_repos(self) -> tuple[str, ...]:
        live = self._live_top_level_repos()
        return tuple(name for name in list_subdirectories(self.repos_root) if name not in live)

    def retained_repos(self) -> tuple[str, ...]:
        """Live repos that exist on disk inside the managed root."""

        return tuple(
            repo
            for repo in sorted(self.registry.live_repos())
            if self.vcs.in_managed_root(repo) and self.vcs.repo_dir(repo).is_dir()
        )

    def _purge_elpa(self, report: PurgeReport) -> None:
        for entry in list_entries(self.elpa_dir):
            if delete_entry(entry, self.elpa_dir):
                report.deleted_elpa.append(entry.name)
                self._logger.info("elpa_entry_purged", entry=entry.name)
            else:
                self._record_survivor(report, entry)

    def _purge_builds(self, report: PurgeReport) -> None:
        orphans = self.orphaned_builds()
        if not orphans:
            self._logger.info("purge_no_orphaned_builds")
            return

        for name in orphans:
            if self.builder.delete_build(name):
                report.deleted_builds.append(name)
                self._logger.info("build_purged", package=name)
            else:
                self._record_survivor(report, self.builder.build_dir(name))

        if report.deleted_builds:
            try:
                dropped = self.builder.compact_cache(self.registry.profile_set())
            except UserAbort:
                raise
            except Exception as exc:
                report.errors.append(wrap_unexpected(exc))
                self._logger.warning("build_cache_compaction_failed", detail=str(exc))
            else:
                report.cache_compacted = True
                self._logger.info("build_cache_compacted", dropped_entries=dropped)

    def _purge_repos(self, report: PurgeReport) -> None:
        orphans = self.orphaned_repos()
        if not orphans:
            self._logger.info("purge_no_orphaned_repos")
            return

        for name in orphans:
            target = self.repos_root / name
            if delete_entry(target, self.repos_root):
                report.deleted_repos.append(name)
                if self.probe is not None:
                    self.probe.clear_tree(name)
                self._logger.info("repo_purged", repo=name)
            else:
                self._record_survivor(report, target)

    def _regraft_repos(self, report: PurgeReport) -> None:
        for repo in self.retained_repos():
            if not self.vcs.is_vcs_dir(repo):
                report.skipped.append(repo)
                self._logger.info("regraft_skipped_not_vcs", repo=repo)
                continue

            path = self.vcs.repo_dir(repo)
            try:
                size_before = directory_size(path)
                self.vcs.reset_hard(repo)
                self.vcs.clean_untracked(repo)
                if not self.vcs.graft_to_single_root(repo):
                    report.already_compact.append(repo)
                    self._logger.info("regraft_already_compact", repo=repo)
                    continue
                self.vcs.gc_objects(repo)
                size_after = directory_size(path)
            except VcsError as exc:
                report.errors.append(
                    RecoverableError(
                        f"regraft of {repo} failed: {exc}", output=exc.output, cause=exc
                    )
                )
                self._logger.warning("regraft_failed", repo=repo, detail=str(exc))
                continue

            report.regrafted.append(RegraftRecord(repo, size_before, size_after))
            self._logger.info(
                "repo_regrafted", repo=repo, size_before=size_before, size_after=size_after
            )

    def _record_survivor(self, report: PurgeReport, path: Path) -> None:
        report.errors.append(PurgeIOError(f"failed to delete {path}"))
        self._logger.warning("purge_entry_survived", path=str(path))

    def _live_top_level_repos(self) -> frozenset[str]:
        names: set[str] = set()
        for repo in self.registry.live_repos():
            if not self.vcs.in_managed_root(repo):
                continue
            parts = PurePath(repo).parts
            if parts:
                names.add(parts[0])
        return frozenset(names)


__all__ = ["PurgeEngine"]
