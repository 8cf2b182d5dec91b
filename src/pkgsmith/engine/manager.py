"""Wiring facade: build registry, VCS backend, builder and engines from an effective config."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pkgsmith.build.linker import LinkBuilder
from pkgsmith.build.modified import ModificationProbe
from pkgsmith.engine.build import BuildEngine
from pkgsmith.engine.install import InstallEngine
from pkgsmith.engine.purge import PurgeEngine
from pkgsmith.engine.resolver import CommitResolver
from pkgsmith.engine.session import SessionContext
from pkgsmith.engine.update import UpdateEngine
from pkgsmith.registry.loader import load_registry
from pkgsmith.vcs.git_backend import GitBackend

if TYPE_CHECKING:
    from collections.abc import Mapping

    from pkgsmith.build.base import Builder
    from pkgsmith.domain.models import PurgeReport
    from pkgsmith.registry.accessor import RegistryAccessor
    from pkgsmith.vcs.base import VcsBackend


@dataclass(frozen=True, slots=True)
class ManagerPaths:
    repos_dir: Path
    build_dir: Path
    elpa_dir: Path
    modified_dir: Path


class PackageManager:
    """Entry points exposed to the command layer: install, update, build, purge.

    Each call runs in a fresh ``SessionContext``; the most recent one is kept
    on ``last_session`` so callers can report outcomes and errors.
    """

    def __init__(
        self,
        registry: RegistryAccessor,
        vcs: VcsBackend,
        builder: Builder,
        *,
        paths: ManagerPaths,
        probe: ModificationProbe | None = None,
        logger: Any | None = None,
    ) -> None:
        self.registry = registry
        self.vcs = vcs
        self.builder = builder
        self.paths = paths
        self.probe = probe

        self.resolver = CommitResolver(registry, vcs, builder, logger=logger)
        self.build_engine = BuildEngine(registry, builder, probe=probe, logger=logger)
        self.update_engine = UpdateEngine(registry, self.resolver, self.build_engine, logger=logger)
        self.install_engine = InstallEngine(registry, vcs, builder, self.resolver, logger=logger)
        self.purge_engine = PurgeEngine(
            registry,
            vcs,
            builder,
            repos_root=paths.repos_dir,
            elpa_dir=paths.elpa_dir,
            probe=probe,
            logger=logger,
        )
        self.last_session: SessionContext | None = None

    @classmethod
    def from_config(cls, config: Mapping[str, Any], *, logger: Any | None = None) -> PackageManager:
        paths_cfg = config["paths"]
        git_cfg = config["git"]

        paths = ManagerPaths(
            repos_dir=Path(paths_cfg["repos_dir"]),
            build_dir=Path(paths_cfg["build_dir"]),
            elpa_dir=Path(paths_cfg["elpa_dir"]),
            modified_dir=Path(paths_cfg["modified_dir"]),
        )
        pins = paths_cfg.get("pins")
        registry = load_registry(
            Path(paths_cfg["registry"]), pins_path=Path(pins) if pins else None
        )
        vcs = GitBackend(
            paths.repos_dir,
            remote=git_cfg["remote"],
            clone_depth=git_cfg["clone_depth"],
            timeout_seconds=git_cfg["timeout_seconds"],
        )
        builder = LinkBuilder(
            vcs, paths.build_dir, command_timeout_seconds=git_cfg["timeout_seconds"]
        )
        probe = ModificationProbe(
            paths.modified_dir, repo_dir=vcs.repo_dir, build_dir=builder.build_dir
        )
        builder.probe = probe
        return cls(registry, vcs, builder, paths=paths, probe=probe, logger=logger)

    def install(self, session: SessionContext | None = None) -> int:
        session = self._begin(session)
        return self.install_engine.install(session)

    def update(self, session: SessionContext | None = None) -> int:
        session = self._begin(session)
        return self.update_engine.update(session)

    def build(self, *, force: bool = False, session: SessionContext | None = None) -> int:
        session = self._begin(session)
        return self.build_engine.build(force=force, session=session)

    def purge(
        self,
        *,
        elpa: bool = True,
        builds: bool = True,
        repos: bool = True,
        regraft: bool = False,
    ) -> bool:
        return self.purge_engine.purge(elpa=elpa, builds=builds, repos=repos, regraft=regraft)

    @property
    def last_purge_report(self) -> PurgeReport | None:
        return self.purge_engine.last_report

    def _begin(self, session: SessionContext | None) -> SessionContext:
        self.last_session = session if session is not None else SessionContext()
        return self.last_session


__all__ = ["ManagerPaths", "PackageManager"]
