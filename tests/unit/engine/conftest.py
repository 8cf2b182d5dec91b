"""
pkgsmith — shared fakes for engine unit tests.

Purpose
- In-memory VCS backend that counts every operation per repo.
- Filesystem-backed builder that records materialize/delete/compact calls.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

import pytest
from structlog.testing import capture_logs

from pkgsmith.build.base import BuildStepError
from pkgsmith.build.modified import ModificationProbe
from pkgsmith.domain.models import same_commit
from pkgsmith.engine.build import BuildEngine
from pkgsmith.engine.install import InstallEngine
from pkgsmith.engine.purge import PurgeEngine
from pkgsmith.engine.resolver import CommitResolver
from pkgsmith.engine.update import UpdateEngine
from pkgsmith.registry.accessor import InMemoryRegistry
from pkgsmith.utils.fs import delete_entry
from pkgsmith.vcs.base import VcsError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator, Mapping

    from pkgsmith.domain.models import Recipe


def full(prefix: str) -> str:
    """Pad an abbreviated hash to 40 hex characters."""

    return prefix + "0" * (40 - len(prefix))


@dataclass
class FakeRepo:
    head: str
    local: set[str] = field(default_factory=set)
    remote: set[str] = field(default_factory=set)
    upstream: str | None = None
    present: bool = True
    managed: bool = True
    is_git: bool = True
    history: bool = True

    def __post_init__(self) -> None:
        self.local.add(self.head)


class FakeVcs:
    def __init__(self, root: Path, repos: Mapping[str, FakeRepo] | None = None) -> None:
        self.repos_root = root
        self.repos: dict[str, FakeRepo] = dict(repos or {})
        self.calls: list[tuple[str, str]] = []
        self.failures: dict[str, set[str]] = {}

    def fail(self, operation: str, repo: str) -> None:
        self.failures.setdefault(operation, set()).add(repo)

    def count(self, operation: str, repo: str | None = None) -> int:
        counter = Counter(
            op for op, name in self.calls if op == operation and (repo is None or name == repo)
        )
        return counter[operation]

    def _record(self, operation: str, repo: str) -> FakeRepo:
        self.calls.append((operation, repo))
        if repo in self.failures.get(operation, set()):
            raise VcsError(f"{operation} failed for {repo}", output=f"{operation}: fatal")
        return self.repos[repo]

    def repo_dir(self, repo: str) -> Path:
        return self.repos_root / repo

    def in_managed_root(self, repo: str) -> bool:
        state = self.repos.get(repo)
        return state.managed if state is not None else not Path(repo).is_absolute()

    def repo_available(self, recipe: Recipe) -> bool:
        state = self.repos.get(recipe.repo or "")
        return state is not None and state.present

    def is_vcs_dir(self, repo: str) -> bool:
        return self.repos[repo].is_git

    def current_commit(self, repo: str) -> str:
        return self.repos[repo].head

    def commit_present_locally(self, recipe: Recipe, commit: str) -> bool:
        state = self.repos[recipe.repo or ""]
        return any(same_commit(commit, candidate) for candidate in state.local)

    def fetch(self, recipe: Recipe) -> str:
        state = self._record("fetch", recipe.repo or "")
        state.local |= state.remote
        return "fetched"

    def checkout(self, recipe: Recipe, commit: str) -> None:
        state = self._record("checkout", recipe.repo or "")
        state.head = next(c for c in sorted(state.local) if same_commit(commit, c))

    def merge_upstream(self, recipe: Recipe) -> str:
        state = self._record("merge", recipe.repo or "")
        if state.upstream is not None:
            state.local.add(state.upstream)
            state.head = state.upstream
        return "merged"

    def commit_count(self, repo: str, old: str, new: str) -> int | None:
        return 3

    def clone(self, recipe: Recipe) -> Path:
        name = recipe.repo or ""
        self.calls.append(("clone", name))
        if name in self.failures.get("clone", set()):
            raise VcsError(f"clone failed for {name}", output="clone: fatal")
        state = self.repos.setdefault(name, FakeRepo(head=full("f00d"), present=False))
        state.present = True
        state.local = set(state.remote) | {state.upstream or state.head}
        state.head = state.upstream or state.head
        self.repo_dir(name).mkdir(parents=True, exist_ok=True)
        return self.repo_dir(name)

    def reset_hard(self, repo: str) -> None:
        self._record("reset", repo)

    def clean_untracked(self, repo: str) -> None:
        self._record("clean", repo)

    def graft_to_single_root(self, repo: str) -> bool:
        state = self._record("graft", repo)
        if not state.history:
            return False
        state.history = False
        return True

    def gc_objects(self, repo: str) -> None:
        self._record("gc", repo)
        pack = self.repo_dir(repo) / "pack.bin"
        if pack.exists():
            pack.write_bytes(b"x")


class FakeBuilder:
    def __init__(self, build_root: Path) -> None:
        self.build_root = build_root
        self.build_root.mkdir(parents=True, exist_ok=True)
        self.materialized: list[str] = []
        self.deleted: list[str] = []
        self.compactions: list[frozenset[str]] = []
        self.broken: set[str] = set()

    def build_dir(self, package: str) -> Path:
        return self.build_root / package

    def has_build(self, package: str) -> bool:
        return self.build_dir(package).is_dir()

    def seed(self, *packages: str) -> None:
        for package in packages:
            self.build_dir(package).mkdir(parents=True, exist_ok=True)

    def materialize(self, recipe: Recipe) -> None:
        if recipe.name in self.broken:
            raise BuildStepError(f"{recipe.name}: build step exited 2", output="make: *** error")
        self.build_dir(recipe.name).mkdir(parents=True, exist_ok=True)
        self.materialized.append(recipe.name)

    def delete_build(self, package: str) -> bool:
        target = self.build_dir(package)
        if target.exists():
            self.deleted.append(package)
        return delete_entry(target, self.build_root) if target.exists() else True

    def compact_cache(self, live_packages: Iterable[str]) -> int:
        self.compactions.append(frozenset(live_packages))
        return 0


@dataclass
class World:
    registry: InMemoryRegistry
    vcs: FakeVcs
    builder: FakeBuilder
    resolver: CommitResolver
    build_engine: BuildEngine
    update_engine: UpdateEngine
    install_engine: InstallEngine
    purge_engine: PurgeEngine
    elpa_dir: Path
    probe: ModificationProbe


@pytest.fixture
def make_world(tmp_path: Path) -> Callable[..., World]:
    def factory(
        recipes: Iterable[Recipe],
        *,
        repos: Mapping[str, Mapping[str, Any]] | None = None,
        pins: Mapping[str, str] | None = None,
        profile: Iterable[str] | None = None,
    ) -> World:
        registry = InMemoryRegistry(recipes, pins=pins, profile=profile)
        vcs = FakeVcs(
            tmp_path / "repos",
            {name: FakeRepo(**dict(state)) for name, state in (repos or {}).items()},
        )
        vcs.repos_root.mkdir(parents=True, exist_ok=True)
        for name, state in vcs.repos.items():
            if state.present and state.managed:
                vcs.repo_dir(name).mkdir(parents=True, exist_ok=True)
        builder = FakeBuilder(tmp_path / "build")
        elpa_dir = tmp_path / "elpa"
        probe = ModificationProbe(
            tmp_path / "modified", repo_dir=vcs.repo_dir, build_dir=builder.build_dir
        )
        resolver = CommitResolver(registry, vcs, builder)
        build_engine = BuildEngine(registry, builder)
        return World(
            registry=registry,
            vcs=vcs,
            builder=builder,
            resolver=resolver,
            build_engine=build_engine,
            update_engine=UpdateEngine(registry, resolver, build_engine),
            install_engine=InstallEngine(registry, vcs, builder, resolver),
            purge_engine=PurgeEngine(
                registry,
                vcs,
                builder,
                repos_root=vcs.repos_root,
                elpa_dir=elpa_dir,
                probe=probe,
            ),
            elpa_dir=elpa_dir,
            probe=probe,
        )

    return factory


@pytest.fixture
def captured_events() -> Iterator[list[dict[str, object]]]:
    with capture_logs() as events:
        yield events
