"""Default builder: clone if absent, run pre-build commands, link files into ``build/<name>``."""

from __future__ import annotations

import json
import subprocess
from datetime import UTC, datetime
from fnmatch import fnmatch
from pathlib import Path
from typing import TYPE_CHECKING

from pkgsmith.build.base import BuildStepError
from pkgsmith.constants import BUILD_CACHE_FILE, BUILD_CACHE_SCHEMA_VERSION
from pkgsmith.domain.models import RecipeKind
from pkgsmith.utils.fs import atomic_write, delete_entry
from pkgsmith.vcs.base import VcsError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from pkgsmith.build.modified import ModificationProbe
    from pkgsmith.domain.models import Recipe
    from pkgsmith.vcs.base import VcsBackend


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


class LinkBuilder:
    """Materialize packages as directories of symlinks into their checkouts.

    The build cache (``build-cache.json`` under ``build_root``) records, per
    package, the commit it was built from, when, and which files were linked.
    """

    def __init__(
        self,
        vcs: VcsBackend,
        build_root: Path | str,
        *,
        probe: ModificationProbe | None = None,
        command_timeout_seconds: float = 600,
        now_fn: Callable[[], datetime] | None = None,
    ) -> None:
        self.vcs = vcs
        self.build_root = Path(build_root).expanduser().resolve(strict=False)
        self.probe = probe
        self.command_timeout_seconds = command_timeout_seconds
        self._now_fn: Callable[[], datetime] = now_fn if now_fn is not None else _utc_now

    @property
    def cache_path(self) -> Path:
        return self.build_root / BUILD_CACHE_FILE

    def build_dir(self, package: str) -> Path:
        return self.build_root / package

    def has_build(self, package: str) -> bool:
        return self.build_dir(package).is_dir()

    def materialize(self, recipe: Recipe) -> None:
        if recipe.kind is RecipeKind.BUILTIN or recipe.repo is None:
            return

        if not self.vcs.repo_available(recipe):
            if recipe.kind is RecipeKind.LOCAL:
                raise BuildStepError(f"{recipe.name}: local checkout {recipe.repo} does not exist")
            try:
                self.vcs.clone(recipe)
            except VcsError as exc:
                raise BuildStepError(f"{recipe.name}: clone failed: {exc}", output=exc.output) from exc

        source = self.vcs.repo_dir(recipe.repo)
        self._run_pre_build(recipe, source)

        self.build_root.mkdir(parents=True, exist_ok=True)
        target = self.build_dir(recipe.name)
        if not self.delete_build(recipe.name):
            raise BuildStepError(f"{recipe.name}: could not remove stale build at {target}")
        target.mkdir(parents=True)

        linked = self._link_files(recipe, source, target)

        commit: str | None = None
        if self.vcs.is_vcs_dir(recipe.repo):
            try:
                commit = self.vcs.current_commit(recipe.repo)
            except VcsError as exc:
                raise BuildStepError(f"{recipe.name}: {exc}", output=exc.output) from exc

        self._record(recipe.name, commit=commit, files=linked)
        if self.probe is not None:
            self.probe.clear(recipe.repo)

    def delete_build(self, package: str) -> bool:
        target = self.build_dir(package)
        if not target.exists() and not target.is_symlink():
            return True
        return delete_entry(target, self.build_root)

    def compact_cache(self, live_packages: Iterable[str]) -> int:
        live = set(live_packages)
        cache = self._load_cache()
        packages = cache["packages"]
        stale = sorted(
            name for name in packages if name not in live or not self.has_build(name)
        )
        for name in stale:
            del packages[name]
        if stale:
            self._write_cache(cache)
        return len(stale)

    def cached_commit(self, package: str) -> str | None:
        entry = self._load_cache()["packages"].get(package)
        if not isinstance(entry, dict):
            return None
        commit = entry.get("commit")
        return commit if isinstance(commit, str) else None

    def _run_pre_build(self, recipe: Recipe, source: Path) -> None:
        for command in recipe.pre_build:
            try:
                completed = subprocess.run(
                    list(command),
                    cwd=source,
                    text=True,
                    capture_output=True,
                    timeout=self.command_timeout_seconds,
                    check=False,
                )
            except (OSError, subprocess.TimeoutExpired) as exc:
                raise BuildStepError(
                    f"{recipe.name}: pre-build command {' '.join(command)!r} failed: {exc}"
                ) from exc
            if completed.returncode != 0:
                raise BuildStepError(
                    f"{recipe.name}: pre-build command {' '.join(command)!r} "
                    f"exited {completed.returncode}",
                    output="\n".join(
                        part.strip() for part in (completed.stdout, completed.stderr) if part
                    ),
                )

    def _link_files(self, recipe: Recipe, source: Path, target: Path) -> list[str]:
        linked: list[str] = []
        seen: set[str] = set()
        for pattern in recipe.files:
            for match in sorted(source.glob(pattern)):
                if not match.is_file():
                    continue
                relative = match.relative_to(source).as_posix()
                if ".git" in Path(relative).parts or _excluded(relative, recipe.excludes):
                    continue
                if match.name in seen:
                    continue
                seen.add(match.name)
                (target / match.name).symlink_to(match.resolve())
                linked.append(relative)
        return linked

    def _record(self, package: str, *, commit: str | None, files: list[str]) -> None:
        cache = self._load_cache()
        cache["packages"][package] = {
            "commit": commit,
            "built_at": self._now_fn().isoformat(timespec="seconds").replace("+00:00", "Z"),
            "files": files,
        }
        self._write_cache(cache)

    def _load_cache(self) -> dict[str, dict[str, object]]:
        empty: dict[str, dict[str, object]] = {"packages": {}}
        if not self.cache_path.exists():
            return empty
        try:
            payload = json.loads(self.cache_path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return empty
        if not isinstance(payload, dict):
            return empty
        packages = payload.get("packages")
        if payload.get("schema_version") != BUILD_CACHE_SCHEMA_VERSION or not isinstance(
            packages, dict
        ):
            return empty
        return {"packages": packages}

    def _write_cache(self, cache: dict[str, dict[str, object]]) -> None:
        payload = {"schema_version": BUILD_CACHE_SCHEMA_VERSION, "packages": cache["packages"]}
        atomic_write(
            self.cache_path,
            json.dumps(payload, sort_keys=True, indent=2, ensure_ascii=False) + "\n",
        )


def _excluded(relative: str, excludes: Iterable[str]) -> bool:
    name = relative.rsplit("/", 1)[-1]
    return any(fnmatch(relative, pattern) or fnmatch(name, pattern) for pattern in excludes)


__all__ = ["LinkBuilder"]
