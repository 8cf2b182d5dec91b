"""Detect packages whose checkout changed independently of the last build."""

from __future__ import annotations

import contextlib
import os
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from pkgsmith.domain.models import Recipe

_SKIP_DIRS = frozenset({".git", ".hg", ".svn"})


def marker_name(repo: str) -> str:
    """Flat file name for a repo's modification marker."""

    return repo.strip("/").replace("/", "!")


class ModificationProbe:
    """Marker files under ``modified_dir`` plus an mtime scan of each checkout."""

    def __init__(
        self,
        modified_dir: Path | str,
        *,
        repo_dir: Callable[[str], Path],
        build_dir: Callable[[str], Path],
    ) -> None:
        self.modified_dir = Path(modified_dir)
        self._repo_dir = repo_dir
        self._build_dir = build_dir

    def marker_path(self, repo: str) -> Path:
        return self.modified_dir / marker_name(repo)

    def mark(self, repo: str) -> None:
        self.modified_dir.mkdir(parents=True, exist_ok=True)
        self.marker_path(repo).touch()

    def is_marked(self, repo: str) -> bool:
        return self.marker_path(repo).exists()

    def clear(self, repo: str) -> None:
        with contextlib.suppress(FileNotFoundError):
            self.marker_path(repo).unlink()

    def clear_tree(self, top: str) -> list[str]:
        """Clear the markers of ``top`` and of every repo nested under it."""

        name = marker_name(top)
        if not name or not self.modified_dir.is_dir():
            return []
        cleared: list[str] = []
        for marker in sorted(self.modified_dir.iterdir()):
            if marker.name == name or marker.name.startswith(name + "!"):
                with contextlib.suppress(FileNotFoundError):
                    marker.unlink()
                cleared.append(marker.name)
        return cleared

    def modified_packages(self, recipes: Iterable[Recipe]) -> set[str]:
        flagged: set[str] = set()
        newest_by_repo: dict[str, float | None] = {}
        for recipe in recipes:
            if recipe.ignore or not recipe.has_repo or recipe.repo is None:
                continue
            if self.is_marked(recipe.repo):
                flagged.add(recipe.name)
                continue

            build = self._build_dir(recipe.name)
            if not build.is_dir():
                continue
            if recipe.repo not in newest_by_repo:
                newest_by_repo[recipe.repo] = _newest_mtime(self._repo_dir(recipe.repo))
            newest = newest_by_repo[recipe.repo]
            if newest is not None and newest > build.stat().st_mtime:
                flagged.add(recipe.name)
        return flagged


def _newest_mtime(root: Path) -> float | None:
    if not root.is_dir():
        return None
    newest: float | None = None
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = [name for name in dirnames if name not in _SKIP_DIRS]
        for filename in filenames:
            with contextlib.suppress(OSError):
                mtime = os.stat(os.path.join(dirpath, filename), follow_symlinks=False).st_mtime
                if newest is None or mtime > newest:
                    newest = mtime
    return newest


__all__ = ["ModificationProbe", "marker_name"]
