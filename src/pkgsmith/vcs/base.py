"""VCS primitive interface consumed by the resolver, install and purge engines."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from pkgsmith.domain.models import Recipe


class VcsError(RuntimeError):
    """Base error for version-control primitive failures."""

    def __init__(self, message: str, *, output: str = "") -> None:
        self.output = output
        super().__init__(message)


class VcsCommandError(VcsError):
    """Raised when a VCS subprocess exits non-zero or times out."""

    def __init__(
        self,
        *,
        command: Sequence[str],
        returncode: int,
        stdout: str,
        stderr: str,
    ) -> None:
        self.command = tuple(command)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        message = f"command failed ({returncode}): {' '.join(command)}"
        if stderr.strip():
            message = f"{message}: {stderr.strip()}"
        super().__init__(message, output=_join_output(stdout, stderr))


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Normalized subprocess result."""

    command: tuple[str, ...]
    cwd: str
    returncode: int
    stdout: str
    stderr: str

    @property
    def output(self) -> str:
        return _join_output(self.stdout, self.stderr)


@runtime_checkable
class VcsBackend(Protocol):
    """Atomic VCS operations; each either succeeds or raises ``VcsError``."""

    def repo_dir(self, repo: str) -> Path: ...

    def in_managed_root(self, repo: str) -> bool: ...

    def repo_available(self, recipe: Recipe) -> bool: ...

    def is_vcs_dir(self, repo: str) -> bool: ...

    def current_commit(self, repo: str) -> str: ...

    def commit_present_locally(self, recipe: Recipe, commit: str) -> bool: ...

    def fetch(self, recipe: Recipe) -> str: ...

    def checkout(self, recipe: Recipe, commit: str) -> None: ...

    def merge_upstream(self, recipe: Recipe) -> str: ...

    def commit_count(self, repo: str, old: str, new: str) -> int | None: ...

    def clone(self, recipe: Recipe) -> Path: ...

    def reset_hard(self, repo: str) -> None: ...

    def clean_untracked(self, repo: str) -> None: ...

    def graft_to_single_root(self, repo: str) -> bool: ...

    def gc_objects(self, repo: str) -> None: ...


def _join_output(stdout: str, stderr: str) -> str:
    parts = [part.strip() for part in (stdout, stderr) if part and part.strip()]
    return "\n".join(parts)


__all__ = ["CommandResult", "VcsBackend", "VcsCommandError", "VcsError"]
