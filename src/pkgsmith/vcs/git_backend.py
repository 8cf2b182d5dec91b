"""Git CLI implementation of the VCS primitive layer."""

from __future__ import annotations

import os
import subprocess
from pathlib import Path
from typing import TYPE_CHECKING

from pkgsmith.constants import DEFAULT_GIT_TIMEOUT_SECONDS, DEFAULT_REMOTE
from pkgsmith.utils.fs import atomic_write, is_within
from pkgsmith.vcs.base import CommandResult, VcsCommandError, VcsError

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from pkgsmith.domain.models import Recipe


class GitBackend:
    """Thin wrapper around the git CLI for checkouts under ``repos_root``.

    Repo names are directories relative to ``repos_root``; an absolute repo
    name points at a user-supplied checkout outside the managed tree.
    """

    def __init__(
        self,
        repos_root: Path | str,
        *,
        remote: str = DEFAULT_REMOTE,
        clone_depth: int = 0,
        timeout_seconds: float = DEFAULT_GIT_TIMEOUT_SECONDS,
        env_overrides: Mapping[str, str] | None = None,
    ) -> None:
        self.repos_root = Path(repos_root).expanduser().resolve(strict=False)
        self.remote = remote
        self.clone_depth = clone_depth
        self.timeout_seconds = timeout_seconds
        self._env_overrides = dict(env_overrides or {})

    def repo_dir(self, repo: str) -> Path:
        candidate = Path(repo).expanduser()
        if candidate.is_absolute():
            return candidate
        return self.repos_root / candidate

    def in_managed_root(self, repo: str) -> bool:
        return is_within(self.repo_dir(repo), self.repos_root)

    def repo_available(self, recipe: Recipe) -> bool:
        if recipe.repo is None:
            return False
        return self.repo_dir(recipe.repo).is_dir()

    def is_vcs_dir(self, repo: str) -> bool:
        return (self.repo_dir(repo) / ".git").exists()

    def current_commit(self, repo: str) -> str:
        return self._run_git(["rev-parse", "HEAD"], repo=repo).stdout.strip()

    def commit_present_locally(self, recipe: Recipe, commit: str) -> bool:
        result = self._run_git(
            ["rev-parse", "--verify", "--quiet", f"{commit}^{{commit}}"],
            repo=self._require_repo(recipe),
            check=False,
        )
        return result.returncode == 0

    def fetch(self, recipe: Recipe) -> str:
        result = self._run_git(
            ["fetch", "--prune", "--tags", self.remote], repo=self._require_repo(recipe)
        )
        return result.output

    def checkout(self, recipe: Recipe, commit: str) -> None:
        self._run_git(["reset", "--hard", "--quiet", commit], repo=self._require_repo(recipe))

    def merge_upstream(self, recipe: Recipe) -> str:
        repo = self._require_repo(recipe)
        target = (
            f"{self.remote}/{recipe.branch}" if recipe.branch else self._upstream_ref(repo)
        )
        return self._run_git(["merge", "--ff-only", target], repo=repo).output

    def commit_count(self, repo: str, old: str, new: str) -> int | None:
        result = self._run_git(["rev-list", "--count", f"{old}..{new}"], repo=repo, check=False)
        if result.returncode != 0:
            return None
        try:
            return int(result.stdout.strip())
        except ValueError:
            return None

    def clone(self, recipe: Recipe) -> Path:
        repo = self._require_repo(recipe)
        if not recipe.url:
            raise VcsError(f"{recipe.name}: recipe has no url to clone from")
        target = self.repo_dir(repo)
        target.parent.mkdir(parents=True, exist_ok=True)

        args = ["clone", "--quiet", "--origin", self.remote]
        if self.clone_depth > 0 and recipe.pinned_commit is None:
            args.extend(["--depth", str(self.clone_depth), "--no-single-branch"])
        if recipe.branch:
            args.extend(["--branch", recipe.branch])
        args.extend([recipe.url, str(target)])
        self._run_git(args, cwd=target.parent)
        return target

    def reset_hard(self, repo: str) -> None:
        self._run_git(["reset", "--hard", "--quiet", "HEAD"], repo=repo)

    def clean_untracked(self, repo: str) -> None:
        self._run_git(["clean", "-ffd", "--quiet"], repo=repo)

    def graft_to_single_root(self, repo: str) -> bool:
        """Cut HEAD's ancestry by marking HEAD as a shallow boundary.

        Returns ``False`` when HEAD already has no parents. The commit hash
        reported by ``rev-parse HEAD`` does not change; the dropped history is
        reclaimed by the following ``gc_objects`` call.
        """

        parents = self._run_git(["rev-list", "--parents", "-n", "1", "HEAD"], repo=repo)
        fields = parents.stdout.split()
        if len(fields) <= 1:
            return False
        head = fields[0]

        shallow_ref = self._run_git(["rev-parse", "--git-path", "shallow"], repo=repo)
        shallow_path = self.repo_dir(repo) / shallow_ref.stdout.strip()
        boundaries: list[str] = []
        if shallow_path.exists():
            boundaries = [line for line in shallow_path.read_text(encoding="utf-8").split() if line]
        if head not in boundaries:
            boundaries.append(head)
        atomic_write(shallow_path, "".join(f"{commit}\n" for commit in sorted(boundaries)))
        return True

    def gc_objects(self, repo: str) -> None:
        self._run_git(["reflog", "expire", "--expire=all", "--all"], repo=repo)
        self._run_git(["gc", "--prune=now", "--quiet"], repo=repo)

    def _upstream_ref(self, repo: str) -> str:
        tracking = self._run_git(
            ["rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{upstream}"],
            repo=repo,
            check=False,
        )
        if tracking.returncode == 0 and tracking.stdout.strip():
            return tracking.stdout.strip()

        remote_head = self._run_git(
            ["symbolic-ref", "--quiet", "--short", f"refs/remotes/{self.remote}/HEAD"],
            repo=repo,
            check=False,
        )
        if remote_head.returncode == 0 and remote_head.stdout.strip():
            return remote_head.stdout.strip()
        raise VcsError(f"{repo}: cannot determine upstream branch to merge")

    def _require_repo(self, recipe: Recipe) -> str:
        if recipe.repo is None:
            raise VcsError(f"{recipe.name}: recipe has no repository")
        return recipe.repo

    def _run_git(
        self,
        args: Sequence[str],
        *,
        repo: str | None = None,
        cwd: Path | None = None,
        check: bool = True,
    ) -> CommandResult:
        command = ("git", *args)
        if cwd is not None:
            run_cwd = cwd
        elif repo is not None:
            run_cwd = self.repo_dir(repo)
        else:
            run_cwd = self.repos_root
        env = os.environ.copy()
        env["GIT_TERMINAL_PROMPT"] = "0"
        env.setdefault("GIT_CONFIG_NOSYSTEM", "1")
        env.update(self._env_overrides)

        try:
            completed = subprocess.run(
                command,
                cwd=run_cwd,
                env=env,
                text=True,
                capture_output=True,
                timeout=self.timeout_seconds,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise VcsCommandError(
                command=command,
                returncode=-1,
                stdout=_decode(exc.stdout),
                stderr=f"timed out after {self.timeout_seconds}s",
            ) from exc
        except OSError as exc:
            raise VcsError(f"unable to run git in {run_cwd}: {exc}") from exc

        result = CommandResult(
            command=command,
            cwd=Path(run_cwd).as_posix(),
            returncode=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
        )

        if check and result.returncode != 0:
            raise VcsCommandError(
                command=result.command,
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            )

        return result


def _decode(raw: bytes | str | None) -> str:
    if raw is None:
        return ""
    if isinstance(raw, bytes):
        return raw.decode("utf-8", errors="replace")
    return raw


__all__ = ["GitBackend"]
