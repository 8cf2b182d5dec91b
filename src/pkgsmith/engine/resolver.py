"""
Commit resolution: bring one repository to its target revision with the fewest VCS operations.

Each repo is evaluated at most once per session. The first package that
reaches a repo drives the VCS work; later packages sharing it read the
memoized outcome:

- missing checkout          -> failed (repository unavailable), not retried
- outside the managed root  -> skipped (local override), never propagates
- pinned, already on pin    -> up to date
- pinned, pin absent        -> fetch, then checkout; re-clone if still absent
- unpinned                  -> fetch, then fast-forward merge of upstream
- commit moved              -> updated; every package on the repo and its
                               dependents joins the rebuild set and loses its
                               stale build
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from pkgsmith.domain.errors import (
    CheckoutFailed,
    FetchFailed,
    MergeFailed,
    RecloneFailed,
    RecoverableError,
    RepositoryUnavailable,
)
from pkgsmith.domain.models import OutcomeStatus, RepoOutcome, same_commit, short_commit
from pkgsmith.utils.fs import delete_entry
from pkgsmith.vcs.base import VcsError

if TYPE_CHECKING:
    from pkgsmith.build.base import Builder
    from pkgsmith.domain.models import Recipe
    from pkgsmith.engine.session import SessionContext
    from pkgsmith.registry.accessor import RegistryAccessor
    from pkgsmith.vcs.base import VcsBackend


class CommitResolver:
    """Per-repo state machine shared by the update and install engines."""

    def __init__(
        self,
        registry: RegistryAccessor,
        vcs: VcsBackend,
        builder: Builder,
        *,
        logger: Any | None = None,
    ) -> None:
        self.registry = registry
        self.vcs = vcs
        self.builder = builder
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def resolve(self, recipe: Recipe, pin: str | None, session: SessionContext) -> RepoOutcome:
        repo = recipe.repo
        if repo is None:
            return RepoOutcome.skipped(recipe.name, "recipe has no repository")

        memo = session.repo_outcomes.get(repo)
        if memo is not None:
            return self._from_memo(recipe, memo, session)

        outcome = self._resolve_repo(recipe, pin)
        session.repo_outcomes[repo] = outcome

        if outcome.status is OutcomeStatus.UPDATED:
            session.updated_repos.add(repo)
            for package in sorted(self.registry.repo_membership(repo)):
                self.flag_for_rebuild(package, session)
            self._logger.info(
                "repo_updated",
                package=recipe.name,
                repo=repo,
                old_commit=outcome.old_commit,
                new_commit=outcome.new_commit,
                commit_count=outcome.commit_count,
            )
        elif outcome.status is OutcomeStatus.FAILED:
            self._logger.warning(
                "repo_failed",
                package=recipe.name,
                repo=repo,
                kind=str(outcome.error.kind) if outcome.error is not None else None,
                reason=outcome.reason,
            )
        else:
            self._logger.debug(
                "repo_unchanged", package=recipe.name, repo=repo, status=str(outcome.status)
            )
        return outcome

    def flag_for_rebuild(self, package: str, session: SessionContext) -> None:
        """Add ``package`` and its transitive dependents to the rebuild set and drop their builds."""

        pending = [package]
        while pending:
            name = pending.pop()
            if name in session.rebuild_set:
                continue
            session.rebuild_set.add(name)
            if not self.builder.delete_build(name):
                self._logger.warning("stale_build_not_removed", package=name)
            pending.extend(sorted(self.registry.dependents(name) - session.rebuild_set))

    def read_commit(self, recipe: Recipe) -> str:
        repo = self._require_repo(recipe)
        try:
            return self.vcs.current_commit(repo)
        except VcsError as exc:
            raise RepositoryUnavailable(
                f"cannot read current commit of {repo}: {exc}",
                package=recipe.name,
                output=exc.output,
                cause=exc,
            ) from exc

    def move_to_pin(self, recipe: Recipe, pin: str) -> None:
        """Check ``pin`` out, fetching first if needed and re-cloning as a last resort."""

        try:
            present = self.vcs.commit_present_locally(recipe, pin)
            if not present:
                self.vcs.fetch(recipe)
                present = self.vcs.commit_present_locally(recipe, pin)
        except VcsError as exc:
            raise FetchFailed(
                f"fetch failed: {exc}", package=recipe.name, output=exc.output, cause=exc
            ) from exc

        if not present:
            self._reclone(recipe, pin)
            return

        try:
            self.vcs.checkout(recipe, pin)
        except VcsError as exc:
            raise CheckoutFailed(
                f"checkout of {short_commit(pin)} failed: {exc}",
                package=recipe.name,
                output=exc.output,
                cause=exc,
            ) from exc

    def _resolve_repo(self, recipe: Recipe, pin: str | None) -> RepoOutcome:
        repo = self._require_repo(recipe)
        if not self.vcs.repo_available(recipe):
            return RepoOutcome.failed(
                repo,
                RepositoryUnavailable(
                    f"checkout {repo} is missing; run install first", package=recipe.name
                ),
            )
        if not self.vcs.in_managed_root(repo):
            return RepoOutcome.skipped(repo, "local checkout outside the managed repo root")

        try:
            old = self.read_commit(recipe)
            if pin is not None:
                if same_commit(pin, old):
                    return RepoOutcome.up_to_date(repo, old)
                self.move_to_pin(recipe, pin)
            else:
                self._follow_upstream(recipe)
            new = self.read_commit(recipe)
        except RecoverableError as exc:
            return RepoOutcome.failed(repo, exc)

        if new == old:
            return RepoOutcome.up_to_date(repo, new)
        return RepoOutcome(
            OutcomeStatus.UPDATED,
            repo,
            old_commit=old,
            new_commit=new,
            commit_count=self._commit_count(repo, old, new),
        )

    def _from_memo(
        self, recipe: Recipe, memo: RepoOutcome, session: SessionContext
    ) -> RepoOutcome:
        if memo.changed:
            self.flag_for_rebuild(recipe.name, session)
            return RepoOutcome(
                OutcomeStatus.INDIRECT,
                memo.repo,
                old_commit=memo.old_commit,
                new_commit=memo.new_commit,
                commit_count=memo.commit_count,
            )
        if memo.error is not None:
            return RepoOutcome.failed(memo.repo, memo.error.for_package(recipe.name))
        return memo

    def _follow_upstream(self, recipe: Recipe) -> None:
        try:
            self.vcs.fetch(recipe)
        except VcsError as exc:
            raise FetchFailed(
                f"fetch failed: {exc}", package=recipe.name, output=exc.output, cause=exc
            ) from exc
        try:
            self.vcs.merge_upstream(recipe)
        except VcsError as exc:
            raise MergeFailed(
                f"merge of upstream failed: {exc}",
                package=recipe.name,
                output=exc.output,
                cause=exc,
            ) from exc

    def _reclone(self, recipe: Recipe, pin: str) -> None:
        repo = self._require_repo(recipe)
        target = self.vcs.repo_dir(repo)
        self._logger.info("repo_reclone", package=recipe.name, repo=repo, pin=pin)
        if not delete_entry(target, target.parent):
            raise RecloneFailed(f"could not remove {target} for re-clone", package=recipe.name)
        try:
            self.vcs.clone(recipe)
            if not self.vcs.commit_present_locally(recipe, pin):
                raise RecloneFailed(
                    f"commit {short_commit(pin)} not found after re-clone", package=recipe.name
                )
            self.vcs.checkout(recipe, pin)
        except VcsError as exc:
            raise RecloneFailed(
                f"re-clone failed: {exc}", package=recipe.name, output=exc.output, cause=exc
            ) from exc

    def _commit_count(self, repo: str, old: str, new: str) -> int | None:
        try:
            return self.vcs.commit_count(repo, old, new)
        except VcsError:
            return None

    @staticmethod
    def _require_repo(recipe: Recipe) -> str:
        if recipe.repo is None:
            raise RepositoryUnavailable("recipe has no repository", package=recipe.name)
        return recipe.repo


__all__ = ["CommitResolver"]
