"""Install engine: give every declared package a checkout on its pin and a build artifact."""

from __future__ import annotations

from collections import deque
from typing import TYPE_CHECKING, Any

import structlog

from pkgsmith.domain.errors import (
    FetchFailed,
    PackageInstallError,
    RecoverableError,
    UserAbort,
)
from pkgsmith.domain.models import OutcomeStatus, RecipeKind, RepoOutcome, same_commit
from pkgsmith.engine.session import SessionContext
from pkgsmith.observability.logging import correlation_scope
from pkgsmith.registry.accessor import resolve_pin
from pkgsmith.vcs.base import VcsError

if TYPE_CHECKING:
    from pkgsmith.build.base import Builder
    from pkgsmith.domain.models import Recipe
    from pkgsmith.engine.resolver import CommitResolver
    from pkgsmith.registry.accessor import RegistryAccessor
    from pkgsmith.vcs.base import VcsBackend


class InstallEngine:
    def __init__(
        self,
        registry: RegistryAccessor,
        vcs: VcsBackend,
        builder: Builder,
        resolver: CommitResolver,
        *,
        logger: Any | None = None,
    ) -> None:
        self.registry = registry
        self.vcs = vcs
        self.builder = builder
        self.resolver = resolver
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self.last_session: SessionContext | None = None

    def install(self, session: SessionContext | None = None) -> int:
        """Return the number of packages materialized by this call.

        Packages are visited in registry order; a package's declared
        dependencies are visited right after it.
        """

        session = session if session is not None else SessionContext()
        self.last_session = session

        queue: deque[Recipe] = deque(
            recipe for recipe in self.registry.active_recipes() if _installable(recipe)
        )
        visited: set[str] = set()
        installed = 0

        while queue:
            recipe = queue.popleft()
            if recipe.name in visited:
                continue
            visited.add(recipe.name)

            with correlation_scope(package=recipe.name, repo=recipe.repo):
                try:
                    if self._install_one(recipe, session):
                        installed += 1
                        session.built.append(recipe.name)
                        self._logger.info("package_installed", package=recipe.name)
                except UserAbort:
                    raise
                except Exception as exc:
                    output = getattr(exc, "output", "")
                    detail = exc.detail if isinstance(exc, RecoverableError) else str(exc)
                    session.errors.append(
                        recipe.name,
                        PackageInstallError(
                            detail,
                            package=recipe.name,
                            output=output if isinstance(output, str) else "",
                            cause=exc,
                        ),
                    )
                    self._logger.warning("install_failed", package=recipe.name, detail=detail)

            dependencies = [
                dependency
                for name in recipe.depends
                if name not in visited
                and (dependency := self.registry.get(name)) is not None
                and _installable(dependency)
            ]
            queue.extendleft(reversed(dependencies))

        if session.errors:
            self._logger.warning(
                "install_errors", failed_packages=list(session.errors.distinct_packages())
            )
        return installed

    def _install_one(self, recipe: Recipe, session: SessionContext) -> bool:
        changed = self._reconcile(recipe, session) if recipe.has_repo else False
        if self.builder.has_build(recipe.name) and not changed:
            return False
        self.builder.materialize(recipe)
        return True

    def _reconcile(self, recipe: Recipe, session: SessionContext) -> bool:
        """Ensure the recipe's repo is cloned and on its pin, once per repo per session."""

        repo = recipe.repo
        if repo is None:
            return False
        memo = session.repo_outcomes.get(repo)
        if memo is not None:
            if memo.error is not None:
                raise memo.error.for_package(recipe.name)
            return memo.changed

        try:
            outcome = self._reconcile_repo(recipe)
        except RecoverableError as exc:
            session.repo_outcomes[repo] = RepoOutcome.failed(repo, exc)
            raise
        session.repo_outcomes[repo] = outcome
        session.outcomes.append((recipe.name, outcome))
        if outcome.changed:
            session.updated_repos.add(repo)
        return outcome.changed

    def _reconcile_repo(self, recipe: Recipe) -> RepoOutcome:
        repo = recipe.repo
        if repo is None or recipe.kind is not RecipeKind.VCS or not self.vcs.in_managed_root(repo):
            return RepoOutcome.skipped(repo or recipe.name, "not a managed checkout")

        pin = resolve_pin(self.registry, recipe)
        cloned = False
        if not self.vcs.repo_available(recipe):
            try:
                self.vcs.clone(recipe)
            except VcsError as exc:
                raise FetchFailed(
                    f"clone failed: {exc}", package=recipe.name, output=exc.output, cause=exc
                ) from exc
            cloned = True
            self._logger.info("repo_cloned", package=recipe.name, repo=repo)

        old = self.resolver.read_commit(recipe)
        if pin is not None and not same_commit(pin, old):
            self._logger.info("pin_mismatch", package=recipe.name, repo=repo, pin=pin, current=old)
            self.resolver.move_to_pin(recipe, pin)
        new = self.resolver.read_commit(recipe)

        if cloned or new != old:
            return RepoOutcome(
                OutcomeStatus.UPDATED,
                repo,
                old_commit=None if cloned else old,
                new_commit=new,
            )
        return RepoOutcome.up_to_date(repo, new)


def _installable(recipe: Recipe) -> bool:
    return not recipe.ignore and recipe.kind is not RecipeKind.BUILTIN


__all__ = ["InstallEngine"]
