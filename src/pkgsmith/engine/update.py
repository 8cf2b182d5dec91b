"""Update engine: walk updatable recipes, resolve each repo once, then rebuild what moved."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from pkgsmith.domain.errors import UserAbort, wrap_unexpected
from pkgsmith.domain.models import OutcomeStatus, RepoOutcome
from pkgsmith.engine.session import SessionContext
from pkgsmith.observability.logging import correlation_scope
from pkgsmith.registry.accessor import resolve_pin

if TYPE_CHECKING:
    from pkgsmith.engine.build import BuildEngine
    from pkgsmith.engine.resolver import CommitResolver
    from pkgsmith.registry.accessor import RegistryAccessor


class UpdateEngine:
    def __init__(
        self,
        registry: RegistryAccessor,
        resolver: CommitResolver,
        build_engine: BuildEngine,
        *,
        logger: Any | None = None,
    ) -> None:
        self.registry = registry
        self.resolver = resolver
        self.build_engine = build_engine
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self.last_session: SessionContext | None = None

    def update(self, session: SessionContext | None = None) -> int:
        """Return the number of repositories whose commit moved.

        Frozen and ignored recipes are left alone. Failures land in
        ``session.errors``; only ``UserAbort`` escapes.
        """

        session = session if session is not None else SessionContext()
        self.last_session = session

        for recipe in self.registry.active_recipes():
            if not recipe.updatable:
                continue
            with correlation_scope(package=recipe.name, repo=recipe.repo):
                try:
                    outcome = self.resolver.resolve(
                        recipe, resolve_pin(self.registry, recipe), session
                    )
                except UserAbort:
                    raise
                except Exception as exc:
                    error = wrap_unexpected(exc, package=recipe.name)
                    outcome = RepoOutcome.failed(recipe.repo or recipe.name, error)
                    self._logger.exception("update_unexpected_error", package=recipe.name)

            session.outcomes.append((recipe.name, outcome))
            if outcome.status is OutcomeStatus.FAILED and outcome.error is not None:
                session.errors.append(recipe.name, outcome.error)

        updated = len(session.updated_repos)
        if session.rebuild_set:
            self._logger.info(
                "update_rebuilding",
                updated_repos=updated,
                packages=sorted(session.rebuild_set),
            )
            self.build_engine.build(force=False, targets=session.rebuild_set, session=session)
        else:
            self._logger.info("update_all_up_to_date")

        if session.errors:
            self._logger.warning(
                "update_errors", failed_packages=list(session.errors.distinct_packages())
            )
        return updated


__all__ = ["UpdateEngine"]
