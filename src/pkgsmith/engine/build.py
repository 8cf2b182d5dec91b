"""Build engine: materialize the rebuild set (or everything) one package at a time."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from pkgsmith.domain.errors import BuildFailed, UserAbort
from pkgsmith.domain.models import RecipeKind
from pkgsmith.engine.session import SessionContext
from pkgsmith.observability.logging import correlation_scope

if TYPE_CHECKING:
    from collections.abc import Iterable

    from pkgsmith.build.base import Builder
    from pkgsmith.build.modified import ModificationProbe
    from pkgsmith.domain.models import Recipe
    from pkgsmith.registry.accessor import RegistryAccessor


class BuildEngine:
    def __init__(
        self,
        registry: RegistryAccessor,
        builder: Builder,
        *,
        probe: ModificationProbe | None = None,
        logger: Any | None = None,
    ) -> None:
        self.registry = registry
        self.builder = builder
        self.probe = probe
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self.last_session: SessionContext | None = None

    def buildable(self) -> tuple[Recipe, ...]:
        return tuple(
            recipe
            for recipe in self.registry.active_recipes()
            if not recipe.ignore and recipe.kind is not RecipeKind.BUILTIN
        )

    def build(
        self,
        *,
        force: bool = False,
        targets: Iterable[str] | None = None,
        session: SessionContext | None = None,
    ) -> int:
        """Materialize targets in registry order; return how many succeeded.

        With ``force`` every buildable recipe is a target. Otherwise targets
        are ``targets`` plus whatever the modification probe flags.
        """

        session = session if session is not None else SessionContext()
        self.last_session = session
        candidates = self.buildable()

        if force:
            wanted = {recipe.name for recipe in candidates}
        else:
            wanted = set(targets or ())
            if self.probe is not None:
                wanted |= self.probe.modified_packages(candidates)

        if not wanted:
            self._logger.info("build_nothing_to_do")
            return 0

        built = 0
        for recipe in candidates:
            if recipe.name not in wanted:
                continue
            with correlation_scope(package=recipe.name, repo=recipe.repo):
                try:
                    self.builder.materialize(recipe)
                except UserAbort:
                    raise
                except Exception as exc:
                    output = getattr(exc, "output", "")
                    error = BuildFailed(
                        str(exc),
                        package=recipe.name,
                        output=output if isinstance(output, str) else "",
                        cause=exc,
                    )
                    session.errors.append(recipe.name, error)
                    self._logger.warning("build_failed", package=recipe.name, detail=str(exc))
                    continue
            built += 1
            session.built.append(recipe.name)
            self._logger.info("build_succeeded", package=recipe.name)

        self._logger.info("build_finished", built=built, requested=len(wanted))
        return built


__all__ = ["BuildEngine"]
