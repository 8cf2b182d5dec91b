"""Read-only view over the live recipe set, repo membership, pins, and profile."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Protocol, runtime_checkable

from pkgsmith.domain.models import Recipe, RecipeKind, same_commit


@runtime_checkable
class RegistryAccessor(Protocol):
    """Interface the engines consume; implementations must not mutate during a session."""

    def active_recipes(self) -> tuple[Recipe, ...]: ...

    def get(self, name: str) -> Recipe | None: ...

    def repo_membership(self, repo: str) -> frozenset[str]: ...

    def profile_set(self) -> frozenset[str]: ...

    def live_repos(self) -> frozenset[str]: ...

    def pin_for(self, repo: str) -> str | None: ...

    def dependents(self, package: str) -> frozenset[str]: ...


class InMemoryRegistry:
    """Immutable registry built from an ordered recipe sequence and a pin table."""

    __slots__ = ("_by_name", "_dependents", "_members", "_pins", "_profile", "_recipes")

    def __init__(
        self,
        recipes: Iterable[Recipe],
        *,
        pins: Mapping[str, str] | None = None,
        profile: Iterable[str] | None = None,
    ) -> None:
        ordered = tuple(recipes)
        by_name: dict[str, Recipe] = {}
        for recipe in ordered:
            if recipe.name in by_name:
                raise ValueError(f"duplicate recipe name: {recipe.name!r}")
            by_name[recipe.name] = recipe

        members: dict[str, set[str]] = {}
        dependents: dict[str, set[str]] = {}
        for recipe in ordered:
            if recipe.has_repo and recipe.repo is not None:
                members.setdefault(recipe.repo, set()).add(recipe.name)
            for dependency in recipe.depends:
                dependents.setdefault(dependency, set()).add(recipe.name)

        self._recipes = ordered
        self._by_name = by_name
        self._members = {repo: frozenset(names) for repo, names in members.items()}
        self._dependents = {name: frozenset(items) for name, items in dependents.items()}
        self._pins = {repo: commit.strip().lower() for repo, commit in (pins or {}).items()}
        self._pins.update(_recipe_pins(ordered))
        self._profile = (
            frozenset(profile)
            if profile is not None
            else frozenset(
                recipe.name
                for recipe in ordered
                if not recipe.ignore and recipe.kind is not RecipeKind.BUILTIN
            )
        )

    def active_recipes(self) -> tuple[Recipe, ...]:
        return self._recipes

    def get(self, name: str) -> Recipe | None:
        return self._by_name.get(name)

    def repo_membership(self, repo: str) -> frozenset[str]:
        return self._members.get(repo, frozenset())

    def profile_set(self) -> frozenset[str]:
        return self._profile

    def live_repos(self) -> frozenset[str]:
        """Repos backing at least one profile package."""

        return frozenset(
            recipe.repo
            for recipe in self._recipes
            if recipe.name in self._profile and recipe.has_repo and recipe.repo is not None
        )

    def pin_for(self, repo: str) -> str | None:
        return self._pins.get(repo)

    def dependents(self, package: str) -> frozenset[str]:
        return self._dependents.get(package, frozenset())


def _recipe_pins(recipes: Iterable[Recipe]) -> dict[str, str]:
    """Fold recipe-level pins into one pin per repo.

    Members of a shared repo may repeat a pin (abbreviated or not); the longest
    spelling is kept. Two members naming different commits are rejected.
    """

    folded: dict[str, tuple[str, str]] = {}
    for recipe in recipes:
        if recipe.repo is None or not recipe.pinned_commit:
            continue
        seen = folded.get(recipe.repo)
        if seen is None:
            folded[recipe.repo] = (recipe.pinned_commit, recipe.name)
            continue
        pin, owner = seen
        if not same_commit(pin, recipe.pinned_commit):
            raise ValueError(
                f"conflicting pins for repo {recipe.repo!r}: "
                f"{owner} pins {pin}, {recipe.name} pins {recipe.pinned_commit}"
            )
        if len(recipe.pinned_commit) > len(pin):
            folded[recipe.repo] = (recipe.pinned_commit, owner)
    return {repo: pin for repo, (pin, _) in folded.items()}


def resolve_pin(registry: RegistryAccessor, recipe: Recipe) -> str | None:
    """Return the commit ``recipe``'s repo must sit on, or ``None`` to follow upstream.

    Pins belong to the repo: a pin declared by any member recipe applies to every
    package sharing that checkout and wins over the pin table.
    """

    if recipe.repo is None:
        return recipe.pinned_commit
    return registry.pin_for(recipe.repo)


__all__ = ["InMemoryRegistry", "RegistryAccessor", "resolve_pin"]
