"""Build primitive interface: turn a recipe's checkout into a loadable artifact."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

    from pkgsmith.domain.models import Recipe


class BuildStepError(RuntimeError):
    """Raised when materializing a package fails; carries captured process output."""

    def __init__(self, message: str, *, output: str = "") -> None:
        self.output = output
        super().__init__(message)


@runtime_checkable
class Builder(Protocol):
    build_root: Path

    def build_dir(self, package: str) -> Path: ...

    def has_build(self, package: str) -> bool: ...

    def materialize(self, recipe: Recipe) -> None:
        """Clone the recipe's repo if absent, then (re)build its artifact."""
        ...

    def delete_build(self, package: str) -> bool:
        """Remove a stale artifact; return ``True`` if it is gone afterwards."""
        ...

    def compact_cache(self, live_packages: Iterable[str]) -> int:
        """Drop cache entries for packages that are no longer live; return the count."""
        ...


__all__ = ["BuildStepError", "Builder"]
