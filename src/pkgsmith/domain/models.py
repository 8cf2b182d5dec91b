"""Dataclass domain models for recipes, per-repo outcomes, and purge reports."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from pkgsmith.constants import DEFAULT_BUILD_EXCLUDES, DEFAULT_BUILD_FILES, MIN_COMMIT_ABBREV

if TYPE_CHECKING:
    from pkgsmith.domain.errors import RecoverableError

_COMMIT_RE = re.compile(rf"^[0-9a-f]{{{MIN_COMMIT_ABBREV},40}}$")
_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._+-]*$")


class RecipeKind(StrEnum):
    VCS = "vcs"
    BUILTIN = "builtin"
    LOCAL = "local"


class OutcomeStatus(StrEnum):
    UP_TO_DATE = "up_to_date"
    UPDATED = "updated"
    INDIRECT = "indirect"
    SKIPPED = "skipped"
    FAILED = "failed"


def same_commit(pin: str | None, commit: str | None) -> bool:
    """Return ``True`` when ``pin`` (possibly abbreviated) names ``commit``.

    Comparison is a case-insensitive prefix match: the shorter hash must be a
    prefix of the longer one. Empty or missing values never match.
    """

    if not pin or not commit:
        return False
    left = pin.strip().lower()
    right = commit.strip().lower()
    if not left or not right:
        return False
    if len(left) > len(right):
        left, right = right, left
    return right.startswith(left)


def short_commit(commit: str | None, length: int = 8) -> str:
    if not commit:
        return "-"
    return commit[:length]


@dataclass(frozen=True, slots=True)
class Recipe:
    """Declarative description of one package's source location and pin."""

    name: str
    kind: RecipeKind = RecipeKind.VCS
    repo: str | None = None
    pinned_commit: str | None = None
    freeze: bool = False
    ignore: bool = False
    url: str | None = None
    branch: str | None = None
    files: tuple[str, ...] = DEFAULT_BUILD_FILES
    excludes: tuple[str, ...] = DEFAULT_BUILD_EXCLUDES
    depends: tuple[str, ...] = ()
    pre_build: tuple[tuple[str, ...], ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not _NAME_RE.fullmatch(self.name):
            raise ValueError(f"invalid package name: {self.name!r}")
        if not isinstance(self.kind, RecipeKind):
            object.__setattr__(self, "kind", RecipeKind(self.kind))
        if self.kind is RecipeKind.VCS and not self.repo:
            raise ValueError(f"{self.name}: vcs recipes require a repo")
        if self.pinned_commit is not None:
            pin = self.pinned_commit.strip().lower()
            if not _COMMIT_RE.fullmatch(pin):
                raise ValueError(
                    f"{self.name}: pinned_commit must be {MIN_COMMIT_ABBREV}-40 hex characters"
                )
            object.__setattr__(self, "pinned_commit", pin)
        object.__setattr__(self, "files", tuple(self.files))
        object.__setattr__(self, "excludes", tuple(self.excludes))
        object.__setattr__(self, "depends", tuple(self.depends))
        object.__setattr__(self, "pre_build", tuple(tuple(cmd) for cmd in self.pre_build))

    @property
    def has_repo(self) -> bool:
        return self.kind is not RecipeKind.BUILTIN and self.repo is not None

    @property
    def updatable(self) -> bool:
        """Whether update should try to move this recipe's repo."""

        return self.kind is RecipeKind.VCS and not self.freeze and not self.ignore


@dataclass(frozen=True, slots=True)
class RepoOutcome:
    """Result of bringing one repository to its target state."""

    status: OutcomeStatus
    repo: str
    old_commit: str | None = None
    new_commit: str | None = None
    commit_count: int | None = None
    error: RecoverableError | None = None
    reason: str = ""

    @property
    def ok(self) -> bool:
        return self.status is not OutcomeStatus.FAILED

    @property
    def changed(self) -> bool:
        return self.status in {OutcomeStatus.UPDATED, OutcomeStatus.INDIRECT}

    @classmethod
    def up_to_date(cls, repo: str, commit: str | None) -> RepoOutcome:
        return cls(OutcomeStatus.UP_TO_DATE, repo, old_commit=commit, new_commit=commit)

    @classmethod
    def skipped(cls, repo: str, reason: str) -> RepoOutcome:
        return cls(OutcomeStatus.SKIPPED, repo, reason=reason)

    @classmethod
    def failed(cls, repo: str, error: RecoverableError) -> RepoOutcome:
        return cls(OutcomeStatus.FAILED, repo, error=error, reason=error.detail)


@dataclass(frozen=True, slots=True)
class RegraftRecord:
    repo: str
    size_before: int
    size_after: int


@dataclass(slots=True)
class PurgeReport:
    """Per-category effects of one purge invocation."""

    deleted_builds: list[str] = field(default_factory=list)
    deleted_repos: list[str] = field(default_factory=list)
    deleted_elpa: list[str] = field(default_factory=list)
    regrafted: list[RegraftRecord] = field(default_factory=list)
    already_compact: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    errors: list[RecoverableError] = field(default_factory=list)
    cache_compacted: bool = False

    @property
    def any_effect(self) -> bool:
        return bool(
            self.deleted_builds or self.deleted_repos or self.deleted_elpa or self.regrafted
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "deleted_builds": list(self.deleted_builds),
            "deleted_repos": list(self.deleted_repos),
            "deleted_elpa": list(self.deleted_elpa),
            "regrafted": [
                {"repo": item.repo, "size_before": item.size_before, "size_after": item.size_after}
                for item in self.regrafted
            ],
            "already_compact": list(self.already_compact),
            "skipped": list(self.skipped),
            "errors": [str(item) for item in self.errors],
            "cache_compacted": self.cache_compacted,
        }


__all__ = [
    "OutcomeStatus",
    "PurgeReport",
    "Recipe",
    "RecipeKind",
    "RegraftRecord",
    "RepoOutcome",
    "same_commit",
    "short_commit",
]
