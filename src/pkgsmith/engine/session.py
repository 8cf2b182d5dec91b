"""Per-invocation mutable state threaded through the update, build and install engines."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator

    from pkgsmith.domain.errors import RecoverableError
    from pkgsmith.domain.models import RepoOutcome


def new_session_id() -> str:
    """Sortable, collision-resistant identifier for one CLI session."""

    stamp = datetime.now(tz=UTC).strftime("%Y%m%dT%H%M%SZ")
    return f"{stamp}-{uuid.uuid4().hex[:8]}"


class ErrorLog:
    """Ordered ``(package, error)`` entries; appending never raises."""

    __slots__ = ("_entries",)

    def __init__(self) -> None:
        self._entries: list[tuple[str, RecoverableError]] = []

    def append(self, package: str, error: RecoverableError) -> None:
        self._entries.append((package, error))

    def extend(self, other: ErrorLog) -> None:
        self._entries.extend(other)

    def distinct_packages(self) -> tuple[str, ...]:
        """Failing package names in first-failure order, without repeats."""

        return tuple(dict.fromkeys(package for package, _ in self._entries))

    def __iter__(self) -> Iterator[tuple[str, RecoverableError]]:
        return iter(tuple(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)


@dataclass(slots=True)
class SessionContext:
    """State owned by one engine call; discarded when the call returns.

    ``repo_outcomes`` is the per-repo memo table: once a repo has an entry,
    no further VCS operation is issued for it in this session. ``outcomes`` and
    ``built`` record per-package results in processing order for reporting.
    """

    session_id: str = field(default_factory=new_session_id)
    rebuild_set: set[str] = field(default_factory=set)
    updated_repos: set[str] = field(default_factory=set)
    errors: ErrorLog = field(default_factory=ErrorLog)
    repo_outcomes: dict[str, RepoOutcome] = field(default_factory=dict)
    outcomes: list[tuple[str, RepoOutcome]] = field(default_factory=list)
    built: list[str] = field(default_factory=list)


__all__ = ["ErrorLog", "SessionContext", "new_session_id"]
