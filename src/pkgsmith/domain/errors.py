"""
Error taxonomy for package lifecycle operations.

Two disjoint categories exist:

- ``RecoverableError`` and its subclasses: caught at the innermost
  per-package / per-repo / per-entry scope, appended to the session's
  error log, and never abort the surrounding iteration.
- ``UserAbort``: an explicit fatal condition that must escape the whole
  command. No engine catch point swallows it.
"""

from __future__ import annotations

from enum import StrEnum


class ErrorKind(StrEnum):
    """Recoverable failure categories reported in error summaries."""

    REPOSITORY_UNAVAILABLE = "repository_unavailable"
    FETCH_FAILED = "fetch_failed"
    CHECKOUT_FAILED = "checkout_failed"
    MERGE_FAILED = "merge_failed"
    RECLONE_FAILED = "reclone_failed"
    BUILD_FAILED = "build_failed"
    INSTALL_FAILED = "install_failed"
    PURGE_IO = "purge_io"
    UNEXPECTED = "unexpected"


class PkgsmithError(Exception):
    """Base error for all pkgsmith failures."""


class RecoverableError(PkgsmithError):
    """Failure scoped to one package, repo or directory entry."""

    kind: ErrorKind = ErrorKind.UNEXPECTED

    def __init__(
        self,
        detail: str,
        *,
        package: str | None = None,
        output: str = "",
        cause: BaseException | None = None,
    ) -> None:
        self.detail = detail
        self.package = package
        self.output = output
        self.cause = cause
        message = detail if package is None else f"{package}: {detail}"
        super().__init__(message)

    def for_package(self, package: str) -> RecoverableError:
        """Return the same failure attributed to ``package``."""

        clone = type(self)(self.detail, package=package, output=self.output, cause=self.cause)
        clone.kind = self.kind
        return clone


class RepositoryUnavailable(RecoverableError):
    """The local checkout for a package is missing."""

    kind = ErrorKind.REPOSITORY_UNAVAILABLE


class FetchFailed(RecoverableError):
    kind = ErrorKind.FETCH_FAILED


class CheckoutFailed(RecoverableError):
    kind = ErrorKind.CHECKOUT_FAILED


class MergeFailed(RecoverableError):
    kind = ErrorKind.MERGE_FAILED


class RecloneFailed(RecoverableError):
    kind = ErrorKind.RECLONE_FAILED


class BuildFailed(RecoverableError):
    """The build step for one package raised."""

    kind = ErrorKind.BUILD_FAILED


class PackageInstallError(RecoverableError):
    """Materializing one package during install raised."""

    kind = ErrorKind.INSTALL_FAILED


class PurgeIOError(RecoverableError):
    """A directory entry survived a deletion attempt."""

    kind = ErrorKind.PURGE_IO


class UserAbort(PkgsmithError):
    """Fatal condition that aborts the entire command."""


def wrap_unexpected(exc: Exception, *, package: str | None = None) -> RecoverableError:
    """Convert an arbitrary non-fatal exception into a recoverable error."""

    if isinstance(exc, RecoverableError):
        return exc if package is None or exc.package == package else exc.for_package(package)
    output = getattr(exc, "output", "")
    return RecoverableError(
        f"{type(exc).__name__}: {exc}",
        package=package,
        output=output if isinstance(output, str) else "",
        cause=exc,
    )


__all__ = [
    "BuildFailed",
    "CheckoutFailed",
    "ErrorKind",
    "FetchFailed",
    "MergeFailed",
    "PackageInstallError",
    "PkgsmithError",
    "PurgeIOError",
    "RecloneFailed",
    "RecoverableError",
    "RepositoryUnavailable",
    "UserAbort",
    "wrap_unexpected",
]
