"""Domain types: recipes, per-repo outcomes, purge reports, and the error taxonomy."""

from pkgsmith.domain.errors import (
    BuildFailed,
    CheckoutFailed,
    ErrorKind,
    FetchFailed,
    MergeFailed,
    PackageInstallError,
    PkgsmithError,
    PurgeIOError,
    RecloneFailed,
    RecoverableError,
    RepositoryUnavailable,
    UserAbort,
    wrap_unexpected,
)
from pkgsmith.domain.models import (
    OutcomeStatus,
    PurgeReport,
    Recipe,
    RecipeKind,
    RegraftRecord,
    RepoOutcome,
    same_commit,
    short_commit,
)

__all__ = [
    "BuildFailed",
    "CheckoutFailed",
    "ErrorKind",
    "FetchFailed",
    "MergeFailed",
    "OutcomeStatus",
    "PackageInstallError",
    "PkgsmithError",
    "PurgeIOError",
    "PurgeReport",
    "Recipe",
    "RecipeKind",
    "RecloneFailed",
    "RecoverableError",
    "RegraftRecord",
    "RepoOutcome",
    "RepositoryUnavailable",
    "UserAbort",
    "same_commit",
    "short_commit",
    "wrap_unexpected",
]
