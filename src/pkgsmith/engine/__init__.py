"""Lifecycle engines: commit resolution, update, build, install and purge."""

from pkgsmith.engine.build import BuildEngine
from pkgsmith.engine.install import InstallEngine
from pkgsmith.engine.manager import ManagerPaths, PackageManager
from pkgsmith.engine.purge import PurgeEngine
from pkgsmith.engine.resolver import CommitResolver
from pkgsmith.engine.session import ErrorLog, SessionContext, new_session_id
from pkgsmith.engine.update import UpdateEngine

__all__ = [
    "BuildEngine",
    "CommitResolver",
    "ErrorLog",
    "InstallEngine",
    "ManagerPaths",
    "PackageManager",
    "PurgeEngine",
    "SessionContext",
    "UpdateEngine",
    "new_session_id",
]
