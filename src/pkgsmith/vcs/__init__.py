"""Version-control primitives: the backend interface and its git implementation."""

from pkgsmith.vcs.base import CommandResult, VcsBackend, VcsCommandError, VcsError
from pkgsmith.vcs.git_backend import GitBackend

__all__ = ["CommandResult", "GitBackend", "VcsBackend", "VcsCommandError", "VcsError"]
