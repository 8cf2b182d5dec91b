"""Stable constants shared across pkgsmith planes."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

# Schema versions for persisted contracts.
CONFIG_SCHEMA_VERSION: Final[int] = 1
BUILD_CACHE_SCHEMA_VERSION: Final[int] = 1

# Default on-disk layout (relative to the config file directory unless overridden).
REPOS_DIR: Final[PurePosixPath] = PurePosixPath("repos")
BUILD_DIR: Final[PurePosixPath] = PurePosixPath("build")
ELPA_DIR: Final[PurePosixPath] = PurePosixPath("elpa")
MODIFIED_DIR: Final[PurePosixPath] = PurePosixPath("modified")
LOG_DIR: Final[PurePosixPath] = PurePosixPath("logs")
REGISTRY_FILE: Final[str] = "packages.yaml"
BUILD_CACHE_FILE: Final[str] = "build-cache.json"

# Git defaults.
DEFAULT_REMOTE: Final[str] = "origin"
DEFAULT_GIT_TIMEOUT_SECONDS: Final[int] = 600

# Files linked into a build artifact when a recipe does not say otherwise.
DEFAULT_BUILD_FILES: Final[tuple[str, ...]] = ("*.el", "*.info", "dir", "doc/*.info")
DEFAULT_BUILD_EXCLUDES: Final[tuple[str, ...]] = (
    ".dir-locals.el",
    "test.el",
    "tests.el",
    "*-test.el",
    "*-tests.el",
)

# Shortest abbreviated commit accepted as a pin (git's own minimum abbrev).
MIN_COMMIT_ABBREV: Final[int] = 4

__all__ = [
    "BUILD_CACHE_FILE",
    "BUILD_CACHE_SCHEMA_VERSION",
    "BUILD_DIR",
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_BUILD_EXCLUDES",
    "DEFAULT_BUILD_FILES",
    "DEFAULT_GIT_TIMEOUT_SECONDS",
    "DEFAULT_REMOTE",
    "ELPA_DIR",
    "LOG_DIR",
    "MIN_COMMIT_ABBREV",
    "MODIFIED_DIR",
    "REGISTRY_FILE",
    "REPOS_DIR",
]
