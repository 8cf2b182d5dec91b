"""
pkgsmith config package public API.

Purpose
- Export config loading/validation entrypoints and public error types.
- Support loading from ``pkgsmith.toml`` + ``PKGSMITH_`` env overrides.
"""

from pkgsmith.config.loader import (
    DEFAULT_CONFIG_FILE,
    ENV_PREFIX,
    ConfigLoadError,
    dump_effective_config,
    load_config,
)
from pkgsmith.config.schema import (
    DEFAULT_CONFIG,
    PATH_FIELDS,
    ConfigSchemaVersion,
    ConfigValidationError,
    ConfigValidationIssue,
    ConfigValidationResult,
    PkgsmithConfig,
    ProfileOverlay,
    apply_profile_overlay,
    assert_valid_config,
    default_config,
    merge_config,
    migration_guidance,
    validate_config,
)

__all__ = [
    "DEFAULT_CONFIG",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "PATH_FIELDS",
    "ConfigLoadError",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "PkgsmithConfig",
    "ProfileOverlay",
    "apply_profile_overlay",
    "assert_valid_config",
    "default_config",
    "dump_effective_config",
    "load_config",
    "merge_config",
    "migration_guidance",
    "validate_config",
]
