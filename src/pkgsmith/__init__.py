"""
pkgsmith — local package repository lifecycle manager.

Keeps a tree of version-controlled package checkouts, the build artifacts
derived from them, and a legacy flat-install tree consistent with a
declarative recipe set.

Importing the package has no side effects: no config loading, no logging
setup. Entry points live in ``pkgsmith.main`` and ``pkgsmith.engine``.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
