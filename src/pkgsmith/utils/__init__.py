"""Utility exports for guarded filesystem operations."""

from pkgsmith.utils.fs import (
    atomic_write,
    delete_entry,
    directory_size,
    format_size,
    is_within,
    list_entries,
    list_subdirectories,
    safe_delete,
)

__all__ = [
    "atomic_write",
    "delete_entry",
    "directory_size",
    "format_size",
    "is_within",
    "list_entries",
    "list_subdirectories",
    "safe_delete",
]
