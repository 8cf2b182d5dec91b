"""
pkgsmith — filesystem utilities

Purpose
- Guarded deletion confined to a managed root, with post-condition checks.
- Directory inventory and size accounting used by purge and regraft.

Non-functional requirements
- Standard library only.
- Deletion is treated as non-atomic: callers verify absence afterwards
  rather than trusting the delete call.
"""

from __future__ import annotations

import contextlib
import os
import shutil
import tempfile
from pathlib import Path

PathLike = str | os.PathLike[str]

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


def atomic_write(path: PathLike, data: str, *, encoding: str = "utf-8") -> None:
    """Write ``data`` to a temp file beside ``path`` and replace ``path`` in one step."""

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(
        prefix=f".{target.name}.",
        suffix=".tmp",
        dir=str(target.parent),
    )
    temp_path = Path(temp_name)
    try:
        with os.fdopen(fd, "w", encoding=encoding) as file_handle:
            file_handle.write(data)
            file_handle.flush()
            os.fsync(file_handle.fileno())
        os.replace(temp_path, target)
    except Exception:
        with contextlib.suppress(OSError):
            temp_path.unlink(missing_ok=True)
        raise


def is_within(child: PathLike, parent: PathLike) -> bool:
    """Return ``True`` if resolved ``child`` is within resolved ``parent``.

    Neither path needs to exist.
    """

    resolved_parent = Path(parent).expanduser().resolve(strict=False)
    resolved_child = Path(child).expanduser().resolve(strict=False)
    return _is_relative_to(resolved_child, resolved_parent)


def safe_delete(path: PathLike, root: PathLike) -> None:
    """
    Delete ``path`` only if it is contained within ``root``.

    Symlinks are unlinked without traversing into their targets. A missing
    ``path`` is a no-op.
    """

    managed = Path(root).resolve(strict=True)
    if not managed.is_dir():
        raise NotADirectoryError(f"{managed!s} is not a directory")

    target = Path(path)
    if not target.exists() and not target.is_symlink():
        return

    candidate = target.parent.resolve(strict=True) / target.name
    if candidate == managed or not _is_relative_to(candidate, managed):
        raise ValueError(f"refusing to delete path outside managed root: {target!s}")

    if target.is_symlink() or not target.is_dir():
        target.unlink()
        return

    shutil.rmtree(target)


def delete_entry(path: PathLike, root: PathLike) -> bool:
    """Attempt to delete ``path`` and report whether it is gone afterwards."""

    target = Path(path)
    with contextlib.suppress(OSError, ValueError):
        safe_delete(target, root)
    return not (target.exists() or target.is_symlink())


def list_entries(root: PathLike) -> tuple[Path, ...]:
    """Return direct children of ``root`` sorted by name, or ``()`` if absent."""

    base = Path(root)
    if not base.is_dir():
        return ()
    return tuple(sorted(base.iterdir(), key=lambda item: item.name))


def list_subdirectories(root: PathLike) -> tuple[str, ...]:
    """Return names of non-hidden directories directly under ``root``."""

    return tuple(
        entry.name
        for entry in list_entries(root)
        if entry.is_dir() and not entry.is_symlink() and not entry.name.startswith(".")
    )


def directory_size(path: PathLike) -> int:
    """Return total bytes of regular files below ``path`` (symlinks not followed)."""

    total = 0
    base = Path(path)
    if not base.exists():
        return 0
    for dirpath, _dirnames, filenames in os.walk(base, followlinks=False):
        for filename in filenames:
            file_path = os.path.join(dirpath, filename)
            with contextlib.suppress(OSError):
                if not os.path.islink(file_path):
                    total += os.path.getsize(file_path)
    return total


def format_size(num_bytes: int) -> str:
    value = float(num_bytes)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{value:.1f}{unit}" if unit != "B" else f"{int(value)}B"
        value /= 1024
    return f"{value:.1f}GB"


def _is_relative_to(child: Path, parent: Path) -> bool:
    try:
        child.relative_to(parent)
    except ValueError:
        return False
    return True
