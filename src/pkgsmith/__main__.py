"""Module entrypoint for ``python -m pkgsmith``."""

from __future__ import annotations

from pkgsmith.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
