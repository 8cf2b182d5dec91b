"""Output rendering for the pkgsmith CLI.

Purpose
- Provide a thin rendering layer for CLI output with ``rich`` styling.
- Respect the ``NO_COLOR`` environment variable and the ``--no-color`` flag.

User-supplied text (package names, git output) is never parsed as markup.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

from rich.console import Console
from rich.table import Table

if TYPE_CHECKING:
    from collections.abc import Sequence


def _color_allowed(no_color_flag: bool) -> bool:
    if no_color_flag:
        return False
    return not os.environ.get("NO_COLOR", "")


class CLIRenderer:
    """Styled line-oriented renderer; plain text when color is disabled."""

    def __init__(
        self,
        *,
        no_color: bool = False,
        verbose: bool = False,
        console: Console | None = None,
    ) -> None:
        self.verbose = verbose
        self._color = _color_allowed(no_color)
        self.console = (
            console
            if console is not None
            else Console(
                no_color=not self._color,
                highlight=False,
                soft_wrap=True,
                emoji=False,
            )
        )

    def _print(self, text: str, *, style: str | None = None) -> None:
        self.console.print(text, style=style if self._color else None, markup=False)

    def heading(self, text: str) -> None:
        self._print(text, style="bold")

    def kv(self, key: str, value: object) -> None:
        self._print(f"{key}: {value}")

    def text(self, line: str) -> None:
        self._print(line)

    def detail(self, line: str) -> None:
        """Print a line only in verbose mode."""

        if self.verbose:
            self._print(line, style="dim")

    def section(self, title: str) -> None:
        self._print(f"\n{title}", style="bold")

    def warning(self, text: str) -> None:
        self._print(f"  Warning: {text}", style="yellow")

    def items(self, entries: Sequence[str], *, prefix: str = "- ") -> None:
        for entry in entries:
            self._print(f"  {prefix}{entry}")

    def table(
        self,
        headers: Sequence[str],
        rows: Sequence[Sequence[str]],
        *,
        title: str | None = None,
    ) -> None:
        if not rows:
            return
        if title:
            self.section(title)
        table = Table(box=None, show_edge=False, pad_edge=False, header_style="bold")
        for header in headers:
            table.add_column(header)
        for row in rows:
            table.add_row(*(str(cell) for cell in row))
        self.console.print(table)

    def ok(self, label: str) -> None:
        self._print(f"  OK  {label}", style="green")

    def changed(self, label: str) -> None:
        self._print(f"  >   {label}", style="cyan")

    def fail(self, label: str) -> None:
        self._print(f"  FAIL  {label}", style="bold red")


def create_renderer(*, no_color: bool = False, verbose: bool = False) -> CLIRenderer:
    return CLIRenderer(no_color=no_color, verbose=verbose)


__all__ = ["CLIRenderer", "create_renderer"]
