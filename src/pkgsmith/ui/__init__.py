"""Command layer: argparse router and terminal renderer."""

from pkgsmith.ui.cli import CLIError, build_parser, run_cli
from pkgsmith.ui.render import CLIRenderer, create_renderer

__all__ = ["CLIError", "CLIRenderer", "build_parser", "create_renderer", "run_cli"]
