"""UI package exports for the command-line surface."""

from ort_builder.ui.cli import build_parser, main, run_cli
from ort_builder.ui.render import CLIRenderer, create_renderer

__all__ = ["CLIRenderer", "build_parser", "create_renderer", "main", "run_cli"]
