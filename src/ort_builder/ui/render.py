"""Human-facing progress output for the ort-builder CLI.

Structured records go to the JSON-lines log; this renderer only prints the
short progress lines a person watches while the build runs. ANSI styling is
applied only on a TTY and never when ``NO_COLOR`` is set.
"""

from __future__ import annotations

import os
import sys
from typing import TYPE_CHECKING, Final, TextIO

if TYPE_CHECKING:
    from collections.abc import Iterable

_STYLES: Final[dict[str, str]] = {
    "bold": "1",
    "stage": "1;36",
    "warning": "33",
    "ok": "32",
}


class CLIRenderer:
    def __init__(
        self,
        *,
        stream: TextIO | None = None,
        no_color: bool = False,
        verbose: bool = False,
    ) -> None:
        self.verbose = verbose
        self._stream = sys.stdout if stream is None else stream
        isatty = getattr(self._stream, "isatty", None)
        self._styled = (
            not no_color
            and not os.environ.get("NO_COLOR")
            and callable(isatty)
            and bool(isatty())
        )

    def heading(self, text: str) -> None:
        self._emit(self._paint(text, "bold"))

    def kv(self, key: str, value: object) -> None:
        self._emit(f"  {key}: {value}")

    def text(self, line: str) -> None:
        self._emit(line)

    def stage(self, name: str) -> None:
        """Announce the start of a pipeline stage (``==> Building ONNX Runtime``)."""

        self._emit(self._paint(f"==> {name}", "stage"))

    def detail(self, line: str) -> None:
        """Verbose-only indented line."""

        if self.verbose:
            self._emit(f"  {line}")

    def warning(self, text: str) -> None:
        self._emit(f"  {self._paint('Warning:', 'warning')} {text}")

    def items(self, entries: Iterable[str], *, bullet: str = "-") -> None:
        for entry in entries:
            self._emit(f"  {bullet} {entry}")

    def ok(self, label: str) -> None:
        self._emit(f"  {self._paint('OK', 'ok')}  {label}")

    def _paint(self, text: str, style: str) -> str:
        if not self._styled:
            return text
        return f"\033[{_STYLES[style]}m{text}\033[0m"

    def _emit(self, line: str) -> None:
        print(line, file=self._stream, flush=True)


def create_renderer(*, no_color: bool = False, verbose: bool = False) -> CLIRenderer:
    return CLIRenderer(no_color=no_color, verbose=verbose)


__all__ = ["CLIRenderer", "create_renderer"]
