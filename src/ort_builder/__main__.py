"""Module entrypoint for ``python -m ort_builder``."""

from __future__ import annotations

from ort_builder.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
