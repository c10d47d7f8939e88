"""
ort-builder — build ONNX Runtime static libraries for this checkout.

Purpose
- Run the full fetch/patch/build/package pipeline with this repository as the
  repo root, so the script works from any working directory.
- Accept the same flags as ``ort-builder`` (``--ops-config PATH``, ``--dry-run``, ...).
"""

from __future__ import annotations

import sys
from collections.abc import Sequence
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"


def _ensure_src_path() -> None:
    if str(SRC_PATH) not in sys.path:
        sys.path.insert(0, str(SRC_PATH))


def _with_repo_root(argv: Sequence[str]) -> list[str]:
    args = list(argv)
    if any(arg == "--repo-root" or arg.startswith("--repo-root=") for arg in args):
        return args
    return ["--repo-root", str(REPO_ROOT), *args]


def main(argv: Sequence[str] | None = None) -> int:
    _ensure_src_path()
    from ort_builder.main import cli_entrypoint

    return cli_entrypoint(_with_repo_root(sys.argv[1:] if argv is None else argv))


if __name__ == "__main__":
    raise SystemExit(main())
