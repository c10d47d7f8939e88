"""Filesystem helpers shared by the pipeline stages.

Files that other tools read back (the patched ``deps.txt``, the linker
manifest, the source cache marker) are replaced in one ``os.replace`` so a
crash mid-write never leaves a truncated file behind.
"""

from __future__ import annotations

import os
import stat
import tempfile
from pathlib import Path

PathLike = str | os.PathLike[str]


def atomic_write(path: PathLike, data: bytes | str, *, encoding: str = "utf-8") -> None:
    """Replace ``path`` with ``data`` via a sibling temp file.

    ``str`` payloads are encoded without newline translation, so CRLF input
    survives unchanged. The parent directory must already exist. An existing
    file keeps its permission bits.
    """

    target = Path(path)
    directory = target.parent.resolve(strict=True)
    payload = data.encode(encoding) if isinstance(data, str) else data

    with tempfile.NamedTemporaryFile(
        dir=directory, prefix=f".{target.name}.", suffix=".partial", delete=False
    ) as staging:
        staged = Path(staging.name)
        try:
            staging.write(payload)
            staging.flush()
            os.fsync(staging.fileno())
        except BaseException:
            staging.close()
            staged.unlink(missing_ok=True)
            raise

    try:
        os.chmod(staged, _mode_for(target))
        os.replace(staged, target)
    except OSError:
        staged.unlink(missing_ok=True)
        raise
    _sync_directory(directory)


def _mode_for(target: Path) -> int:
    """Keep an existing file's permissions; new files get the umask default."""

    try:
        return stat.S_IMODE(target.stat().st_mode)
    except FileNotFoundError:
        umask = os.umask(0)
        os.umask(umask)
        return 0o666 & ~umask


def is_within(child: PathLike, parent: PathLike) -> bool:
    """Whether ``child`` lexically normalizes to a location under ``parent``.

    Symlinks are not followed and neither path needs to exist; archive members
    are vetted with this before anything is written.
    """

    root = os.path.abspath(parent)
    candidate = os.path.abspath(child)
    try:
        return os.path.commonpath([root, candidate]) == root
    except ValueError:
        # different drives on Windows
        return False


def _sync_directory(directory: Path) -> None:
    # Directory fsync persists the rename on POSIX; Windows has no equivalent.
    if os.name == "nt":
        return
    try:
        fd = os.open(directory, os.O_RDONLY | getattr(os, "O_DIRECTORY", 0))
    except OSError:
        return
    try:
        os.fsync(fd)
    except OSError:
        pass
    finally:
        os.close(fd)


__all__ = ["PathLike", "atomic_write", "is_within"]
