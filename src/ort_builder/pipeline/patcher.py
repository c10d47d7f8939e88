"""Dependency manifest repair for ``cmake/deps.txt``.

The pinned release records an Eigen archive SHA-1 that no longer matches what
its mirror serves, so the native build's FetchContent step fails hash
verification unless the recorded value is swapped first.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from ort_builder.constants import DEPS_MANIFEST_PATH, EIGEN_BAD_SHA1, EIGEN_GOOD_SHA1
from ort_builder.errors import PatchError
from ort_builder.utils.fs import atomic_write

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ChecksumPatch:
    """Literal checksum substitution applied to the dependency manifest."""

    bad: str
    good: str

    def __post_init__(self) -> None:
        if not self.bad or not self.good:
            raise ValueError("checksum patch values must not be empty")
        if self.bad == self.good:
            raise ValueError("checksum patch must change the value")


EIGEN_CHECKSUM_PATCH = ChecksumPatch(bad=EIGEN_BAD_SHA1, good=EIGEN_GOOD_SHA1)


@dataclass(frozen=True, slots=True)
class DependencyEntry:
    """One ``name;url;checksum`` line of ``deps.txt``."""

    name: str
    url: str
    checksum: str


@dataclass(frozen=True, slots=True)
class PatchResult:
    manifest_path: Path
    found: bool
    replacements: int = 0
    patched_entries: tuple[str, ...] = ()
    backup_path: Path | None = None

    @property
    def changed(self) -> bool:
        return self.replacements > 0


def parse_dependency_manifest(text: str) -> list[DependencyEntry]:
    """Parse ``deps.txt`` content, skipping comments and malformed lines."""

    entries: list[DependencyEntry] = []
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        parts = [part.strip() for part in stripped.split(";")]
        if len(parts) < 3 or not parts[0]:
            continue
        entries.append(DependencyEntry(name=parts[0], url=parts[1], checksum=parts[2]))
    return entries


def apply_checksum_patches(data: bytes, patches: Sequence[ChecksumPatch]) -> tuple[bytes, int]:
    """Replace every occurrence of each bad checksum, line by line.

    Line endings and all other bytes are preserved. Returns the new content and
    the number of substitutions made.
    """

    count = 0
    out: list[bytes] = []
    for line in data.splitlines(keepends=True):
        for patch in patches:
            bad = patch.bad.encode("ascii")
            hits = line.count(bad)
            if hits:
                line = line.replace(bad, patch.good.encode("ascii"))
                count += hits
        out.append(line)
    return b"".join(out), count


class DependencyPatcher:
    """Rewrite known-bad checksums in the source tree's dependency manifest."""

    def __init__(
        self,
        source_dir: Path,
        *,
        patches: Sequence[ChecksumPatch] = (EIGEN_CHECKSUM_PATCH,),
        keep_backup: bool = True,
    ) -> None:
        self._manifest_path = source_dir / DEPS_MANIFEST_PATH
        self._patches = tuple(patches)
        self._keep_backup = keep_backup

    @property
    def manifest_path(self) -> Path:
        return self._manifest_path

    def patch(self) -> PatchResult:
        path = self._manifest_path
        if not path.is_file():
            logger.debug("no dependency manifest to patch", extra={"path": path})
            return PatchResult(manifest_path=path, found=False)

        try:
            original = path.read_bytes()
        except OSError as exc:
            raise PatchError(f"unable to read {path}: {exc}") from exc

        patched, count = apply_checksum_patches(original, self._patches)
        if count == 0:
            return PatchResult(manifest_path=path, found=True)

        bad_values = {patch.bad for patch in self._patches}
        entries = parse_dependency_manifest(original.decode("utf-8", errors="replace"))
        names = tuple(entry.name for entry in entries if entry.checksum in bad_values)

        backup_path: Path | None = None
        try:
            if self._keep_backup:
                backup_path = path.with_name(path.name + ".bak")
                shutil.copy2(path, backup_path)
            atomic_write(path, patched)
        except OSError as exc:
            raise PatchError(f"unable to rewrite {path}: {exc}") from exc

        logger.info(
            "patched dependency checksums",
            extra={"path": path, "replacements": count, "entries": list(names)},
        )
        return PatchResult(
            manifest_path=path,
            found=True,
            replacements=count,
            patched_entries=names,
            backup_path=backup_path,
        )


__all__ = [
    "EIGEN_CHECKSUM_PATCH",
    "ChecksumPatch",
    "DependencyEntry",
    "DependencyPatcher",
    "PatchResult",
    "apply_checksum_patches",
    "parse_dependency_manifest",
]
