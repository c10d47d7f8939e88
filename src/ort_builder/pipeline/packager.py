"""Artifact packaging into the platform-independent ``lib/`` layout.

Downstream consumers rely on ``<output>/lib`` holding the static libraries,
headers, and ``onnxruntime_link_libs.txt`` (one library name per line).
"""

from __future__ import annotations

import fnmatch
import logging
import os
import shutil
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

from ort_builder.constants import EXCLUDED_ARTIFACT_DIRS, LINK_MANIFEST_NAME
from ort_builder.errors import PackagingError
from ort_builder.platform import HostPlatform, PlatformLayout, layout_for
from ort_builder.utils.fs import atomic_write

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SkippedPath:
    path: Path
    reason: str


@dataclass(slots=True)
class CopyReport:
    """Best-effort copy outcome: what landed and what was skipped, with reasons."""

    copied: list[Path] = field(default_factory=list)
    skipped: list[SkippedPath] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.skipped

    def skip(self, path: Path, exc: OSError) -> None:
        self.skipped.append(SkippedPath(path=path, reason=exc.strerror or str(exc)))


@dataclass(frozen=True, slots=True)
class PackageResult:
    build_dir: Path
    lib_dir: Path
    manifest_path: Path
    libraries: tuple[str, ...]
    copy_report: CopyReport


def platform_build_dir(source_dir: Path, platform: HostPlatform) -> Path:
    """Return the native build output directory for ``platform``."""

    return source_dir / layout_for(platform).build_subdir


def copy_tree_best_effort(
    source: Path,
    destination: Path,
    *,
    exclude: Iterable[PurePosixPath] = EXCLUDED_ARTIFACT_DIRS,
) -> CopyReport:
    """Recursively merge ``source`` into ``destination``.

    Relative directories listed in ``exclude`` are pruned. Files that cannot be
    read or written are recorded in the report instead of aborting the copy.
    Symlinks, including links to directories, are recreated rather than followed.
    """

    excluded = {PurePosixPath(item) for item in exclude}
    report = CopyReport()

    for current, dirnames, filenames in os.walk(source, onerror=_record_walk_error(report)):
        current_path = Path(current)
        relative_dir = PurePosixPath(current_path.relative_to(source).as_posix())
        kept = sorted(name for name in dirnames if (relative_dir / name) not in excluded)
        # os.walk lists links to directories here but never descends into them.
        linked_dirs = [name for name in kept if (current_path / name).is_symlink()]
        dirnames[:] = [name for name in kept if name not in linked_dirs]
        target_dir = destination / relative_dir
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            report.skip(current_path, exc)
            dirnames[:] = []
            continue

        for name in sorted([*filenames, *linked_dirs]):
            src = current_path / name
            dst = target_dir / name
            try:
                if src.is_symlink():
                    _recreate_link(src, dst)
                else:
                    shutil.copy2(src, dst)
            except OSError as exc:
                report.skip(src, exc)
                continue
            report.copied.append(dst)

    return report


def _recreate_link(src: Path, dst: Path) -> None:
    if dst.is_symlink() or dst.is_file():
        dst.unlink()
    os.symlink(os.readlink(src), dst, target_is_directory=src.is_dir())


def _record_walk_error(report: CopyReport):
    def _on_error(exc: OSError) -> None:
        report.skip(Path(exc.filename) if exc.filename else Path(), exc)

    return _on_error


def collect_link_libraries(lib_dir: Path, layout: PlatformLayout) -> list[str]:
    """Library names for the linker, from top-level files of ``lib_dir``.

    Patterns are applied in order with names sorted within each pattern; a file
    matched by an earlier pattern is not repeated. The platform prefix and
    suffix are stripped (``libonnx_proto.a`` -> ``onnx_proto``).
    """

    files = sorted(entry.name for entry in lib_dir.iterdir() if entry.is_file())
    seen: set[str] = set()
    names: list[str] = []
    for pattern in layout.library_patterns:
        for file_name in files:
            if file_name in seen or not fnmatch.fnmatchcase(file_name, pattern):
                continue
            seen.add(file_name)
            names.append(_strip_library_name(file_name, layout))
    return names


def _strip_library_name(file_name: str, layout: PlatformLayout) -> str:
    stem = file_name.removesuffix(layout.library_suffix)
    return stem.removeprefix(layout.library_prefix) if layout.library_prefix else stem


def write_link_manifest(path: Path, libraries: Sequence[str]) -> None:
    """Overwrite ``path`` with one library name per line."""

    atomic_write(path, "".join(f"{name}\n" for name in libraries))


class ArtifactPackager:
    """Copy platform build output to ``lib_dir`` and emit the linker manifest."""

    def __init__(self, source_dir: Path, lib_dir: Path, platform: HostPlatform) -> None:
        self._source_dir = source_dir
        self._lib_dir = lib_dir
        self._platform = platform

    def package(self) -> PackageResult:
        layout = layout_for(self._platform)
        build_dir = self._source_dir / layout.build_subdir
        if not build_dir.is_dir():
            raise PackagingError(f"Build directory not found: {build_dir}")

        try:
            self._lib_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise PackagingError(f"unable to create {self._lib_dir}: {exc}") from exc

        logger.info(
            "copying build artifacts", extra={"build_dir": build_dir, "lib_dir": self._lib_dir}
        )
        report = copy_tree_best_effort(build_dir, self._lib_dir)
        for item in report.skipped:
            logger.warning("skipped artifact %s: %s", item.path, item.reason)

        libraries = collect_link_libraries(self._lib_dir, layout)
        manifest_path = self._lib_dir / LINK_MANIFEST_NAME
        try:
            write_link_manifest(manifest_path, libraries)
        except OSError as exc:
            raise PackagingError(f"unable to write {manifest_path}: {exc}") from exc

        logger.info(
            "linker manifest written",
            extra={
                "manifest": manifest_path,
                "libraries": libraries,
                "copied": len(report.copied),
                "skipped": len(report.skipped),
            },
        )
        return PackageResult(
            build_dir=build_dir,
            lib_dir=self._lib_dir,
            manifest_path=manifest_path,
            libraries=tuple(libraries),
            copy_report=report,
        )


__all__ = [
    "ArtifactPackager",
    "CopyReport",
    "PackageResult",
    "SkippedPath",
    "collect_link_libraries",
    "copy_tree_best_effort",
    "platform_build_dir",
    "write_link_manifest",
]
