"""Source acquisition: download and extract a pinned ONNX Runtime release exactly once."""

from __future__ import annotations

import contextlib
import json
import logging
import os
import tarfile
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Final, Protocol

import requests

from ort_builder.constants import CACHE_MARKER_NAME
from ort_builder.errors import AcquisitionError
from ort_builder.utils.fs import atomic_write, is_within
from ort_builder.utils.hashing import sha256_file

if TYPE_CHECKING:
    from ort_builder.config.resolver import BuildConfig

logger = logging.getLogger(__name__)

_DOWNLOAD_CHUNK_BYTES: Final[int] = 1024 * 1024
_USER_AGENT: Final[str] = "ort-builder/0"


class ArchiveDownloader(Protocol):
    """Injectable downloader contract; tests substitute an offline fake."""

    def download(self, url: str, destination: Path) -> None: ...


class RequestsArchiveDownloader:
    """Stream a release archive over HTTP(S), following redirects.

    The body is written to a temp file beside ``destination`` and renamed into
    place only after the last chunk arrives. ``timeout`` defaults to ``None``
    (wait indefinitely).
    """

    def __init__(
        self,
        *,
        session: requests.Session | None = None,
        timeout: float | None = None,
    ) -> None:
        self._session = session or requests.Session()
        self._timeout = timeout

    def download(self, url: str, destination: Path) -> None:
        fd, temp_name = tempfile.mkstemp(
            prefix=f".{destination.name}.",
            suffix=".part",
            dir=str(destination.parent),
        )
        temp_path = Path(temp_name)
        try:
            with os.fdopen(fd, "wb") as handle:
                with self._session.get(
                    url,
                    stream=True,
                    timeout=self._timeout,
                    allow_redirects=True,
                    headers={"User-Agent": _USER_AGENT},
                ) as response:
                    response.raise_for_status()
                    for chunk in response.iter_content(chunk_size=_DOWNLOAD_CHUNK_BYTES):
                        if chunk:
                            handle.write(chunk)
            os.replace(temp_path, destination)
        except requests.RequestException as exc:
            raise AcquisitionError(f"download failed for {url}: {exc}") from exc
        finally:
            with contextlib.suppress(OSError):
                temp_path.unlink(missing_ok=True)


@dataclass(frozen=True, slots=True)
class AcquisitionResult:
    """Outcome of :meth:`SourceAcquirer.ensure_source`."""

    source_dir: Path
    cache_hit: bool
    archive_path: Path | None = None
    archive_sha256: str | None = None


class SourceAcquirer:
    """Ensure ``onnxruntime-<version>`` exists under the output root.

    An existing source directory is a cache hit and no network access happens.
    The tree is never deleted here, even when a stale one is detected.
    """

    def __init__(self, config: BuildConfig, *, downloader: ArchiveDownloader | None = None) -> None:
        self._config = config
        self._downloader = downloader or RequestsArchiveDownloader()

    def ensure_source(self) -> AcquisitionResult:
        config = self._config
        source_dir = config.source_dir
        if source_dir.is_dir():
            self._check_cache_marker(source_dir)
            logger.info("source tree cached", extra={"source_dir": source_dir})
            return AcquisitionResult(source_dir=source_dir, cache_hit=True)

        try:
            config.output_root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise AcquisitionError(
                f"unable to create output directory {config.output_root}: {exc}"
            ) from exc

        url = config.download_url
        logger.info("downloading release archive", extra={"url": url})
        try:
            self._downloader.download(url, config.archive_path)
        except AcquisitionError:
            raise
        except OSError as exc:
            raise AcquisitionError(f"unable to write archive {config.archive_path}: {exc}") from exc

        digest = sha256_file(config.archive_path)
        logger.info(
            "extracting release archive",
            extra={"archive": config.archive_path, "sha256": digest},
        )
        extract_archive(config.archive_path, config.output_root)

        if not source_dir.is_dir():
            raise AcquisitionError(
                f"archive {config.archive_path.name} did not contain {source_dir.name}/"
            )
        write_cache_marker(source_dir, version=config.version, archive_sha256=digest)
        return AcquisitionResult(
            source_dir=source_dir,
            cache_hit=False,
            archive_path=config.archive_path,
            archive_sha256=digest,
        )

    def _check_cache_marker(self, source_dir: Path) -> None:
        marker = read_cache_marker(source_dir)
        recorded = marker.get("version") if marker is not None else None
        if recorded == self._config.version:
            return

        if marker is None:
            detail = f"{source_dir} has no {CACHE_MARKER_NAME} (possibly a partial extraction)"
        else:
            detail = f"{source_dir} was extracted for version {recorded!r}"
        if self._config.require_cache_marker:
            raise AcquisitionError(f"{detail}; remove the directory to fetch it again")
        logger.warning("using unverified cached source tree: %s", detail)


def extract_archive(archive_path: Path, target_dir: Path) -> None:
    """Extract a gzip tarball into ``target_dir``, refusing members that escape it."""

    try:
        with tarfile.open(archive_path, "r:gz") as tar:
            for member in tar.getmembers():
                if not is_within(target_dir / member.name, target_dir):
                    raise AcquisitionError(f"unsafe archive member: {member.name}")
            tar.extractall(target_dir, filter="data")
    except (tarfile.TarError, OSError) as exc:
        raise AcquisitionError(f"unable to extract {archive_path}: {exc}") from exc


def read_cache_marker(source_dir: Path) -> dict[str, object] | None:
    marker_path = source_dir / CACHE_MARKER_NAME
    try:
        payload = json.loads(marker_path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None
    return payload if isinstance(payload, dict) else None


def write_cache_marker(source_dir: Path, *, version: str, archive_sha256: str) -> None:
    payload = {"archive_sha256": archive_sha256, "version": version}
    atomic_write(source_dir / CACHE_MARKER_NAME, json.dumps(payload, sort_keys=True) + "\n")


__all__ = [
    "AcquisitionResult",
    "ArchiveDownloader",
    "RequestsArchiveDownloader",
    "SourceAcquirer",
    "extract_archive",
    "read_cache_marker",
    "write_cache_marker",
]
