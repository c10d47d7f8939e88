"""Shared offline fakes for pipeline tests: no network, no native toolchain."""

from __future__ import annotations

import io
import logging
import shutil
import tarfile
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from ort_builder.config.resolver import BuildConfig
from ort_builder.constants import DEFAULT_URL_TEMPLATE, EIGEN_BAD_SHA1
from ort_builder.observability import shutdown_logging
from ort_builder.pipeline.native_build import BuildInvocation

DEPS_TXT = (
    "# dependency manifest\n"
    "abseil_cpp;https://github.com/abseil/abseil-cpp/archive/refs/tags/20240722.0.zip;"
    "36ee53eb1466fb6e593fc5c286680de31f8a494a\n"
    "eigen;https://gitlab.com/libeigen/eigen/-/archive/e7248b26/eigen-e7248b26.zip;"
    f"{EIGEN_BAD_SHA1}\n"
)


def make_source_archive(
    archive_path: Path,
    version: str,
    files: Mapping[str, bytes] | None = None,
) -> Path:
    """Write a gzip tarball shaped like a GitHub release: ``onnxruntime-<version>/...``."""

    members = dict(files) if files is not None else {
        "build.sh": b"#!/bin/sh\nexit 0\n",
        "cmake/deps.txt": DEPS_TXT.encode("utf-8"),
    }
    archive_path.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(archive_path, "w:gz") as tar:
        for name, payload in sorted(members.items()):
            info = tarfile.TarInfo(f"onnxruntime-{version}/{name}")
            info.size = len(payload)
            info.mode = 0o755 if name.endswith(".sh") else 0o644
            tar.addfile(info, io.BytesIO(payload))
    return archive_path


@dataclass
class FakeDownloader:
    """Copies a prepared archive instead of touching the network."""

    archive: Path | None = None
    calls: list[tuple[str, Path]] = field(default_factory=list)

    def download(self, url: str, destination: Path) -> None:
        self.calls.append((url, destination))
        if self.archive is None:
            raise AssertionError(f"unexpected download of {url}")
        shutil.copyfile(self.archive, destination)


@dataclass
class RecordingRunner:
    """Records invocations; optionally lays down build outputs to simulate a build."""

    returncode: int = 0
    on_run: Callable[[BuildInvocation], None] | None = None
    invocations: list[BuildInvocation] = field(default_factory=list)

    def run(self, invocation: BuildInvocation) -> int:
        self.invocations.append(invocation)
        if self.on_run is not None:
            self.on_run(invocation)
        return self.returncode


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., BuildConfig]:
    def _make(**overrides: object) -> BuildConfig:
        values: dict[str, object] = {
            "repo_root": tmp_path,
            "output_root": tmp_path / "target" / "onnxruntime",
            "version": "1.22.0",
            "url_template": DEFAULT_URL_TEMPLATE,
        }
        values.update(overrides)
        return BuildConfig(**values)  # type: ignore[arg-type]

    return _make


@pytest.fixture
def source_archive(tmp_path: Path) -> Callable[..., Path]:
    def _make(version: str = "1.22.0", files: Mapping[str, bytes] | None = None) -> Path:
        return make_source_archive(tmp_path / "fixtures" / f"ort-{version}.tar.gz", version, files)

    return _make


@pytest.fixture
def fake_downloader() -> FakeDownloader:
    return FakeDownloader()


@pytest.fixture
def recording_runner() -> RecordingRunner:
    return RecordingRunner()


@pytest.fixture(autouse=True)
def _reset_package_logger() -> Iterator[None]:
    yield
    shutdown_logging()
    package_logger = logging.getLogger("ort_builder")
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)
