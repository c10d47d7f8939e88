"""Unit tests for filesystem and hashing helpers."""

from __future__ import annotations

import hashlib
import os
import stat
import sys
from pathlib import Path

import pytest

from ort_builder.utils import atomic_write, is_within, sha256_file


@pytest.mark.unit
def test_atomic_write_replaces_content_and_leaves_no_temp_files(tmp_path: Path) -> None:
    target = tmp_path / "manifest.txt"
    target.write_text("stale\n", encoding="utf-8")

    atomic_write(target, "fresh\n")

    assert target.read_text(encoding="utf-8") == "fresh\n"
    assert sorted(p.name for p in tmp_path.iterdir()) == ["manifest.txt"]


@pytest.mark.unit
def test_atomic_write_preserves_crlf_bytes(tmp_path: Path) -> None:
    target = tmp_path / "deps.txt"

    atomic_write(target, b"a;b;c\r\nd;e;f\r\n")

    assert target.read_bytes() == b"a;b;c\r\nd;e;f\r\n"


@pytest.mark.unit
def test_atomic_write_requires_parent_directory(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        atomic_write(tmp_path / "missing" / "file.txt", "x")


@pytest.mark.unit
@pytest.mark.parametrize(
    ("child", "expected"),
    [
        ("onnxruntime-1.22.0/README.md", True),
        ("./onnxruntime-1.22.0", True),
        ("../escape.txt", False),
        ("onnxruntime-1.22.0/../../escape.txt", False),
    ],
)
def test_is_within(tmp_path: Path, child: str, expected: bool) -> None:
    assert is_within(tmp_path / child, tmp_path) is expected


@pytest.mark.unit
def test_sha256_file_matches_hashlib(tmp_path: Path) -> None:
    payload = b"onnxruntime" * 1000
    path = tmp_path / "blob.bin"
    path.write_bytes(payload)

    expected = hashlib.sha256(payload).hexdigest()
    assert sha256_file(path, chunk_size=7) == expected


@pytest.mark.unit
def test_sha256_file_rejects_bad_chunk_size(tmp_path: Path) -> None:
    path = tmp_path / "blob.bin"
    path.write_bytes(b"")

    with pytest.raises(ValueError, match="chunk_size"):
        sha256_file(path, chunk_size=0)


@pytest.mark.unit
@pytest.mark.skipif(sys.platform == "win32", reason="POSIX permission bits")
def test_atomic_write_keeps_existing_permissions(tmp_path: Path) -> None:
    target = tmp_path / "deps.txt"
    target.write_bytes(b"old\n")
    target.chmod(0o644)

    atomic_write(target, b"new\n")

    assert stat.S_IMODE(target.stat().st_mode) == 0o644


@pytest.mark.unit
@pytest.mark.skipif(sys.platform == "win32", reason="POSIX permission bits")
def test_atomic_write_new_file_follows_umask(tmp_path: Path) -> None:
    previous = os.umask(0o022)
    try:
        atomic_write(tmp_path / "onnxruntime_link_libs.txt", "onnx_proto\n")
    finally:
        os.umask(previous)

    assert stat.S_IMODE((tmp_path / "onnxruntime_link_libs.txt").stat().st_mode) == 0o644
