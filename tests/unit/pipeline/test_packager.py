"""Unit tests for artifact packaging and the linker manifest."""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

from ort_builder.errors import PackagingError, UnsupportedPlatformError
from ort_builder.pipeline.packager import (
    ArtifactPackager,
    collect_link_libraries,
    copy_tree_best_effort,
    platform_build_dir,
    write_link_manifest,
)
from ort_builder.platform import HostPlatform, layout_for


def _touch(path: Path, content: bytes = b"") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    return path


def _linux_build_dir(source_dir: Path) -> Path:
    return platform_build_dir(source_dir, HostPlatform.LINUX)


@pytest.mark.unit
def test_package_copies_tree_and_writes_manifest(tmp_path: Path) -> None:
    source_dir = tmp_path / "onnxruntime-1.22.0"
    build_dir = _linux_build_dir(source_dir)
    _touch(build_dir / "libonnxruntime_session.a", b"session")
    _touch(build_dir / "libonnx_proto.a", b"proto")
    _touch(build_dir / "include" / "onnxruntime_cxx_api.h", b"// api")
    lib_dir = tmp_path / "lib"

    result = ArtifactPackager(source_dir, lib_dir, HostPlatform.LINUX).package()

    assert (lib_dir / "libonnxruntime_session.a").read_bytes() == b"session"
    assert (lib_dir / "include" / "onnxruntime_cxx_api.h").is_file()
    assert result.manifest_path == lib_dir / "onnxruntime_link_libs.txt"
    assert result.manifest_path.read_text(encoding="utf-8") == "onnxruntime_session\nonnx_proto\n"
    assert result.libraries == ("onnxruntime_session", "onnx_proto")
    assert result.copy_report.complete


@pytest.mark.unit
def test_stale_manifest_is_overwritten(tmp_path: Path) -> None:
    source_dir = tmp_path / "src"
    _touch(_linux_build_dir(source_dir) / "libonnxruntime_graph.a")
    lib_dir = tmp_path / "lib"
    _touch(lib_dir / "onnxruntime_link_libs.txt", b"stale_one\nstale_two\n")

    ArtifactPackager(source_dir, lib_dir, HostPlatform.LINUX).package()

    assert (lib_dir / "onnxruntime_link_libs.txt").read_text(encoding="utf-8") == (
        "onnxruntime_graph\n"
    )


@pytest.mark.unit
def test_protoc_staging_directory_is_excluded(tmp_path: Path) -> None:
    source_dir = tmp_path / "src"
    build_dir = _linux_build_dir(source_dir)
    _touch(build_dir / "_deps" / "protoc_binary-src" / "bin" / "protoc")
    _touch(build_dir / "_deps" / "eigen-src" / "Eigen" / "Core")
    lib_dir = tmp_path / "lib"

    ArtifactPackager(source_dir, lib_dir, HostPlatform.LINUX).package()

    assert not (lib_dir / "_deps" / "protoc_binary-src").exists()
    assert (lib_dir / "_deps" / "eigen-src" / "Eigen" / "Core").is_file()


@pytest.mark.unit
def test_unknown_platform_fails_before_copy(tmp_path: Path) -> None:
    source_dir = tmp_path / "src"
    _touch(_linux_build_dir(source_dir) / "libonnxruntime_session.a")
    lib_dir = tmp_path / "lib"

    with pytest.raises(UnsupportedPlatformError):
        ArtifactPackager(source_dir, lib_dir, HostPlatform.UNKNOWN).package()

    assert not lib_dir.exists()


@pytest.mark.unit
def test_missing_build_directory_is_fatal(tmp_path: Path) -> None:
    with pytest.raises(PackagingError, match="Build directory not found"):
        ArtifactPackager(tmp_path / "src", tmp_path / "lib", HostPlatform.MACOS).package()

    assert not (tmp_path / "lib").exists()


@pytest.mark.unit
def test_manifest_only_considers_top_level_files(tmp_path: Path) -> None:
    lib_dir = tmp_path / "lib"
    _touch(lib_dir / "libonnx.a")
    _touch(lib_dir / "nested" / "libonnxruntime_nested.a")
    (lib_dir / "libonnxruntime_dir.a").mkdir()
    _touch(lib_dir / "libprotobuf.a")
    _touch(lib_dir / "libonnxruntime_common.so")

    assert collect_link_libraries(lib_dir, layout_for(HostPlatform.LINUX)) == ["onnx"]


@pytest.mark.unit
def test_manifest_orders_by_pattern_then_name_without_duplicates(tmp_path: Path) -> None:
    lib_dir = tmp_path / "lib"
    for name in (
        "libonnx_proto.a",
        "libonnxruntime_util.a",
        "libonnxruntime_common.a",
        "libonnx.a",
    ):
        _touch(lib_dir / name)

    assert collect_link_libraries(lib_dir, layout_for(HostPlatform.MACOS)) == [
        "onnxruntime_common",
        "onnxruntime_util",
        "onnx",
        "onnx_proto",
    ]


@pytest.mark.unit
def test_windows_libraries_keep_their_names(tmp_path: Path) -> None:
    lib_dir = tmp_path / "lib"
    _touch(lib_dir / "onnxruntime_session.lib")
    _touch(lib_dir / "onnx_proto.lib")

    assert collect_link_libraries(lib_dir, layout_for(HostPlatform.WINDOWS)) == [
        "onnxruntime_session",
        "onnx_proto",
    ]


@pytest.mark.unit
def test_write_link_manifest_with_no_libraries_is_empty(tmp_path: Path) -> None:
    path = tmp_path / "onnxruntime_link_libs.txt"

    write_link_manifest(path, [])

    assert path.read_bytes() == b""


@pytest.mark.unit
@pytest.mark.skipif(sys.platform == "win32", reason="POSIX symlinks")
def test_symlinks_are_recreated_not_followed(tmp_path: Path) -> None:
    source = tmp_path / "build"
    _touch(source / "libonnxruntime_session.a", b"real")
    os.symlink("libonnxruntime_session.a", source / "libonnxruntime_alias.a")
    destination = tmp_path / "lib"
    destination.mkdir()
    _touch(destination / "libonnxruntime_alias.a", b"old file")

    report = copy_tree_best_effort(source, destination)

    assert report.complete
    assert (destination / "libonnxruntime_alias.a").is_symlink()
    assert os.readlink(destination / "libonnxruntime_alias.a") == "libonnxruntime_session.a"


@pytest.mark.unit
@pytest.mark.skipif(sys.platform == "win32", reason="directory symlinks need privileges")
def test_symlinked_directories_are_recreated(tmp_path: Path) -> None:
    source = tmp_path / "build"
    _touch(source / "real_include" / "onnxruntime_c_api.h", b"// c api")
    os.symlink("real_include", source / "include", target_is_directory=True)
    destination = tmp_path / "lib"

    report = copy_tree_best_effort(source, destination)

    assert report.complete
    assert (destination / "include").is_symlink()
    assert os.readlink(destination / "include") == "real_include"
    assert (destination / "include" / "onnxruntime_c_api.h").read_bytes() == b"// c api"
    assert destination / "include" in report.copied


@pytest.mark.unit
@pytest.mark.skipif(sys.platform == "win32", reason="directory symlinks need privileges")
def test_symlinked_directory_over_real_directory_is_reported(tmp_path: Path) -> None:
    source = tmp_path / "build"
    _touch(source / "real_include" / "a.h")
    os.symlink("real_include", source / "include", target_is_directory=True)
    destination = tmp_path / "lib"
    (destination / "include").mkdir(parents=True)

    report = copy_tree_best_effort(source, destination)

    assert not report.complete
    assert [skipped.path for skipped in report.skipped] == [source / "include"]


@pytest.mark.unit
@pytest.mark.skipif(
    sys.platform == "win32" or (hasattr(os, "geteuid") and os.geteuid() == 0),
    reason="permission bits are not enforced",
)
def test_unreadable_file_is_skipped_and_reported(tmp_path: Path) -> None:
    source = tmp_path / "build"
    _touch(source / "libonnxruntime_session.a", b"ok")
    locked = _touch(source / "libonnx_locked.a", b"secret")
    locked.chmod(0)
    destination = tmp_path / "lib"
    try:
        report = copy_tree_best_effort(source, destination)
    finally:
        locked.chmod(0o644)

    assert [item.path for item in report.skipped] == [locked]
    assert report.skipped[0].reason
    assert (destination / "libonnxruntime_session.a").read_bytes() == b"ok"
    assert not report.complete
