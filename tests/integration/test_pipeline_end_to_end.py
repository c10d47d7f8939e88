"""
ort-builder — full pipeline run with offline fakes

Purpose
- Drive acquire, patch, build, and package through ``run_cli`` with an injected
  downloader and command runner, then check the on-disk results of every stage.
- Verify a second run reuses the cached tree and rewrites a stale manifest.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from ort_builder.constants import EIGEN_BAD_SHA1, EIGEN_GOOD_SHA1
from ort_builder.errors import NativeBuildError, UnsupportedPlatformError
from ort_builder.pipeline import BuildInvocation, BuildPipeline, PipelineMode
from ort_builder.platform import HostPlatform
from ort_builder.ui.cli import run_cli

if TYPE_CHECKING:
    from collections.abc import Callable

    from conftest import FakeDownloader, RecordingRunner

    from ort_builder.config.resolver import BuildConfig

_BUILD_SUBDIR = Path("build") / "Linux" / "Release"


def _simulate_build(invocation: BuildInvocation) -> None:
    build_dir = invocation.cwd / _BUILD_SUBDIR
    (build_dir / "include").mkdir(parents=True, exist_ok=True)
    (build_dir / "libonnxruntime_session.a").write_bytes(b"session")
    (build_dir / "libonnx_proto.a").write_bytes(b"proto")
    (build_dir / "include" / "onnxruntime_c_api.h").write_text("// c api\n", encoding="utf-8")
    protoc = build_dir / "_deps" / "protoc_binary-src" / "bin"
    protoc.mkdir(parents=True, exist_ok=True)
    (protoc / "protoc").write_bytes(b"\x7fELF")


@pytest.mark.integration
def test_full_run_produces_lib_layout(
    tmp_path: Path,
    source_archive: Callable[..., Path],
    fake_downloader: FakeDownloader,
    recording_runner: RecordingRunner,
    capsys: pytest.CaptureFixture[str],
) -> None:
    repo = tmp_path / "repo"
    (repo / "ops").mkdir(parents=True)
    (repo / "ops" / "required.config").write_text("ai.onnx;17;Add\n", encoding="utf-8")
    fake_downloader.archive = source_archive()
    recording_runner.on_run = _simulate_build

    exit_code = run_cli(
        ["--repo-root", str(repo), "--ops-config", "ops/required.config"],
        environ={},
        platform=HostPlatform.LINUX,
        downloader=fake_downloader,
        runner=recording_runner,
    )

    assert exit_code == 0
    out = repo.resolve() / "target" / "onnxruntime"
    source_dir = out / "onnxruntime-1.22.0"

    deps = (source_dir / "cmake" / "deps.txt").read_text(encoding="utf-8")
    assert EIGEN_GOOD_SHA1 in deps
    assert EIGEN_BAD_SHA1 not in deps

    (invocation,) = recording_runner.invocations
    assert invocation.cwd == source_dir
    assert "--include_ops_by_config" in invocation.argv
    assert str(repo.resolve() / "ops" / "required.config") in invocation.argv

    lib_dir = out / "lib"
    assert (lib_dir / "onnxruntime_link_libs.txt").read_text(encoding="utf-8") == (
        "onnxruntime_session\nonnx_proto\n"
    )
    assert (lib_dir / "include" / "onnxruntime_c_api.h").is_file()
    assert not (lib_dir / "_deps" / "protoc_binary-src").exists()

    stdout = capsys.readouterr().out
    assert "Fetching ONNX Runtime source" in stdout
    assert "Packaging static libraries" in stdout

    (run_dir,) = (out / "logs").iterdir()
    events = [
        json.loads(line)
        for line in (run_dir / "ort_builder.jsonl").read_text(encoding="utf-8").splitlines()
    ]
    stages = {event.get("stage") for event in events}
    assert {"acquire", "patch", "build", "package"} <= stages
    assert all(event["run_id"] == run_dir.name for event in events)


@pytest.mark.integration
def test_second_run_hits_cache_and_overwrites_manifest(
    make_config: Callable[..., BuildConfig],
    source_archive: Callable[..., Path],
    fake_downloader: FakeDownloader,
    recording_runner: RecordingRunner,
) -> None:
    config = make_config()
    fake_downloader.archive = source_archive()
    recording_runner.on_run = _simulate_build
    pipeline = BuildPipeline(
        config,
        platform=HostPlatform.LINUX,
        downloader=fake_downloader,
        runner=recording_runner,
    )

    first = pipeline.run()
    config.manifest_path.write_text("stale\n", encoding="utf-8")
    second = pipeline.run()

    assert first.acquisition is not None and not first.acquisition.cache_hit
    assert second.acquisition is not None and second.acquisition.cache_hit
    assert len(fake_downloader.calls) == 1
    assert second.patch is not None and not second.patch.changed
    assert config.manifest_path.read_text(encoding="utf-8") == "onnxruntime_session\nonnx_proto\n"


@pytest.mark.integration
def test_build_failure_stops_before_packaging(
    make_config: Callable[..., BuildConfig],
    source_archive: Callable[..., Path],
    fake_downloader: FakeDownloader,
    recording_runner: RecordingRunner,
) -> None:
    config = make_config()
    fake_downloader.archive = source_archive()
    recording_runner.returncode = 1

    with pytest.raises(NativeBuildError):
        BuildPipeline(
            config,
            platform=HostPlatform.LINUX,
            downloader=fake_downloader,
            runner=recording_runner,
        ).run()

    assert not config.lib_dir.exists()


@pytest.mark.integration
def test_unknown_platform_fails_before_download(
    make_config: Callable[..., BuildConfig],
    fake_downloader: FakeDownloader,
    recording_runner: RecordingRunner,
) -> None:
    config = make_config()

    with pytest.raises(UnsupportedPlatformError):
        BuildPipeline(
            config,
            platform=HostPlatform.UNKNOWN,
            downloader=fake_downloader,
            runner=recording_runner,
        ).run()

    assert fake_downloader.calls == []
    assert recording_runner.invocations == []
    assert not config.output_root.exists()


@pytest.mark.integration
def test_dry_run_touches_nothing(
    make_config: Callable[..., BuildConfig],
    fake_downloader: FakeDownloader,
    recording_runner: RecordingRunner,
) -> None:
    config = make_config()

    result = BuildPipeline(
        config,
        platform=HostPlatform.MACOS,
        downloader=fake_downloader,
        runner=recording_runner,
    ).run(PipelineMode.DRY_RUN)

    assert result.invocation is not None
    assert result.invocation.argv[0].endswith("build.sh")
    assert fake_downloader.calls == []
    assert recording_runner.invocations == []
    assert not config.output_root.exists()
