"""Forward-only pipeline: acquire, patch, build, package."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from ort_builder.errors import STAGE_ACQUIRE, STAGE_BUILD, STAGE_PACKAGE, STAGE_PATCH
from ort_builder.observability import correlation_scope
from ort_builder.pipeline.acquire import AcquisitionResult, ArchiveDownloader, SourceAcquirer
from ort_builder.pipeline.native_build import BuildInvocation, CommandRunner, NativeBuildInvoker
from ort_builder.pipeline.packager import ArtifactPackager, PackageResult
from ort_builder.pipeline.patcher import DependencyPatcher, PatchResult
from ort_builder.platform import HostPlatform, detect_host_platform, layout_for

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from ort_builder.config.resolver import BuildConfig

logger = logging.getLogger(__name__)


class PipelineMode(str, Enum):
    FULL = "full"
    DRY_RUN = "dry-run"
    PACKAGE_ONLY = "package-only"


@dataclass(frozen=True, slots=True)
class PipelineResult:
    mode: PipelineMode
    platform: HostPlatform
    invocation: BuildInvocation | None = None
    acquisition: AcquisitionResult | None = None
    patch: PatchResult | None = None
    package: PackageResult | None = None


class BuildPipeline:
    """Run the stages in order for one resolved configuration.

    Each stage executes inside ``correlation_scope(stage=...)`` so its log
    records carry the stage name. Any stage error propagates unchanged and
    later stages never start.
    """

    def __init__(
        self,
        config: BuildConfig,
        *,
        platform: HostPlatform | None = None,
        downloader: ArchiveDownloader | None = None,
        runner: CommandRunner | None = None,
        on_stage: Callable[[str], None] | None = None,
    ) -> None:
        self._config = config
        self._platform = platform if platform is not None else detect_host_platform()
        self._downloader = downloader
        self._runner = runner
        self._on_stage = on_stage

    @property
    def platform(self) -> HostPlatform:
        return self._platform

    def run(self, mode: PipelineMode = PipelineMode.FULL) -> PipelineResult:
        with correlation_scope(version=self._config.version, platform=self._platform.value):
            if mode is PipelineMode.DRY_RUN:
                return self._dry_run()
            if mode is PipelineMode.PACKAGE_ONLY:
                return PipelineResult(mode=mode, platform=self._platform, package=self._package())
            return self._full()

    def _dry_run(self) -> PipelineResult:
        invocation = self._invoker().invocation()
        logger.info("dry run; no download or build", extra={"argv": list(invocation.argv)})
        return PipelineResult(
            mode=PipelineMode.DRY_RUN, platform=self._platform, invocation=invocation
        )

    def _full(self) -> PipelineResult:
        # Without a known output layout the build cannot be packaged; fail before downloading.
        layout_for(self._platform)
        with self._stage(STAGE_ACQUIRE):
            acquisition = SourceAcquirer(self._config, downloader=self._downloader).ensure_source()
        with self._stage(STAGE_PATCH):
            patch = DependencyPatcher(acquisition.source_dir).patch()
        with self._stage(STAGE_BUILD):
            invocation = self._invoker().build()
        package = self._package()
        return PipelineResult(
            mode=PipelineMode.FULL,
            platform=self._platform,
            invocation=invocation,
            acquisition=acquisition,
            patch=patch,
            package=package,
        )

    def _package(self) -> PackageResult:
        with self._stage(STAGE_PACKAGE):
            packager = ArtifactPackager(
                self._config.source_dir, self._config.lib_dir, self._platform
            )
            return packager.package()

    def _invoker(self) -> NativeBuildInvoker:
        return NativeBuildInvoker(self._config, self._platform, runner=self._runner)

    @contextmanager
    def _stage(self, name: str) -> Iterator[None]:
        if self._on_stage is not None:
            self._on_stage(name)
        with correlation_scope(stage=name):
            logger.debug("stage started")
            try:
                yield
            except Exception as exc:
                logger.error("stage failed: %s", exc)
                raise
            logger.debug("stage finished")


__all__ = ["BuildPipeline", "PipelineMode", "PipelineResult"]
