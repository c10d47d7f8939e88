"""Pipeline stages and the orchestrating :class:`BuildPipeline`."""

from ort_builder.pipeline.acquire import (
    AcquisitionResult,
    ArchiveDownloader,
    RequestsArchiveDownloader,
    SourceAcquirer,
)
from ort_builder.pipeline.native_build import (
    BuildInvocation,
    CommandRunner,
    NativeBuildInvoker,
    SubprocessCommandRunner,
    build_invocation,
)
from ort_builder.pipeline.packager import (
    ArtifactPackager,
    CopyReport,
    PackageResult,
    SkippedPath,
)
from ort_builder.pipeline.patcher import DependencyPatcher, PatchResult
from ort_builder.pipeline.runner import BuildPipeline, PipelineMode, PipelineResult

__all__ = [
    "AcquisitionResult",
    "ArchiveDownloader",
    "ArtifactPackager",
    "BuildInvocation",
    "BuildPipeline",
    "CommandRunner",
    "CopyReport",
    "DependencyPatcher",
    "NativeBuildInvoker",
    "PackageResult",
    "PatchResult",
    "PipelineMode",
    "PipelineResult",
    "RequestsArchiveDownloader",
    "SkippedPath",
    "SourceAcquirer",
    "SubprocessCommandRunner",
    "build_invocation",
]
