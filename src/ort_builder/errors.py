"""Error taxonomy for the build pipeline.

Every fatal condition is an :class:`OrtBuilderError` tagged with the stage that
raised it, so the CLI boundary can name the failing stage and pick an exit code.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    from collections.abc import Sequence

STAGE_CONFIGURE: Final[str] = "configure"
STAGE_ACQUIRE: Final[str] = "acquire"
STAGE_PATCH: Final[str] = "patch"
STAGE_BUILD: Final[str] = "build"
STAGE_PACKAGE: Final[str] = "package"


class OrtBuilderError(RuntimeError):
    """Base error for pipeline failures."""

    stage: str = "pipeline"

    def __init__(self, message: str, *, stage: str | None = None) -> None:
        super().__init__(message)
        if stage is not None:
            self.stage = stage


class ConfigurationError(OrtBuilderError):
    """Invalid arguments, unreadable config, or a missing ops-config file."""

    stage = STAGE_CONFIGURE


class AcquisitionError(OrtBuilderError):
    """Download or extraction of the release archive failed."""

    stage = STAGE_ACQUIRE


class PatchError(OrtBuilderError):
    """The dependency manifest exists but could not be rewritten."""

    stage = STAGE_PATCH


class NativeBuildError(OrtBuilderError):
    """The native build entry point exited non-zero or could not be started."""

    stage = STAGE_BUILD

    def __init__(self, *, command: Sequence[str], returncode: int | None, detail: str = "") -> None:
        self.command = tuple(command)
        self.returncode = returncode
        if returncode is None:
            message = f"unable to start native build: {' '.join(command)}"
        else:
            message = f"native build failed ({returncode}): {' '.join(command)}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class PackagingError(OrtBuilderError):
    """Build output directory missing or manifest could not be written."""

    stage = STAGE_PACKAGE


class UnsupportedPlatformError(PackagingError):
    """Host platform has no known build-output layout."""

    def __init__(self, platform_id: str) -> None:
        self.platform_id = platform_id
        super().__init__(f"unsupported platform: {platform_id}")


__all__ = [
    "STAGE_ACQUIRE",
    "STAGE_BUILD",
    "STAGE_CONFIGURE",
    "STAGE_PACKAGE",
    "STAGE_PATCH",
    "AcquisitionError",
    "ConfigurationError",
    "NativeBuildError",
    "OrtBuilderError",
    "PackagingError",
    "PatchError",
    "UnsupportedPlatformError",
]
