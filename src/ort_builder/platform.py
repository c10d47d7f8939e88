"""Host platform identification.

The platform is resolved once at startup and passed explicitly to the build
invoker and the artifact packager, so both can be exercised for any host.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from enum import Enum
from pathlib import PurePosixPath
from typing import Final

from ort_builder.errors import UnsupportedPlatformError


class HostPlatform(str, Enum):
    """Platform families with a known native build layout."""

    MACOS = "macos"
    LINUX = "linux"
    WINDOWS = "windows"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class PlatformLayout:
    """Per-platform naming of build outputs and static libraries."""

    build_subdir: PurePosixPath
    library_prefix: str
    library_suffix: str
    library_patterns: tuple[str, ...]
    build_script: str


_LAYOUTS: Final[dict[HostPlatform, PlatformLayout]] = {
    HostPlatform.MACOS: PlatformLayout(
        build_subdir=PurePosixPath("build/MacOS/Release"),
        library_prefix="lib",
        library_suffix=".a",
        library_patterns=("libonnxruntime_*.a", "libonnx*.a"),
        build_script="build.sh",
    ),
    HostPlatform.LINUX: PlatformLayout(
        build_subdir=PurePosixPath("build/Linux/Release"),
        library_prefix="lib",
        library_suffix=".a",
        library_patterns=("libonnxruntime_*.a", "libonnx*.a"),
        build_script="build.sh",
    ),
    # Visual Studio generators nest one more configuration directory.
    HostPlatform.WINDOWS: PlatformLayout(
        build_subdir=PurePosixPath("build/Windows/Release/Release"),
        library_prefix="",
        library_suffix=".lib",
        library_patterns=("onnxruntime_*.lib", "onnx*.lib"),
        build_script="build.bat",
    ),
}


def detect_host_platform(platform_id: str | None = None) -> HostPlatform:
    """Map a ``sys.platform`` style identifier to a :class:`HostPlatform`."""

    raw = (sys.platform if platform_id is None else platform_id).strip().lower()
    if raw.startswith("darwin"):
        return HostPlatform.MACOS
    if raw.startswith("linux"):
        return HostPlatform.LINUX
    if raw.startswith(("win32", "cygwin", "msys")):
        return HostPlatform.WINDOWS
    return HostPlatform.UNKNOWN


def layout_for(platform: HostPlatform) -> PlatformLayout:
    """Return the build layout for ``platform`` or raise for unknown hosts."""

    layout = _LAYOUTS.get(platform)
    if layout is None:
        raise UnsupportedPlatformError(platform.value)
    return layout


__all__ = ["HostPlatform", "PlatformLayout", "detect_host_platform", "layout_for"]
