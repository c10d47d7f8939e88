"""Stable constants shared across pipeline stages."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

# Release selection.
DEFAULT_ORT_VERSION: Final[str] = "1.22.0"
DEFAULT_URL_TEMPLATE: Final[str] = (
    "https://github.com/microsoft/onnxruntime/archive/refs/tags/v{version}.tar.gz"
)
SOURCE_DIR_PREFIX: Final[str] = "onnxruntime-"
ARCHIVE_SUFFIX: Final[str] = ".tar.gz"

# Default runtime paths (relative to the repository root unless overridden by config).
DEFAULT_OUTPUT_DIR: Final[PurePosixPath] = PurePosixPath("target/onnxruntime")
DEFAULT_CONFIG_FILE: Final[str] = "ort_builder.toml"
LIB_DIR_NAME: Final[str] = "lib"
LOG_DIR_NAME: Final[str] = "logs"
CACHE_MARKER_NAME: Final[str] = ".ort-builder-source.json"

# Eigen mirror hash drift in cmake/deps.txt of the pinned release.
DEPS_MANIFEST_PATH: Final[PurePosixPath] = PurePosixPath("cmake/deps.txt")
EIGEN_BAD_SHA1: Final[str] = "5ea4d05e62d7f954a46b3213f9b2535bdd866803"
EIGEN_GOOD_SHA1: Final[str] = "51982be81bbe52572b54180454df11a3ece9a934"

# Native build.
BUILD_CONFIGURATION: Final[str] = "Release"
DEFAULT_IGNORE_PREFIX_PATH: Final[str] = "/opt/homebrew"

# Packaging.
EXCLUDED_ARTIFACT_DIRS: Final[tuple[PurePosixPath, ...]] = (
    PurePosixPath("_deps/protoc_binary-src"),
)
LINK_MANIFEST_NAME: Final[str] = "onnxruntime_link_libs.txt"

__all__ = [
    "ARCHIVE_SUFFIX",
    "BUILD_CONFIGURATION",
    "CACHE_MARKER_NAME",
    "DEFAULT_CONFIG_FILE",
    "DEFAULT_IGNORE_PREFIX_PATH",
    "DEFAULT_ORT_VERSION",
    "DEFAULT_OUTPUT_DIR",
    "DEFAULT_URL_TEMPLATE",
    "DEPS_MANIFEST_PATH",
    "EIGEN_BAD_SHA1",
    "EIGEN_GOOD_SHA1",
    "EXCLUDED_ARTIFACT_DIRS",
    "LIB_DIR_NAME",
    "LINK_MANIFEST_NAME",
    "LOG_DIR_NAME",
    "SOURCE_DIR_PREFIX",
]
