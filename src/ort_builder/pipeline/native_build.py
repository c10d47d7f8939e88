"""Native build invocation for the ONNX Runtime ``build.sh`` / ``build.bat`` entry point."""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from ort_builder.constants import BUILD_CONFIGURATION
from ort_builder.errors import NativeBuildError
from ort_builder.platform import HostPlatform, layout_for

if TYPE_CHECKING:
    from ort_builder.config.resolver import BuildConfig

logger = logging.getLogger(__name__)

BASELINE_FLAGS: tuple[str, ...] = (
    "--config",
    BUILD_CONFIGURATION,
    "--parallel",
    "--skip_tests",
    "--use_full_protobuf",
)
MINIMAL_BUILD_FLAG = "--minimal_build"
OPS_CONFIG_FLAG = "--include_ops_by_config"


@dataclass(frozen=True, slots=True)
class BuildInvocation:
    """Fully resolved native build command; building one has no side effects."""

    argv: tuple[str, ...]
    cwd: Path
    env_overrides: Mapping[str, str] = field(default_factory=dict)

    def child_environment(self, base: Mapping[str, str] | None = None) -> dict[str, str]:
        """Return the environment for the child process: ``base`` plus overrides."""

        env = dict(os.environ if base is None else base)
        env.update(self.env_overrides)
        return env

    def render(self) -> str:
        """Shell-style rendering for dry runs and diagnostics."""

        assignments = [
            f"{key}={shlex.quote(value)}" for key, value in sorted(self.env_overrides.items())
        ]
        return " ".join([*assignments, shlex.join(self.argv)])


class CommandRunner(Protocol):
    """Injectable command runner used for deterministic/offline testing."""

    def run(self, invocation: BuildInvocation) -> int: ...


class SubprocessCommandRunner:
    """Default runner: child inherits stdout/stderr so build output streams through untouched."""

    def run(self, invocation: BuildInvocation) -> int:
        try:
            completed = subprocess.run(
                list(invocation.argv),
                cwd=invocation.cwd,
                env=invocation.child_environment(),
                check=False,
            )
        except OSError as exc:
            raise NativeBuildError(
                command=invocation.argv, returncode=None, detail=str(exc)
            ) from exc
        return completed.returncode


def cmake_extra_defines(platform: HostPlatform) -> tuple[str, ...]:
    """Compiler flag overrides needed to link the static libraries into PIC consumers."""

    if platform is HostPlatform.WINDOWS:
        return ()
    cxx_flags = "-fPIC -stdlib=libc++" if platform is HostPlatform.MACOS else "-fPIC"
    return (
        "--cmake_extra_defines",
        "CMAKE_C_FLAGS=-fPIC",
        f"CMAKE_CXX_FLAGS={cxx_flags}",
    )


def build_environment_overrides(ignore_prefix_path: str) -> dict[str, str]:
    """Keep CMake's find_package away from an incompatible system protobuf.

    ``CMAKE_IGNORE_PREFIX_PATH`` hides the prefix entirely and an empty
    ``CMAKE_PREFIX_PATH`` drops inherited search roots.
    """

    if not ignore_prefix_path:
        return {}
    return {"CMAKE_IGNORE_PREFIX_PATH": ignore_prefix_path, "CMAKE_PREFIX_PATH": ""}


def build_invocation(
    *,
    source_dir: Path,
    platform: HostPlatform,
    ops_config_path: Path | None = None,
    extra_args: Sequence[str] = (),
    ignore_prefix_path: str = "",
) -> BuildInvocation:
    """Construct the argv, working directory, and environment overrides for one build."""

    layout = layout_for(platform)
    argv: list[str] = [str(source_dir / layout.build_script), *BASELINE_FLAGS]
    argv.extend(cmake_extra_defines(platform))
    if ops_config_path is not None:
        argv.extend((MINIMAL_BUILD_FLAG, OPS_CONFIG_FLAG, str(ops_config_path)))
    argv.extend(extra_args)
    return BuildInvocation(
        argv=tuple(argv),
        cwd=source_dir,
        env_overrides=build_environment_overrides(ignore_prefix_path),
    )


class NativeBuildInvoker:
    """Run the native build for a resolved :class:`BuildConfig`."""

    def __init__(
        self,
        config: BuildConfig,
        platform: HostPlatform,
        *,
        runner: CommandRunner | None = None,
    ) -> None:
        self._config = config
        self._platform = platform
        self._runner = runner or SubprocessCommandRunner()

    def invocation(self) -> BuildInvocation:
        return build_invocation(
            source_dir=self._config.source_dir,
            platform=self._platform,
            ops_config_path=self._config.ops_config_path,
            extra_args=self._config.extra_build_args,
            ignore_prefix_path=self._config.ignore_prefix_path,
        )

    def build(self) -> BuildInvocation:
        invocation = self.invocation()
        if self._config.ops_config_path is not None:
            logger.info(
                "minimal build with operator config",
                extra={"ops_config": self._config.ops_config_path},
            )
        logger.info(
            "starting native build",
            extra={"argv": list(invocation.argv), "env_overrides": dict(invocation.env_overrides)},
        )
        returncode = self._runner.run(invocation)
        if returncode != 0:
            raise NativeBuildError(command=invocation.argv, returncode=returncode)
        logger.info("native build finished")
        return invocation


__all__ = [
    "BASELINE_FLAGS",
    "MINIMAL_BUILD_FLAG",
    "OPS_CONFIG_FLAG",
    "BuildInvocation",
    "CommandRunner",
    "NativeBuildInvoker",
    "SubprocessCommandRunner",
    "build_environment_overrides",
    "build_invocation",
    "cmake_extra_defines",
]
