"""Resolve the immutable :class:`BuildConfig` for one pipeline run."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ort_builder.config.loader import ConfigLoadError, load_config
from ort_builder.config.schema import ConfigValidationError
from ort_builder.constants import (
    ARCHIVE_SUFFIX,
    LIB_DIR_NAME,
    LINK_MANIFEST_NAME,
    LOG_DIR_NAME,
    SOURCE_DIR_PREFIX,
)
from ort_builder.errors import ConfigurationError


@dataclass(frozen=True, slots=True)
class BuildConfig:
    """Everything the pipeline stages need, resolved once up front."""

    repo_root: Path
    output_root: Path
    version: str
    url_template: str
    ops_config_path: Path | None = None
    extra_build_args: tuple[str, ...] = ()
    ignore_prefix_path: str = ""
    require_cache_marker: bool = False
    log_level: str = "INFO"
    log_dir: Path | None = None
    log_to_stderr: bool = False
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def source_dir(self) -> Path:
        return self.output_root / f"{SOURCE_DIR_PREFIX}{self.version}"

    @property
    def archive_path(self) -> Path:
        return self.output_root / f"{SOURCE_DIR_PREFIX}{self.version}{ARCHIVE_SUFFIX}"

    @property
    def lib_dir(self) -> Path:
        return self.output_root / LIB_DIR_NAME

    @property
    def manifest_path(self) -> Path:
        return self.lib_dir / LINK_MANIFEST_NAME

    @property
    def download_url(self) -> str:
        return self.url_template.format(version=self.version)

    @property
    def effective_log_dir(self) -> Path:
        return self.log_dir if self.log_dir is not None else self.output_root / LOG_DIR_NAME


def resolve_build_config(
    repo_root: str | Path,
    *,
    ops_config: str | None = None,
    config_path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> BuildConfig:
    """Load layered config and validate it into a :class:`BuildConfig`.

    ``ops_config`` is the ``--ops-config`` CLI value and beats ``OPS_CONFIG``.
    A resolved ops-config path that is not an existing file is rejected here,
    before any download or build work can start.
    """

    root = Path(repo_root).expanduser().resolve()
    if not root.is_dir():
        raise ConfigurationError(f"repo root is not a directory: {root}")

    try:
        loaded = load_config(
            root,
            config_path,
            cli_overrides={"build.ops_config": ops_config},
            environ=environ,
        )
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise ConfigurationError(str(exc)) from exc

    build = loaded["build"]
    ops_config_path: Path | None = None
    if build["ops_config"]:
        ops_config_path = Path(build["ops_config"])
        if not ops_config_path.is_file():
            raise ConfigurationError(f"Specified ops config not found: {ops_config_path}")

    log_section = loaded["logging"]
    return BuildConfig(
        repo_root=root,
        output_root=Path(loaded["paths"]["output_dir"]),
        version=loaded["source"]["version"],
        url_template=loaded["source"]["url_template"],
        ops_config_path=ops_config_path,
        extra_build_args=tuple(build["extra_args"]),
        ignore_prefix_path=build["ignore_prefix_path"],
        require_cache_marker=loaded["cache"]["require_marker"],
        log_level=log_section["level"],
        log_dir=Path(log_section["log_dir"]) if log_section["log_dir"] else None,
        log_to_stderr=log_section["log_to_stderr"],
        raw=loaded,
    )


__all__ = ["BuildConfig", "resolve_build_config"]
