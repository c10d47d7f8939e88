"""Configuration: ``ort_builder.toml`` schema, layered loading, and ``BuildConfig``."""

from ort_builder.config.loader import (
    ENV_PREFIX,
    LEGACY_ENV_BINDINGS,
    ConfigLoadError,
    dump_effective_config,
    env_var_name,
    load_config,
    normalize_paths,
)
from ort_builder.config.resolver import BuildConfig, resolve_build_config
from ort_builder.config.schema import (
    DEFAULT_CONFIG,
    PATH_FIELDS,
    ConfigValidationError,
    ConfigValidationIssue,
    ConfigValidationResult,
    assert_valid_config,
    default_config,
    merge_config,
    validate_config,
)

__all__ = [
    "DEFAULT_CONFIG",
    "ENV_PREFIX",
    "LEGACY_ENV_BINDINGS",
    "PATH_FIELDS",
    "BuildConfig",
    "ConfigLoadError",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "assert_valid_config",
    "default_config",
    "dump_effective_config",
    "env_var_name",
    "load_config",
    "merge_config",
    "normalize_paths",
    "resolve_build_config",
    "validate_config",
]
