"""
ort-builder — ``ort_builder.toml`` schema, defaults, and validation.

The schema is a table of sections and typed fields. Validation walks the table
once, collects every problem with a dotted path (``build.extra_args[1]``), and
only returns a normalized config when nothing was wrong.
"""

from __future__ import annotations

import copy
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, TypedDict

from ort_builder.constants import (
    DEFAULT_IGNORE_PREFIX_PATH,
    DEFAULT_ORT_VERSION,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_URL_TEMPLATE,
)

LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")

# Resolved against the repository root by the loader.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("paths", "output_dir"),
    ("build", "ops_config"),
    ("logging", "log_dir"),
)

FieldKind = Literal["required_text", "text", "bool", "text_list", "log_level"]


class PathsConfig(TypedDict):
    output_dir: str


class SourceConfig(TypedDict):
    version: str
    url_template: str


class BuildSection(TypedDict):
    ops_config: str
    extra_args: list[str]
    ignore_prefix_path: str


class CacheConfig(TypedDict):
    require_marker: bool


class LoggingSection(TypedDict):
    level: str
    log_dir: str
    log_to_stderr: bool


class BuilderConfig(TypedDict):
    paths: PathsConfig
    source: SourceConfig
    build: BuildSection
    cache: CacheConfig
    logging: LoggingSection


DEFAULT_CONFIG: Final[BuilderConfig] = {
    "paths": {"output_dir": DEFAULT_OUTPUT_DIR.as_posix()},
    "source": {"version": DEFAULT_ORT_VERSION, "url_template": DEFAULT_URL_TEMPLATE},
    "build": {
        "ops_config": "",
        "extra_args": [],
        "ignore_prefix_path": DEFAULT_IGNORE_PREFIX_PATH,
    },
    "cache": {"require_marker": False},
    "logging": {"level": "INFO", "log_dir": "", "log_to_stderr": False},
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Outcome of :func:`validate_config`; ``config`` is ``None`` when issues exist."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Every validation issue found in one config payload."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        lines = [f"- {issue.path}: {issue.message}" for issue in self.issues]
        super().__init__("invalid config:\n" + ("\n".join(lines) or "- <root>: unknown failure"))


class _Problem(Exception):
    """Internal signal carrying one issue message for the field being parsed."""


def _version(value: str) -> str:
    if any(char.isspace() or char in "/\\" for char in value):
        raise _Problem("must not contain whitespace or path separators")
    return value.removeprefix("v")


def _url_template(value: str) -> str:
    if "{version}" not in value:
        raise _Problem("must contain a '{version}' placeholder")
    try:
        value.format(version="0")
    except (KeyError, IndexError, ValueError) as exc:
        raise _Problem(f"only the '{{version}}' placeholder is supported ({exc!r})") from None
    return value


@dataclass(frozen=True, slots=True)
class _Field:
    kind: FieldKind
    refine: Callable[[str], str] | None = None


SCHEMA: Final[Mapping[str, Mapping[str, _Field]]] = {
    "paths": {"output_dir": _Field("required_text")},
    "source": {
        "version": _Field("required_text", _version),
        "url_template": _Field("required_text", _url_template),
    },
    "build": {
        "ops_config": _Field("text"),
        "extra_args": _Field("text_list"),
        "ignore_prefix_path": _Field("text"),
    },
    "cache": {"require_marker": _Field("bool")},
    "logging": {
        "level": _Field("log_level"),
        "log_dir": _Field("text"),
        "log_to_stderr": _Field("bool"),
    },
}


def field_kind(section: str, key: str) -> FieldKind | None:
    """Return the declared kind of ``section.key``, or ``None`` if it is not a field."""

    spec = SCHEMA.get(section, {}).get(key)
    return spec.kind if spec is not None else None


def default_config() -> dict[str, Any]:
    """A fresh copy of the built-in defaults; callers may mutate it."""

    return copy.deepcopy(dict(DEFAULT_CONFIG))


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deep-merge ``overlay`` onto a copy of ``base``. Non-mapping values replace."""

    merged: dict[str, Any] = {key: copy.deepcopy(value) for key, value in base.items()}
    for key, value in overlay.items():
        current = merged.get(key)
        if isinstance(value, Mapping) and isinstance(current, Mapping):
            merged[key] = merge_config(current, value)
        elif isinstance(value, Mapping):
            merged[key] = merge_config({}, value)
        else:
            merged[key] = copy.deepcopy(value)
    return dict(sorted(merged.items()))


def validate_config(config: object) -> ConfigValidationResult:
    issues: list[ConfigValidationIssue] = []
    if not isinstance(config, Mapping):
        issues.append(ConfigValidationIssue("<root>", _type_message("object", config)))
        return ConfigValidationResult(config=None, issues=tuple(issues))

    for key in sorted(set(config) - set(SCHEMA), key=str):
        issues.append(ConfigValidationIssue(str(key), "unknown section"))

    normalized: dict[str, Any] = {}
    for section, fields in SCHEMA.items():
        if section not in config:
            issues.append(ConfigValidationIssue(section, "missing required section"))
            continue
        payload = config[section]
        if not isinstance(payload, Mapping):
            issues.append(ConfigValidationIssue(section, _type_message("object", payload)))
            continue
        normalized[section] = _validate_section(section, payload, fields, issues)

    if issues:
        return ConfigValidationResult(config=None, issues=tuple(issues))
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(config: object) -> dict[str, Any]:
    """Return the normalized config or raise :class:`ConfigValidationError`."""

    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def _validate_section(
    section: str,
    payload: Mapping[object, object],
    fields: Mapping[str, _Field],
    issues: list[ConfigValidationIssue],
) -> dict[str, Any]:
    for key in sorted(set(payload) - set(fields), key=str):
        issues.append(ConfigValidationIssue(f"{section}.{key}", "unknown field"))

    out: dict[str, Any] = {}
    for key, spec in fields.items():
        path = f"{section}.{key}"
        try:
            out[key] = _PARSERS[spec.kind](payload.get(key), path, issues)
            if spec.refine is not None:
                out[key] = spec.refine(out[key])
        except _Problem as problem:
            issues.append(ConfigValidationIssue(path, str(problem)))
            out.pop(key, None)
    return out


def _type_message(expected: str, value: object) -> str:
    return f"expected {expected}, got {type(value).__name__}"


def _parse_text(value: object, path: str, issues: list[ConfigValidationIssue]) -> str:
    if not isinstance(value, str):
        raise _Problem(_type_message("string", value))
    if "\x00" in value:
        raise _Problem("must not contain NUL bytes")
    return value.strip()


def _parse_required_text(value: object, path: str, issues: list[ConfigValidationIssue]) -> str:
    text = _parse_text(value, path, issues)
    if not text:
        raise _Problem("must not be empty")
    return text


def _parse_bool(value: object, path: str, issues: list[ConfigValidationIssue]) -> bool:
    if not isinstance(value, bool):
        raise _Problem(_type_message("boolean", value))
    return value


def _parse_text_list(
    value: object, path: str, issues: list[ConfigValidationIssue]
) -> list[str]:
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        raise _Problem(_type_message("list of strings", value))
    items: list[str] = []
    for index, item in enumerate(value):
        if isinstance(item, str) and item.strip():
            items.append(item.strip())
        else:
            issues.append(ConfigValidationIssue(f"{path}[{index}]", "expected non-empty string"))
    return items


def _parse_log_level(value: object, path: str, issues: list[ConfigValidationIssue]) -> str:
    level = _parse_required_text(value, path, issues).upper()
    if level not in LOG_LEVELS:
        raise _Problem(f"invalid value {level!r}; expected one of: {', '.join(LOG_LEVELS)}")
    return level


_PARSERS: Final[Mapping[FieldKind, Callable[[object, str, list[ConfigValidationIssue]], Any]]] = {
    "required_text": _parse_required_text,
    "text": _parse_text,
    "bool": _parse_bool,
    "text_list": _parse_text_list,
    "log_level": _parse_log_level,
}


__all__ = [
    "DEFAULT_CONFIG",
    "LOG_LEVELS",
    "PATH_FIELDS",
    "SCHEMA",
    "BuilderConfig",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "FieldKind",
    "assert_valid_config",
    "default_config",
    "field_kind",
    "merge_config",
    "validate_config",
]
