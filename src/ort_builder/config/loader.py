"""
ort-builder — layered config loading.

Layers, lowest to highest precedence:

1. built-in defaults (:data:`ort_builder.config.schema.DEFAULT_CONFIG`)
2. ``ort_builder.toml`` at the repository root, or ``--config``
3. ``ORT_BUILDER_<SECTION>_<KEY>`` environment variables, then the historical
   ``OUT_DIR`` / ``ORT_VERSION`` / ``OPS_CONFIG`` names
4. CLI overrides keyed by dotted path (``"build.ops_config"``)

The file layer is validated on its own so a bad TOML value is reported before
environment noise is mixed in. Path fields are made absolute against the
repository root last.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Iterator, Mapping
from pathlib import Path
from typing import Any, Final

from ort_builder.config.schema import (
    PATH_FIELDS,
    SCHEMA,
    assert_valid_config,
    default_config,
    field_kind,
    merge_config,
)
from ort_builder.constants import DEFAULT_CONFIG_FILE

ENV_PREFIX: Final[str] = "ORT_BUILDER_"

# Applied after the namespaced variables, so these win.
LEGACY_ENV_BINDINGS: Final[dict[str, tuple[str, str]]] = {
    "OUT_DIR": ("paths", "output_dir"),
    "ORT_VERSION": ("source", "version"),
    "OPS_CONFIG": ("build", "ops_config"),
}

_TRUTHY: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_FALSY: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})


class ConfigLoadError(ValueError):
    """The config file could not be read, or an override has the wrong shape."""


def load_config(
    repo_root: str | Path,
    config_path: str | Path | None = None,
    *,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Return the effective, validated config as plain nested dicts.

    Without ``config_path`` a missing ``<repo_root>/ort_builder.toml`` is fine;
    an explicit path has to exist.
    """

    root = Path(repo_root).expanduser().resolve()
    if config_path is None:
        file_layer = _read_toml(root / DEFAULT_CONFIG_FILE, required=False)
    else:
        file_layer = _read_toml(_under(root, Path(config_path)), required=True)

    config = assert_valid_config(merge_config(default_config(), file_layer))
    env = os.environ if environ is None else environ
    for overlay in (_env_layer(env), _cli_layer(cli_overrides or {})):
        config = merge_config(config, overlay)
    return normalize_paths(assert_valid_config(config), base_dir=root)


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Expand and absolutize every non-empty entry of ``PATH_FIELDS``."""

    resolved = merge_config({}, config)
    for section, key in PATH_FIELDS:
        table = resolved.get(section)
        if not isinstance(table, dict):
            continue
        raw = table.get(key)
        if isinstance(raw, str) and raw:
            expanded = Path(os.path.expandvars(raw)).expanduser()
            table[key] = os.path.normpath(_under(base_dir, expanded))
    return resolved


def dump_effective_config(config: Mapping[str, object]) -> str:
    """Compact JSON with sorted keys; identical inputs give identical text."""

    return json.dumps(config, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def env_var_name(section: str, key: str) -> str:
    return f"{ENV_PREFIX}{section.upper()}_{key.upper()}"


def _under(base: Path, candidate: Path) -> Path:
    candidate = candidate.expanduser()
    return candidate if candidate.is_absolute() else base / candidate


def _read_toml(path: Path, *, required: bool) -> dict[str, Any]:
    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except FileNotFoundError:
        if required:
            raise ConfigLoadError(f"config file not found: {path}") from None
        return {}
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc


def _present(environ: Mapping[str, str], name: str) -> str | None:
    value = environ.get(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def _scalar_fields() -> Iterator[tuple[str, str]]:
    for section, fields in SCHEMA.items():
        for key in fields:
            if field_kind(section, key) != "text_list":
                yield section, key


def _env_layer(environ: Mapping[str, str]) -> dict[str, dict[str, object]]:
    layer: dict[str, dict[str, object]] = {}
    for section, key in _scalar_fields():
        name = env_var_name(section, key)
        value = _present(environ, name)
        if value is None:
            continue
        if field_kind(section, key) == "bool":
            layer.setdefault(section, {})[key] = _parse_flag(value, name, f"{section}.{key}")
        else:
            layer.setdefault(section, {})[key] = value

    for name, (section, key) in LEGACY_ENV_BINDINGS.items():
        value = _present(environ, name)
        if value is not None:
            layer.setdefault(section, {})[key] = value
    return layer


def _parse_flag(value: str, name: str, dotted: str) -> bool:
    lowered = value.lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    raise ConfigLoadError(
        f"{name} -> {dotted} must be a boolean (true/false/1/0/yes/no/on/off)"
    )


def _cli_layer(overrides: Mapping[str, object]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for dotted, value in overrides.items():
        if value is None:
            continue
        *parents, leaf = [part for part in dotted.split(".") if part] or [""]
        if not leaf:
            raise ConfigLoadError(f"invalid CLI override key {dotted!r}")
        table = layer
        for part in parents:
            table = table.setdefault(part, {})
        table[leaf] = value
    return layer


__all__ = [
    "ENV_PREFIX",
    "LEGACY_ENV_BINDINGS",
    "ConfigLoadError",
    "dump_effective_config",
    "env_var_name",
    "load_config",
    "normalize_paths",
]
