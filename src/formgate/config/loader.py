"""
formgate — runtime config loader.

File: src/formgate/config/loader.py

Purpose
- Resolve the effective config from defaults, an optional TOML file, ``FORMGATE_``
  environment variables and explicit overrides.
- Wire a validated config into the process: logging, message catalog, error
  policy, gateway.

What should be included in this file
- Layering in a fixed order; later layers win.
- Env variable names derived from the default config's scalar leaves, values
  parsed by the type of the default.
- Relative paths resolved against the directory of the config file.

Functional requirements
- Every layer is validated; a bad value fails with the dotted path it came from.

Non-functional requirements
- The same inputs always produce the same config.
"""

from __future__ import annotations

import os
import tomllib
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Any

from formgate.config.schema import PATH_FIELDS, assert_valid_config, default_config, merge_config
from formgate.constants import BOOLEAN_FALSE, BOOLEAN_TRUE, DEFAULT_CONFIG_FILE, ENV_PREFIX
from formgate.domain.fields import ErrorPolicy
from formgate.forms.form import set_default_error_policy
from formgate.observability.logging import configure_logging
from formgate.persistence.sqlite_gateway import SQLiteGateway
from formgate.persistence.state_db import StateDB
from formgate.validation.messages import MessageCatalog, install_catalog

ConfigPath = tuple[str, ...]


class ConfigLoadError(ValueError):
    """Raised when a config source cannot be read or an env value cannot be parsed."""


@dataclass(frozen=True, slots=True)
class Runtime:
    """Process-level collaborators built from one validated config."""

    config: Mapping[str, Any]
    db: StateDB
    gateway: SQLiteGateway
    catalog: MessageCatalog
    error_policy: ErrorPolicy


def load_config(
    config_path: str | Path | None = None,
    *,
    overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Effective config: defaults, then the TOML file, then env, then ``overrides``.

    Without ``config_path`` a ``formgate.toml`` in the working directory is used
    when present. ``overrides`` keys may be dotted (``"database.path"``).
    """

    if config_path is None:
        source = Path.cwd().joinpath(DEFAULT_CONFIG_FILE).resolve()
        from_file = _read_toml(source) if source.is_file() else {}
    else:
        source = Path(config_path).expanduser().resolve()
        if not source.is_file():
            raise ConfigLoadError(f"config file not found: {source}")
        from_file = _read_toml(source)

    config = assert_valid_config(merge_config(default_config(), from_file))
    env = os.environ if environ is None else environ
    config = merge_config(config, _env_layer(config, env))
    config = merge_config(config, _override_layer(overrides or {}))
    return normalize_paths(assert_valid_config(config), base_dir=source.parent)


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Copy of ``config`` with non-empty relative path fields anchored at ``base_dir``."""

    result = merge_config({}, config)
    for section, key in PATH_FIELDS:
        table = result.get(section)
        if not isinstance(table, dict):
            continue
        raw = table.get(key)
        if isinstance(raw, str) and raw:
            table[key] = _anchor(raw, base_dir)
    return result


def build_runtime(
    config: Mapping[str, Any],
    *,
    log_stream: IO[str] | None = None,
) -> Runtime:
    """Apply ``config`` process-wide and return the collaborators it describes."""

    validated = assert_valid_config(config)
    observability = validated["observability"]
    configure_logging(
        level=observability["log_level"],
        fmt=observability["log_format"],
        redact_keys=observability["redact_keys"],
        stream=log_stream,
    )

    catalog_path = validated["messages"]["catalog_path"]
    catalog = MessageCatalog.from_yaml(catalog_path) if catalog_path else MessageCatalog()
    install_catalog(catalog)

    policy = ErrorPolicy(validated["forms"]["error_policy"])
    set_default_error_policy(policy)

    database = validated["database"]
    db = StateDB(
        database["path"],
        busy_timeout_ms=database["busy_timeout_ms"],
        busy_retry_limit=database["busy_retry_limit"],
    )
    return Runtime(
        config=validated,
        db=db,
        gateway=SQLiteGateway(db),
        catalog=catalog,
        error_policy=policy,
    )


def _read_toml(source: Path) -> dict[str, Any]:
    try:
        return tomllib.loads(source.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {source}: {exc}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigLoadError(f"cannot read config file {source}: {exc}") from exc


def _leaves(
    table: Mapping[str, object], prefix: ConfigPath = ()
) -> Iterator[tuple[ConfigPath, object]]:
    for key in sorted(table):
        value = table[key]
        if isinstance(value, Mapping):
            yield from _leaves(value, (*prefix, key))
        else:
            yield (*prefix, key), value


def _env_layer(config: Mapping[str, object], environ: Mapping[str, str]) -> dict[str, Any]:
    """Values of ``FORMGATE_<SECTION>_<KEY>`` variables, parsed like the current value."""

    layer: dict[str, Any] = {}
    for path, current in _leaves(config):
        if path[0] == "meta":
            continue
        name = ENV_PREFIX + "_".join(path).upper()
        if name not in environ:
            continue
        parser = _ENV_PARSERS.get(type(current))
        if parser is None:
            continue
        kind, parse = parser
        try:
            value = parse(environ[name].strip())
        except ValueError as exc:
            raise ConfigLoadError(f"{name} -> {'.'.join(path)} must be {kind}") from exc
        _insert(layer, path, value)
    return layer


def _override_layer(overrides: Mapping[str, object]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for key in sorted(overrides):
        path = tuple(part for part in key.split(".") if part)
        if not path:
            raise ConfigLoadError(f"invalid override key {key!r}")
        value = overrides[key]
        _insert(layer, path, merge_config({}, value) if isinstance(value, Mapping) else value)
    return layer


def _insert(layer: dict[str, Any], path: ConfigPath, value: object) -> None:
    *parents, leaf = path
    node = layer
    for part in parents:
        child = node.setdefault(part, {})
        if not isinstance(child, dict):
            child = node[part] = {}
        node = child
    node[leaf] = value


def _anchor(raw: str, base_dir: Path) -> str:
    candidate = Path(os.path.expandvars(raw)).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir.joinpath(candidate)
    return Path(os.path.normpath(candidate)).as_posix()


def _parse_bool(text: str) -> bool:
    lowered = text.lower()
    if lowered in BOOLEAN_TRUE:
        return True
    if lowered in BOOLEAN_FALSE:
        return False
    raise ValueError(text)


def _parse_list(text: str) -> list[str]:
    return [item.strip() for item in text.split(",") if item.strip()]


# Keyed by the type of the value being replaced; ``bool`` is looked up exactly.
_ENV_PARSERS: dict[type, tuple[str, Callable[[str], object]]] = {
    bool: ("a boolean (true/false/1/0/yes/no/on/off)", _parse_bool),
    int: ("an integer", int),
    float: ("a number", float),
    str: ("a string", str),
    list: ("a comma-separated list", _parse_list),
}


__all__ = [
    "ConfigLoadError",
    "Runtime",
    "build_runtime",
    "load_config",
    "normalize_paths",
]
