"""
formgate — configuration schema and validation.

File: src/formgate/config/schema.py

Purpose
- Built-in defaults and the strict shape every effective config must have.

What should be included in this file
- Schema versioning.
- One check per known key (type, enum, range), declared in a single table.
- Deep merge used to layer config sources.

Functional requirements
- Validate config payloads and return structured errors (field path + message).
- Reject unknown keys at every level.

Non-functional requirements
- Issues are reported in table order so output is stable across runs.
"""

from __future__ import annotations

import copy
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, TypedDict

from formgate.constants import CONFIG_SCHEMA_VERSION, DEFAULT_DATABASE_PATH
from formgate.domain.fields import ErrorPolicy

PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("database", "path"),
    ("messages", "catalog_path"),
)

_LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")
_LOG_FORMATS: Final[tuple[str, ...]] = ("json", "console")


class MetaConfig(TypedDict):
    schema_version: int


class FormsConfig(TypedDict):
    error_policy: Literal["accumulate", "first_only"]


class DatabaseConfig(TypedDict):
    path: str
    busy_timeout_ms: int
    busy_retry_limit: int


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_format: Literal["json", "console"]
    redact_keys: list[str]


class MessagesConfig(TypedDict):
    catalog_path: str


class FormgateConfig(TypedDict):
    meta: MetaConfig
    forms: FormsConfig
    database: DatabaseConfig
    observability: ObservabilityConfig
    messages: MessagesConfig


DEFAULT_CONFIG: Final[FormgateConfig] = {
    "meta": {
        "schema_version": CONFIG_SCHEMA_VERSION,
    },
    "forms": {
        "error_policy": "accumulate",
    },
    "database": {
        "path": DEFAULT_DATABASE_PATH,
        "busy_timeout_ms": 5_000,
        "busy_retry_limit": 4,
    },
    "observability": {
        "log_level": "INFO",
        "log_format": "json",
        "redact_keys": [],
    },
    "messages": {
        "catalog_path": "",
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """One rejected value, addressed by its dotted path."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Normalized config, or ``None`` with the issues that prevented it."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised by ``assert_valid_config``; lists every issue, one per line."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        lines = [f"- {issue.path}: {issue.message}" for issue in self.issues]
        super().__init__("invalid config:\n" + ("\n".join(lines) or "- (no issues recorded)"))


class _Rejected(ValueError):
    def __init__(self, message: str, *, suffix: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.suffix = suffix


Check = Callable[[object], object]


def _text(value: object) -> str:
    if not isinstance(value, str):
        raise _Rejected(f"expected string, got {type(value).__name__}")
    stripped = value.strip()
    if not stripped:
        raise _Rejected("must not be empty")
    return stripped


def _path_text(value: object) -> str:
    text = _text(value)
    if "\x00" in text:
        raise _Rejected("must not contain NUL bytes")
    return text


def _optional_path_text(value: object) -> str:
    # Empty means "use the built-in messages".
    if isinstance(value, str) and not value.strip():
        return ""
    return _path_text(value)


def _non_negative_int(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise _Rejected(f"expected integer, got {type(value).__name__}")
    if value < 0:
        raise _Rejected("must be >= 0")
    return value


def _schema_version(value: object) -> int:
    version = _non_negative_int(value)
    if version != CONFIG_SCHEMA_VERSION:
        raise _Rejected(
            f"unsupported schema version {version}; expected {CONFIG_SCHEMA_VERSION}"
        )
    return version


def _one_of(*allowed: str, upper: bool = False) -> Check:
    expected = ", ".join(sorted(allowed))

    def check(value: object) -> str:
        text = _text(value)
        if upper:
            text = text.upper()
        if text not in allowed:
            raise _Rejected(f"invalid value {text!r}; expected one of: {expected}")
        return text

    return check


def _unique_texts(value: object) -> list[str]:
    if isinstance(value, str) or not isinstance(value, (list, tuple)):
        raise _Rejected(f"expected list of strings, got {type(value).__name__}")
    seen: dict[str, None] = {}
    for index, item in enumerate(value):
        try:
            seen.setdefault(_text(item))
        except _Rejected as exc:
            raise _Rejected(exc.message, suffix=f"[{index}]") from None
    return list(seen)


_CHECKS: Final[dict[str, dict[str, Check]]] = {
    "meta": {"schema_version": _schema_version},
    "forms": {"error_policy": _one_of(*(policy.value for policy in ErrorPolicy))},
    "database": {
        "path": _path_text,
        "busy_timeout_ms": _non_negative_int,
        "busy_retry_limit": _non_negative_int,
    },
    "observability": {
        "log_level": _one_of(*_LOG_LEVELS, upper=True),
        "log_format": _one_of(*_LOG_FORMATS),
        "redact_keys": _unique_texts,
    },
    "messages": {"catalog_path": _optional_path_text},
}


def default_config() -> FormgateConfig:
    """A fresh deep copy of ``DEFAULT_CONFIG``."""

    return copy.deepcopy(DEFAULT_CONFIG)


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """New dict with ``overlay`` merged into ``base`` table by table; inputs are untouched."""

    merged: dict[str, Any] = {}
    for key, value in base.items():
        if isinstance(value, Mapping):
            merged[key] = merge_config({}, value)
        else:
            merged[key] = copy.deepcopy(value)
    for key in sorted(overlay):
        value = overlay[key]
        current = merged.get(key)
        if isinstance(value, Mapping):
            merged[key] = merge_config(current if isinstance(current, Mapping) else {}, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def validate_config(config: Mapping[str, object] | object) -> ConfigValidationResult:
    issues: list[ConfigValidationIssue] = []
    root = _table(config, "<root>", issues)
    if root is None:
        return ConfigValidationResult(config=None, issues=tuple(issues))

    _check_keys(root, _CHECKS, "", issues)
    normalized: dict[str, Any] = {}
    for section, checks in _CHECKS.items():
        if root.get(section) is None:
            continue
        table = _table(root[section], section, issues)
        if table is None:
            continue
        _check_keys(table, checks, f"{section}.", issues)
        values = normalized.setdefault(section, {})
        for key, check in checks.items():
            if key not in table:
                continue
            try:
                values[key] = check(table[key])
            except _Rejected as exc:
                issues.append(ConfigValidationIssue(f"{section}.{key}{exc.suffix}", exc.message))

    if issues:
        return ConfigValidationResult(config=None, issues=tuple(issues))
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Normalized config, or ``ConfigValidationError`` listing every issue."""

    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def _table(
    value: object, path: str, issues: list[ConfigValidationIssue]
) -> dict[str, object] | None:
    if not isinstance(value, Mapping):
        issues.append(ConfigValidationIssue(path, f"expected object, got {type(value).__name__}"))
        return None
    bad_keys = [key for key in value if not isinstance(key, str)]
    for key in bad_keys:
        issues.append(
            ConfigValidationIssue(path, f"object key must be string, got {type(key).__name__}")
        )
    return {key: item for key, item in value.items() if isinstance(key, str)}


def _check_keys(
    table: Mapping[str, object],
    known: Mapping[str, object],
    prefix: str,
    issues: list[ConfigValidationIssue],
) -> None:
    issues.extend(
        ConfigValidationIssue(prefix + key, "unknown field")
        for key in sorted(table)
        if key not in known
    )
    issues.extend(
        ConfigValidationIssue(prefix + key, "missing required field")
        for key in sorted(known)
        if key not in table
    )


__all__ = [
    "DEFAULT_CONFIG",
    "PATH_FIELDS",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DatabaseConfig",
    "FormgateConfig",
    "FormsConfig",
    "MessagesConfig",
    "MetaConfig",
    "ObservabilityConfig",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "validate_config",
]
