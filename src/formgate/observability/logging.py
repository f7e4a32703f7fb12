"""Structured logging setup with JSON or console output and redaction support."""

from __future__ import annotations

import logging
import re
import sys
from collections.abc import Iterable, Iterator, MutableMapping
from contextlib import contextmanager
from typing import IO, Any, Final, Literal

import structlog

LogFormat = Literal["json", "console"]

REDACTED_VALUE: Final[str] = "***REDACTED***"

_SENSITIVE_KEY_TERMS: Final[tuple[str, ...]] = (
    "secret",
    "token",
    "password",
    "passphrase",
    "api_key",
    "apikey",
    "authorization",
    "credential",
    "cookie",
    "private_key",
    "client_secret",
)

_SENSITIVE_ASSIGNMENT_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"(?i)\b(api[_-]?key|token|password|secret|client_secret|authorization)\b\s*([:=])\s*([^\s,;]+)"
)
_BEARER_TOKEN_PATTERN: Final[re.Pattern[str]] = re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/-]+=*")

_LOG_FORMATS: Final[frozenset[str]] = frozenset({"json", "console"})


class RedactingProcessor:
    """structlog processor replacing values under sensitive keys, at any depth."""

    __slots__ = ("_extra_keys",)

    def __init__(self, extra_keys: Iterable[str] = ()) -> None:
        self._extra_keys = frozenset(key.strip().lower() for key in extra_keys if key.strip())

    def __call__(
        self,
        logger: Any,
        method_name: str,
        event_dict: MutableMapping[str, Any],
    ) -> MutableMapping[str, Any]:
        for key in list(event_dict):
            if key == "event":
                continue
            event_dict[key] = self._redact(event_dict[key], key_context=key)
        return event_dict

    def _redact(self, value: Any, *, key_context: str | None) -> Any:
        if key_context is not None and self._is_sensitive(key_context):
            return REDACTED_VALUE
        if isinstance(value, str):
            return _redact_string(value)
        if isinstance(value, (list, tuple)):
            return [self._redact(item, key_context=None) for item in value]
        if isinstance(value, dict):
            return {key: self._redact(item, key_context=str(key)) for key, item in value.items()}
        return value

    def _is_sensitive(self, key: str) -> bool:
        key_lower = key.lower()
        if key_lower in self._extra_keys:
            return True
        return any(term in key_lower for term in _SENSITIVE_KEY_TERMS)


def configure_logging(
    *,
    level: int | str = "INFO",
    fmt: LogFormat | str = "json",
    redact_keys: Iterable[str] = (),
    stream: IO[str] | None = None,
) -> None:
    """Install the formgate structlog pipeline process-wide."""

    resolved_level = _parse_log_level(level)
    if fmt not in _LOG_FORMATS:
        raise ValueError(f"unsupported log format {fmt!r}; expected one of {sorted(_LOG_FORMATS)}")

    renderer: Any
    if fmt == "json":
        renderer = structlog.processors.JSONRenderer(sort_keys=True)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            RedactingProcessor(redact_keys),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(resolved_level),
        logger_factory=structlog.PrintLoggerFactory(
            file=stream if stream is not None else sys.stderr
        ),
        cache_logger_on_first_use=False,
    )


def reset_logging() -> None:
    """Restore structlog defaults and drop bound context."""
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


def get_correlation_context() -> dict[str, Any]:
    return dict(structlog.contextvars.get_contextvars())


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    """Temporarily bind request-scoped fields for log events in scope."""

    bound: dict[str, str] = {}
    for key, value in fields.items():
        if value is None:
            continue
        bound[_validate_correlation_key(key)] = _validate_correlation_value(value)
    tokens = structlog.contextvars.bind_contextvars(**bound)
    try:
        yield
    finally:
        structlog.contextvars.reset_contextvars(**tokens)


def _parse_log_level(value: int | str) -> int:
    if isinstance(value, int):
        return value

    if not isinstance(value, str):
        raise ValueError(f"level must be int or str, got {type(value).__name__}")

    normalized = value.strip().upper()
    parsed = logging.getLevelName(normalized)
    if isinstance(parsed, int):
        return parsed

    raise ValueError(f"unsupported logging level {value!r}")


def _validate_correlation_key(value: str) -> str:
    normalized = value.strip()
    if not normalized:
        raise ValueError("correlation key must not be empty")
    return normalized


def _validate_correlation_value(value: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"correlation value must be a string, got {type(value).__name__}")
    normalized = value.strip()
    if not normalized:
        raise ValueError("correlation value must not be empty")
    return normalized


def _redact_string(text: str) -> str:
    redacted = _SENSITIVE_ASSIGNMENT_PATTERN.sub(
        lambda match: f"{match.group(1)}{match.group(2)}{REDACTED_VALUE}", text
    )
    return _BEARER_TOKEN_PATTERN.sub(f"Bearer {REDACTED_VALUE}", redacted)


__all__ = [
    "REDACTED_VALUE",
    "LogFormat",
    "RedactingProcessor",
    "configure_logging",
    "correlation_scope",
    "get_correlation_context",
    "reset_logging",
]
