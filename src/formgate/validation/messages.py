"""
Validation message catalog.

Built-in English templates can be overridden from a YAML file shaped as::

    schema_version: 1
    messages:
      required: "can't be blank"
      size_min: "needs {min} or more characters"

Templates are ``str.format`` strings. Every template may use ``{field}``; the extra
placeholders a key receives are listed in ``PLACEHOLDERS`` and anything else is
rejected when the catalog is built. The catalog installed with :func:`install_catalog` is
what validators use when no explicit ``message=`` is given.
"""

from __future__ import annotations

import re
import string
import threading
from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Final, cast

import yaml

from formgate.constants import MESSAGE_CATALOG_SCHEMA_VERSION
from formgate.domain.coercion import COERCION_MESSAGES

DEFAULT_MESSAGES: Final[Mapping[str, str]] = MappingProxyType(
    {
        "required": "is required",
        "confirmation": "must match",
        "acceptance": "must be accepted",
        "inclusion": "is invalid",
        "exclusion": "is reserved",
        "format": "is invalid",
        # {is_}, {min}, {max}
        "size_is": "must be exactly {is_} characters long",
        "size_min": "must be at least {min} characters long",
        "size_max": "must not have more than {max} characters",
        "magnitude_is": "must be exactly {is_}",
        "magnitude_min": "must be at least {min}",
        "magnitude_max": "must be at most {max}",
        # {minimum}, {maximum}
        "numeric_min": "must be greater than or equal to {minimum}",
        "numeric_max": "must be less than or equal to {maximum}",
        "numeric_type": "must be a number",
        "exactly_one_filled": "at least one must be filled",
        "must_be_blank": "must be blank",
        "uniqueness": "is already taken",
        "storage_failure": "could not be saved",
        **{f"coercion_{kind.value}": message for kind, message in COERCION_MESSAGES.items()},
    }
)

_FIELD_ONLY: Final[frozenset[str]] = frozenset({"field"})
_BOUNDS: Final[frozenset[str]] = frozenset({"field", "is_", "min", "max"})

PLACEHOLDERS: Final[Mapping[str, frozenset[str]]] = MappingProxyType(
    {
        **dict.fromkeys(DEFAULT_MESSAGES, _FIELD_ONLY),
        **dict.fromkeys(
            (f"{rule}_{bound}" for rule in ("size", "magnitude") for bound in ("is", "min", "max")),
            _BOUNDS,
        ),
        "confirmation": frozenset({"field", "companion"}),
        "numeric_min": frozenset({"field", "minimum"}),
        "numeric_max": frozenset({"field", "maximum"}),
    }
)

# First ``.`` or ``[`` ends the argument name in a replacement field.
_ARG_END = re.compile(r"[.\[]")
_CONVERSIONS: Final[frozenset[str | None]] = frozenset({None, "r", "s", "a"})

_ACTIVE_LOCK = threading.Lock()
_ACTIVE_CATALOG: MessageCatalog | None = None


class MessageCatalog:
    """Immutable mapping of message keys to format templates."""

    __slots__ = ("_messages", "source")

    def __init__(
        self,
        overrides: Mapping[str, str] | None = None,
        *,
        source: str = "<defaults>",
    ) -> None:
        messages = dict(DEFAULT_MESSAGES)
        for key, template in (overrides or {}).items():
            if key not in DEFAULT_MESSAGES:
                raise ValueError(f"{source}: unknown message key {key!r}")
            if not isinstance(template, str) or not template.strip():
                raise ValueError(f"{source}: message {key!r} must be a non-empty string")
            _check_placeholders(template, PLACEHOLDERS[key], source=source, key=key)
            messages[key] = template
        self._messages = MappingProxyType(messages)
        self.source = source

    @classmethod
    def from_yaml(cls, path: str | Path) -> MessageCatalog:
        resolved = Path(path)
        try:
            with resolved.open("r", encoding="utf-8") as handle:
                loaded = cast("object", yaml.safe_load(handle))
        except yaml.YAMLError as exc:
            raise ValueError(f"{resolved}: invalid YAML ({exc})") from exc
        except OSError as exc:
            raise ValueError(f"{resolved}: unable to read message catalog ({exc})") from exc

        if not isinstance(loaded, Mapping):
            raise ValueError(
                f"{resolved}: expected top-level YAML mapping, got {type(loaded).__name__}"
            )
        unknown = sorted(str(key) for key in loaded if key not in {"schema_version", "messages"})
        if unknown:
            raise ValueError(f"{resolved}: unexpected fields: {unknown}")

        version = loaded.get("schema_version", MESSAGE_CATALOG_SCHEMA_VERSION)
        if version != MESSAGE_CATALOG_SCHEMA_VERSION:
            raise ValueError(
                f"{resolved}: unsupported schema_version {version!r} "
                f"(expected {MESSAGE_CATALOG_SCHEMA_VERSION})"
            )

        messages = loaded.get("messages", {})
        if not isinstance(messages, Mapping):
            raise ValueError(
                f"{resolved}.messages: expected mapping, got {type(messages).__name__}"
            )
        return cls({str(key): value for key, value in messages.items()}, source=str(resolved))

    def __contains__(self, key: object) -> bool:
        return key in self._messages

    def template(self, key: str) -> str:
        try:
            return self._messages[key]
        except KeyError:
            raise KeyError(f"unknown message key {key!r}") from None

    def render(self, key: str, **params: object) -> str:
        return self.template(key).format(**params)

    def to_dict(self) -> dict[str, str]:
        return dict(self._messages)


def install_catalog(catalog: MessageCatalog | None) -> None:
    """Install ``catalog`` process-wide; ``None`` restores the built-in defaults."""
    global _ACTIVE_CATALOG
    with _ACTIVE_LOCK:
        _ACTIVE_CATALOG = catalog


def active_catalog() -> MessageCatalog:
    global _ACTIVE_CATALOG
    with _ACTIVE_LOCK:
        if _ACTIVE_CATALOG is None:
            _ACTIVE_CATALOG = MessageCatalog()
        return _ACTIVE_CATALOG


def message(key: str, override: str | None = None, **params: object) -> str:
    """Render ``override`` when given, else the active catalog's template for ``key``.

    An override that does not format with the rule's params (``"use {a-z} only"``)
    is returned as written.
    """
    if override is not None:
        try:
            return override.format(**params)
        except (KeyError, IndexError, AttributeError, ValueError):
            return override
    return active_catalog().render(key, **params)


def _check_placeholders(
    template: str, allowed: frozenset[str], *, source: str, key: str
) -> None:
    try:
        fields = list(string.Formatter().parse(template))
    except ValueError as exc:
        raise ValueError(f"{source}: message {key!r} is not a valid template ({exc})") from exc
    for _literal, name, spec, conversion in fields:
        if name is None:
            continue
        root = _ARG_END.split(name, maxsplit=1)[0]
        if root not in allowed:
            expected = ", ".join(sorted(allowed))
            raise ValueError(
                f"{source}: message {key!r} uses unknown placeholder {{{root}}}; "
                f"expected one of: {expected}"
            )
        if conversion not in _CONVERSIONS:
            raise ValueError(f"{source}: message {key!r} uses unknown conversion !{conversion}")
        if spec:
            _check_placeholders(spec, allowed, source=source, key=key)


__all__ = [
    "DEFAULT_MESSAGES",
    "PLACEHOLDERS",
    "MessageCatalog",
    "active_catalog",
    "install_catalog",
    "message",
]
