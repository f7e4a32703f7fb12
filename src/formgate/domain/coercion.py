"""
Raw param coercion into typed column values.

Coercion never raises for bad input: every outcome is a ``Coerced`` value that
is either present, absent, or failed with a human-readable message. The form
layer turns failures into field errors so that one pass can surface every
problem at once.
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, date, datetime
from typing import Any, Final
from uuid import UUID

from formgate.constants import BOOLEAN_FALSE, BOOLEAN_TRUE
from formgate.domain.models import ColumnType

_INT_RE: Final[re.Pattern[str]] = re.compile(r"^[+-]?\d+$")

# Range of an SQLite INTEGER.
_INT_MIN: Final[int] = -(2**63)
_INT_MAX: Final[int] = 2**63 - 1

COERCION_MESSAGES: Final[dict[ColumnType, str]] = {
    ColumnType.STRING: "must be text",
    ColumnType.INT: "must be a number",
    ColumnType.FLOAT: "must be a decimal number",
    ColumnType.BOOL: "must be true or false",
    ColumnType.DATE: "must be a date (YYYY-MM-DD)",
    ColumnType.DATETIME: "must be a date and time",
    ColumnType.UUID: "must be a UUID",
    ColumnType.JSON: "must be valid JSON",
}


@dataclass(frozen=True, slots=True)
class Coerced:
    """Outcome of coercing one raw value."""

    value: Any = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def absent(self) -> bool:
        return self.error is None and self.value is None


_ABSENT: Final[Coerced] = Coerced()


class _Invalid(ValueError):
    pass


def coerce(column_type: ColumnType, raw: object) -> Coerced:
    """Coerce ``raw`` into the Python type for ``column_type``."""

    kind = ColumnType(column_type)
    if raw is None:
        return _ABSENT
    if kind is not ColumnType.STRING and isinstance(raw, str) and not raw.strip():
        return _ABSENT

    parser = _PARSERS[kind]
    try:
        return Coerced(value=parser(raw))
    except _Invalid:
        return Coerced(error=COERCION_MESSAGES[kind])


def _parse_string(raw: object) -> str:
    if isinstance(raw, str):
        return raw
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return str(raw)
    raise _Invalid


def _parse_int(raw: object) -> int:
    if isinstance(raw, bool):
        raise _Invalid
    if isinstance(raw, int):
        parsed = raw
    elif isinstance(raw, str) and _INT_RE.fullmatch(raw.strip()):
        try:
            parsed = int(raw.strip())
        except ValueError:
            # Digit strings beyond the interpreter's int conversion limit.
            raise _Invalid from None
    else:
        raise _Invalid
    if not _INT_MIN <= parsed <= _INT_MAX:
        raise _Invalid
    return parsed


def _parse_float(raw: object) -> float:
    if isinstance(raw, bool):
        raise _Invalid
    if isinstance(raw, (int, float)):
        parsed = float(raw)
    elif isinstance(raw, str):
        try:
            parsed = float(raw.strip())
        except ValueError:
            raise _Invalid from None
    else:
        raise _Invalid
    if not math.isfinite(parsed):
        raise _Invalid
    return parsed


def _parse_bool(raw: object) -> bool:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str):
        lowered = raw.strip().lower()
        if lowered in BOOLEAN_TRUE:
            return True
        if lowered in BOOLEAN_FALSE:
            return False
    raise _Invalid


def _parse_date(raw: object) -> date:
    if isinstance(raw, datetime):
        raise _Invalid
    if isinstance(raw, date):
        return raw
    if isinstance(raw, str):
        try:
            return date.fromisoformat(raw.strip())
        except ValueError:
            raise _Invalid from None
    raise _Invalid


def _parse_datetime(raw: object) -> datetime:
    if isinstance(raw, datetime):
        parsed = raw
    elif isinstance(raw, str):
        text = raw.strip()
        if text.endswith(("Z", "z")):
            text = f"{text[:-1]}+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise _Invalid from None
    else:
        raise _Invalid
    if parsed.tzinfo is None or parsed.utcoffset() is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def _parse_uuid(raw: object) -> UUID:
    if isinstance(raw, UUID):
        return raw
    if isinstance(raw, str):
        try:
            return UUID(raw.strip())
        except ValueError:
            raise _Invalid from None
    raise _Invalid


def _parse_json(raw: object) -> Any:
    if isinstance(raw, (dict, list)):
        return raw
    if isinstance(raw, str):
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            raise _Invalid from None
    raise _Invalid


_PARSERS: Final[dict[ColumnType, Callable[[object], Any]]] = {
    ColumnType.STRING: _parse_string,
    ColumnType.INT: _parse_int,
    ColumnType.FLOAT: _parse_float,
    ColumnType.BOOL: _parse_bool,
    ColumnType.DATE: _parse_date,
    ColumnType.DATETIME: _parse_datetime,
    ColumnType.UUID: _parse_uuid,
    ColumnType.JSON: _parse_json,
}


__all__ = ["COERCION_MESSAGES", "Coerced", "coerce"]
