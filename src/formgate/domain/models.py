"""Model schemas and persisted records with strict declaration checks."""

from __future__ import annotations

import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import StrEnum
from types import MappingProxyType
from typing import Any, NoReturn
from uuid import UUID

from formgate.constants import (
    CREATED_AT_COLUMN,
    PRIMARY_KEY_COLUMN,
    RESERVED_COLUMN_NAMES,
    UPDATED_AT_COLUMN,
)

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

_IDENTIFIER_RE = re.compile(r"^[a-z_][a-z0-9_]*$")
_UNSET: Any = object()


class ColumnType(StrEnum):
    STRING = "string"
    INT = "int"
    FLOAT = "float"
    BOOL = "bool"
    DATE = "date"
    DATETIME = "datetime"
    UUID = "uuid"
    JSON = "json"


def _fail(path: str, message: str) -> NoReturn:
    raise ValueError(f"{path}: {message}")


def validate_identifier(value: object, path: str) -> str:
    """Return ``value`` when it is a lowercase snake_case identifier."""

    if not isinstance(value, str):
        _fail(path, f"expected string, got {type(value).__name__}")
    if not _IDENTIFIER_RE.fullmatch(value):
        _fail(path, f"invalid identifier {value!r}; expected lowercase snake_case")
    return value


@dataclass(frozen=True, slots=True)
class Column:
    """A typed, persisted attribute of a model."""

    name: str
    type: ColumnType
    nullable: bool = False
    unique: bool = False
    default: Any = _UNSET

    def __post_init__(self) -> None:
        validate_identifier(self.name, "Column.name")
        object.__setattr__(self, "type", ColumnType(self.type))

    @property
    def has_default(self) -> bool:
        return self.default is not _UNSET

    @property
    def optional(self) -> bool:
        """Whether absence is acceptable when inserting a new row."""
        return self.nullable or self.has_default


@dataclass(frozen=True, slots=True)
class ModelSchema:
    """Table name plus ordered column declarations.

    Every model carries an integer ``id`` primary key. When ``timestamps`` is
    enabled the persistence layer also manages ``created_at`` and
    ``updated_at``; neither may be declared as a regular column.
    """

    table: str
    columns: tuple[Column, ...]
    timestamps: bool = True
    _by_name: Mapping[str, Column] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        validate_identifier(self.table, "ModelSchema.table")
        columns = tuple(self.columns)
        if not columns:
            _fail(f"ModelSchema({self.table}).columns", "at least one column is required")

        by_name: dict[str, Column] = {}
        for column in columns:
            if not isinstance(column, Column):
                _fail(
                    f"ModelSchema({self.table}).columns",
                    f"expected Column, got {type(column).__name__}",
                )
            if column.name in RESERVED_COLUMN_NAMES:
                _fail(
                    f"ModelSchema({self.table}).{column.name}",
                    "column name is reserved for the persistence layer",
                )
            if column.name in by_name:
                _fail(f"ModelSchema({self.table}).{column.name}", "duplicate column")
            by_name[column.name] = column

        object.__setattr__(self, "columns", columns)
        object.__setattr__(self, "_by_name", MappingProxyType(by_name))

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def column(self, name: str) -> Column:
        try:
            return self._by_name[name]
        except KeyError:
            raise KeyError(f"{self.table} has no column {name!r}") from None

    @property
    def column_names(self) -> tuple[str, ...]:
        return tuple(column.name for column in self.columns)

    @property
    def managed_columns(self) -> tuple[str, ...]:
        if self.timestamps:
            return (PRIMARY_KEY_COLUMN, CREATED_AT_COLUMN, UPDATED_AT_COLUMN)
        return (PRIMARY_KEY_COLUMN,)


@dataclass(frozen=True, slots=True)
class Record:
    """Immutable persisted entity returned by a persistence gateway."""

    model: ModelSchema
    id: int
    attributes: Mapping[str, Any]

    def __post_init__(self) -> None:
        if isinstance(self.id, bool) or not isinstance(self.id, int) or self.id < 1:
            _fail(f"Record({self.model.table}).id", "must be a positive integer")
        unknown = sorted(
            name
            for name in self.attributes
            if name not in self.model and name not in self.model.managed_columns
        )
        if unknown:
            _fail(f"Record({self.model.table})", f"unknown attributes: {unknown}")
        object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))

    def __getattr__(self, name: str) -> Any:
        # Only reached for names that are not dataclass slots.
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self.attributes[name]
        except KeyError:
            raise AttributeError(f"{self.model.table} record has no attribute {name!r}") from None

    def __getitem__(self, name: str) -> Any:
        if name == PRIMARY_KEY_COLUMN:
            return self.id
        return self.attributes[name]

    def __iter__(self) -> Iterator[str]:
        yield PRIMARY_KEY_COLUMN
        yield from self.attributes

    def get(self, name: str, default: Any = None) -> Any:
        if name == PRIMARY_KEY_COLUMN:
            return self.id
        return self.attributes.get(name, default)

    def to_dict(self) -> dict[str, JSONValue]:
        payload: dict[str, JSONValue] = {PRIMARY_KEY_COLUMN: self.id}
        for name in sorted(self.attributes):
            payload[name] = to_jsonable(self.attributes[name])
        return payload


def to_jsonable(value: object) -> JSONValue:
    """Convert a typed attribute value into a JSON-compatible value."""

    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, datetime):
        return value.isoformat(timespec="microseconds").replace("+00:00", "Z")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Mapping):
        return {str(key): to_jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(item) for item in value]
    raise TypeError(f"value of type {type(value).__name__} is not JSON serializable")


__all__ = [
    "Column",
    "ColumnType",
    "JSONScalar",
    "JSONValue",
    "ModelSchema",
    "Record",
    "to_jsonable",
    "validate_identifier",
]
