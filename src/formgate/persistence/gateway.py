"""
formgate — persistence gateway contract

File: src/formgate/persistence/gateway.py

Purpose
- Protocol the form pipeline persists through, and the storage error taxonomy.

What should be included in this file
- ``PersistenceGateway``: transaction boundary plus insert/update/exists.
- ``StorageError`` hierarchy distinguishing constraint conflicts from generic failures.

Functional requirements
- ``insert``/``update`` called inside ``transaction()`` must commit or roll back together
  with everything else executed in that scope.
- Constraint-class failures must name the offending column when it is known.

Non-functional requirements
- No storage technology assumptions in this module.
"""

from __future__ import annotations

from collections.abc import Mapping
from contextlib import AbstractContextManager
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from formgate.domain.models import ModelSchema, Record


class StorageError(Exception):
    """Base class for failures reported by a persistence gateway."""


class StorageConflict(StorageError):
    """Constraint/validation-class failure, attributable to a column when ``field`` is set."""

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        constraint: str | None = None,
    ) -> None:
        super().__init__(message)
        self.field = field
        self.constraint = constraint


class StorageFailure(StorageError):
    """Generic storage failure that cannot be attributed to a field."""


@runtime_checkable
class PersistenceGateway(Protocol):
    def transaction(self) -> AbstractContextManager[Any]: ...

    def insert(self, model: ModelSchema, values: Mapping[str, Any]) -> Record: ...

    def update(self, record: Record, values: Mapping[str, Any]) -> Record: ...

    def exists(
        self,
        model: ModelSchema,
        column: str,
        value: object,
        *,
        exclude_id: int | None = None,
    ) -> bool: ...


__all__ = [
    "PersistenceGateway",
    "StorageConflict",
    "StorageError",
    "StorageFailure",
]
