"""Shared deterministic models, gateways, and builders for form tests."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Final

from formgate.domain.models import Column, ColumnType, ModelSchema, Record
from formgate.persistence.sqlite_gateway import SQLiteGateway
from formgate.persistence.state_db import StateDB

if TYPE_CHECKING:
    from pathlib import Path

USERS: Final[ModelSchema] = ModelSchema(
    table="users",
    columns=(
        Column("name", ColumnType.STRING),
        Column("email", ColumnType.STRING, nullable=True, unique=True),
        Column("age", ColumnType.INT, nullable=True),
        Column("role", ColumnType.STRING, default="member"),
        Column("admin", ColumnType.BOOL, default=False),
    ),
)


def make_gateway(tmp_path: Path, *models: ModelSchema) -> SQLiteGateway:
    gateway = SQLiteGateway(StateDB(tmp_path / "state" / "forms.sqlite3"))
    for model in models or (USERS,):
        gateway.create_table(model)
    return gateway


def insert_user(gateway: SQLiteGateway, **values: Any) -> Record:
    payload: dict[str, Any] = {"name": "Paul"}
    payload.update(values)
    return gateway.insert(USERS, payload)


class CountingGateway:
    """Pass-through gateway recording every call made by the form pipeline."""

    def __init__(self, inner: SQLiteGateway) -> None:
        self.inner = inner
        self.calls: list[str] = []

    @contextmanager
    def transaction(self) -> Iterator[None]:
        self.calls.append("transaction")
        with self.inner.transaction():
            yield

    def insert(self, model: ModelSchema, values: Mapping[str, Any]) -> Record:
        self.calls.append("insert")
        return self.inner.insert(model, values)

    def update(self, record: Record, values: Mapping[str, Any]) -> Record:
        self.calls.append("update")
        return self.inner.update(record, values)

    def exists(
        self,
        model: ModelSchema,
        column: str,
        value: object,
        *,
        exclude_id: int | None = None,
    ) -> bool:
        self.calls.append("exists")
        return self.inner.exists(model, column, value, exclude_id=exclude_id)

    @property
    def writes(self) -> list[str]:
        return [call for call in self.calls if call in {"insert", "update"}]


__all__ = ["USERS", "CountingGateway", "insert_user", "make_gateway"]
