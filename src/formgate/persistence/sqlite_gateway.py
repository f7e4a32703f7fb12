"""Reference persistence gateway storing model records in SQLite."""

from __future__ import annotations

import json
import re
import sqlite3
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from datetime import UTC, date, datetime
from typing import Any, Final, TypeVar
from uuid import UUID

from formgate.constants import CREATED_AT_COLUMN, PRIMARY_KEY_COLUMN, UPDATED_AT_COLUMN
from formgate.domain.models import Column, ColumnType, ModelSchema, Record, to_jsonable
from formgate.persistence.gateway import StorageConflict, StorageFailure
from formgate.persistence.state_db import RowValue, SQLValue, StateDB, StateDBError, canonical_json

T = TypeVar("T")

_CONSTRAINT_RE: Final[re.Pattern[str]] = re.compile(
    r"(?P<kind>UNIQUE|NOT NULL|CHECK|FOREIGN KEY) constraint failed(?::\s*(?P<target>.+))?",
    re.IGNORECASE,
)

_SQL_TYPES: Final[dict[ColumnType, str]] = {
    ColumnType.STRING: "TEXT",
    ColumnType.INT: "INTEGER",
    ColumnType.FLOAT: "REAL",
    ColumnType.BOOL: "INTEGER",
    ColumnType.DATE: "TEXT",
    ColumnType.DATETIME: "TEXT",
    ColumnType.UUID: "TEXT",
    ColumnType.JSON: "TEXT",
}


class SQLiteGateway:
    """Persistence gateway over a :class:`StateDB`.

    Every write runs inside ``StateDB.transaction()`` and therefore joins a
    transaction opened by :meth:`transaction` in the same context.
    """

    def __init__(self, db: StateDB) -> None:
        self._db = db

    @property
    def db(self) -> StateDB:
        return self._db

    @contextmanager
    def transaction(self) -> Iterator[None]:
        try:
            with self._db.transaction():
                yield
        except StateDBError as exc:
            raise StorageFailure(str(exc)) from exc

    def create_table(self, model: ModelSchema) -> None:
        """Create the table for ``model`` when it does not exist yet."""

        self._run(lambda: self._db.executescript((create_table_sql(model),)), model=model)

    def insert(self, model: ModelSchema, values: Mapping[str, Any]) -> Record:
        row = _encode_values(model, values)
        if model.timestamps:
            now = _utc_now()
            row[CREATED_AT_COLUMN] = _encode_datetime(now)
            row[UPDATED_AT_COLUMN] = _encode_datetime(now)

        names = list(row)
        if names:
            sql = (
                f"INSERT INTO {model.table} ({', '.join(names)}) "
                f"VALUES ({', '.join('?' for _ in names)})"
            )
        else:
            sql = f"INSERT INTO {model.table} DEFAULT VALUES"

        def _write() -> Record:
            with self._db.transaction() as conn:
                cursor = self._db.execute(sql, tuple(row[name] for name in names), conn=conn)
                record_id = cursor.lastrowid
                if record_id is None:
                    raise StorageFailure(f"insert into {model.table} returned no row id")
                return self._require(model, int(record_id), conn=conn)

        return self._run(_write, model=model)

    def update(self, record: Record, values: Mapping[str, Any]) -> Record:
        model = record.model
        row = _encode_values(model, values)
        if model.timestamps and row:
            row[UPDATED_AT_COLUMN] = _encode_datetime(_utc_now())
        if not row:
            return record

        assignments = ", ".join(f"{name} = ?" for name in row)
        sql = f"UPDATE {model.table} SET {assignments} WHERE {PRIMARY_KEY_COLUMN} = ?"

        def _write() -> Record:
            with self._db.transaction() as conn:
                cursor = self._db.execute(sql, (*row.values(), record.id), conn=conn)
                if cursor.rowcount != 1:
                    raise StorageConflict(
                        f"{model.table} record {record.id} no longer exists",
                        constraint="record_missing",
                    )
                return self._require(model, record.id, conn=conn)

        return self._run(_write, model=model)

    def exists(
        self,
        model: ModelSchema,
        column: str,
        value: object,
        *,
        exclude_id: int | None = None,
    ) -> bool:
        encoded = _encode_value(model.column(column), value)
        sql = f"SELECT 1 FROM {model.table} WHERE {column} = ?"
        params: list[SQLValue] = [encoded]
        if exclude_id is not None:
            sql += f" AND {PRIMARY_KEY_COLUMN} <> ?"
            params.append(exclude_id)
        sql += " LIMIT 1"
        return self._run(lambda: self._db.query_one(sql, params) is not None, model=model)

    def find(self, model: ModelSchema, record_id: int) -> Record | None:
        row = self._run(
            lambda: self._db.query_one(
                f"SELECT * FROM {model.table} WHERE {PRIMARY_KEY_COLUMN} = ?", (record_id,)
            ),
            model=model,
        )
        return None if row is None else _decode_row(model, row)

    def all(self, model: ModelSchema) -> list[Record]:
        rows = self._run(
            lambda: self._db.query_all(
                f"SELECT * FROM {model.table} ORDER BY {PRIMARY_KEY_COLUMN} ASC"
            ),
            model=model,
        )
        return [_decode_row(model, row) for row in rows]

    def count(self, model: ModelSchema) -> int:
        row = self._run(
            lambda: self._db.query_one(f"SELECT COUNT(*) AS total FROM {model.table}"),
            model=model,
        )
        return 0 if row is None else int(row["total"] or 0)

    def _require(self, model: ModelSchema, record_id: int, *, conn: sqlite3.Connection) -> Record:
        row = self._db.query_one(
            f"SELECT * FROM {model.table} WHERE {PRIMARY_KEY_COLUMN} = ?",
            (record_id,),
            conn=conn,
        )
        if row is None:
            raise StorageFailure(f"{model.table} record {record_id} vanished after write")
        return _decode_row(model, row)

    def _run(self, operation: Callable[[], T], *, model: ModelSchema) -> T:
        try:
            return operation()
        except sqlite3.IntegrityError as exc:
            raise translate_integrity_error(exc, model) from exc
        except StateDBError as exc:
            raise StorageFailure(str(exc)) from exc
        except OverflowError as exc:
            # sqlite3 rejects Python ints outside the 64-bit INTEGER range.
            raise StorageFailure(f"{model.table}: value out of range for storage: {exc}") from exc


def translate_integrity_error(exc: sqlite3.IntegrityError, model: ModelSchema) -> StorageConflict:
    """Map an SQLite constraint violation onto a (possibly column-attributed) conflict."""

    text = str(exc)
    matched = _CONSTRAINT_RE.search(text)
    if matched is None:
        return StorageConflict(text)

    kind = matched.group("kind").lower().replace(" ", "_")
    target = matched.group("target") or ""
    columns = [
        part.strip().split(".", 1)[-1]
        for part in target.split(",")
        if part.strip().startswith(f"{model.table}.")
    ]
    field = columns[0] if len(columns) == 1 and columns[0] in model else None
    return StorageConflict(text, field=field, constraint=kind)


def create_table_sql(model: ModelSchema) -> str:
    lines = [f"{PRIMARY_KEY_COLUMN} INTEGER PRIMARY KEY AUTOINCREMENT"]
    for column in model.columns:
        parts = [column.name, _SQL_TYPES[column.type]]
        if not column.nullable:
            parts.append("NOT NULL")
        if column.unique:
            parts.append("UNIQUE")
        if column.has_default and column.default is not None:
            parts.append(f"DEFAULT {_sql_literal(_encode_value(column, column.default))}")
        lines.append(" ".join(parts))
    if model.timestamps:
        lines.append(f"{CREATED_AT_COLUMN} TEXT NOT NULL")
        lines.append(f"{UPDATED_AT_COLUMN} TEXT NOT NULL")
    body = ",\n    ".join(lines)
    return f"CREATE TABLE IF NOT EXISTS {model.table} (\n    {body}\n)"


def _sql_literal(value: SQLValue) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, bytes):
        return f"X'{value.hex()}'"
    escaped = value.replace("'", "''")
    return f"'{escaped}'"


def _encode_values(model: ModelSchema, values: Mapping[str, Any]) -> dict[str, SQLValue]:
    encoded: dict[str, SQLValue] = {}
    for name, value in values.items():
        if name not in model:
            raise StorageFailure(f"{model.table} has no column {name!r}")
        encoded[name] = _encode_value(model.column(name), value)
    return encoded


def _encode_value(column: Column, value: object) -> SQLValue:
    if value is None:
        return None
    kind = column.type
    if kind is ColumnType.BOOL:
        return 1 if value else 0
    if kind is ColumnType.DATETIME and isinstance(value, datetime):
        return _encode_datetime(value)
    if kind is ColumnType.DATE and isinstance(value, date):
        return value.isoformat()
    if kind is ColumnType.UUID:
        return str(value)
    if kind is ColumnType.JSON:
        return canonical_json(to_jsonable(value))
    if isinstance(value, (str, int, float, bytes)):
        return value
    raise StorageFailure(
        f"cannot store {type(value).__name__} in {kind.value} column {column.name!r}"
    )


def _decode_row(model: ModelSchema, row: Mapping[str, RowValue]) -> Record:
    attributes: dict[str, Any] = {}
    for column in model.columns:
        attributes[column.name] = _decode_value(column.type, row.get(column.name))
    if model.timestamps:
        for name in (CREATED_AT_COLUMN, UPDATED_AT_COLUMN):
            attributes[name] = _decode_value(ColumnType.DATETIME, row.get(name))
    record_id = row.get(PRIMARY_KEY_COLUMN)
    if not isinstance(record_id, int):
        raise StorageFailure(f"{model.table} row is missing an integer id")
    return Record(model=model, id=record_id, attributes=attributes)


def _decode_value(kind: ColumnType, raw: RowValue) -> Any:
    if raw is None:
        return None
    if kind is ColumnType.BOOL:
        return bool(raw)
    if kind is ColumnType.FLOAT:
        return float(raw)  # type: ignore[arg-type]
    if kind is ColumnType.DATE:
        return date.fromisoformat(str(raw))
    if kind is ColumnType.DATETIME:
        return datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    if kind is ColumnType.UUID:
        return UUID(str(raw))
    if kind is ColumnType.JSON:
        return json.loads(str(raw))
    return raw


def _encode_datetime(value: datetime) -> str:
    if value.tzinfo is None or value.utcoffset() is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")


def _utc_now() -> datetime:
    return datetime.now(UTC)


__all__ = ["SQLiteGateway", "create_table_sql", "translate_integrity_error"]
