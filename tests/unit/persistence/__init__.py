"""Shared deterministic models and builders for persistence tests."""

from __future__ import annotations

from typing import TYPE_CHECKING, Final

from formgate.domain.models import Column, ColumnType, ModelSchema
from formgate.persistence.sqlite_gateway import SQLiteGateway
from formgate.persistence.state_db import StateDB

if TYPE_CHECKING:
    from pathlib import Path

NOTES: Final[ModelSchema] = ModelSchema(
    table="notes",
    columns=(
        Column("title", ColumnType.STRING),
        Column("slug", ColumnType.STRING, unique=True),
        Column("pinned", ColumnType.BOOL, default=False),
        Column("rating", ColumnType.FLOAT, nullable=True),
        Column("due", ColumnType.DATE, nullable=True),
        Column("remind_at", ColumnType.DATETIME, nullable=True),
        Column("token", ColumnType.UUID, nullable=True),
        Column("meta", ColumnType.JSON, nullable=True),
    ),
)

COUNTERS: Final[ModelSchema] = ModelSchema(
    table="counters",
    columns=(Column("label", ColumnType.STRING, nullable=True),),
    timestamps=False,
)


def make_db(tmp_path: Path, name: str = "formgate.sqlite3") -> StateDB:
    return StateDB(tmp_path / "state" / name, busy_timeout_ms=1_234)


def make_notes_gateway(tmp_path: Path) -> SQLiteGateway:
    gateway = SQLiteGateway(make_db(tmp_path))
    gateway.create_table(NOTES)
    gateway.create_table(COUNTERS)
    return gateway


def note_values(seed: int, **overrides: object) -> dict[str, object]:
    values: dict[str, object] = {"title": f"Note {seed}", "slug": f"note-{seed}"}
    values.update(overrides)
    return values


__all__ = ["COUNTERS", "NOTES", "make_db", "make_notes_gateway", "note_values"]
