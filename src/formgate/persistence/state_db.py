"""
formgate — SQLite connection lifecycle and transaction boundaries

File: src/formgate/persistence/state_db.py

Purpose
- Short-lived, consistently configured SQLite connections.
- Atomic transactions with savepoint nesting shared by everything in scope.

What should be included in this file
- Busy timeout handling with bounded retries.
- Actionable error classes for busy/corrupt databases.
- Backup and integrity-check helpers.

Functional requirements
- Statements executed while a transaction is open in the current context must
  join that transaction, so a form save commits or rolls back as one unit.
- ``sqlite3.IntegrityError`` is never wrapped; callers translate it.

Non-functional requirements
- Must avoid long-lived locks.
"""

from __future__ import annotations

import contextvars
import json
import sqlite3
import time
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Final, NoReturn

SQLValue = str | int | float | bytes | None
SQLParams = Sequence[SQLValue]
RowValue = str | int | float | bytes | None

DEFAULT_BUSY_TIMEOUT_MS: Final[int] = 5_000
DEFAULT_BUSY_RETRY_LIMIT: Final[int] = 4
DEFAULT_BUSY_RETRY_BACKOFF_MS: Final[int] = 25

_CONNECTION_PRAGMAS: Final[tuple[str, ...]] = ("foreign_keys=ON", "synchronous=NORMAL")

# Matched against ``sqlite3.Error.sqlite_errorname`` (extended codes share the prefix).
_BUSY_ERROR_NAMES: Final[tuple[str, ...]] = ("SQLITE_BUSY", "SQLITE_LOCKED")
_CORRUPT_ERROR_NAMES: Final[tuple[str, ...]] = ("SQLITE_CORRUPT", "SQLITE_NOTADB")

# Fallback when the driver does not expose an error name.
_BUSY_MESSAGES: Final[tuple[str, ...]] = ("is locked",)
_CORRUPT_MESSAGES: Final[tuple[str, ...]] = ("malformed", "not a database")


class StateDBError(RuntimeError):
    """Base class for persistence DB errors."""


class StateDBBusyError(StateDBError):
    """Raised when bounded busy retries are exhausted."""


class StateDBCorruptionError(StateDBError):
    """Raised when SQLite reports possible corruption."""


@dataclass(slots=True)
class _Scope:
    """Connection owned by the outermost open transaction, plus its savepoint depth."""

    conn: sqlite3.Connection
    depth: int = 0


class StateDB:
    """SQLite database file opened per unit of work.

    ``transaction()`` binds its connection to the current context; ``execute``,
    ``query_one`` and ``query_all`` join it instead of opening their own, and a
    nested ``transaction()`` becomes a savepoint.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
        busy_retry_limit: int = DEFAULT_BUSY_RETRY_LIMIT,
        busy_retry_backoff_ms: int = DEFAULT_BUSY_RETRY_BACKOFF_MS,
    ) -> None:
        tuning = {
            "busy_timeout_ms": busy_timeout_ms,
            "busy_retry_limit": busy_retry_limit,
            "busy_retry_backoff_ms": busy_retry_backoff_ms,
        }
        for name, value in tuning.items():
            if value < 0:
                raise ValueError(f"{name} must be >= 0, got {value}")

        self._path = Path(path).expanduser()
        self._busy_timeout_ms = busy_timeout_ms
        self._attempts = busy_retry_limit + 1
        self._backoff_s = busy_retry_backoff_ms / 1000.0
        self._scope: contextvars.ContextVar[_Scope | None] = contextvars.ContextVar(
            f"formgate_state_db_{id(self)}", default=None
        )

    @property
    def path(self) -> Path:
        return self._path

    @property
    def in_transaction(self) -> bool:
        return self._scope.get() is not None

    def connect(self) -> sqlite3.Connection:
        """Open a new connection in autocommit mode with WAL and the busy timeout set."""

        self._path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(
            self._path,
            timeout=self._busy_timeout_ms / 1000.0,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        try:
            for pragma in (*_CONNECTION_PRAGMAS, f"busy_timeout={self._busy_timeout_ms}"):
                conn.execute(f"PRAGMA {pragma}")
            mode = conn.execute("PRAGMA journal_mode=WAL").fetchone()
        except sqlite3.Error as exc:
            conn.close()
            self._raise_wrapped(exc, "open connection")
        if mode is None or str(mode[0]).lower() != "wal":
            conn.close()
            raise StateDBError(f"{self._path}: journal_mode must be WAL, got {mode!r}")
        return conn

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """The transaction's connection when one is open, else a fresh one closed on exit."""

        scope = self._scope.get()
        if scope is not None:
            yield scope.conn
            return
        conn = self.connect()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(
        self,
        *,
        conn: sqlite3.Connection | None = None,
        immediate: bool = True,
    ) -> Iterator[sqlite3.Connection]:
        scope = self._scope.get()
        if scope is not None and (conn is None or conn is scope.conn):
            with self._nested(scope):
                yield scope.conn
            return

        owned = conn is None
        active = self.connect() if conn is None else conn
        scope = _Scope(active)
        token = self._scope.set(scope)
        try:
            if active.in_transaction:
                with self._nested(scope):
                    yield active
                return
            self._run(active, "BEGIN IMMEDIATE" if immediate else "BEGIN", (), "begin transaction")
            try:
                yield active
            except BaseException:
                self._run(active, "ROLLBACK", (), "rollback transaction")
                raise
            self._run(active, "COMMIT", (), "commit transaction")
        finally:
            self._scope.reset(token)
            if owned:
                active.close()

    def execute(
        self,
        sql: str,
        params: SQLParams = (),
        *,
        conn: sqlite3.Connection | None = None,
    ) -> sqlite3.Cursor:
        """Run one write statement; outside a transaction it gets its own."""

        target = conn
        if target is None:
            scope = self._scope.get()
            target = None if scope is None else scope.conn
        if target is not None:
            return self._run(target, sql, params, "execute statement")
        with self.transaction() as txn:
            return self._run(txn, sql, params, "execute statement")

    def executescript(self, statements: Iterable[str]) -> None:
        with self.transaction() as txn:
            for statement in statements:
                self._run(txn, statement, (), "execute script")

    def query_all(
        self,
        sql: str,
        params: SQLParams = (),
        *,
        conn: sqlite3.Connection | None = None,
    ) -> list[dict[str, RowValue]]:
        with self._reading(conn) as reader:
            rows = self._run(reader, sql, params, "query all").fetchall()
        return [dict(zip(row.keys(), row, strict=True)) for row in rows]

    def query_one(
        self,
        sql: str,
        params: SQLParams = (),
        *,
        conn: sqlite3.Connection | None = None,
    ) -> dict[str, RowValue] | None:
        with self._reading(conn) as reader:
            row = self._run(reader, sql, params, "query one").fetchone()
        return None if row is None else dict(zip(row.keys(), row, strict=True))

    def backup(self, destination: str | Path) -> Path:
        """Copy the live database into ``destination`` using SQLite's online backup."""

        target = Path(destination).expanduser()
        target.parent.mkdir(parents=True, exist_ok=True)
        with self.connection() as source:
            dest = sqlite3.connect(target)
            try:
                source.backup(dest)
            finally:
                dest.close()
        return target

    def integrity_check(self, *, max_errors: int = 100) -> tuple[str, ...]:
        """Problems reported by ``PRAGMA integrity_check``; empty for a healthy file."""

        rows = self.query_all(f"PRAGMA integrity_check({int(max_errors)})")
        problems = tuple(str(value) for row in rows for value in row.values())
        return () if problems == ("ok",) else problems

    @contextmanager
    def _reading(self, conn: sqlite3.Connection | None) -> Iterator[sqlite3.Connection]:
        if conn is not None:
            yield conn
            return
        with self.connection() as reader:
            yield reader

    @contextmanager
    def _nested(self, scope: _Scope) -> Iterator[None]:
        scope.depth += 1
        name = f"formgate_sp_{scope.depth}"
        self._run(scope.conn, f"SAVEPOINT {name}", (), "savepoint")
        try:
            yield
        except BaseException:
            self._run(scope.conn, f"ROLLBACK TO SAVEPOINT {name}", (), "rollback to savepoint")
            raise
        finally:
            self._run(scope.conn, f"RELEASE SAVEPOINT {name}", (), "release savepoint")
            scope.depth -= 1

    def _run(
        self,
        conn: sqlite3.Connection,
        sql: str,
        params: SQLParams,
        operation: str,
    ) -> sqlite3.Cursor:
        attempt = 0
        while True:
            try:
                return conn.execute(sql, tuple(params))
            except sqlite3.IntegrityError:
                raise
            except sqlite3.Error as exc:
                attempt += 1
                if _is_busy(exc) and attempt < self._attempts:
                    time.sleep(self._backoff_s * 2 ** (attempt - 1))
                    continue
                self._raise_wrapped(exc, operation, attempts=attempt)

    def _raise_wrapped(
        self, exc: sqlite3.Error, operation: str, *, attempts: int = 1
    ) -> NoReturn:
        if _matches(exc, _CORRUPT_ERROR_NAMES, _CORRUPT_MESSAGES):
            raise StateDBCorruptionError(
                f"{operation} failed for {self._path}: {exc}; run integrity_check() "
                "and restore from a backup() copy"
            ) from exc
        if _is_busy(exc):
            raise StateDBBusyError(
                f"{operation} failed for {self._path}: still busy after "
                f"{attempts} attempt(s): {exc}"
            ) from exc
        raise StateDBError(f"{operation} failed for {self._path}: {exc}") from exc


def _matches(exc: sqlite3.Error, names: tuple[str, ...], messages: tuple[str, ...]) -> bool:
    error_name = getattr(exc, "sqlite_errorname", None)
    if isinstance(error_name, str) and error_name.startswith(names):
        return True
    text = str(exc).lower()
    return any(fragment in text for fragment in messages)


def _is_busy(exc: sqlite3.Error) -> bool:
    return _matches(exc, _BUSY_ERROR_NAMES, _BUSY_MESSAGES)


def canonical_json(value: object) -> str:
    """Deterministic JSON for persisted payloads."""

    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


__all__ = [
    "DEFAULT_BUSY_RETRY_BACKOFF_MS",
    "DEFAULT_BUSY_RETRY_LIMIT",
    "DEFAULT_BUSY_TIMEOUT_MS",
    "RowValue",
    "SQLParams",
    "SQLValue",
    "StateDB",
    "StateDBBusyError",
    "StateDBCorruptionError",
    "StateDBError",
    "canonical_json",
]
