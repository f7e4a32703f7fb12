"""
formgate — persistence layer

File: src/formgate/persistence/__init__.py

Purpose
- Persistence gateway protocol, storage error taxonomy, and the reference SQLite adapter.

Functional requirements
- Writes performed inside a gateway transaction commit or roll back together.

Non-functional requirements
- SQLite-first; avoid heavy DB dependencies.
"""

from formgate.persistence.gateway import (
    PersistenceGateway,
    StorageConflict,
    StorageError,
    StorageFailure,
)
from formgate.persistence.sqlite_gateway import SQLiteGateway, create_table_sql
from formgate.persistence.state_db import (
    StateDB,
    StateDBBusyError,
    StateDBCorruptionError,
    StateDBError,
)

__all__ = [
    "PersistenceGateway",
    "SQLiteGateway",
    "StateDB",
    "StateDBBusyError",
    "StateDBCorruptionError",
    "StateDBError",
    "StorageConflict",
    "StorageError",
    "StorageFailure",
    "create_table_sql",
]
