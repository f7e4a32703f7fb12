"""Stable constants shared across formgate layers."""

from __future__ import annotations

from typing import Final

# Schema versions for persisted contracts.
CONFIG_SCHEMA_VERSION: Final[int] = 1
MESSAGE_CATALOG_SCHEMA_VERSION: Final[int] = 1

# Columns managed by the persistence layer; never declared or permitted by forms.
PRIMARY_KEY_COLUMN: Final[str] = "id"
CREATED_AT_COLUMN: Final[str] = "created_at"
UPDATED_AT_COLUMN: Final[str] = "updated_at"
RESERVED_COLUMN_NAMES: Final[frozenset[str]] = frozenset(
    {PRIMARY_KEY_COLUMN, CREATED_AT_COLUMN, UPDATED_AT_COLUMN}
)

# Raw boolean spellings accepted from request params.
BOOLEAN_TRUE: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
BOOLEAN_FALSE: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})

# Default config and runtime paths.
DEFAULT_CONFIG_FILE: Final[str] = "formgate.toml"
DEFAULT_DATABASE_PATH: Final[str] = "formgate.sqlite3"
ENV_PREFIX: Final[str] = "FORMGATE_"
DEFAULT_LOGGER_NAME: Final[str] = "formgate"

__all__ = [
    "BOOLEAN_FALSE",
    "BOOLEAN_TRUE",
    "CONFIG_SCHEMA_VERSION",
    "CREATED_AT_COLUMN",
    "DEFAULT_CONFIG_FILE",
    "DEFAULT_DATABASE_PATH",
    "DEFAULT_LOGGER_NAME",
    "ENV_PREFIX",
    "MESSAGE_CATALOG_SCHEMA_VERSION",
    "PRIMARY_KEY_COLUMN",
    "RESERVED_COLUMN_NAMES",
    "UPDATED_AT_COLUMN",
]
