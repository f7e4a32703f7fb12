"""
formgate — domain layer

File: src/formgate/domain/__init__.py

Purpose
- Domain types shared across layers: ModelSchema, Column, Record, Field, coercion.

What should be included in this file
- Re-export of core domain types for convenience.
- Keep the domain layer free of IO side effects.

Functional requirements
- Coercion never raises for bad input; failures are values.

Non-functional requirements
- Domain layer should have no third-party dependencies.
"""

from formgate.domain.coercion import COERCION_MESSAGES, Coerced, coerce
from formgate.domain.fields import ErrorKind, ErrorPolicy, Field, FieldIssue
from formgate.domain.models import Column, ColumnType, ModelSchema, Record, to_jsonable

__all__ = [
    "COERCION_MESSAGES",
    "Coerced",
    "Column",
    "ColumnType",
    "ErrorKind",
    "ErrorPolicy",
    "Field",
    "FieldIssue",
    "ModelSchema",
    "Record",
    "coerce",
    "to_jsonable",
]
