"""Typed field containers holding raw input, coerced value, and error issues."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Generic, TypeVar

from formgate.domain.models import ColumnType

T = TypeVar("T")


class ErrorKind(StrEnum):
    """Error taxonomy shared by fields and form-level errors."""

    COERCION = "coercion"
    REQUIRED = "required"
    VALIDATION = "validation"
    CONFLICT = "conflict"
    FAILURE = "failure"


class ErrorPolicy(StrEnum):
    """How many errors a single field keeps during one validation run."""

    ACCUMULATE = "accumulate"
    FIRST_ONLY = "first_only"


@dataclass(frozen=True, slots=True)
class FieldIssue:
    """Single structured error attached to a field or to the form."""

    kind: ErrorKind
    message: str
    rule: str | None = None


class Field(Generic[T]):
    """One attribute's raw param value, coerced value, and ordered errors."""

    __slots__ = (
        "_coercion_issue",
        "_issues",
        "_param_value",
        "_policy",
        "name",
        "optional",
        "original_value",
        "permitted",
        "persisted",
        "type",
        "value",
    )

    def __init__(
        self,
        name: str,
        type: ColumnType,
        *,
        value: T | None = None,
        param_value: str | None = None,
        optional: bool = False,
        persisted: bool = True,
        permitted: bool = True,
        policy: ErrorPolicy = ErrorPolicy.ACCUMULATE,
    ) -> None:
        self.name = name
        self.type = ColumnType(type)
        self.value: T | None = value
        self.original_value: T | None = value
        self.optional = optional
        self.persisted = persisted
        self.permitted = permitted
        self._param_value = param_value
        self._policy = ErrorPolicy(policy)
        self._issues: list[FieldIssue] = []
        self._coercion_issue: FieldIssue | None = None

    def __repr__(self) -> str:
        return (
            f"Field(name={self.name!r}, type={self.type.value!r}, value={self.value!r}, "
            f"errors={list(self.errors)!r})"
        )

    @property
    def param_value(self) -> str | None:
        return self._param_value

    @property
    def errors(self) -> tuple[str, ...]:
        return tuple(issue.message for issue in self._issues)

    @property
    def issues(self) -> tuple[FieldIssue, ...]:
        return tuple(self._issues)

    @property
    def valid(self) -> bool:
        return not self._issues

    @property
    def changed(self) -> bool:
        return self.value != self.original_value

    @property
    def blank(self) -> bool:
        """True when the value is absent or an empty/whitespace string or collection."""
        value = self.value
        if value is None:
            return True
        if isinstance(value, str):
            return not value.strip()
        if isinstance(value, (list, tuple, dict, set, frozenset)):
            return not value
        return False

    def add_error(
        self,
        message: str,
        *,
        kind: ErrorKind = ErrorKind.VALIDATION,
        rule: str | None = None,
    ) -> None:
        if self._policy is ErrorPolicy.FIRST_ONLY and self._issues:
            return
        self._issues.append(FieldIssue(kind=ErrorKind(kind), message=message, rule=rule))

    def reset_errors(self) -> None:
        """Clear errors for a new run; a coercion failure is a property of the input and stays."""
        self._issues = [] if self._coercion_issue is None else [self._coercion_issue]

    def apply_param(self, raw: str | None, coerced_value: Any, error: str | None) -> None:
        """Record a raw param value and its coercion outcome (once per field)."""
        if self._param_value is not None:
            raise RuntimeError(f"param value for {self.name!r} is already set")
        self._param_value = raw
        if error is None:
            self.value = coerced_value
            self._coercion_issue = None
        else:
            self.value = None
            self._coercion_issue = FieldIssue(
                kind=ErrorKind.COERCION, message=error, rule="coercion"
            )
        self.reset_errors()


__all__ = ["ErrorKind", "ErrorPolicy", "Field", "FieldIssue"]
