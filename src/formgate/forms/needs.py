"""
formgate — operation-scoped dependency injection for forms

File: src/formgate/forms/needs.py

Purpose
- Declare external context values ("needs") a form requires but which never
  come from request params, scoped to the operations that may read them.

What should be included in this file
- ``NeedScope`` / ``Operation`` enums and the coverage relation between them.
- ``Need`` declaration type.
- ``NeedsView``: the per-form, per-operation read-only view of supplied needs.

Functional requirements
- Missing required needs, needs supplied outside their scope, and undeclared
  needs are rejected when the form is constructed.
- Reading a need outside the current operation's scope raises ``NeedScopeError``;
  ``get`` returns the default instead.

Non-functional requirements
- Deterministic error messages (sorted names).
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from enum import StrEnum
from types import MappingProxyType
from typing import Any, Final

from formgate.forms.errors import NeedScopeError, NeedsError


class Operation(StrEnum):
    BUILD = "build"
    CREATE = "create"
    UPDATE = "update"


class NeedScope(StrEnum):
    ALWAYS = "always"
    CREATE = "create"
    UPDATE = "update"
    SAVE = "save"

    def covers(self, operation: Operation) -> bool:
        return Operation(operation) in _SCOPE_COVERAGE[self]


_SCOPE_COVERAGE: Final[Mapping[NeedScope, frozenset[Operation]]] = MappingProxyType(
    {
        NeedScope.ALWAYS: frozenset(Operation),
        NeedScope.CREATE: frozenset({Operation.CREATE}),
        NeedScope.UPDATE: frozenset({Operation.UPDATE}),
        NeedScope.SAVE: frozenset({Operation.CREATE, Operation.UPDATE}),
    }
)


@dataclass(frozen=True, slots=True)
class Need:
    name: str
    scope: NeedScope = NeedScope.ALWAYS
    optional: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "scope", NeedScope(self.scope))


_MISSING: Any = object()


class NeedsView:
    """Read-only need values visible to one operation."""

    __slots__ = ("_declared", "_operation", "_values")

    def __init__(
        self,
        declared: Mapping[str, Need],
        operation: Operation,
        values: Mapping[str, object],
    ) -> None:
        self._declared = MappingProxyType(dict(declared))
        self._operation = Operation(operation)
        self._values = MappingProxyType(dict(values))

    @classmethod
    def resolve(
        cls,
        declared: Mapping[str, Need],
        operation: Operation,
        supplied: Mapping[str, object],
        *,
        owner: str,
    ) -> NeedsView:
        """Validate ``supplied`` against ``declared`` for ``operation``."""

        operation = Operation(operation)
        problems: list[str] = []

        undeclared = sorted(name for name in supplied if name not in declared)
        if undeclared:
            problems.append(f"undeclared needs: {undeclared}")

        out_of_scope = sorted(
            name
            for name, need in declared.items()
            if name in supplied and not need.scope.covers(operation)
        )
        if out_of_scope:
            problems.append(f"needs not in scope for {operation.value}: {out_of_scope}")

        missing = sorted(
            name
            for name, need in declared.items()
            if need.scope.covers(operation) and not need.optional and name not in supplied
        )
        if missing:
            problems.append(f"missing needs for {operation.value}: {missing}")

        if problems:
            raise NeedsError(f"{owner}: " + "; ".join(problems))
        return cls(declared, operation, supplied)

    @property
    def operation(self) -> Operation:
        return self._operation

    def in_scope(self, name: str) -> bool:
        need = self._declared.get(name)
        return need is not None and need.scope.covers(self._operation)

    def __getitem__(self, name: str) -> Any:
        need = self._declared.get(name)
        if need is None:
            raise NeedScopeError(f"no need named {name!r} is declared")
        if not need.scope.covers(self._operation):
            raise NeedScopeError(
                f"need {name!r} (scope {need.scope.value}) is not available "
                f"during {self._operation.value}"
            )
        return self._values.get(name)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        return self[name]

    def get(self, name: str, default: Any = None) -> Any:
        if not self.in_scope(name):
            return default
        value = self._values.get(name, _MISSING)
        return default if value is _MISSING else value

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.in_scope(name) and name in self._values

    def __iter__(self) -> Iterator[str]:
        return (name for name in self._declared if name in self)

    def to_dict(self) -> dict[str, Any]:
        return {name: self._values[name] for name in self}


__all__ = ["Need", "NeedScope", "NeedsView", "Operation"]
