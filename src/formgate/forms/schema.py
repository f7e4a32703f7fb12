"""
formgate — form declarations

File: src/formgate/forms/schema.py

Purpose
- Declarative, reusable field/need/validation units (``FieldSet``) and the
  merged, checked ``FormSchema`` a concrete Form runs against.

What should be included in this file
- ``VirtualField``: validated but never persisted.
- ``FieldSet``: class-level declarations composed through ``includes``.
- ``FormSchema.from_declarations``: merge includes and check everything
  against the model schema.

Functional requirements
- Every permitted name must be a column of the model; anything else fails
  when the class is created, never when a request arrives.
- Need names may not collide with field names or constructor keywords.

Non-functional requirements
- Deterministic ordering: includes first (depth-first), then own declarations.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, ClassVar, Final, NoReturn

from formgate.domain.fields import ErrorPolicy
from formgate.domain.models import ColumnType, ModelSchema, validate_identifier
from formgate.forms.errors import SchemaDeclarationError
from formgate.forms.needs import Need

if TYPE_CHECKING:
    from formgate.forms.form import Form

FormValidation = Callable[["Form"], None]

# Keyword arguments of Form construction; needs share that namespace.
RESERVED_NEED_NAMES: Final[frozenset[str]] = frozenset(
    {"params", "record", "gateway", "operation", "logger"}
)


@dataclass(frozen=True, slots=True)
class VirtualField:
    """A form field that takes part in validation but is never persisted."""

    name: str
    type: ColumnType = ColumnType.STRING
    optional: bool = False

    def __post_init__(self) -> None:
        try:
            validate_identifier(self.name, "VirtualField.name")
            object.__setattr__(self, "type", ColumnType(self.type))
        except ValueError as exc:
            raise SchemaDeclarationError(str(exc)) from exc


class FieldSet:
    """Reusable declaration unit shared by several forms.

    Subclasses declare any of ``permit``, ``virtual``, ``needs``, ``optional``,
    ``validations`` and ``includes``; a Form lists FieldSets in its own
    ``includes`` to pull them in.
    """

    permit: ClassVar[tuple[str, ...]] = ()
    virtual: ClassVar[tuple[VirtualField, ...]] = ()
    needs: ClassVar[tuple[Need, ...]] = ()
    optional: ClassVar[tuple[str, ...]] = ()
    validations: ClassVar[tuple[FormValidation, ...]] = ()
    includes: ClassVar[tuple[type[FieldSet], ...]] = ()

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        _check_shape(cls)


@dataclass(frozen=True, slots=True)
class FormSchema:
    """Merged, checked declarations of one concrete Form class."""

    owner: str
    model: ModelSchema
    permitted: tuple[str, ...]
    virtual: Mapping[str, VirtualField]
    needs: Mapping[str, Need]
    optional: frozenset[str]
    validations: tuple[FormValidation, ...]
    param_key: str | None = None
    error_policy: ErrorPolicy | None = None
    _permitted_set: frozenset[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_permitted_set", frozenset(self.permitted))

    @property
    def field_names(self) -> tuple[str, ...]:
        """Param-facing names: permitted columns, then virtual fields."""
        return (*self.permitted, *self.virtual)

    def is_permitted(self, name: str) -> bool:
        return name in self._permitted_set

    @classmethod
    def from_declarations(
        cls,
        owner: type[FieldSet],
        *,
        model: object,
        param_key: object = None,
        error_policy: object = None,
    ) -> FormSchema:
        name = owner.__name__
        if not isinstance(model, ModelSchema):
            _declaration_error(name, "model", f"expected ModelSchema, got {type(model).__name__}")

        permitted: list[str] = []
        virtual: dict[str, VirtualField] = {}
        needs: dict[str, Need] = {}
        optional: set[str] = set()
        validations: list[FormValidation] = []

        for unit in _walk(owner):
            unit_name = unit.__name__
            for permit in unit.__dict__.get("permit", ()):
                if permit in model.managed_columns:
                    _declaration_error(
                        unit_name, "permit", f"{permit!r} is managed by the persistence layer"
                    )
                if permit not in model:
                    _declaration_error(
                        unit_name, "permit", f"{permit!r} is not a column of {model.table!r}"
                    )
                if permit not in permitted:
                    permitted.append(permit)
            for item in unit.__dict__.get("virtual", ()):
                existing = virtual.get(item.name)
                if existing is not None and existing != item:
                    _declaration_error(
                        unit_name, "virtual", f"{item.name!r} is declared twice differently"
                    )
                virtual[item.name] = item
            for need in unit.__dict__.get("needs", ()):
                existing_need = needs.get(need.name)
                if existing_need is not None and existing_need != need:
                    _declaration_error(
                        unit_name, "needs", f"{need.name!r} is declared twice differently"
                    )
                needs[need.name] = need
            optional.update(unit.__dict__.get("optional", ()))
            for validation in unit.__dict__.get("validations", ()):
                if validation not in validations:
                    validations.append(validation)

        for virtual_name in virtual:
            if virtual_name in model or virtual_name in model.managed_columns:
                _declaration_error(
                    name, "virtual", f"{virtual_name!r} collides with a column of {model.table!r}"
                )

        field_names = set(permitted) | set(virtual)
        for need_name in needs:
            if need_name in field_names or need_name in model:
                _declaration_error(name, "needs", f"{need_name!r} collides with a field name")

        unknown_optional = sorted(optional - field_names)
        if unknown_optional:
            _declaration_error(
                name, "optional", f"names are not permitted or virtual fields: {unknown_optional}"
            )

        if param_key is not None:
            try:
                validate_identifier(param_key, f"{name}.param_key")
            except ValueError as exc:
                raise SchemaDeclarationError(str(exc)) from exc

        policy: ErrorPolicy | None = None
        if error_policy is not None:
            try:
                policy = ErrorPolicy(error_policy)
            except ValueError:
                _declaration_error(
                    name,
                    "error_policy",
                    f"expected one of {[item.value for item in ErrorPolicy]}, got {error_policy!r}",
                )

        return cls(
            owner=name,
            model=model,
            permitted=tuple(permitted),
            virtual=MappingProxyType(virtual),
            needs=MappingProxyType(needs),
            optional=frozenset(optional),
            validations=tuple(validations),
            param_key=param_key if isinstance(param_key, str) else None,
            error_policy=policy,
        )


def _walk(owner: type[FieldSet]) -> Iterable[type[FieldSet]]:
    """Yield declaration units depth-first: includes, then MRO bases, then ``owner``."""

    seen: set[type[FieldSet]] = set()
    ordered: list[type[FieldSet]] = []

    def visit(unit: type[FieldSet], chain: tuple[type[FieldSet], ...]) -> None:
        if unit in chain:
            cycle = " -> ".join(item.__name__ for item in (*chain, unit))
            raise SchemaDeclarationError(f"include cycle: {cycle}")
        if unit in seen:
            return
        for base in reversed(unit.__mro__[1:]):
            if isinstance(base, type) and issubclass(base, FieldSet) and base is not FieldSet:
                visit(base, (*chain, unit))
        for included in unit.__dict__.get("includes", ()):
            visit(included, (*chain, unit))
        seen.add(unit)
        ordered.append(unit)

    visit(owner, ())
    return ordered


def _check_shape(cls: type[FieldSet]) -> None:
    name = cls.__name__
    own = cls.__dict__

    if "permit" in own:
        permit = own["permit"]
        if isinstance(permit, str) or not isinstance(permit, (tuple, list)):
            _declaration_error(name, "permit", "expected a tuple of column names")
        for item in permit:
            try:
                validate_identifier(item, f"{name}.permit")
            except ValueError as exc:
                raise SchemaDeclarationError(str(exc)) from exc
        cls.permit = tuple(permit)

    if "virtual" in own:
        cls.virtual = _tuple_of(name, "virtual", own["virtual"], VirtualField)
    if "needs" in own:
        needs = _tuple_of(name, "needs", own["needs"], Need)
        for need in needs:
            try:
                validate_identifier(need.name, f"{name}.needs")
            except ValueError as exc:
                raise SchemaDeclarationError(str(exc)) from exc
            if need.name in RESERVED_NEED_NAMES:
                _declaration_error(name, "needs", f"{need.name!r} is a reserved keyword")
        cls.needs = needs
    if "optional" in own:
        optional = own["optional"]
        if isinstance(optional, str) or not isinstance(optional, (tuple, list)):
            _declaration_error(name, "optional", "expected a tuple of field names")
        cls.optional = tuple(optional)
    if "validations" in own:
        validations = own["validations"]
        if not isinstance(validations, (tuple, list)) or not all(
            callable(item) for item in validations
        ):
            _declaration_error(name, "validations", "expected a tuple of callables")
        cls.validations = tuple(validations)
    if "includes" in own:
        includes = own["includes"]
        if not isinstance(includes, (tuple, list)) or not all(
            isinstance(item, type) and issubclass(item, FieldSet) for item in includes
        ):
            _declaration_error(name, "includes", "expected a tuple of FieldSet subclasses")
        cls.includes = tuple(includes)


def _tuple_of(owner: str, attribute: str, value: object, kind: type[Any]) -> tuple[Any, ...]:
    if not isinstance(value, (tuple, list)):
        _declaration_error(owner, attribute, f"expected a tuple of {kind.__name__}")
    for item in value:
        if not isinstance(item, kind):
            _declaration_error(
                owner, attribute, f"expected {kind.__name__}, got {type(item).__name__}"
            )
    names = [item.name for item in value]
    duplicates = sorted({item for item in names if names.count(item) > 1})
    if duplicates:
        _declaration_error(owner, attribute, f"duplicate names: {duplicates}")
    return tuple(value)


def _declaration_error(owner: str, attribute: str, message: str) -> NoReturn:
    raise SchemaDeclarationError(f"{owner}.{attribute}: {message}")


__all__ = [
    "RESERVED_NEED_NAMES",
    "FieldSet",
    "FormSchema",
    "FormValidation",
    "VirtualField",
]
