"""
formgate — form state machine and save pipeline

File: src/formgate/forms/form.py

Purpose
- Orchestrate fields for one model shape: apply allow-listed params, run
  validations and the required pass, and drive exactly one persistence attempt.

What should be included in this file
- ``RunState`` lifecycle and ``SaveResult``.
- ``Form`` base class: declarations checked at class creation, hook methods
  (``prepare``, ``before_save``, ``after_save``, ``after_commit``), the explicit
  step sequence of ``save``, and the raising/non-raising call conventions.
- Process-wide default error policy.

Functional requirements
- Params never reach a field that is not allow-listed.
- User validations (FieldSet validations, then ``prepare``) strictly precede the
  required pass; ``is_valid`` is idempotent.
- ``before_save``, the gateway write and ``after_save`` share one transaction;
  storage errors roll it back and surface as field or form errors.
- A second save attempt raises ``FormStateError``.

Non-functional requirements
- Raw param values are never logged, only keys and field names.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from enum import StrEnum
from types import MappingProxyType
from typing import Any, ClassVar, Generic, TypeVar

import structlog

from formgate.domain.coercion import coerce
from formgate.domain.fields import ErrorKind, ErrorPolicy, Field, FieldIssue
from formgate.domain.models import ColumnType, ModelSchema, Record
from formgate.forms.errors import FormStateError, InvalidFormError, SchemaDeclarationError
from formgate.forms.needs import NeedsView, Operation
from formgate.forms.params import display_value, extract_params
from formgate.forms.schema import FieldSet, FormSchema
from formgate.persistence.gateway import (
    PersistenceGateway,
    StorageConflict,
    StorageError,
)
from formgate.validation.messages import message as render_message
from formgate.validation.validators import validate_required

FormT = TypeVar("FormT", bound="Form")

_DEFAULT_POLICY_LOCK = threading.Lock()
_DEFAULT_POLICY: ErrorPolicy = ErrorPolicy.ACCUMULATE


def set_default_error_policy(policy: ErrorPolicy | str) -> None:
    """Policy used by forms that do not declare ``error_policy`` themselves."""
    global _DEFAULT_POLICY
    resolved = ErrorPolicy(policy)
    with _DEFAULT_POLICY_LOCK:
        _DEFAULT_POLICY = resolved


def default_error_policy() -> ErrorPolicy:
    with _DEFAULT_POLICY_LOCK:
        return _DEFAULT_POLICY


class RunState(StrEnum):
    UNVALIDATED = "unvalidated"
    VALIDATING = "validating"
    VALIDATED_VALID = "validated_valid"
    VALIDATED_INVALID = "validated_invalid"
    SAVING = "saving"
    SAVED = "saved"
    SAVE_FAILED = "save_failed"


@dataclass(frozen=True, slots=True)
class SaveResult(Generic[FormT]):
    """Outcome of a non-raising save: always the form, the record only on success."""

    form: FormT
    record: Record | None

    def __bool__(self) -> bool:
        return self.record is not None

    def __iter__(self) -> Iterator[Any]:
        yield self.form
        yield self.record

    @property
    def ok(self) -> bool:
        return self.record is not None


class _SaveAborted(Exception):
    """Unwinds the save transaction when ``before_save`` recorded errors."""


class Form(FieldSet):
    """Base class for typed forms bound to one model.

    Subclasses set ``model`` and ``permit`` (and optionally ``virtual``,
    ``needs``, ``optional``, ``validations``, ``includes``, ``param_key``,
    ``error_policy``). Declarations are checked when the subclass is created.
    """

    model: ClassVar[ModelSchema | None] = None
    param_key: ClassVar[str | None] = None
    error_policy: ClassVar[ErrorPolicy | str | None] = None
    _schema: ClassVar[FormSchema | None] = None

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if cls.model is None:
            cls._schema = None
            return
        cls._schema = FormSchema.from_declarations(
            cls,
            model=cls.model,
            param_key=cls.param_key,
            error_policy=cls.error_policy,
        )

    @classmethod
    def schema(cls) -> FormSchema:
        if cls._schema is None:
            raise SchemaDeclarationError(f"{cls.__name__} declares no model")
        return cls._schema

    def __init__(
        self,
        params: Mapping[str, object] | None = None,
        *,
        record: Record | None = None,
        gateway: PersistenceGateway | None = None,
        operation: Operation | str = Operation.BUILD,
        logger: Any | None = None,
        **needs: Any,
    ) -> None:
        schema = type(self).schema()
        operation = Operation(operation)
        if operation is Operation.UPDATE and record is None:
            raise FormStateError(f"{schema.owner}: update requires an existing record")
        if operation is Operation.CREATE and record is not None:
            raise FormStateError(f"{schema.owner}: create must not receive a record")
        if record is not None and record.model != schema.model:
            raise TypeError(
                f"{schema.owner}: record belongs to {record.model.table!r}, "
                f"expected {schema.model.table!r}"
            )

        self._schema_ref = schema
        self._operation = operation
        self._record = record
        self._gateway = gateway
        self._logger = logger if logger is not None else structlog.get_logger("formgate.forms")
        self._policy = schema.error_policy or default_error_policy()
        # Shadows the class-level ``needs`` declaration with the resolved view.
        self.needs: NeedsView = NeedsView.resolve(  # type: ignore[misc,assignment]
            schema.needs, operation, needs, owner=schema.owner
        )
        self._base_issues: list[FieldIssue] = []
        self._run_state = RunState.UNVALIDATED
        self._saved = False
        self._save_attempted = False

        attributes: dict[str, Field[Any]] = {}
        for column in schema.model.columns:
            attributes[column.name] = Field(
                column.name,
                column.type,
                value=None if record is None else record.get(column.name),
                optional=column.optional or column.name in schema.optional,
                persisted=True,
                permitted=schema.is_permitted(column.name),
                policy=self._policy,
            )
        virtual: dict[str, Field[Any]] = {
            name: Field(
                name,
                declared.type,
                optional=declared.optional or name in schema.optional,
                persisted=False,
                policy=self._policy,
            )
            for name, declared in schema.virtual.items()
        }
        self._attributes = MappingProxyType(attributes)
        self._virtual = MappingProxyType(virtual)
        self._fields = MappingProxyType(
            {
                **{name: attributes[name] for name in schema.permitted},
                **virtual,
            }
        )
        self._apply_params(params)

    # -- construction conventions -------------------------------------------------

    @classmethod
    def for_create(
        cls: type[FormT],
        params: Mapping[str, object] | None = None,
        *,
        gateway: PersistenceGateway,
        logger: Any | None = None,
        **needs: Any,
    ) -> FormT:
        return cls(params, gateway=gateway, operation=Operation.CREATE, logger=logger, **needs)

    @classmethod
    def for_update(
        cls: type[FormT],
        record: Record,
        params: Mapping[str, object] | None = None,
        *,
        gateway: PersistenceGateway,
        logger: Any | None = None,
        **needs: Any,
    ) -> FormT:
        return cls(
            params,
            record=record,
            gateway=gateway,
            operation=Operation.UPDATE,
            logger=logger,
            **needs,
        )

    @classmethod
    def create(
        cls: type[FormT],
        params: Mapping[str, object] | None = None,
        *,
        gateway: PersistenceGateway,
        logger: Any | None = None,
        **needs: Any,
    ) -> SaveResult[FormT]:
        return cls.for_create(params, gateway=gateway, logger=logger, **needs).save()

    @classmethod
    def create_or_raise(
        cls: type[FormT],
        params: Mapping[str, object] | None = None,
        *,
        gateway: PersistenceGateway,
        logger: Any | None = None,
        **needs: Any,
    ) -> Record:
        return cls.for_create(params, gateway=gateway, logger=logger, **needs).save_or_raise()

    @classmethod
    def update(
        cls: type[FormT],
        record: Record,
        params: Mapping[str, object] | None = None,
        *,
        gateway: PersistenceGateway,
        logger: Any | None = None,
        **needs: Any,
    ) -> SaveResult[FormT]:
        return cls.for_update(record, params, gateway=gateway, logger=logger, **needs).save()

    @classmethod
    def update_or_raise(
        cls: type[FormT],
        record: Record,
        params: Mapping[str, object] | None = None,
        *,
        gateway: PersistenceGateway,
        logger: Any | None = None,
        **needs: Any,
    ) -> Record:
        form = cls.for_update(record, params, gateway=gateway, logger=logger, **needs)
        return form.save_or_raise()

    # -- read accessors -----------------------------------------------------------

    @property
    def fields(self) -> Mapping[str, Field[Any]]:
        """Param-facing fields: permitted columns, then virtual fields."""
        return self._fields

    @property
    def attributes(self) -> Mapping[str, Field[Any]]:
        """One field per model column, permitted or not."""
        return self._attributes

    @property
    def record(self) -> Record | None:
        return self._record

    @property
    def gateway(self) -> PersistenceGateway | None:
        return self._gateway

    @property
    def operation(self) -> Operation:
        return self._operation

    @property
    def run_state(self) -> RunState:
        return self._run_state

    @property
    def saved(self) -> bool:
        return self._saved

    @property
    def error_policy_in_effect(self) -> ErrorPolicy:
        return self._policy

    @property
    def base_errors(self) -> tuple[str, ...]:
        return tuple(issue.message for issue in self._base_issues)

    @property
    def base_issues(self) -> tuple[FieldIssue, ...]:
        return tuple(self._base_issues)

    @property
    def errors(self) -> dict[str, list[str]]:
        """Field name to messages, for every field that currently has errors."""
        return {name: list(field.errors) for name, field in self._all_fields() if field.errors}

    def __getitem__(self, name: str) -> Field[Any]:
        if name in self._virtual:
            return self._virtual[name]
        try:
            return self._attributes[name]
        except KeyError:
            raise KeyError(f"{type(self).__name__} has no field {name!r}") from None

    def __contains__(self, name: object) -> bool:
        return name in self._attributes or name in self._virtual

    def values(self) -> dict[str, Any]:
        """Current value of every column and virtual field."""
        return {name: field.value for name, field in self._all_fields()}

    def error_lines(self) -> list[str]:
        lines = [
            f"{name}: {message}" for name, messages in self.errors.items() for message in messages
        ]
        lines.extend(f"base: {message}" for message in self.base_errors)
        return lines

    def add_base_error(
        self,
        message: str,
        *,
        kind: ErrorKind = ErrorKind.VALIDATION,
        rule: str | None = None,
    ) -> None:
        self._base_issues.append(FieldIssue(kind=ErrorKind(kind), message=message, rule=rule))

    # -- hooks --------------------------------------------------------------------

    def prepare(self) -> None:
        """User validations; runs before the required pass on every validation run."""

    def before_save(self) -> None:
        """Runs inside the save transaction, before the gateway write."""

    def after_save(self, record: Record) -> None:
        """Runs inside the save transaction, after the gateway write."""

    def after_commit(self, record: Record) -> None:
        """Runs after the transaction committed."""

    # -- pipeline -----------------------------------------------------------------

    def is_valid(self) -> bool:
        if self._run_state is RunState.SAVING:
            raise FormStateError(f"{type(self).__name__}: cannot validate while saving")
        if self._run_state is RunState.SAVED:
            return True
        if self._run_state is RunState.SAVE_FAILED:
            return False
        return self._validate()

    def save(self) -> SaveResult[Any]:
        gateway = self._begin_save()
        if not self._validate():
            self._log_save_failed(reason="invalid")
            return SaveResult(self, None)

        self._run_state = RunState.SAVING
        try:
            with gateway.transaction():
                self.before_save()
                if self._has_errors():
                    raise _SaveAborted
                record = self._persist(gateway)
                self.after_save(record)
        except _SaveAborted:
            self._run_state = RunState.SAVE_FAILED
            self._log_save_failed(reason="before_save_errors")
            return SaveResult(self, None)
        except StorageError as exc:
            self._record_storage_error(exc)
            self._run_state = RunState.SAVE_FAILED
            self._log_save_failed(reason="storage_error", error=exc)
            return SaveResult(self, None)
        except BaseException:
            self._run_state = RunState.SAVE_FAILED
            raise

        self._record = record
        self._saved = True
        self._run_state = RunState.SAVED
        self._sync_from(record)
        self._logger.info(
            "form_saved",
            form=type(self).__name__,
            table=record.model.table,
            operation=self._operation.value,
            record_id=record.id,
        )
        self.after_commit(record)
        return SaveResult(self, record)

    def save_or_raise(self) -> Record:
        result = self.save()
        if result.record is None:
            raise InvalidFormError(self)
        return result.record

    def _validate(self) -> bool:
        self._run_state = RunState.VALIDATING
        for _, field in self._all_fields():
            field.reset_errors()
        self._base_issues.clear()
        try:
            for validation in self._schema_ref.validations:
                validation(self)
            self.prepare()
            self._required_pass()
        except BaseException:
            self._run_state = RunState.UNVALIDATED
            raise

        valid = not self._has_errors()
        self._run_state = RunState.VALIDATED_VALID if valid else RunState.VALIDATED_INVALID
        self._logger.debug(
            "form_validated",
            form=type(self).__name__,
            operation=self._operation.value,
            run_state=self._run_state.value,
            error_fields=sorted(self.errors),
            base_error_count=len(self._base_issues),
        )
        return valid

    def _required_pass(self) -> None:
        required = [field for field in self._fields.values() if not field.optional]
        if self._operation is Operation.CREATE:
            required.extend(
                field
                for field in self._attributes.values()
                if not field.permitted and not field.optional
            )
        for field in required:
            if any(issue.kind is ErrorKind.COERCION for issue in field.issues):
                continue
            validate_required(field)

    def _persist(self, gateway: PersistenceGateway) -> Record:
        if self._operation is Operation.CREATE:
            values = {
                name: field.value
                for name, field in self._attributes.items()
                if field.value is not None
            }
            return gateway.insert(self._schema_ref.model, values)
        if self._record is None:
            raise FormStateError(f"{type(self).__name__}: update lost its record")
        changed = {name: field.value for name, field in self._attributes.items() if field.changed}
        return gateway.update(self._record, changed)

    def _record_storage_error(self, exc: StorageError) -> None:
        if isinstance(exc, StorageConflict):
            target = self._attributes.get(exc.field) if exc.field else None
            if target is not None:
                key = _CONFLICT_MESSAGE_KEYS.get(exc.constraint or "", "storage_failure")
                target.add_error(
                    render_message(key, field=target.name),
                    kind=ErrorKind.CONFLICT,
                    rule=exc.constraint or "storage",
                )
                return
            self.add_base_error(
                render_message("storage_failure", field="base"),
                kind=ErrorKind.CONFLICT,
                rule=exc.constraint or "storage",
            )
            return
        self.add_base_error(
            render_message("storage_failure", field="base"),
            kind=ErrorKind.FAILURE,
            rule="storage",
        )

    def _apply_params(self, params: Mapping[str, object] | None) -> None:
        schema = self._schema_ref
        extracted = extract_params(
            params,
            schema.field_names,
            param_key=schema.param_key,
            keep_lists=[
                name for name, field in self._fields.items() if field.type is ColumnType.JSON
            ],
        )
        if extracted.ignored:
            self._logger.debug(
                "form_params_ignored",
                form=type(self).__name__,
                keys=list(extracted.ignored),
            )
        for name, raw in extracted.values.items():
            field = self._fields[name]
            outcome = coerce(field.type, raw)
            error = None
            if not outcome.ok:
                error = render_message(f"coercion_{field.type.value}", field=name)
            field.apply_param(display_value(raw), outcome.value, error)

    def _sync_from(self, record: Record) -> None:
        for name, field in self._attributes.items():
            field.value = record.get(name)
            field.original_value = field.value

    def _begin_save(self) -> PersistenceGateway:
        if self._operation is Operation.BUILD:
            raise FormStateError(
                f"{type(self).__name__}: built without an operation; "
                "use for_create()/for_update() to save"
            )
        if self._save_attempted:
            raise FormStateError(
                f"{type(self).__name__}: a form allows exactly one save attempt "
                f"(state: {self._run_state.value})"
            )
        if self._gateway is None:
            raise FormStateError(f"{type(self).__name__}: no persistence gateway supplied")
        self._save_attempted = True
        return self._gateway

    def _has_errors(self) -> bool:
        return bool(self._base_issues) or any(field.errors for _, field in self._all_fields())

    def _all_fields(self) -> Iterator[tuple[str, Field[Any]]]:
        yield from self._attributes.items()
        yield from self._virtual.items()

    def _log_save_failed(self, *, reason: str, error: StorageError | None = None) -> None:
        self._logger.warning(
            "form_save_failed",
            form=type(self).__name__,
            operation=self._operation.value,
            reason=reason,
            run_state=self._run_state.value,
            error_fields=sorted(self.errors),
            base_errors=list(self.base_errors),
            error_type=None if error is None else type(error).__name__,
            constraint=getattr(error, "constraint", None),
        )


_CONFLICT_MESSAGE_KEYS: dict[str, str] = {
    "unique": "uniqueness",
    "not_null": "required",
}


__all__ = [
    "Form",
    "RunState",
    "SaveResult",
    "default_error_policy",
    "set_default_error_policy",
]
