"""
formgate — unit tests for form declarations

File: tests/unit/forms/test_form_schema.py

Purpose
- Validate that inconsistent Form/FieldSet declarations fail at class creation.

What this test file should cover
- Permit lists checked against the model (unknown and managed columns).
- Virtual field and need collisions, reserved need names, unknown optional names.
- FieldSet composition order, MRO inheritance, and include cycles.
- Construction-time checks for operation/record combinations.

Functional requirements
- No IO except one SQLite record for the record-model mismatch check.

Non-functional requirements
- Error messages name the declaring class and attribute.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from formgate.domain.models import Column, ColumnType, ModelSchema
from formgate.forms import (
    FieldSet,
    Form,
    FormStateError,
    Need,
    SchemaDeclarationError,
    VirtualField,
)

from . import USERS, insert_user, make_gateway

if TYPE_CHECKING:
    from pathlib import Path

TAGS = ModelSchema(table="tags", columns=(Column("label", ColumnType.STRING),))


def test_permit_must_name_model_columns() -> None:
    with pytest.raises(SchemaDeclarationError, match=r"BadForm\.permit: 'nickname' is not a column"):

        class BadForm(Form):
            model = USERS
            permit = ("name", "nickname")


def test_managed_columns_cannot_be_permitted() -> None:
    with pytest.raises(SchemaDeclarationError, match="managed by the persistence layer"):

        class IdForm(Form):
            model = USERS
            permit = ("id",)


def test_permit_must_be_a_tuple_not_a_string() -> None:
    with pytest.raises(SchemaDeclarationError, match="expected a tuple of column names"):

        class StringPermit(FieldSet):
            permit = "name"  # type: ignore[assignment]


def test_model_must_be_a_model_schema() -> None:
    with pytest.raises(SchemaDeclarationError, match="expected ModelSchema, got dict"):

        class DictModel(Form):
            model = {"table": "users"}  # type: ignore[assignment]
            permit = ("name",)


def test_virtual_field_may_not_shadow_a_column() -> None:
    with pytest.raises(SchemaDeclarationError, match="'email' collides with a column"):

        class ShadowForm(Form):
            model = USERS
            permit = ("name",)
            virtual = (VirtualField("email"),)


def test_virtual_field_names_are_identifiers() -> None:
    with pytest.raises(SchemaDeclarationError, match="invalid identifier"):
        VirtualField("Password Confirmation")


def test_need_names_may_not_collide_with_fields_or_keywords() -> None:
    with pytest.raises(SchemaDeclarationError, match="'name' collides with a field name"):

        class NeedsName(Form):
            model = USERS
            permit = ("name",)
            needs = (Need("name"),)

    with pytest.raises(SchemaDeclarationError, match="'gateway' is a reserved keyword"):

        class NeedsGateway(FieldSet):
            needs = (Need("gateway"),)


def test_duplicate_needs_in_one_declaration_are_rejected() -> None:
    with pytest.raises(SchemaDeclarationError, match=r"duplicate names: \['actor'\]"):

        class TwiceActor(FieldSet):
            needs = (Need("actor"), Need("actor", optional=True))


def test_conflicting_virtual_declarations_across_includes() -> None:
    class PasswordFields(FieldSet):
        virtual = (VirtualField("password"),)

    class OptionalPasswordFields(FieldSet):
        virtual = (VirtualField("password", optional=True),)

    with pytest.raises(SchemaDeclarationError, match="declared twice differently"):

        class MixedForm(Form):
            model = USERS
            permit = ("name",)
            includes = (PasswordFields, OptionalPasswordFields)


def test_optional_names_must_be_fields() -> None:
    with pytest.raises(SchemaDeclarationError, match=r"not permitted or virtual fields: \['age'\]"):

        class LooseForm(Form):
            model = USERS
            permit = ("name",)
            optional = ("age",)


def test_param_key_and_error_policy_are_checked() -> None:
    with pytest.raises(SchemaDeclarationError, match="param_key"):

        class BadKey(Form):
            model = USERS
            permit = ("name",)
            param_key = "User"

    with pytest.raises(SchemaDeclarationError, match="error_policy"):

        class BadPolicy(Form):
            model = USERS
            permit = ("name",)
            error_policy = "everything"


def test_validations_must_be_callables() -> None:
    with pytest.raises(SchemaDeclarationError, match="expected a tuple of callables"):

        class NotCallable(FieldSet):
            validations = ("check_name",)  # type: ignore[assignment]


def test_includes_are_merged_depth_first_before_own_declarations() -> None:
    def shared_rule(form: Form) -> None:
        return None

    class EmailFields(FieldSet):
        permit = ("email",)
        validations = (shared_rule,)

    class ContactFields(FieldSet):
        permit = ("age",)
        includes = (EmailFields,)
        validations = (shared_rule,)

    class ContactForm(Form):
        model = USERS
        permit = ("name", "email")
        includes = (ContactFields,)

    schema = ContactForm.schema()
    assert schema.permitted == ("email", "age", "name")
    assert schema.validations == (shared_rule,)
    assert schema.field_names == ("email", "age", "name")
    assert schema.is_permitted("age") is True
    assert schema.is_permitted("role") is False


def test_subclasses_inherit_parent_declarations() -> None:
    class BaseProfile(Form):
        model = USERS
        permit = ("name",)

    class AdminProfile(BaseProfile):
        permit = ("role",)

    assert AdminProfile.schema().permitted == ("name", "role")
    assert BaseProfile.schema().permitted == ("name",)


def test_include_cycles_are_reported() -> None:
    class First(FieldSet):
        permit = ("name",)

    class Second(FieldSet):
        includes = (First,)

    First.includes = (Second,)
    try:
        with pytest.raises(SchemaDeclarationError, match="include cycle: .*First -> Second -> First"):

            class CycleForm(Form):
                model = USERS
                includes = (First,)
    finally:
        First.includes = ()


def test_form_without_model_is_abstract() -> None:
    class AbstractForm(Form):
        permit = ("name",)

    with pytest.raises(SchemaDeclarationError, match="declares no model"):
        AbstractForm({})

    class ConcreteForm(AbstractForm):
        model = USERS

    assert ConcreteForm.schema().permitted == ("name",)


def test_operation_and_record_must_agree(tmp_path: Path) -> None:
    class NameForm(Form):
        model = USERS
        permit = ("name",)

    class TagForm(Form):
        model = TAGS
        permit = ("label",)

    gateway = make_gateway(tmp_path)
    record = insert_user(gateway)

    with pytest.raises(FormStateError, match="update requires an existing record"):
        NameForm({}, operation="update", gateway=gateway)
    with pytest.raises(FormStateError, match="create must not receive a record"):
        NameForm({}, record=record, operation="create", gateway=gateway)
    with pytest.raises(TypeError, match="record belongs to 'users', expected 'tags'"):
        TagForm({}, record=record)
