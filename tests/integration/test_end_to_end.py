"""
formgate — end-to-end form scenarios

File: tests/integration/test_end_to_end.py

Purpose
- Drive complete create/update flows through a runtime built from config.

What this test file should cover
- Scenario A: a valid create persists the permitted value.
- Scenario B: a blank required field fails validation and nothing is stored.
- Scenario C: an update constrained by an inclusion rule succeeds for an allowed
  value and leaves the stored record untouched for a rejected one.
- Raising call conventions, needs, virtual fields, and uniqueness on one stack.

Functional requirements
- Real SQLite file configured through ``load_config``/``build_runtime``.

Non-functional requirements
- Process-wide state (logging, catalog, error policy) restored after each test.
"""

from __future__ import annotations

import io
from collections.abc import Iterator
from pathlib import Path

import pytest

from formgate.config import Runtime, build_runtime, load_config
from formgate.domain.fields import ErrorKind, ErrorPolicy
from formgate.domain.models import Column, ColumnType, ModelSchema
from formgate.forms import (
    FieldSet,
    Form,
    InvalidFormError,
    Need,
    NeedScope,
    RunState,
    VirtualField,
    set_default_error_policy,
)
from formgate.observability import reset_logging
from formgate.validation import (
    install_catalog,
    validate_acceptance_of,
    validate_confirmation_of,
    validate_inclusion_of,
    validate_size_of,
    validate_uniqueness_of,
)

PEOPLE = ModelSchema(
    table="people",
    columns=(
        Column("name", ColumnType.STRING),
        Column("age", ColumnType.INT, nullable=True),
        Column("email", ColumnType.STRING, nullable=True, unique=True),
        Column("created_by", ColumnType.STRING, nullable=True),
    ),
)


class NameForm(Form):
    model = PEOPLE
    permit = ("name",)


class AgeForm(Form):
    model = PEOPLE
    permit = ("age",)

    def prepare(self) -> None:
        validate_inclusion_of(self["age"], in_=(30, 40, 50))


def unique_email(form: Form) -> None:
    record = form.record
    validate_uniqueness_of(
        form["email"],
        lookup=form.gateway,
        model=PEOPLE,
        exclude_id=None if record is None else record.id,
    )


class EmailFields(FieldSet):
    permit = ("email",)
    optional = ("email",)
    validations = (unique_email,)


class SignupForm(Form):
    model = PEOPLE
    permit = ("name",)
    includes = (EmailFields,)
    virtual = (
        VirtualField("password"),
        VirtualField("password_confirmation"),
        VirtualField("terms", type=ColumnType.BOOL),
    )
    needs = (Need("creator", scope=NeedScope.CREATE),)

    def prepare(self) -> None:
        validate_size_of(self["password"], min=8)
        validate_confirmation_of(self["password"], with_=self["password_confirmation"])
        validate_acceptance_of(self["terms"])

    def before_save(self) -> None:
        self.attributes["created_by"].value = self.needs.creator


@pytest.fixture
def runtime(tmp_path: Path) -> Iterator[Runtime]:
    config_path = tmp_path / "formgate.toml"
    config_path.write_text(
        '[database]\npath = "state/people.sqlite3"\n\n[observability]\nlog_level = "DEBUG"\n',
        encoding="utf-8",
    )
    built = build_runtime(load_config(config_path, environ={}), log_stream=io.StringIO())
    built.gateway.create_table(PEOPLE)
    yield built
    reset_logging()
    install_catalog(None)
    set_default_error_policy(ErrorPolicy.ACCUMULATE)


def test_scenario_a_valid_create_persists(runtime: Runtime) -> None:
    form, record = NameForm.create({"name": "Paul"}, gateway=runtime.gateway)

    assert record is not None
    assert record.name == "Paul"
    assert form.saved is True
    assert form.run_state is RunState.SAVED
    assert runtime.gateway.find(PEOPLE, record.id) == record
    assert runtime.db.path == Path(runtime.config["database"]["path"])


def test_scenario_b_blank_required_field_fails(runtime: Runtime) -> None:
    result = NameForm.create({"name": ""}, gateway=runtime.gateway)

    assert result.record is None
    assert result.form.run_state is RunState.VALIDATED_INVALID
    assert result.form["name"].errors == ("is required",)
    assert result.form["name"].issues[0].kind is ErrorKind.REQUIRED
    assert runtime.gateway.count(PEOPLE) == 0


def test_scenario_c_update_with_inclusion_rule(runtime: Runtime) -> None:
    person = NameForm.create_or_raise({"name": "Paul"}, gateway=runtime.gateway)

    accepted, updated = AgeForm.update(person, {"age": "40"}, gateway=runtime.gateway)
    assert updated is not None
    assert updated.age == 40
    assert accepted.saved is True

    rejected, missing = AgeForm.update(updated, {"age": "41"}, gateway=runtime.gateway)
    assert missing is None
    assert rejected.errors == {"age": ["is invalid"]}
    assert rejected.run_state is RunState.VALIDATED_INVALID
    assert runtime.gateway.find(PEOPLE, person.id) == updated


def test_raising_convention_carries_the_failed_form(runtime: Runtime) -> None:
    person = NameForm.create_or_raise({"name": "Paul"}, gateway=runtime.gateway)

    with pytest.raises(InvalidFormError) as excinfo:
        AgeForm.update_or_raise(person, {"age": "forty"}, gateway=runtime.gateway)

    assert excinfo.value.form.errors == {"age": ["must be a number"]}
    assert "age: must be a number" in str(excinfo.value)


def test_signup_with_needs_virtual_fields_and_uniqueness(runtime: Runtime) -> None:
    params = {
        "name": "Paul",
        "email": "paul@example.com",
        "password": "correct horse",
        "password_confirmation": "correct horse",
        "terms": "on",
        "created_by": "mallory",
    }

    first = SignupForm.create(params, gateway=runtime.gateway, creator="admin")
    assert first.record is not None
    assert first.record.created_by == "admin"
    assert "password" not in first.record.attributes

    duplicate = SignupForm.create(
        {**params, "password_confirmation": "wrong"}, gateway=runtime.gateway, creator="admin"
    )
    assert duplicate.record is None
    assert duplicate.form.errors == {
        "email": ["is already taken"],
        "password_confirmation": ["must match"],
    }
    assert runtime.gateway.count(PEOPLE) == 1


def test_first_only_policy_from_config(tmp_path: Path) -> None:
    config_path = tmp_path / "formgate.toml"
    config_path.write_text("[forms]\nerror_policy = \"accumulate\"\n", encoding="utf-8")
    config = load_config(
        config_path,
        environ={"FORMGATE_FORMS_ERROR_POLICY": "first_only"},
        overrides={"database.path": str(tmp_path / "policy.sqlite3")},
    )
    built = build_runtime(config, log_stream=io.StringIO())
    try:
        built.gateway.create_table(PEOPLE)
        form = SignupForm.for_create(
            {"name": "Paul", "password": "short", "password_confirmation": "other", "terms": "1"},
            gateway=built.gateway,
            creator="admin",
        )

        assert form.is_valid() is False
        assert form["password"].errors == ("must be at least 8 characters long",)
        assert form["password_confirmation"].errors == ("must match",)
        assert form.error_policy_in_effect is ErrorPolicy.FIRST_ONLY
    finally:
        reset_logging()
        install_catalog(None)
        set_default_error_policy(ErrorPolicy.ACCUMULATE)
