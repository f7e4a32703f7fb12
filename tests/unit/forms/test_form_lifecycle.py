"""
formgate — unit tests for form construction and validation runs

File: tests/unit/forms/test_form_lifecycle.py

Purpose
- Validate the pre-save half of the form state machine.

What this test file should cover
- Param application, coercion failures, and field accessors.
- Ordering: FieldSet validations, then ``prepare``, then the required pass.
- Idempotent ``is_valid`` and configurable error accumulation.

Functional requirements
- No storage access is needed for validation-only forms.

Non-functional requirements
- Deterministic; property tests use bounded hypothesis strategies.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from formgate.domain.fields import ErrorKind, ErrorPolicy
from formgate.forms import (
    FieldSet,
    Form,
    Need,
    NeedScope,
    RunState,
    VirtualField,
    default_error_policy,
    set_default_error_policy,
)
from formgate.validation import validate_format_of, validate_size_of

from . import USERS, insert_user, make_gateway

if TYPE_CHECKING:
    from pathlib import Path


class ProfileForm(Form):
    model = USERS
    permit = ("name", "email", "age")


class StrictNameForm(Form):
    model = USERS
    permit = ("name",)

    def prepare(self) -> None:
        validate_size_of(self["name"], min=3)
        validate_format_of(self["name"], pattern=r"[A-Z].*")


def test_fresh_form_is_unvalidated_and_exposes_fields() -> None:
    form = ProfileForm({"name": "Paul", "age": "41"})

    assert form.run_state is RunState.UNVALIDATED
    assert list(form.fields) == ["name", "email", "age"]
    assert list(form.attributes) == ["name", "email", "age", "role", "admin"]
    assert form["age"].value == 41
    assert form["age"].param_value == "41"
    assert form["email"].param_value is None
    assert form.attributes["role"].permitted is False
    assert form.values() == {
        "name": "Paul",
        "email": None,
        "age": 41,
        "role": None,
        "admin": None,
    }
    assert form.record is None
    assert form.saved is False


def test_build_with_record_starts_from_stored_values(tmp_path: Path) -> None:
    gateway = make_gateway(tmp_path)
    record = insert_user(gateway, age=30)

    form = ProfileForm({"age": "31"}, record=record)

    assert form["name"].value == "Paul"
    assert form["name"].changed is False
    assert form["age"].original_value == 30
    assert form["age"].changed is True


def test_coercion_failure_is_a_field_error_not_a_required_error() -> None:
    form = ProfileForm({"name": "Paul", "age": "forty"})

    assert form.is_valid() is False
    assert form.errors == {"age": ["must be a number"]}
    assert form["age"].issues[0].kind is ErrorKind.COERCION
    assert form["age"].value is None
    assert form["age"].param_value == "forty"


def test_every_problem_is_reported_in_one_pass() -> None:
    form = ProfileForm({"name": "", "age": "x"})

    assert form.is_valid() is False
    assert form.errors == {"name": ["is required"], "age": ["must be a number"]}
    assert form.run_state is RunState.VALIDATED_INVALID


def test_user_validations_precede_the_required_pass() -> None:
    form = StrictNameForm({"name": "al"})

    assert form.is_valid() is False
    assert form["name"].errors == (
        "must be at least 3 characters long",
        "is invalid",
    )

    missing = StrictNameForm({})
    assert missing.is_valid() is False
    assert [issue.kind for issue in missing["name"].issues] == [ErrorKind.REQUIRED]


def test_first_only_policy_keeps_one_error_per_field() -> None:
    class FirstOnlyForm(StrictNameForm):
        error_policy = "first_only"

    form = FirstOnlyForm({"name": "al"})

    assert form.is_valid() is False
    assert form["name"].errors == ("must be at least 3 characters long",)
    assert form.error_policy_in_effect is ErrorPolicy.FIRST_ONLY


def test_process_default_policy_applies_to_forms_without_a_declaration() -> None:
    set_default_error_policy("first_only")
    try:
        assert default_error_policy() is ErrorPolicy.FIRST_ONLY
        form = StrictNameForm({"name": "al"})
        assert form.is_valid() is False
        assert len(form["name"].errors) == 1
    finally:
        set_default_error_policy(ErrorPolicy.ACCUMULATE)


def test_fieldset_validations_run_before_prepare() -> None:
    order: list[str] = []

    def check_email(form: Form) -> None:
        order.append("fieldset")

    class ContactFields(FieldSet):
        permit = ("email",)
        validations = (check_email,)

    class ContactForm(Form):
        model = USERS
        permit = ("name",)
        includes = (ContactFields,)

        def prepare(self) -> None:
            order.append("prepare")

    form = ContactForm({"name": "Paul", "email": "paul@example.com"})

    assert list(form.fields) == ["email", "name"]
    assert form.is_valid() is True
    assert order == ["fieldset", "prepare"]


def test_non_optional_virtual_fields_are_required() -> None:
    class TermsForm(Form):
        model = USERS
        permit = ("name",)
        virtual = (
            VirtualField("terms", type="bool"),
            VirtualField("nickname", optional=True),
        )

    form = TermsForm({"name": "Paul", "terms": ""})

    assert form.is_valid() is False
    assert form.errors == {"terms": ["is required"]}

    accepted = TermsForm({"name": "Paul", "terms": "yes"})
    assert accepted.is_valid() is True
    assert accepted["terms"].value is True


def test_optional_declaration_relaxes_the_required_pass() -> None:
    class DraftForm(Form):
        model = USERS
        permit = ("name",)
        optional = ("name",)

    assert DraftForm({}).is_valid() is True


def test_prepare_can_read_needs_in_scope() -> None:
    class OwnedForm(Form):
        model = USERS
        permit = ("name",)
        needs = (Need("locale"), Need("creator", scope=NeedScope.CREATE, optional=True))

        def prepare(self) -> None:
            if self.needs.locale != "en":
                self.add_base_error("unsupported locale")
            if self.needs.get("creator") is not None:
                self.add_base_error("creator is not visible while building")

    assert OwnedForm({"name": "Paul"}, locale="en").is_valid() is True
    rejected = OwnedForm({"name": "Paul"}, locale="fr")
    assert rejected.is_valid() is False
    assert rejected.base_errors == ("unsupported locale",)
    assert rejected.error_lines() == ["base: unsupported locale"]


def test_exceptions_from_prepare_propagate_and_reset_state() -> None:
    class BrokenForm(Form):
        model = USERS
        permit = ("name",)

        def prepare(self) -> None:
            raise ZeroDivisionError("bad rule")

    form = BrokenForm({"name": "Paul"})
    with pytest.raises(ZeroDivisionError):
        form.is_valid()
    assert form.run_state is RunState.UNVALIDATED


def test_param_key_nests_params() -> None:
    class NestedForm(Form):
        model = USERS
        permit = ("name", "age")
        param_key = "user"

    form = NestedForm({"user": {"name": "Paul", "age": ["39", "40"]}, "name": "Other"})

    assert form["name"].value == "Paul"
    assert form["age"].value == 40


@settings(max_examples=60, deadline=None)
@given(
    name=st.one_of(st.none(), st.text(max_size=12)),
    age=st.one_of(st.none(), st.text(max_size=6), st.integers(-5, 200)),
)
def test_is_valid_is_idempotent(name: str | None, age: str | int | None) -> None:
    params: dict[str, object] = {}
    if name is not None:
        params["name"] = name
    if age is not None:
        params["age"] = age
    form = ProfileForm(params)

    first = form.is_valid()
    first_errors = form.errors
    second = form.is_valid()

    assert first is second
    assert form.errors == first_errors
    expected_state = RunState.VALIDATED_VALID if first else RunState.VALIDATED_INVALID
    assert form.run_state is expected_state
