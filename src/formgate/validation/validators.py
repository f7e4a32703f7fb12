"""
Reusable validation rules operating on fields.

Every rule appends at most one error per field it inspects and returns ``True``
when the rule passed. Absent values are skipped by all rules except
``validate_required``, ``validate_acceptance_of`` and the filled-count rules, so
presence stays the job of the required pass.
"""

from __future__ import annotations

import math
import re
from collections.abc import Collection, Sized
from typing import TYPE_CHECKING, Any, Protocol

from formgate.domain.fields import ErrorKind, Field
from formgate.validation.messages import message as render_message

if TYPE_CHECKING:
    from formgate.domain.models import ModelSchema


class UniquenessLookup(Protocol):
    def exists(
        self,
        model: ModelSchema,
        column: str,
        value: object,
        *,
        exclude_id: int | None = None,
    ) -> bool: ...


def validate_required(*fields: Field[Any], message: str | None = None) -> bool:
    """Error on every field whose value is absent or blank."""

    passed = True
    for field in fields:
        if field.blank:
            field.add_error(
                render_message("required", message, field=field.name),
                kind=ErrorKind.REQUIRED,
                rule="required",
            )
            passed = False
    return passed


def validate_confirmation_of(
    field: Field[Any],
    *,
    with_: Field[Any],
    message: str | None = None,
) -> bool:
    """Error on ``with_`` (the confirmation field) when it differs from ``field``."""

    if field.value == with_.value:
        return True
    with_.add_error(
        render_message("confirmation", message, field=with_.name, companion=field.name),
        rule="confirmation",
    )
    return False


def validate_acceptance_of(field: Field[Any], *, message: str | None = None) -> bool:
    if field.value is True:
        return True
    field.add_error(render_message("acceptance", message, field=field.name), rule="acceptance")
    return False


def validate_inclusion_of(
    field: Field[Any],
    *,
    in_: Collection[object],
    message: str | None = None,
) -> bool:
    if field.value is None or _member(field.value, in_):
        return True
    field.add_error(render_message("inclusion", message, field=field.name), rule="inclusion")
    return False


def validate_exclusion_of(
    field: Field[Any],
    *,
    in_: Collection[object],
    message: str | None = None,
) -> bool:
    if field.value is None or not _member(field.value, in_):
        return True
    field.add_error(render_message("exclusion", message, field=field.name), rule="exclusion")
    return False


def validate_size_of(
    field: Field[Any],
    *,
    is_: int | None = None,
    min: int | None = None,  # noqa: A002
    max: int | None = None,  # noqa: A002
    message: str | None = None,
) -> bool:
    """Check length of sized values, or magnitude of numbers.

    ``is_``, ``min`` and ``max`` are independent and may be combined; the
    first failing bound produces the single error for this call.
    """

    if is_ is None and min is None and max is None:
        raise ValueError("validate_size_of requires at least one of is_, min, max")
    if min is not None and max is not None and min > max:
        raise ValueError(f"validate_size_of: min ({min}) must be <= max ({max})")

    value = field.value
    if value is None:
        return True

    measured: float
    if isinstance(value, bool):
        raise TypeError(f"validate_size_of cannot measure boolean field {field.name!r}")
    if isinstance(value, (int, float)):
        measured = value
        prefix = "magnitude"
    elif isinstance(value, Sized):
        measured = len(value)
        prefix = "size"
    else:
        raise TypeError(
            f"validate_size_of cannot measure {type(value).__name__} field {field.name!r}"
        )

    failed_key: str | None = None
    if is_ is not None and measured != is_:
        failed_key = f"{prefix}_is"
    elif min is not None and measured < min:
        failed_key = f"{prefix}_min"
    elif max is not None and measured > max:
        failed_key = f"{prefix}_max"

    if failed_key is None:
        return True
    field.add_error(
        render_message(failed_key, message, field=field.name, is_=is_, min=min, max=max),
        rule="size",
    )
    return False


def validate_format_of(
    field: Field[Any],
    *,
    pattern: str | re.Pattern[str],
    match: bool = True,
    message: str | None = None,
) -> bool:
    """Full-match string values against ``pattern`` (or require a non-match)."""

    value = field.value
    if value is None:
        return True
    compiled = re.compile(pattern) if isinstance(pattern, str) else pattern
    matched = isinstance(value, str) and compiled.fullmatch(value) is not None
    if matched is match:
        return True
    field.add_error(render_message("format", message, field=field.name), rule="format")
    return False


def validate_numeric(
    field: Field[Any],
    *,
    minimum: float | None = None,
    maximum: float | None = None,
    message: str | None = None,
) -> bool:
    """``minimum`` and ``maximum`` are inclusive."""

    value = field.value
    if value is None:
        return True
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        field.add_error(render_message("numeric_type", message, field=field.name), rule="numeric")
        return False
    if minimum is not None and value < minimum:
        field.add_error(
            render_message("numeric_min", message, field=field.name, minimum=minimum),
            rule="numeric",
        )
        return False
    if maximum is not None and value > maximum:
        field.add_error(
            render_message("numeric_max", message, field=field.name, maximum=maximum),
            rule="numeric",
        )
        return False
    return True


def validate_exactly_one_filled(*fields: Field[Any], message: str | None = None) -> bool:
    """Exactly one of ``fields`` must be filled.

    With none filled the first field gets the error; with several filled every
    filled field after the first one gets a "must be blank" error.
    """

    if not fields:
        raise ValueError("validate_exactly_one_filled requires at least one field")
    filled = [field for field in fields if not field.blank]
    if not filled:
        first = fields[0]
        first.add_error(
            render_message("exactly_one_filled", message, field=first.name),
            rule="exactly_one_filled",
        )
        return False
    return _blank_extras(filled[1:], message, rule="exactly_one_filled")


def validate_at_most_one_filled(*fields: Field[Any], message: str | None = None) -> bool:
    if not fields:
        raise ValueError("validate_at_most_one_filled requires at least one field")
    filled = [field for field in fields if not field.blank]
    return _blank_extras(filled[1:], message, rule="at_most_one_filled")


def validate_uniqueness_of(
    field: Field[Any],
    *,
    lookup: UniquenessLookup,
    model: ModelSchema,
    exclude_id: int | None = None,
    message: str | None = None,
) -> bool:
    """Error when another ``model`` row already stores ``field.value``."""

    if field.value is None:
        return True
    if not lookup.exists(model, field.name, field.value, exclude_id=exclude_id):
        return True
    field.add_error(render_message("uniqueness", message, field=field.name), rule="uniqueness")
    return False


def _member(value: object, collection: Collection[object]) -> bool:
    # Unhashable values (JSON dicts/lists) can't be members of a set.
    try:
        return value in collection
    except TypeError:
        return False


def _blank_extras(extras: list[Field[Any]], message: str | None, *, rule: str) -> bool:
    for field in extras:
        field.add_error(render_message("must_be_blank", message, field=field.name), rule=rule)
    return not extras


__all__ = [
    "UniquenessLookup",
    "validate_acceptance_of",
    "validate_at_most_one_filled",
    "validate_confirmation_of",
    "validate_exactly_one_filled",
    "validate_exclusion_of",
    "validate_format_of",
    "validate_inclusion_of",
    "validate_numeric",
    "validate_required",
    "validate_size_of",
    "validate_uniqueness_of",
]
