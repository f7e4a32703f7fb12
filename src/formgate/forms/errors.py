"""Exceptions raised by form declarations, needs resolution, and the save pipeline."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from formgate.forms.form import Form


class SchemaDeclarationError(TypeError):
    """Raised when a Form or FieldSet class is declared inconsistently."""


class NeedsError(TypeError):
    """Raised at construction when supplied needs do not match the declared ones."""


class NeedScopeError(LookupError):
    """Raised when a need is read by an operation outside its scope."""


class FormStateError(RuntimeError):
    """Raised when a form is driven through an illegal state transition."""


class InvalidFormError(ValueError):
    """Raised by the ``*_or_raise`` call convention; carries the failed form."""

    def __init__(self, form: Form) -> None:
        self.form = form
        lines = form.error_lines()
        details = "\n".join(f"- {line}" for line in lines) or "- (no errors recorded)"
        super().__init__(
            f"{type(form).__name__} is {form.run_state.value}:\n{details}"
        )


__all__ = [
    "FormStateError",
    "InvalidFormError",
    "NeedScopeError",
    "NeedsError",
    "SchemaDeclarationError",
]
