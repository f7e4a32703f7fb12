"""
formgate — forms layer

File: src/formgate/forms/__init__.py

Purpose
- Declarative forms bridging untrusted params and typed, persisted records.

What should be included in this file
- Re-export of Form, declarations, needs, and form error types.

Functional requirements
- Importing this package must not open storage or configure logging.
"""

from formgate.forms.errors import (
    FormStateError,
    InvalidFormError,
    NeedScopeError,
    NeedsError,
    SchemaDeclarationError,
)
from formgate.forms.form import (
    Form,
    RunState,
    SaveResult,
    default_error_policy,
    set_default_error_policy,
)
from formgate.forms.needs import Need, NeedScope, NeedsView, Operation
from formgate.forms.params import ExtractedParams, extract_params
from formgate.forms.schema import FieldSet, FormSchema, VirtualField

__all__ = [
    "ExtractedParams",
    "FieldSet",
    "Form",
    "FormSchema",
    "FormStateError",
    "InvalidFormError",
    "Need",
    "NeedScope",
    "NeedScopeError",
    "NeedsError",
    "NeedsView",
    "Operation",
    "RunState",
    "SaveResult",
    "SchemaDeclarationError",
    "VirtualField",
    "default_error_policy",
    "extract_params",
    "set_default_error_policy",
]
