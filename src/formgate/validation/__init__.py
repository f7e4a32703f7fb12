"""Validation rules and the message catalog they render errors from."""

from formgate.validation.messages import (
    DEFAULT_MESSAGES,
    PLACEHOLDERS,
    MessageCatalog,
    active_catalog,
    install_catalog,
)
from formgate.validation.validators import (
    UniquenessLookup,
    validate_acceptance_of,
    validate_at_most_one_filled,
    validate_confirmation_of,
    validate_exactly_one_filled,
    validate_exclusion_of,
    validate_format_of,
    validate_inclusion_of,
    validate_numeric,
    validate_required,
    validate_size_of,
    validate_uniqueness_of,
)

__all__ = [
    "DEFAULT_MESSAGES",
    "PLACEHOLDERS",
    "MessageCatalog",
    "UniquenessLookup",
    "active_catalog",
    "install_catalog",
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
