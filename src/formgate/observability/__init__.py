"""
formgate — observability layer

File: src/formgate/observability/__init__.py

Purpose
- Structured logging configuration and request correlation for form runs.

Functional requirements
- Sensitive keys are redacted before rendering; raw param values are never logged.

Non-functional requirements
- Logging must never alter form outcomes.
"""

from formgate.observability.logging import (
    REDACTED_VALUE,
    RedactingProcessor,
    configure_logging,
    correlation_scope,
    get_correlation_context,
    reset_logging,
)

__all__ = [
    "REDACTED_VALUE",
    "RedactingProcessor",
    "configure_logging",
    "correlation_scope",
    "get_correlation_context",
    "reset_logging",
]
