"""
formgate config package public API.

File: src/formgate/config/__init__.py

Purpose
- Export config loading/validation entrypoints, runtime wiring, and error types.

What should be included in this file
- Public schema constants and validation/report types.
- Loader APIs for effective runtime config.

Functional requirements
- Support loading from ``formgate.toml`` + ``FORMGATE_`` env overrides.
- Fail fast with clear structured validation/load errors.

Non-functional requirements
- Keep import-time surface small and deterministic.
"""

from formgate.config.loader import (
    ConfigLoadError,
    Runtime,
    build_runtime,
    load_config,
    normalize_paths,
)
from formgate.config.schema import (
    DEFAULT_CONFIG,
    ConfigValidationError,
    ConfigValidationIssue,
    ConfigValidationResult,
    FormgateConfig,
    assert_valid_config,
    default_config,
    merge_config,
    validate_config,
)

__all__ = [
    "DEFAULT_CONFIG",
    "ConfigLoadError",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "FormgateConfig",
    "Runtime",
    "assert_valid_config",
    "build_runtime",
    "default_config",
    "load_config",
    "merge_config",
    "normalize_paths",
    "validate_config",
]
