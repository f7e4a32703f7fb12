"""
formgate — unit tests for config schema validation

File: tests/unit/config/test_schema.py

Purpose
- Validate strict schema checks over the formgate config payload.

What this test file should cover
- Defaults validate and round-trip unchanged.
- Unknown keys, missing sections, type and enum violations report exact paths.
- Deterministic deep merge.

Functional requirements
- Pure; no filesystem access.

Non-functional requirements
- Issue ordering is deterministic.
"""

from __future__ import annotations

import pytest

from formgate.config import (
    DEFAULT_CONFIG,
    ConfigValidationError,
    assert_valid_config,
    default_config,
    merge_config,
    validate_config,
)


def _paths(payload: object) -> list[str]:
    return [issue.path for issue in validate_config(payload).issues]


def test_default_config_validates_successfully() -> None:
    result = validate_config(default_config())

    assert result.is_valid is True
    assert result.config == DEFAULT_CONFIG


def test_default_config_is_a_deep_copy() -> None:
    config = default_config()
    config["observability"]["redact_keys"].append("ssn")

    assert DEFAULT_CONFIG["observability"]["redact_keys"] == []


def test_unknown_key_rejection_is_explicit() -> None:
    payload = merge_config(
        default_config(),
        {"extra": {}, "forms": {"strict": True}},
    )

    result = validate_config(payload)

    assert result.is_valid is False
    assert [(issue.path, issue.message) for issue in result.issues] == [
        ("extra", "unknown field"),
        ("forms.strict", "unknown field"),
    ]


def test_missing_sections_and_keys_are_reported() -> None:
    payload = default_config()
    del payload["database"]  # type: ignore[misc]
    del payload["observability"]["log_format"]  # type: ignore[misc]

    assert _paths(payload) == ["database", "observability.log_format"]


def test_type_validation_reports_structured_paths() -> None:
    payload = merge_config(
        default_config(),
        {
            "database": {"busy_timeout_ms": "fast", "path": "  "},
            "observability": {"redact_keys": "ssn"},
            "messages": {"catalog_path": 7},
        },
    )

    result = validate_config(payload)

    assert [(issue.path, issue.message) for issue in result.issues] == [
        ("database.path", "must not be empty"),
        ("database.busy_timeout_ms", "expected integer, got str"),
        ("observability.redact_keys", "expected list of strings, got str"),
        ("messages.catalog_path", "expected string, got int"),
    ]


def test_range_and_enum_violations_report_exact_path() -> None:
    payload = merge_config(
        default_config(),
        {
            "meta": {"schema_version": 2},
            "forms": {"error_policy": "all"},
            "database": {"busy_retry_limit": -1},
            "observability": {"log_format": "xml"},
        },
    )

    with pytest.raises(ConfigValidationError) as excinfo:
        assert_valid_config(payload)

    rendered = str(excinfo.value)
    assert "meta.schema_version: unsupported schema version 2; expected 1" in rendered
    assert "forms.error_policy: invalid value 'all'; expected one of: accumulate, first_only" in rendered
    assert "database.busy_retry_limit: must be >= 0" in rendered
    assert "observability.log_format: invalid value 'xml'" in rendered
    assert len(excinfo.value.issues) == 4


def test_log_level_is_normalized_and_redact_keys_deduplicated() -> None:
    payload = merge_config(
        default_config(),
        {"observability": {"log_level": " debug ", "redact_keys": ["ssn", " ssn ", "dob"]}},
    )

    config = assert_valid_config(payload)

    assert config["observability"]["log_level"] == "DEBUG"
    assert config["observability"]["redact_keys"] == ["ssn", "dob"]


def test_root_must_be_an_object() -> None:
    assert _paths(["not", "a", "mapping"]) == ["<root>"]


def test_merge_is_deep_and_does_not_mutate_inputs() -> None:
    base = {"a": {"b": 1, "c": [1]}, "d": 1}
    overlay = {"a": {"b": 2}, "e": {"f": 3}}

    merged = merge_config(base, overlay)

    assert merged == {"a": {"b": 2, "c": [1]}, "d": 1, "e": {"f": 3}}
    assert base == {"a": {"b": 1, "c": [1]}, "d": 1}
    merged["a"]["c"].append(2)
    assert base["a"]["c"] == [1]
