"""
formgate — typed form validation and persistence pipeline

File: src/formgate/__init__.py

Purpose
- Package root. Defines public package-level metadata and import boundaries.

What should be included in this file
- Version export and minimal public API surface (keep small).
- Import boundary rules: subpackages are imported explicitly
  (``formgate.forms``, ``formgate.persistence``, ``formgate.config`` ...).

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
