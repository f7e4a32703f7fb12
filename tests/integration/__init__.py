"""
formgate — integration test package

File: tests/integration/__init__.py

Purpose
- Test package marker for end-to-end form runs against real SQLite files.

Functional requirements
- Must not import heavy modules at import time; keep test collection fast.
- No network access.
"""
