"""
Tests package for the vcluster e2e harness.

Contains:
- unit/: Unit tests with a fake tunnel and an in-memory client handle
- e2e/: Scenarios against a running virtual cluster (pytest -m e2e)
"""
