"""Test suite for fryflow.

Test organization:
- fixtures/: Fake external tools and home directory helpers
- unit/: Unit tests for individual modules and the CLI

Run tests with:
    pytest tests/
    pytest tests/unit/ -v --tb=short
"""
