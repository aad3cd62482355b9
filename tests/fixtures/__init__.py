"""Test fixtures for fryflow.

Provides fake external executables and home directory helpers.
"""

from .fake_tools import DEFAULT_VERSIONS, FakeToolbox, write_registry

__all__ = [
    "DEFAULT_VERSIONS",
    "FakeToolbox",
    "write_registry",
]
