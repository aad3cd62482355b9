"""I/O utilities for fryflow.

Provides JSON and YAML record reading and writing.
"""

from .records import ensure_output_dir, read_json, read_structured, write_json

__all__ = [
    "ensure_output_dir",
    "read_json",
    "read_structured",
    "write_json",
]
