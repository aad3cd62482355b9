"""JSON / YAML record I/O for fryflow.

All persisted metadata (tool registry, custom chemistries, index metadata,
provenance logs, workflow descriptions) goes through these helpers so that
OS and decode failures surface as PersistenceError with the offending path.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Union

import yaml

from ..core.errors import PersistenceError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

YAML_SUFFIXES = (".yml", ".yaml")


def ensure_output_dir(path: PathLike) -> Path:
    """Create the directory at path if it does not exist and return it.

    Parameters
    ----------
    path : PathLike
        Directory path.

    Returns
    -------
    Path
        The directory path.

    Raises
    ------
    PersistenceError
        If the directory cannot be created.
    """
    directory = Path(path)
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise PersistenceError(f"Could not create directory: {e}", directory) from e
    return directory


def read_json(path: PathLike) -> Any:
    """Read and decode a JSON file.

    Raises
    ------
    PersistenceError
        If the file cannot be opened or is not valid JSON.
    """
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise PersistenceError(f"Malformed JSON: {e}", path) from e
    except OSError as e:
        raise PersistenceError(f"Could not read file: {e}", path) from e


def write_json(path: PathLike, record: Any) -> Path:
    """Write record as pretty-printed JSON, creating parent directories.

    Paths and other non-JSON values are serialized with ``str``.

    Raises
    ------
    PersistenceError
        If the file cannot be written.
    """
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(record, f, indent=2, default=str)
            f.write("\n")
    except OSError as e:
        raise PersistenceError(f"Could not write file: {e}", path) from e
    logger.debug("Wrote %s", path)
    return path


def read_structured(path: PathLike) -> Dict[str, Any]:
    """Read a mapping from a JSON or YAML file, chosen by file suffix.

    Parameters
    ----------
    path : PathLike
        Path ending in .json, .yml or .yaml. Any other suffix is read as JSON.

    Returns
    -------
    Dict[str, Any]
        Parsed mapping (empty for an empty YAML document).

    Raises
    ------
    PersistenceError
        If the file cannot be read, cannot be parsed, or is not a mapping.
    """
    path = Path(path)
    if path.suffix.lower() in YAML_SUFFIXES:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise PersistenceError(f"Malformed YAML: {e}", path) from e
        except OSError as e:
            raise PersistenceError(f"Could not read file: {e}", path) from e
    else:
        data = read_json(path)

    if not isinstance(data, dict):
        raise PersistenceError(
            f"Expected a mapping at the top level, found {type(data).__name__}", path
        )
    return data
