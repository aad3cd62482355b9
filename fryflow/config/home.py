"""The fryflow home directory.

One home directory is resolved per process (from ``--home`` or the
ALEVIN_FRY_HOME environment variable) and passed explicitly to every
command. It holds the tool registry, the custom chemistry mapping, and a
cache of downloaded permit lists.

Example
-------
>>> home = AppHome.from_env()
>>> registry = home.load_registry()
>>> chemistries = home.load_custom_chemistries()
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from ..core.errors import ConfigurationError, PersistenceError
from ..io import ensure_output_dir, read_json, write_json
from .registry import ToolRegistry

logger = logging.getLogger(__name__)

HOME_ENV_VAR = "ALEVIN_FRY_HOME"
REGISTRY_FILENAME = "fryflow_info.json"
CUSTOM_CHEMISTRY_FILENAME = "custom_chemistries.json"
PERMIT_LIST_DIRNAME = "plist"


@dataclass(frozen=True)
class AppHome:
    """Resolved home directory shared by all commands of a run.

    Attributes
    ----------
    path : Path
        The home directory
    """

    path: Path

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AppHome":
        """Resolve the home directory from the environment.

        Raises
        ------
        ConfigurationError
            If ALEVIN_FRY_HOME is unset or empty.
        """
        environ = os.environ if environ is None else environ
        value = environ.get(HOME_ENV_VAR)
        if not value:
            raise ConfigurationError(
                f"${HOME_ENV_VAR} is unset, please set this environment variable to continue.",
                suggestion=f"export {HOME_ENV_VAR}=/path/to/af_home or pass --home",
            )
        return cls(Path(value))

    @property
    def registry_file(self) -> Path:
        return self.path / REGISTRY_FILENAME

    @property
    def custom_chemistry_file(self) -> Path:
        return self.path / CUSTOM_CHEMISTRY_FILENAME

    @property
    def permit_list_dir(self) -> Path:
        return self.path / PERMIT_LIST_DIRNAME

    def load_registry_record(self) -> Dict[str, Any]:
        """Read the raw registry record."""
        if not self.registry_file.is_file():
            raise ConfigurationError(
                f"No tool registry found at {self.registry_file}",
                suggestion="Register the salmon/piscem, alevin-fry and pyroe executables first.",
            )
        record = read_json(self.registry_file)
        if not isinstance(record, dict):
            raise PersistenceError("Tool registry is not a JSON object", self.registry_file)
        return record

    def load_registry(self) -> ToolRegistry:
        """Load the tool registry from ``prog_info`` in the registry record."""
        record = self.load_registry_record()
        prog_info = record.get("prog_info")
        if not isinstance(prog_info, dict):
            raise ConfigurationError(
                f"Tool registry {self.registry_file} has no 'prog_info' section"
            )
        return ToolRegistry.from_dict(prog_info)

    def load_custom_chemistries(self) -> Dict[str, str]:
        """Return the custom chemistry mapping, or an empty one if absent."""
        if not self.custom_chemistry_file.is_file():
            return {}
        data = read_json(self.custom_chemistry_file)
        if not isinstance(data, dict):
            raise PersistenceError(
                "Custom chemistry file is not a JSON object", self.custom_chemistry_file
            )
        return data

    def add_custom_chemistry(self, name: str, geometry: str) -> Optional[str]:
        """Insert or overwrite a custom chemistry.

        The geometry is expected to have been validated by the caller. An
        empty or unparsable existing file is replaced.

        Returns
        -------
        Optional[str]
            The geometry previously registered under ``name``, if any
        """
        ensure_output_dir(self.path)
        chemistries: Dict[str, Any] = {}
        if self.custom_chemistry_file.is_file():
            try:
                loaded = read_json(self.custom_chemistry_file)
            except PersistenceError as e:
                if not isinstance(e.__cause__, json.JSONDecodeError):
                    raise
                logger.warning(
                    "Custom chemistry file %s is empty or malformed; starting a new one",
                    self.custom_chemistry_file,
                )
            else:
                if isinstance(loaded, dict):
                    chemistries = loaded

        previous = chemistries.get(name)
        if previous is not None:
            logger.info(
                "chemistry %s already existed, with geometry %s; overwriting geometry specification",
                name,
                previous,
            )
        else:
            logger.info("inserting chemistry %s with geometry %s", name, geometry)

        chemistries[name] = geometry
        write_json(self.custom_chemistry_file, chemistries)
        return previous
