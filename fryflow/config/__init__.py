"""Home directory and tool registry configuration.

Example
-------
>>> from fryflow.config import AppHome
>>> home = AppHome.from_env()
>>> registry = home.load_registry()
>>> registry.require("alevin_fry").exe_path
"""

from .home import (
    CUSTOM_CHEMISTRY_FILENAME,
    HOME_ENV_VAR,
    PERMIT_LIST_DIRNAME,
    REGISTRY_FILENAME,
    AppHome,
)
from .registry import TOOL_NAMES, ProgramInfo, ToolRegistry

__all__ = [
    "AppHome",
    "CUSTOM_CHEMISTRY_FILENAME",
    "HOME_ENV_VAR",
    "PERMIT_LIST_DIRNAME",
    "REGISTRY_FILENAME",
    "TOOL_NAMES",
    "ProgramInfo",
    "ToolRegistry",
]
