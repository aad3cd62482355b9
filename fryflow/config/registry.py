"""Registry of external programs used by fryflow.

The registry is written by the environment set-up tooling into the home
directory and loaded read-only at the start of every command. Each entry
records where an executable lives and which version it reports.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from ..core.errors import ConfigurationError

TOOL_NAMES = ("salmon", "piscem", "alevin_fry", "pyroe")


@dataclass(frozen=True)
class ProgramInfo:
    """Location and version of one external program.

    Attributes
    ----------
    exe_path : Path
        Path to the executable
    version : str
        Version string reported by the program (e.g., "0.8.1")
    """

    exe_path: Path
    version: str

    def to_dict(self) -> Dict[str, str]:
        return {"exe_path": str(self.exe_path), "version": self.version}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProgramInfo":
        return cls(exe_path=Path(data["exe_path"]), version=str(data["version"]))


@dataclass(frozen=True)
class ToolRegistry:
    """Immutable mapping from tool name to ProgramInfo (or None).

    Example
    -------
    >>> registry = ToolRegistry.from_dict({"alevin_fry": {"exe_path": "/bin/af", "version": "0.8.0"}})
    >>> registry.require("alevin_fry").version
    '0.8.0'
    """

    salmon: Optional[ProgramInfo] = None
    piscem: Optional[ProgramInfo] = None
    alevin_fry: Optional[ProgramInfo] = None
    pyroe: Optional[ProgramInfo] = None

    def get(self, name: str) -> Optional[ProgramInfo]:
        if name not in TOOL_NAMES:
            raise KeyError(f"Unknown tool '{name}'")
        return getattr(self, name)

    def require(self, name: str, purpose: str = "") -> ProgramInfo:
        """Return the tool's info or fail with a configuration error.

        Parameters
        ----------
        name : str
            One of TOOL_NAMES
        purpose : str, optional
            What the tool is needed for, used in the error message
        """
        info = self.get(name)
        if info is None:
            reason = f" for {purpose}" if purpose else ""
            raise ConfigurationError(
                f"A valid {name} executable is required{reason}, but none is registered.",
                suggestion=f"Register a path to {name} in the fryflow home directory.",
            )
        return info

    def versions(self) -> Dict[str, str]:
        versions = {}
        for name in TOOL_NAMES:
            info = self.get(name)
            if info is not None:
                versions[name] = info.version
        return versions

    def to_dict(self) -> Dict[str, Optional[Dict[str, str]]]:
        out: Dict[str, Optional[Dict[str, str]]] = {}
        for name in TOOL_NAMES:
            info = self.get(name)
            out[name] = info.to_dict() if info is not None else None
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolRegistry":
        """Build a registry from a ``prog_info`` mapping; unknown keys are ignored."""
        entries = {}
        for name in TOOL_NAMES:
            value = data.get(name)
            if value is not None:
                try:
                    entries[name] = ProgramInfo.from_dict(value)
                except (KeyError, TypeError) as e:
                    raise ConfigurationError(
                        f"Malformed registry entry for {name}: {value!r}"
                    ) from e
        return cls(**entries)
