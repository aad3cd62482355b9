"""Controllable fake executables for testing.

Each fake tool is a POSIX shell script that appends its argv to a shared
call log, creates the directory following ``-o`` (and ``-i`` for an
``index`` subcommand), touches any paths listed
in ``<name>.outputs`` and exits with the status in ``<name>.status``
(default 0).
"""

import json
import stat
from pathlib import Path
from typing import Dict, List, Optional

SCRIPT_TEMPLATE = """#!/bin/sh
printf '%s' '{name}' >> '{log}'
for arg in "$@"; do
  printf '\\t%s' "$arg" >> '{log}'
done
printf '\\n' >> '{log}'
prev=""
for arg in "$@"; do
  if [ "$prev" = "-o" ]; then
    mkdir -p "$arg"
  fi
  if [ "$1" = "index" ] && [ "$prev" = "-i" ]; then
    mkdir -p "$arg"
  fi
  prev="$arg"
done
if [ -f '{outputs}' ]; then
  while IFS= read -r out; do
    mkdir -p "$(dirname "$out")"
    touch "$out"
  done < '{outputs}'
fi
status=0
if [ -f '{status}' ]; then
  status=$(cat '{status}')
fi
exit "$status"
"""

DEFAULT_VERSIONS = {
    "salmon": "1.9.0",
    "piscem": "0.4.0",
    "alevin_fry": "0.8.0",
    "pyroe": "0.8.1",
}


class FakeToolbox:
    """A directory of fake executables sharing one call log.

    Example
    -------
    >>> toolbox = FakeToolbox(tmp_path / "tools")
    >>> toolbox.install("alevin_fry")
    >>> toolbox.set_exit_status("alevin_fry", 3)
    >>> toolbox.calls()
    [['alevin_fry', 'generate-permit-list', ...]]
    """

    def __init__(self, root: Path):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self.call_log = self.root / "calls.log"
        self.paths: Dict[str, Path] = {}

    def install(self, name: str) -> Path:
        path = self.root / name
        path.write_text(
            SCRIPT_TEMPLATE.format(
                name=name,
                log=self.call_log,
                outputs=self.root / f"{name}.outputs",
                status=self.root / f"{name}.status",
            )
        )
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        self.paths[name] = path
        return path

    def set_exit_status(self, name: str, status: int) -> None:
        (self.root / f"{name}.status").write_text(str(status))

    def add_outputs(self, name: str, *paths: Path) -> None:
        with open(self.root / f"{name}.outputs", "a") as f:
            for path in paths:
                f.write(f"{path}\n")

    def calls(self) -> List[List[str]]:
        """Logged invocations, each as [tool name, arg, ...]."""
        if not self.call_log.exists():
            return []
        return [line.split("\t") for line in self.call_log.read_text().splitlines() if line]

    def called_tools(self) -> List[str]:
        return [call[0] for call in self.calls()]

    def prog_info(
        self,
        versions: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Optional[Dict[str, str]]]:
        """``prog_info`` record registering every installed tool."""
        versions = {**DEFAULT_VERSIONS, **(versions or {})}
        return {
            name: {"exe_path": str(path), "version": versions[name]}
            for name, path in self.paths.items()
        }


def write_registry(home: Path, prog_info: Dict) -> Path:
    """Write a tool registry record into a home directory."""
    home.mkdir(parents=True, exist_ok=True)
    path = home / "fryflow_info.json"
    path.write_text(json.dumps({"prog_info": prog_info}, indent=2))
    return path
