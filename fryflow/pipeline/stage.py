"""Stage representation and validation for pipeline execution."""

import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Sequence, Tuple


@dataclass(frozen=True)
class Stage:
    """A single external-program invocation with its declared inputs and outputs.

    Attributes
    ----------
    name : str
        Human-readable stage name (e.g., "alevin-fry collate")
    stage_id : str
        Short identifier used as the provenance key (e.g., "map", "gpl")
    executable : Path
        Program to run
    args : Tuple[str, ...]
        Arguments passed to the program
    inputs : Tuple[Path, ...]
        Files or directories that must exist immediately before the stage runs
    outputs : Tuple[Path, ...]
        Files or directories the stage is expected to produce

    Example
    -------
    >>> stage = Stage(
    ...     name="alevin-fry collate",
    ...     stage_id="collate",
    ...     executable=Path("/opt/bin/alevin-fry"),
    ...     args=["collate", "-i", "out/af_quant", "-r", "out/af_map", "-t", "8"],
    ...     inputs=[Path("out/af_quant"), Path("out/af_map")],
    ... )
    >>> missing = stage.missing_inputs()
    """

    name: str
    stage_id: str
    executable: Path
    args: Tuple[str, ...] = field(default_factory=tuple)
    inputs: Tuple[Path, ...] = field(default_factory=tuple)
    outputs: Tuple[Path, ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, "executable", Path(self.executable))
        object.__setattr__(self, "args", tuple(str(a) for a in self.args))
        object.__setattr__(self, "inputs", tuple(Path(p) for p in self.inputs))
        object.__setattr__(self, "outputs", tuple(Path(p) for p in self.outputs))

    def missing_inputs(self) -> List[Path]:
        """Return the declared inputs that do not exist."""
        return [path for path in self.inputs if not path.exists()]

    def missing_outputs(self) -> List[Path]:
        """Return the declared outputs that were not produced."""
        return [path for path in self.outputs if not path.exists()]

    def get_command(self) -> List[str]:
        """Build the argument vector for subprocess execution.

        Example
        -------
        >>> stage.get_command()
        ['/opt/bin/alevin-fry', 'collate', '-i', 'out/af_quant', ...]
        """
        return [str(self.executable), *self.args]

    def command_string(self) -> str:
        """Shell-quoted command line, suitable for logs and replay."""
        return shlex.join(self.get_command())


def join_paths(paths: Sequence[Path], sep: str = ",") -> str:
    """Join paths into a single delimited argument."""
    return sep.join(str(p) for p in paths)
