"""
Error taxonomy for fryflow commands.

Every failure is surfaced as a subclass of FryflowError so the CLI can
report it uniformly. The subclasses mirror the phase in which the failure
happened:

    ConfigurationError: options could not be resolved; nothing was spawned
    PreconditionError: a stage input is missing; the stage was not spawned
    ExecutionError: a stage was spawned (or attempted) and failed
    PersistenceError: a JSON metadata or provenance file could not be
        read or written
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Sequence, Union


class FryflowError(Exception):
    """Base class for all fryflow errors.

    Subclasses add diagnostic context which is rendered by ``__str__``
    below the main message.
    """

    def __init__(self, message: str, suggestion: str = ""):
        super().__init__(message)
        self.message = message
        self.suggestion = suggestion

    def details(self) -> List[str]:
        """Extra diagnostic lines rendered under the message."""
        return []

    def __str__(self) -> str:
        parts = [self.message]
        parts.extend(f"  {line}" for line in self.details())
        if self.suggestion:
            parts.append(f"  Suggestion: {self.suggestion}")
        return "\n".join(parts)


class ConfigurationError(FryflowError):
    """Raised when user options cannot be resolved into a runnable plan."""

    pass


class GeometryError(ConfigurationError):
    """Raised when a fragment geometry string cannot be parsed."""

    def __init__(self, message: str, geometry: str):
        super().__init__(message)
        self.geometry = geometry

    def details(self) -> List[str]:
        return [f"Geometry: {self.geometry}"]


class PreconditionError(FryflowError):
    """Raised when files a stage depends on or declares do not exist.

    With ``outputs=True`` the stage itself exited successfully but did not
    produce its declared outputs, so nothing after it may run.
    """

    def __init__(
        self, stage: str, missing: Sequence[Union[str, Path]], outputs: bool = False
    ):
        self.stage = stage
        self.missing = [str(p) for p in missing]
        self.outputs = outputs
        if outputs:
            message = (
                f"Stage '{stage}' exited successfully but did not produce "
                f"{len(self.missing)} declared output(s)"
            )
        else:
            message = f"Stage '{stage}' cannot run: {len(self.missing)} required input(s) not found"
        super().__init__(message)

    def details(self) -> List[str]:
        return [f"Missing: {path}" for path in self.missing]


class ExecutionError(FryflowError):
    """Raised when an external program fails or cannot be started.

    Attributes
    ----------
    stage : str
        Name of the failing stage
    command : str
        Command line that was run
    exit_status : int, optional
        Exit status of the process, None if it could not be spawned
    """

    def __init__(
        self,
        stage: str,
        command: str,
        exit_status: Optional[int] = None,
        reason: str = "",
    ):
        self.stage = stage
        self.command = command
        self.exit_status = exit_status
        self.reason = reason
        if exit_status is None:
            message = f"Stage '{stage}' could not be started"
        else:
            message = f"Stage '{stage}' failed with exit status {exit_status}"
        super().__init__(message)

    def details(self) -> List[str]:
        lines = [f"Command: {self.command}"]
        if self.reason:
            lines.append(f"Reason: {self.reason}")
        return lines


class PersistenceError(FryflowError):
    """Raised when a JSON record cannot be read or written."""

    def __init__(self, message: str, path: Union[str, Path]):
        super().__init__(message)
        self.path = Path(path)

    def details(self) -> List[str]:
        return [f"Path: {self.path}"]
