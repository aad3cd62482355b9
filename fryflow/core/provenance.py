"""
Provenance tracking for index and quant runs.

A ProvenanceRecord accumulates the command line and wall-clock duration of
every stage as the PipelineExecutor proceeds, plus a summary of the mapper
that was used. It is written once, to ``<output>/fryflow_<command>_log.json``,
when the run completes or at the point where it fails:

    {
      "time_info": {"map_time": 12.3, "gpl_time": 1.2, ...},
      "cmd_info": {"map_cmd": "...", "gpl_cmd": "...", ...},
      "map_info": {"mapper": "piscem", "map_cmd": "...", "map_outdir": "..."},
      "version_info": {"piscem": "0.6.0", ...},
      "status": "completed"
    }
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from ..io import write_json
from .errors import ExecutionError, FryflowError, PersistenceError, PreconditionError

logger = logging.getLogger(__name__)


@dataclass
class StageRecord:
    """Command line and duration (seconds) of one stage."""

    command: str
    duration: float


class ProvenanceRecord:
    """Append-only provenance for a single command.

    Parameters
    ----------
    path : Path
        Where the record is written
    version_info : Dict[str, str], optional
        Versions of the registered tools

    Example
    -------
    >>> record = ProvenanceRecord(Path("out/fryflow_quant_log.json"))
    >>> with record.session():
    ...     executor.run(plan, record)
    """

    def __init__(self, path: Path, version_info: Optional[Dict[str, str]] = None):
        self.path = Path(path)
        self.version_info = dict(version_info or {})
        self.stages: Dict[str, StageRecord] = {}
        self.map_info: Optional[Dict[str, str]] = None
        self.status = "running"
        self.failure: Optional[Dict[str, Any]] = None
        self.started_at = datetime.now().isoformat()

    def record_stage(self, stage_id: str, command: str, duration: float) -> None:
        """Record a stage's command and duration; a stage is recorded once."""
        if stage_id in self.stages:
            raise ValueError(f"Stage '{stage_id}' already recorded")
        self.stages[stage_id] = StageRecord(command=command, duration=duration)

    def set_map_info(self, mapper: str, map_cmd: str, map_outdir: Path) -> None:
        self.map_info = {
            "mapper": mapper,
            "map_cmd": map_cmd,
            "map_outdir": str(map_outdir),
        }

    def mark_completed(self) -> None:
        self.status = "completed"

    def mark_failed(self, error: BaseException) -> None:
        """Record the failure that ended the run."""
        self.status = "failed"
        failure: Dict[str, Any] = {
            "error_type": type(error).__name__,
            "message": getattr(error, "message", str(error)),
        }
        if isinstance(error, (ExecutionError, PreconditionError)):
            failure["stage"] = error.stage
        if isinstance(error, ExecutionError):
            failure["exit_status"] = error.exit_status
            failure["command"] = error.command
        if isinstance(error, PreconditionError):
            failure["missing"] = list(error.missing)
            failure["missing_outputs"] = error.outputs
        self.failure = failure

    def to_dict(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "time_info": {f"{k}_time": v.duration for k, v in self.stages.items()},
            "cmd_info": {f"{k}_cmd": v.command for k, v in self.stages.items()},
        }
        if self.map_info is not None:
            record["map_info"] = dict(self.map_info)
        record["version_info"] = dict(self.version_info)
        record["started_at"] = self.started_at
        record["status"] = self.status
        if self.failure is not None:
            record["failure"] = dict(self.failure)
        return record

    def save(self) -> Path:
        """Write the record as JSON.

        Raises
        ------
        PersistenceError
            If the record cannot be written.
        """
        path = write_json(self.path, self.to_dict())
        logger.info("Wrote provenance record to %s", path)
        return path

    @contextmanager
    def session(self) -> Iterator["ProvenanceRecord"]:
        """Write the record once the enclosed run finishes or fails.

        On failure the record is written up to the failing stage and the
        original error is re-raised. A write failure at that point is
        logged so that it does not mask the pipeline error.
        """
        try:
            yield self
        except Exception as error:
            self.mark_failed(error)
            try:
                self.save()
            except PersistenceError as write_error:
                logger.error("Could not write provenance record: %s", write_error)
            raise
        self.mark_completed()
        self.save()


def describe_failure(error: FryflowError) -> str:
    """One-line summary of a pipeline error for log messages."""
    if isinstance(error, ExecutionError) and error.exit_status is not None:
        return f"{error.stage} exited with status {error.exit_status}"
    if isinstance(error, (ExecutionError, PreconditionError)):
        return f"{error.stage}: {error.message}"
    return error.message
