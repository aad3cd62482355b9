"""Pipeline execution engine.

Stages of a RunPlan are run one at a time; each subprocess is awaited to
completion before the next stage is considered. The first missing input,
non-zero exit or unproduced declared output ends the run.
"""

import logging
import subprocess
import time
from typing import Callable, List, Optional

from ..core.errors import ExecutionError, PreconditionError
from ..core.provenance import ProvenanceRecord
from .logger import PipelineLogger
from .plan import RunPlan
from .stage import Stage

logger = logging.getLogger(__name__)

STDERR_TAIL_CHARS = 1000


class PipelineExecutor:
    """Executes RunPlan stages with input validation and provenance capture.

    Parameters
    ----------
    logger : PipelineLogger, optional
        Structured stage event logger
    runner : Callable, optional
        Function with the ``subprocess.run`` signature used to spawn stages

    Attributes
    ----------
    completed_stages : List[str]
        Stage IDs that finished successfully during the last run

    Example
    -------
    >>> executor = PipelineExecutor(PipelineLogger("out/logs"))
    >>> record = ProvenanceRecord(Path("out/fryflow_quant_log.json"))
    >>> with record.session():
    ...     executor.run(plan, record)
    """

    def __init__(
        self,
        logger: Optional[PipelineLogger] = None,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
    ):
        self.logger = logger
        self.runner = runner
        self.completed_stages: List[str] = []

    def execute_stage(self, stage: Stage, provenance: ProvenanceRecord) -> float:
        """Execute a single pipeline stage.

        Parameters
        ----------
        stage : Stage
            Stage object to execute
        provenance : ProvenanceRecord
            Record receiving the stage's command and duration

        Returns
        -------
        float
            Wall-clock duration in seconds

        Raises
        ------
        PreconditionError
            If a declared input is missing (nothing is spawned), or the
            program exits zero without producing a declared output
        ExecutionError
            If the program cannot be started or exits non-zero
        """
        missing = stage.missing_inputs()
        if missing:
            logger.error("Input validation failed for stage %s:", stage.stage_id)
            for path in missing:
                logger.error("  - Required input not found: %s", path)
            raise PreconditionError(stage.stage_id, missing)

        cmd = stage.get_command()
        cmd_string = stage.command_string()
        logger.info("%s cmd : %s", stage.name, cmd_string)

        if self.logger:
            self.logger.log_stage_start(stage.stage_id, stage.name)
        start_time = time.time()

        try:
            result = self.runner(
                cmd,
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as e:
            provenance.record_stage(stage.stage_id, cmd_string, time.time() - start_time)
            if self.logger:
                self.logger.log_stage_error(stage.stage_id, str(e))
            raise ExecutionError(stage.stage_id, cmd_string, None, reason=str(e)) from e

        duration = time.time() - start_time
        provenance.record_stage(stage.stage_id, cmd_string, duration)

        if result.stdout:
            logger.debug("%s stdout:\n%s", stage.stage_id, result.stdout[-STDERR_TAIL_CHARS:])

        if result.returncode != 0:
            if self.logger:
                self.logger.log_stage_error(stage.stage_id, f"Exit code {result.returncode}")
            if result.stderr:
                logger.error("STDERR: %s", result.stderr[-STDERR_TAIL_CHARS:])
            raise ExecutionError(
                stage.stage_id,
                cmd_string,
                result.returncode,
                reason=(result.stderr or "").strip()[-STDERR_TAIL_CHARS:],
            )

        missing = stage.missing_outputs()
        if missing:
            logger.error("Output validation failed for stage %s:", stage.stage_id)
            for path in missing:
                logger.error("  - Declared output not produced: %s", path)
            if self.logger:
                self.logger.log_stage_error(stage.stage_id, "declared outputs missing")
            raise PreconditionError(stage.stage_id, missing, outputs=True)

        if self.logger:
            self.logger.log_stage_complete(stage.stage_id, duration)
        self.completed_stages.append(stage.stage_id)
        return duration

    def run(self, plan: RunPlan, provenance: ProvenanceRecord) -> None:
        """Execute every stage of the plan in order, halting on the first failure.

        Files produced by earlier, successful stages are left in place when a
        later stage fails.
        """
        self.completed_stages = []
        if self.logger:
            self.logger.log_plan(plan.command, plan.stage_ids())
        else:
            logger.info("Pipeline execution plan (%s): %s", plan.command, " -> ".join(plan.stage_ids()))

        start_time = time.time()
        try:
            for stage in plan.stages:
                self.execute_stage(stage, provenance)
        except (ExecutionError, PreconditionError) as e:
            logger.error("Pipeline failed at stage %s", e.stage)
            raise
        finally:
            if self.logger:
                self.logger.log_run_summary(
                    self.completed_stages, len(plan.stages), time.time() - start_time
                )

        logger.info("Pipeline completed successfully")
