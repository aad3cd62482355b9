"""Pipeline orchestration module.

Provides the stage representation, the immutable RunPlan, and the
sequential executor that spawns external programs.

Example Usage
-------------
>>> from fryflow.pipeline import PipelineExecutor, PipelineLogger, RunPlan, Stage
>>> plan = RunPlan.of("quant", out_dir, [gpl_stage, collate_stage, quant_stage])
>>> logger = PipelineLogger("out/logs")
>>> logger.setup()
>>> executor = PipelineExecutor(logger)
>>> executor.run(plan, provenance)
"""

# Stage representation
from .stage import Stage

# Plan
from .plan import RunPlan

# Logging
from .logger import (
    ColoredFormatter,
    PipelineLogger,
)

# Execution
from .executor import PipelineExecutor

__all__ = [
    # Stage
    "Stage",
    # Plan
    "RunPlan",
    # Logging
    "ColoredFormatter",
    "PipelineLogger",
    # Execution
    "PipelineExecutor",
]
