"""Immutable execution plan consumed by the PipelineExecutor."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from .stage import Stage


@dataclass(frozen=True)
class RunPlan:
    """Ordered external invocations derived from one resolved command.

    Stages run strictly in order; a stage's inputs typically include the
    outputs of an earlier stage.

    Attributes
    ----------
    command : str
        Command the plan was built for ("index" or "quant")
    output_dir : Path
        Output directory of the command
    stages : Tuple[Stage, ...]
        Stages in execution order
    """

    command: str
    output_dir: Path
    stages: Tuple[Stage, ...] = field(default_factory=tuple)

    def __post_init__(self):
        stages = tuple(self.stages)
        ids = [s.stage_id for s in stages]
        if len(set(ids)) != len(ids):
            raise ValueError(f"Duplicate stage ids in plan: {ids}")
        object.__setattr__(self, "stages", stages)
        object.__setattr__(self, "output_dir", Path(self.output_dir))

    @classmethod
    def of(cls, command: str, output_dir: Path, stages: Sequence[Stage]) -> "RunPlan":
        return cls(command=command, output_dir=Path(output_dir), stages=tuple(stages))

    def stage_ids(self) -> List[str]:
        return [stage.stage_id for stage in self.stages]

    def get_stage(self, stage_id: str) -> Optional[Stage]:
        """Get a stage by its ID, or None if the plan does not contain it."""
        for stage in self.stages:
            if stage.stage_id == stage_id:
                return stage
        return None

    def describe(self) -> List[str]:
        """One line per stage: ``<stage_id>: <command line>``."""
        return [f"{stage.stage_id}: {stage.command_string()}" for stage in self.stages]

