"""Drivers for the index and quant commands.

Each driver resolves its options, builds a RunPlan, and hands the plan to
a PipelineExecutor inside a provenance session, so the run's provenance
record is written whether the run completes or fails.
"""

from __future__ import annotations

import logging
import shutil
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Optional, Union

from ..config import AppHome
from ..io import ensure_output_dir, write_json
from ..pipeline import PipelineExecutor, PipelineLogger, RunPlan
from .errors import PersistenceError
from .options import IndexOptions, QuantOptions
from .planner import (
    IndexLayout,
    QuantLayout,
    build_index_plan,
    build_quant_plan,
)
from .provenance import ProvenanceRecord
from .resolver import (
    INDEX_METADATA_FILENAME,
    ResolvedIndexConfig,
    resolve_index_config,
    resolve_quant_config,
)
from .types import Chemistry, IndexKind

logger = logging.getLogger(__name__)

INDEX_INFO_FILENAME = "index_info.json"
INDEX_LOG_FILENAME = "fryflow_index_log.json"
QUANT_LOG_FILENAME = "fryflow_quant_log.json"
INDEX_T2G_FILENAME = "t2g_3col.tsv"
LOG_DIRNAME = "logs"


@dataclass(frozen=True)
class CommandResult:
    """Outcome of an index or quant invocation.

    ``provenance`` is None for a dry run.
    """

    plan: RunPlan
    layout: Union[IndexLayout, QuantLayout]
    provenance: Optional[ProvenanceRecord] = None


@contextmanager
def _executor_for(
    plan: RunPlan, executor: Optional[PipelineExecutor], log_level: str
) -> Iterator[PipelineExecutor]:
    """Yield the given executor, or one logging to ``<output>/logs``."""
    if executor is not None:
        yield executor
        return
    log_dir = plan.output_dir / LOG_DIRNAME
    with PipelineLogger(log_dir, log_level=log_level, command=plan.command) as run_log:
        logger.info("Logging to %s", run_log.log_file)
        yield PipelineExecutor(run_log)


def _log_dry_run(plan: RunPlan) -> None:
    logger.info("Dry run; %d stage(s) would be executed:", len(plan.stages))
    for line in plan.describe():
        logger.info("  %s", line)


# ============================================================================
# Index
# ============================================================================


def run_index(
    home: AppHome,
    options: IndexOptions,
    dry_run: bool = False,
    executor: Optional[PipelineExecutor] = None,
    log_level: str = "INFO",
    available_threads: Optional[int] = None,
) -> CommandResult:
    """Build an (optionally expanded) reference and index it.

    Parameters
    ----------
    home : AppHome
        Home directory holding the tool registry
    options : IndexOptions
        Index command options
    dry_run : bool
        Resolve and plan only; nothing is spawned or written
    executor : PipelineExecutor, optional
        Executor to run the plan with; by default one is created that logs
        to ``<output>/logs``
    log_level : str
        Level for the default executor's log handlers
    available_threads : int, optional
        Host parallelism override used for thread clamping

    Raises
    ------
    FryflowError
        Any configuration, precondition, execution or persistence failure
    """
    registry = home.load_registry()
    config = resolve_index_config(options, registry, available_threads)
    plan, layout = build_index_plan(config)

    if dry_run:
        _log_dry_run(plan)
        return CommandResult(plan, layout)

    for directory in layout.directories:
        ensure_output_dir(directory)
    write_json(layout.output_dir / INDEX_INFO_FILENAME, _index_info(config, layout))

    provenance = ProvenanceRecord(
        layout.output_dir / INDEX_LOG_FILENAME, version_info=registry.versions()
    )
    with _executor_for(plan, executor, log_level) as pipeline:
        with provenance.session():
            pipeline.run(plan, provenance)
            _finalize_index(config, plan, layout)

    logger.info("Index written to %s", layout.index_dir)
    return CommandResult(plan, layout, provenance)


def _index_info(config: ResolvedIndexConfig, layout: IndexLayout) -> Dict[str, Any]:
    """Record of the index invocation written before anything runs."""
    options = config.options
    args: Dict[str, Any] = {
        "output": str(options.output),
        "overwrite": options.overwrite,
        "keep_duplicates": options.keep_duplicates,
        "sparse": options.sparse,
        "threads": config.threads,
    }
    info: Dict[str, Any] = {
        "command": "index",
        "version_info": config.registry.to_dict(),
        "args": args,
    }
    if options.builds_reference:
        info["t2g_file"] = str(layout.t2g_map)
        args["ref_type"] = options.ref_type.value
        args["fasta"] = str(options.fasta)
        args["gtf"] = str(options.gtf)
        args["rlen"] = options.rlen
        args["spliced"] = str(options.spliced) if options.spliced is not None else None
        args["unspliced"] = str(options.unspliced) if options.unspliced is not None else None
        args["dedup"] = options.dedup
    else:
        args["ref-seq"] = str(options.ref_seq)
    return info


def _finalize_index(config: ResolvedIndexConfig, plan: RunPlan, layout: IndexLayout) -> None:
    """Copy the t2g map into the index and write the index metadata."""
    ensure_output_dir(layout.index_dir)
    t2g_file = None
    if layout.t2g_map is not None:
        target = layout.index_dir / INDEX_T2G_FILENAME
        try:
            shutil.copyfile(layout.t2g_map, target)
        except OSError as e:
            raise PersistenceError(f"Could not copy t2g map: {e}", target) from e
        t2g_file = INDEX_T2G_FILENAME

    options = config.options
    metadata: Dict[str, Any] = {
        "cmd": plan.get_stage("index").command_string(),
        "index_type": config.index_kind.value,
        "t2g_file": t2g_file,
    }
    if config.index_kind is IndexKind.PISCEM:
        metadata["piscem_index_parameters"] = {
            "k": options.kmer_length,
            "m": options.minimizer_length,
            "overwrite": options.overwrite,
            "threads": config.threads,
            "ref": str(layout.reference),
        }
    else:
        metadata["salmon_index_parameters"] = {
            "k": options.kmer_length,
            "overwrite": options.overwrite,
            "sparse": options.sparse,
            "keep_duplicates": options.keep_duplicates,
            "threads": config.threads,
            "ref": str(layout.reference),
        }
    write_json(layout.index_dir / INDEX_METADATA_FILENAME, metadata)


# ============================================================================
# Quant
# ============================================================================


def run_quant(
    home: AppHome,
    options: QuantOptions,
    dry_run: bool = False,
    executor: Optional[PipelineExecutor] = None,
    log_level: str = "INFO",
    available_threads: Optional[int] = None,
    fetch_permit_list: Optional[Callable[[Chemistry], Optional[Path]]] = None,
) -> CommandResult:
    """Map (unless a mapping directory is given), then generate the permit
    list, collate and quantify.

    Parameters are as for :func:`run_index`, plus ``fetch_permit_list``
    which overrides canonical permit list retrieval.
    """
    registry = home.load_registry()
    config = resolve_quant_config(
        home, options, registry, available_threads, fetch_permit_list
    )
    plan, layout = build_quant_plan(config)

    if dry_run:
        _log_dry_run(plan)
        return CommandResult(plan, layout)

    ensure_output_dir(layout.output_dir)
    provenance = ProvenanceRecord(
        layout.output_dir / QUANT_LOG_FILENAME, version_info=registry.versions()
    )

    map_stage = plan.get_stage("map")
    map_cmd = map_stage.command_string() if map_stage is not None else ""
    provenance.set_map_info(layout.mapper, map_cmd, layout.map_dir)
    if map_stage is None:
        logger.info("Using existing mapping directory %s; skipping mapping", layout.map_dir)
        provenance.record_stage("map", "", 0.0)

    with _executor_for(plan, executor, log_level) as pipeline:
        with provenance.session():
            pipeline.run(plan, provenance)

    logger.info("Quantification written to %s", layout.quant_dir)
    return CommandResult(plan, layout, provenance)
