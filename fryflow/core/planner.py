"""RunPlan construction for the index and quant commands.

Plans are built from a resolved configuration only; every argument is a
structured token, never a formatted shell string.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from ..pipeline import RunPlan, Stage
from ..pipeline.stage import join_paths
from .geometry import validate_geometry
from .resolver import PISCEM_INDEX_STEM, ResolvedIndexConfig, ResolvedQuantConfig
from .types import Chemistry, ChemistryKind, IndexKind, ReferenceType

logger = logging.getLogger(__name__)

REF_DIRNAME = "ref"
INDEX_DIRNAME = "index"
MAP_DIRNAME = "af_map"
QUANT_DIRNAME = "af_quant"

PISCEM_INDEX_SUFFIXES = (".ctab", ".refinfo", ".sshash")
PISCEM_GEOMETRIES = {
    ChemistryKind.TENX_V2: "chromium_v2",
    ChemistryKind.TENX_V3: "chromium_v3",
}
SALMON_CHEMISTRY_FLAGS = {
    ChemistryKind.TENX_V2: "--chromium",
    ChemistryKind.TENX_V3: "--chromiumV3",
}


@dataclass(frozen=True)
class IndexLayout:
    """Where the index command's products land.

    Attributes
    ----------
    output_dir : Path
        Command output directory
    index_dir : Path
        Index output directory
    reference : Path
        Sequence file that gets indexed
    t2g_map : Path, optional
        t2g map produced by the reference builder, None for ``--ref-seq``
    directories : Tuple[Path, ...]
        Directories that must exist before the first stage runs
    """

    output_dir: Path
    index_dir: Path
    reference: Path
    t2g_map: Optional[Path] = None
    directories: Tuple[Path, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class QuantLayout:
    """Where the quant command's products land."""

    output_dir: Path
    map_dir: Path
    quant_dir: Path
    mapper: str = ""


def reference_file_names(ref_type: ReferenceType, rlen: Optional[int]) -> Tuple[str, str]:
    """(reference FASTA, t2g map) file names written by the reference builder."""
    if ref_type is ReferenceType.SPLICED_INTRONIC:
        stem = f"splici_fl{rlen - 5}"
        return f"{stem}.fa", f"{stem}_t2g_3col.tsv"
    return "spliceu.fa", "spliceu_t2g_3col.tsv"


def build_index_plan(config: ResolvedIndexConfig) -> Tuple[RunPlan, IndexLayout]:
    """Build the reference-build (optional) and index-build stages.

    Parameters
    ----------
    config : ResolvedIndexConfig
        Resolved index configuration

    Returns
    -------
    Tuple[RunPlan, IndexLayout]
        The plan and the locations of its products
    """
    options = config.options
    output = Path(options.output)
    index_dir = output / INDEX_DIRNAME
    stages: List[Stage] = []
    directories: List[Path] = [output]

    t2g_map: Optional[Path] = None
    if options.builds_reference:
        ref_dir = output / REF_DIRNAME
        directories.append(ref_dir)
        ref_name, t2g_name = reference_file_names(options.ref_type, options.rlen)
        reference = ref_dir / ref_name
        t2g_map = ref_dir / t2g_name
        stages.append(_pyroe_stage(config, ref_dir, reference, t2g_map))
    else:
        reference = Path(options.ref_seq)

    if config.index_kind is IndexKind.PISCEM:
        directories.append(index_dir)
        stages.append(_piscem_index_stage(config, index_dir, reference))
    else:
        stages.append(_salmon_index_stage(config, index_dir, reference))

    layout = IndexLayout(
        output_dir=output,
        index_dir=index_dir,
        reference=reference,
        t2g_map=t2g_map,
        directories=tuple(directories),
    )
    return RunPlan.of("index", output, stages), layout


def _pyroe_stage(
    config: ResolvedIndexConfig, ref_dir: Path, reference: Path, t2g_map: Path
) -> Stage:
    options = config.options
    pyroe = config.registry.require("pyroe")
    subcommand = (
        "make-splici" if options.ref_type is ReferenceType.SPLICED_INTRONIC else "make-spliceu"
    )
    args: List[str] = [subcommand]
    inputs = [options.fasta, options.gtf]
    if options.dedup:
        args.append("--dedup-seqs")
    if options.spliced is not None:
        args.extend(["--extra-spliced", str(options.spliced)])
        inputs.append(options.spliced)
    if options.unspliced is not None:
        args.extend(["--extra-unspliced", str(options.unspliced)])
        inputs.append(options.unspliced)
    args.extend([str(options.fasta), str(options.gtf)])
    if options.ref_type is ReferenceType.SPLICED_INTRONIC:
        args.append(str(options.rlen))
    args.append(str(ref_dir))
    return Stage(
        name="pyroe",
        stage_id="pyroe",
        executable=pyroe.exe_path,
        args=args,
        inputs=inputs,
        outputs=[reference, t2g_map],
    )


def _piscem_index_stage(config: ResolvedIndexConfig, index_dir: Path, reference: Path) -> Stage:
    options = config.options
    piscem = config.registry.require("piscem")
    prefix = index_dir / PISCEM_INDEX_STEM
    args = [
        "build",
        "-k", str(options.kmer_length),
        "-m", str(options.minimizer_length),
        "-o", str(prefix),
        "-s", str(reference),
    ]
    if options.overwrite:
        logger.info("will attempt to overwrite any existing piscem index, as requested")
        args.append("--overwrite")
    args.extend(["--threads", str(config.threads)])
    return Stage(
        name="piscem build",
        stage_id="index",
        executable=piscem.exe_path,
        args=args,
        inputs=[reference],
        outputs=[prefix.with_name(prefix.name + s) for s in PISCEM_INDEX_SUFFIXES],
    )


def _salmon_index_stage(config: ResolvedIndexConfig, index_dir: Path, reference: Path) -> Stage:
    options = config.options
    salmon = config.registry.require("salmon")
    args = [
        "index",
        "-k", str(options.kmer_length),
        "-i", str(index_dir),
        "-t", str(reference),
    ]
    if options.overwrite:
        logger.info(
            "salmon overwrites an existing index in the same directory by default; "
            "--overwrite has no additional effect"
        )
    if options.sparse:
        args.append("--sparse")
    if options.keep_duplicates:
        args.append("--keepDuplicates")
    args.extend(["--threads", str(config.threads)])
    return Stage(
        name="salmon index",
        stage_id="index",
        executable=salmon.exe_path,
        args=args,
        inputs=[reference],
        outputs=[index_dir],
    )


# ============================================================================
# Quant
# ============================================================================


def piscem_geometry(chemistry: Chemistry) -> str:
    """Geometry argument for ``piscem map-sc``."""
    return PISCEM_GEOMETRIES.get(chemistry.kind, chemistry.as_str())


def salmon_chemistry_args(chemistry: Chemistry) -> List[str]:
    """Chemistry arguments for ``salmon alevin``.

    Raises
    ------
    GeometryError
        If a custom chemistry is not a geometry salmon can express.
    """
    flag = SALMON_CHEMISTRY_FLAGS.get(chemistry.kind)
    if flag is not None:
        return [flag]
    return validate_geometry(chemistry.as_str()).as_salmon_args()


def build_quant_plan(config: ResolvedQuantConfig) -> Tuple[RunPlan, QuantLayout]:
    """Build the map (optional), permit list, collate and quant stages.

    Without an index the supplied mapping directory is used as-is and no
    mapping stage is planned.
    """
    options = config.options
    output = Path(options.output)
    quant_dir = output / QUANT_DIRNAME
    stages: List[Stage] = []

    mapper = ""
    if config.runs_mapping:
        map_dir = output / MAP_DIRNAME
        if config.index_type.kind is IndexKind.PISCEM:
            stages.append(_piscem_map_stage(config, map_dir))
            mapper = "piscem"
        else:
            stages.append(_salmon_map_stage(config, map_dir))
            mapper = "salmon"
    else:
        map_dir = Path(options.map_dir)

    alevin_fry = config.registry.require("alevin_fry").exe_path
    stages.append(
        Stage(
            name="alevin-fry generate-permit-list",
            stage_id="gpl",
            executable=alevin_fry,
            args=[
                "generate-permit-list",
                "-i", str(map_dir),
                "-d", config.orientation.value,
                *config.filter_method.to_args(),
                "-o", str(quant_dir),
            ],
            inputs=[map_dir],
            outputs=[quant_dir],
        )
    )
    stages.append(
        Stage(
            name="alevin-fry collate",
            stage_id="collate",
            executable=alevin_fry,
            args=["collate", "-i", str(quant_dir), "-r", str(map_dir), "-t", str(config.threads)],
            inputs=[quant_dir, map_dir],
            outputs=[quant_dir],
        )
    )
    stages.append(
        Stage(
            name="alevin-fry quant",
            stage_id="quant",
            executable=alevin_fry,
            args=[
                "quant",
                "-i", str(quant_dir),
                "-o", str(quant_dir),
                "-t", str(config.threads),
                "-m", str(config.t2g_map),
                "-r", options.resolution,
            ],
            inputs=[quant_dir, config.t2g_map],
            outputs=[quant_dir],
        )
    )

    layout = QuantLayout(output_dir=output, map_dir=map_dir, quant_dir=quant_dir, mapper=mapper)
    return RunPlan.of("quant", output, stages), layout


def _piscem_map_stage(config: ResolvedQuantConfig, map_dir: Path) -> Stage:
    options = config.options
    piscem = config.registry.require("piscem")
    base = config.index_type.path
    args = [
        "map-sc",
        "--index", str(base),
        "--threads", str(config.threads),
        "-o", str(map_dir),
        "-1", join_paths(options.reads1),
        "-2", join_paths(options.reads2),
        "--geometry", piscem_geometry(config.chemistry),
    ]
    inputs = [base.with_name(base.name + s) for s in PISCEM_INDEX_SUFFIXES]
    inputs.extend(options.reads1)
    inputs.extend(options.reads2)
    return Stage(
        name="piscem map-sc",
        stage_id="map",
        executable=piscem.exe_path,
        args=args,
        inputs=inputs,
        outputs=[map_dir],
    )


def _salmon_map_stage(config: ResolvedQuantConfig, map_dir: Path) -> Stage:
    options = config.options
    salmon = config.registry.require("salmon")
    index = config.index_type.path
    args = ["alevin", "--index", str(index), "-l", "A", "-1"]
    args.extend(str(p) for p in options.reads1)
    args.append("-2")
    args.extend(str(p) for p in options.reads2)
    args.extend(["--threads", str(config.threads), "-o", str(map_dir)])
    args.append("--rad" if options.use_selective_alignment else "--sketch")
    args.extend(salmon_chemistry_args(config.chemistry))
    return Stage(
        name="salmon alevin",
        stage_id="map",
        executable=salmon.exe_path,
        args=args,
        inputs=[index, *options.reads1, *options.reads2],
        outputs=[map_dir],
    )
