"""Configuration resolution for the index and quant commands.

User options are often partial: the index type may only be known from
metadata written when the index was built, the chemistry may be a custom
name, and orientation and thread count have defaults that depend on other
values. The functions here turn the options into a fully determined,
internally consistent configuration, or fail with a ConfigurationError
before any external program is spawned.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Mapping, Optional, Tuple

from packaging.specifiers import InvalidSpecifier, SpecifierSet
from packaging.version import InvalidVersion, Version

from ..config import AppHome, ToolRegistry
from ..io import read_json
from .errors import ConfigurationError
from .options import IndexOptions, QuantOptions
from .permit_list import PermitListStatus, get_permit_if_absent
from .types import (
    BUILTIN_CHEMISTRIES,
    RESOLUTION_MODES,
    CellFilterMethod,
    Chemistry,
    FilterKind,
    IndexKind,
    IndexType,
    Orientation,
    ReferenceType,
    UnfilteredKind,
    UnfilteredPermitList,
)

logger = logging.getLogger(__name__)

INDEX_METADATA_FILENAME = "fryflow_index.json"
PISCEM_INDEX_STEM = "piscem_idx"
SPLICEU_PYROE_REQUIREMENT = ">=0.8.1, <1.0.0"


# ============================================================================
# Index metadata
# ============================================================================


@dataclass(frozen=True)
class IndexMetadata:
    """Fields of a persisted index metadata record used for self-configuration.

    Attributes
    ----------
    index_type : str
        "salmon" or "piscem"
    t2g_file : str, optional
        t2g map path, relative to the index directory
    """

    index_type: str
    t2g_file: Optional[str] = None


def read_index_metadata(index_dir: Path) -> Optional[IndexMetadata]:
    """Read the index metadata record from an index directory, if present."""
    path = Path(index_dir) / INDEX_METADATA_FILENAME
    if not path.is_file():
        return None
    record = read_json(path)
    if not isinstance(record, dict) or "index_type" not in record:
        raise ConfigurationError(f"Index metadata {path} has no 'index_type' field")
    t2g_file = record.get("t2g_file")
    return IndexMetadata(
        index_type=str(record["index_type"]),
        t2g_file=str(t2g_file) if t2g_file is not None else None,
    )


def resolve_index_type(
    index_dir: Optional[Path],
    use_piscem: bool,
    metadata: Optional[IndexMetadata],
) -> IndexType:
    """Decide which mapper's index is in use.

    An explicit piscem request wins over persisted metadata (the path is
    then taken as the piscem index prefix); otherwise persisted metadata is
    trusted, and without metadata salmon is assumed. No index directory
    means no index.
    """
    if index_dir is None:
        return IndexType.no_index()
    index_dir = Path(index_dir)
    if use_piscem:
        return IndexType.piscem(index_dir)
    if metadata is None:
        return IndexType.salmon(index_dir)
    if metadata.index_type == "salmon":
        return IndexType.salmon(index_dir)
    if metadata.index_type == "piscem":
        return IndexType.piscem(index_dir / PISCEM_INDEX_STEM)
    raise ConfigurationError(
        f"unknown index type {metadata.index_type} present in {INDEX_METADATA_FILENAME}"
    )


def resolve_t2g_map(
    explicit: Optional[Path],
    index_dir: Optional[Path],
    metadata: Optional[IndexMetadata],
) -> Path:
    """Return the t2g map, inferring it from index metadata if not given.

    Raises
    ------
    ConfigurationError
        If no t2g map was given or inferred, or the file does not exist.
    """
    t2g = Path(explicit) if explicit is not None else None
    if t2g is None and index_dir is not None and metadata is not None and metadata.t2g_file:
        t2g = Path(index_dir) / metadata.t2g_file
        logger.info(
            "found local t2g file at %s, will attempt to use this since none was provided explicitly",
            t2g,
        )
    if t2g is None:
        raise ConfigurationError(
            "A transcript-to-gene map (t2g) file was not provided via `--t2g-map`|`-m` "
            "and could not be inferred from the index.",
            suggestion="Provide a t2g map explicitly to the quant command.",
        )
    if not t2g.exists():
        raise ConfigurationError(f"The t2g map {t2g} does not exist.")
    return t2g


# ============================================================================
# Chemistry, orientation, filtering
# ============================================================================


def resolve_chemistry(name: str, custom_chemistries: Mapping[str, str]) -> Chemistry:
    """Map a chemistry name to a Chemistry; never fails.

    Built-in names map directly; other names are looked up in the custom
    mapping and replaced by their geometry; unknown names pass through.
    """
    builtin = BUILTIN_CHEMISTRIES.get(name)
    if builtin is not None:
        return builtin
    geometry = custom_chemistries.get(name)
    if isinstance(geometry, str):
        logger.info("custom chemistry %s maps to geometry %s", name, geometry)
        return Chemistry.other(geometry)
    return Chemistry.other(name)


def resolve_orientation(explicit: Optional[Orientation], chemistry: Chemistry) -> Orientation:
    """Explicit orientation wins; else forward for 10x chemistries, both otherwise."""
    if explicit is not None:
        return explicit
    return Orientation.FORWARD if chemistry.is_chromium else Orientation.BOTH


def resolve_filter_method(
    options: QuantOptions,
    chemistry: Chemistry,
    fetch_permit_list: Callable[[Chemistry], Optional[Path]],
) -> CellFilterMethod:
    """Choose the cell filtering strategy.

    Options are considered in the order unfiltered permit list, explicit
    permit list, forced cells, expected cells, knee finding. The first one
    that is set is used; any others are reported and ignored.

    Parameters
    ----------
    options : QuantOptions
        Quant options
    chemistry : Chemistry
        Resolved chemistry, used to auto-fetch an unfiltered permit list
    fetch_permit_list : Callable
        Returns the canonical permit list for a chemistry, or None if the
        chemistry has none

    Raises
    ------
    ConfigurationError
        If no strategy is set, an unfiltered permit list file does not
        exist, or no canonical list exists for the chemistry.
    """
    candidates: List[Tuple[FilterKind, Callable[[], CellFilterMethod]]] = []
    unfiltered = options.unfiltered_pl
    if unfiltered.is_set:
        candidates.append(
            (
                FilterKind.UNFILTERED_EXTERNAL_LIST,
                lambda: _resolve_unfiltered(unfiltered, options.min_reads, chemistry, fetch_permit_list),
            )
        )
    if options.explicit_pl is not None:
        candidates.append(
            (FilterKind.EXPLICIT_LIST, lambda: CellFilterMethod.explicit_list(options.explicit_pl))
        )
    if options.forced_cells is not None:
        candidates.append(
            (FilterKind.FORCE_CELLS, lambda: CellFilterMethod.force_cells(options.forced_cells))
        )
    if options.expect_cells is not None:
        candidates.append(
            (FilterKind.EXPECT_CELLS, lambda: CellFilterMethod.expect_cells(options.expect_cells))
        )
    if options.knee:
        candidates.append((FilterKind.KNEE_FINDING, CellFilterMethod.knee_finding))

    if not candidates:
        raise ConfigurationError(
            "No valid filtering strategy was provided!",
            suggestion="Pass one of --knee, --unfiltered-pl, --explicit-pl, "
            "--forced-cells or --expect-cells.",
        )

    (kind, build), ignored = candidates[0], candidates[1:]
    if ignored:
        logger.warning(
            "Multiple filtering strategies were given; using %s and ignoring %s",
            kind.value,
            ", ".join(k.value for k, _ in ignored),
        )
    return build()


def _resolve_unfiltered(
    unfiltered: UnfilteredPermitList,
    min_reads: int,
    chemistry: Chemistry,
    fetch_permit_list: Callable[[Chemistry], Optional[Path]],
) -> CellFilterMethod:
    if unfiltered.kind is UnfilteredKind.WITH_PATH:
        if not unfiltered.path.is_file():
            raise ConfigurationError(
                f"The provided path {unfiltered.path} does not exist as a regular file."
            )
        return CellFilterMethod.unfiltered_external_list(unfiltered.path, min_reads)

    permit_list = fetch_permit_list(chemistry)
    if permit_list is None:
        raise ConfigurationError(
            "Cannot automatically obtain an unfiltered permit list for non-Chromium "
            f"chemistry: {chemistry.as_str()}.",
            suggestion="Pass the permit list file explicitly with --unfiltered-pl PATH.",
        )
    return CellFilterMethod.unfiltered_external_list(permit_list, min_reads)


def home_permit_list_fetcher(home: AppHome) -> Callable[[Chemistry], Optional[Path]]:
    """Fetcher backed by the home directory's permit list cache."""

    def fetch(chemistry: Chemistry) -> Optional[Path]:
        result = get_permit_if_absent(home, chemistry)
        if result.status is PermitListStatus.UNREGISTERED_CHEMISTRY:
            return None
        return result.path

    return fetch


# ============================================================================
# Threads and versions
# ============================================================================


def available_parallelism() -> Optional[int]:
    """CPUs this process may run on, honouring its affinity mask where supported."""
    if hasattr(os, "sched_getaffinity"):
        return len(os.sched_getaffinity(0))
    return os.cpu_count()


def clamp_threads(requested: int, available: Optional[int] = None) -> int:
    """Clamp a thread count to the host's available parallelism.

    Parameters
    ----------
    requested : int
        Requested thread count
    available : int, optional
        Host parallelism; detected with :func:`available_parallelism` when
        omitted. If it cannot be determined the request is returned unchanged.
    """
    if available is None:
        available = available_parallelism()
    if available is not None and requested > available:
        logger.warning(
            "The maximum available parallelism is %d, but %d threads were requested.",
            available,
            requested,
        )
        logger.warning("setting number of threads to %d", available)
        return available
    return requested


def check_version_constraint(tool: str, requirement: str, version: str) -> None:
    """Fail unless ``version`` satisfies the requirement (e.g. ">=0.8.1, <1.0.0")."""
    try:
        satisfied = Version(version) in SpecifierSet(requirement)
    except InvalidVersion:
        raise ConfigurationError(f"Could not parse {tool} version '{version}'") from None
    except InvalidSpecifier:
        raise ConfigurationError(f"Invalid version requirement '{requirement}' for {tool}") from None
    if not satisfied:
        raise ConfigurationError(
            f"{tool} version {version} does not satisfy the requirement {requirement}",
            suggestion=f"Install a {tool} version matching {requirement}.",
        )


# ============================================================================
# Resolved configurations
# ============================================================================


@dataclass(frozen=True)
class ResolvedIndexConfig:
    """Index options plus everything resolved from them."""

    options: IndexOptions
    registry: ToolRegistry
    index_kind: IndexKind
    threads: int


@dataclass(frozen=True)
class ResolvedQuantConfig:
    """Quant options plus everything resolved from them."""

    options: QuantOptions
    registry: ToolRegistry
    index_type: IndexType
    t2g_map: Path
    chemistry: Chemistry
    orientation: Orientation
    filter_method: CellFilterMethod
    threads: int

    @property
    def runs_mapping(self) -> bool:
        return self.index_type.kind is not IndexKind.NONE


def check_index_options(options: IndexOptions) -> None:
    """Reject contradictory or incomplete index option combinations."""
    if (options.fasta is None) == (options.ref_seq is None):
        raise ConfigurationError(
            "Exactly one reference source is required: --fasta with --gtf, or --ref-seq."
        )
    if options.fasta is not None and options.gtf is None:
        raise ConfigurationError("--fasta requires --gtf.")
    if options.ref_seq is not None:
        conflicting = [
            flag
            for flag, value in (
                ("--gtf", options.gtf),
                ("--rlen", options.rlen),
                ("--spliced", options.spliced),
                ("--unspliced", options.unspliced),
            )
            if value is not None
        ]
        if options.dedup:
            conflicting.append("--dedup")
        if conflicting:
            raise ConfigurationError(
                f"--ref-seq cannot be combined with {', '.join(conflicting)}."
            )
    if options.sparse and options.use_piscem:
        raise ConfigurationError("--sparse cannot be used with --use-piscem.")
    if options.use_piscem and options.minimizer_length >= options.kmer_length:
        raise ConfigurationError(
            f"The minimizer length ({options.minimizer_length}) must be smaller than "
            f"the k-mer length ({options.kmer_length})."
        )
    if options.rlen is not None and options.rlen <= 5:
        raise ConfigurationError(f"The read length must be greater than 5, got {options.rlen}.")


def check_reference_preconditions(options: IndexOptions, registry: ToolRegistry) -> None:
    """Checks for building an expanded reference.

    spliced+intronic needs a read length; spliced+unspliced needs a pyroe
    that satisfies SPLICEU_PYROE_REQUIREMENT.
    """
    if not options.builds_reference:
        return
    if options.ref_type is ReferenceType.SPLICED_INTRONIC:
        if options.rlen is None:
            raise ConfigurationError(
                "A spliced+intronic reference was requested, but no read length "
                "argument (--rlen) was provided."
            )
        registry.require("pyroe", "building a spliced+intronic reference")
    else:
        pyroe = registry.require("pyroe", "building a spliced+unspliced reference")
        check_version_constraint("pyroe", SPLICEU_PYROE_REQUIREMENT, pyroe.version)


def resolve_index_config(
    options: IndexOptions,
    registry: ToolRegistry,
    available_threads: Optional[int] = None,
) -> ResolvedIndexConfig:
    """Resolve index options.

    Raises
    ------
    ConfigurationError
        On contradictory options, a failed reference precondition, or a
        missing indexer executable.
    """
    check_index_options(options)
    check_reference_preconditions(options, registry)

    if options.use_piscem:
        registry.require("piscem", "building a piscem index")
        index_kind = IndexKind.PISCEM
    else:
        registry.require("salmon", "building a salmon index")
        index_kind = IndexKind.SALMON

    return ResolvedIndexConfig(
        options=options,
        registry=registry,
        index_kind=index_kind,
        threads=clamp_threads(options.threads, available_threads),
    )


def check_quant_options(options: QuantOptions) -> None:
    """Reject contradictory or incomplete quant option combinations."""
    if (options.index is None) == (options.map_dir is None):
        raise ConfigurationError(
            "Exactly one input is required: --index with --reads1/--reads2, or --map-dir."
        )
    if options.index is not None:
        if not options.reads1 or not options.reads2:
            raise ConfigurationError(
                "Since mapping against an index is requested, read1 and read2 files must be provided."
            )
        if len(options.reads1) != len(options.reads2):
            raise ConfigurationError(
                f"{len(options.reads1)} read1 files and {len(options.reads2)} read2 files "
                "were given; Cannot proceed!"
            )
    elif options.reads1 or options.reads2:
        raise ConfigurationError("--reads1/--reads2 cannot be combined with --map-dir.")
    if options.use_piscem and options.index is None:
        raise ConfigurationError("--use-piscem requires --index.")
    if options.resolution not in RESOLUTION_MODES:
        raise ConfigurationError(
            f"Unknown resolution mode '{options.resolution}'",
            suggestion=f"Choose one of: {', '.join(RESOLUTION_MODES)}",
        )


def resolve_quant_config(
    home: AppHome,
    options: QuantOptions,
    registry: ToolRegistry,
    available_threads: Optional[int] = None,
    fetch_permit_list: Optional[Callable[[Chemistry], Optional[Path]]] = None,
) -> ResolvedQuantConfig:
    """Resolve quant options.

    Parameters
    ----------
    home : AppHome
        Home directory (custom chemistries, permit list cache)
    options : QuantOptions
        Quant options
    registry : ToolRegistry
        Registered external programs
    available_threads : int, optional
        Host parallelism override
    fetch_permit_list : Callable, optional
        Override for canonical permit list retrieval

    Raises
    ------
    ConfigurationError
        If the options cannot be resolved.
    """
    check_quant_options(options)

    metadata = read_index_metadata(options.index) if options.index is not None else None
    t2g_map = resolve_t2g_map(options.t2g_map, options.index, metadata)

    index_type = resolve_index_type(options.index, options.use_piscem, metadata)
    if index_type.kind is IndexKind.PISCEM:
        registry.require("piscem", "mapping against a piscem index")
    elif index_type.kind is IndexKind.SALMON:
        registry.require("salmon", "mapping against a salmon index")
    registry.require("alevin_fry", "permit list generation, collation and quantification")

    chemistry = resolve_chemistry(options.chemistry, home.load_custom_chemistries())
    orientation = resolve_orientation(options.expected_ori, chemistry)

    if fetch_permit_list is None:
        fetch_permit_list = home_permit_list_fetcher(home)
    filter_method = resolve_filter_method(options, chemistry, fetch_permit_list)

    return ResolvedQuantConfig(
        options=options,
        registry=registry,
        index_type=index_type,
        t2g_map=t2g_map,
        chemistry=chemistry,
        orientation=orientation,
        filter_method=filter_method,
        threads=clamp_threads(options.threads, available_threads),
    )
