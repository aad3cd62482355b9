"""Per-subcommand option sets.

Each subcommand gets its own frozen dataclass carrying only its own
fields. The CLI (and workflow replay, which goes through the same CLI
parser) produces these; the resolver turns them into a resolved config.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

from .types import Orientation, ReferenceType, UnfilteredPermitList

DEFAULT_THREADS = 16
DEFAULT_KMER_LENGTH = 31
DEFAULT_MINIMIZER_LENGTH = 19
DEFAULT_MIN_READS = 10


@dataclass(frozen=True)
class IndexOptions:
    """Options of the ``index`` command.

    Exactly one reference source must be given: ``fasta`` + ``gtf`` (an
    expanded reference is built with pyroe) or ``ref_seq`` (indexed
    directly).
    """

    output: Path
    ref_type: ReferenceType = ReferenceType.SPLICED_INTRONIC
    fasta: Optional[Path] = None
    gtf: Optional[Path] = None
    rlen: Optional[int] = None
    dedup: bool = False
    ref_seq: Optional[Path] = None
    spliced: Optional[Path] = None
    unspliced: Optional[Path] = None
    use_piscem: bool = False
    minimizer_length: int = DEFAULT_MINIMIZER_LENGTH
    overwrite: bool = False
    threads: int = DEFAULT_THREADS
    kmer_length: int = DEFAULT_KMER_LENGTH
    keep_duplicates: bool = False
    sparse: bool = False

    command = "index"

    @property
    def builds_reference(self) -> bool:
        return self.fasta is not None


@dataclass(frozen=True)
class QuantOptions:
    """Options of the ``quant`` command.

    Input is either an index plus read files (mapping is run) or a
    pre-mapped directory (mapping is skipped).
    """

    chemistry: str
    output: Path
    resolution: str
    threads: int = DEFAULT_THREADS
    index: Optional[Path] = None
    reads1: Tuple[Path, ...] = field(default_factory=tuple)
    reads2: Tuple[Path, ...] = field(default_factory=tuple)
    use_selective_alignment: bool = False
    use_piscem: bool = False
    map_dir: Optional[Path] = None
    knee: bool = False
    unfiltered_pl: UnfilteredPermitList = field(default_factory=UnfilteredPermitList.absent)
    forced_cells: Optional[int] = None
    explicit_pl: Optional[Path] = None
    expect_cells: Optional[int] = None
    expected_ori: Optional[Orientation] = None
    min_reads: int = DEFAULT_MIN_READS
    t2g_map: Optional[Path] = None

    command = "quant"


@dataclass(frozen=True)
class RunWorkflowOptions:
    """Options of the ``run-workflow`` command."""

    jsons: Tuple[Path, ...]

    command = "run-workflow"
