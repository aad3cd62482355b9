"""Resolved configuration values shared by the resolver and the planner.

The variants below are plain enums or frozen dataclasses; once resolved
they are never mutated.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional


class ReferenceType(Enum):
    """Expanded reference flavor built by pyroe."""

    SPLICED_INTRONIC = "spliced+intronic"
    SPLICED_UNSPLICED = "spliced+unspliced"

    @classmethod
    def parse(cls, value: str) -> "ReferenceType":
        """Parse a reference type name, accepting the short aliases."""
        aliases = {
            "spliced+intronic": cls.SPLICED_INTRONIC,
            "splici": cls.SPLICED_INTRONIC,
            "spliced+unspliced": cls.SPLICED_UNSPLICED,
            "spliceu": cls.SPLICED_UNSPLICED,
        }
        try:
            return aliases[value]
        except KeyError:
            raise ValueError(f"Do not recognize reference type {value}") from None


class IndexKind(Enum):
    SALMON = "salmon"
    PISCEM = "piscem"
    NONE = "none"


@dataclass(frozen=True)
class IndexType:
    """Which mapper's index is used, and where it lives.

    For piscem the path is the index prefix (``<dir>/piscem_idx``), for
    salmon it is the index directory.
    """

    kind: IndexKind
    path: Optional[Path] = None

    @classmethod
    def salmon(cls, path: Path) -> "IndexType":
        return cls(IndexKind.SALMON, Path(path))

    @classmethod
    def piscem(cls, path: Path) -> "IndexType":
        return cls(IndexKind.PISCEM, Path(path))

    @classmethod
    def no_index(cls) -> "IndexType":
        return cls(IndexKind.NONE)


class ChemistryKind(Enum):
    TENX_V2 = "10xv2"
    TENX_V3 = "10xv3"
    OTHER = "other"


@dataclass(frozen=True)
class Chemistry:
    """A single-cell chemistry.

    Attributes
    ----------
    kind : ChemistryKind
        Built-in 10x chemistry or OTHER
    descriptor : str
        "10xv2"/"10xv3" for the built-ins; for OTHER either a geometry
        string (when a custom mapping applied) or the name as given
    """

    kind: ChemistryKind
    descriptor: str

    @classmethod
    def other(cls, descriptor: str) -> "Chemistry":
        return cls(ChemistryKind.OTHER, descriptor)

    @property
    def is_chromium(self) -> bool:
        return self.kind in (ChemistryKind.TENX_V2, ChemistryKind.TENX_V3)

    def as_str(self) -> str:
        return self.descriptor


TENX_V2 = Chemistry(ChemistryKind.TENX_V2, "10xv2")
TENX_V3 = Chemistry(ChemistryKind.TENX_V3, "10xv3")
BUILTIN_CHEMISTRIES = {c.descriptor: c for c in (TENX_V2, TENX_V3)}


class Orientation(Enum):
    """Expected alignment orientation passed to generate-permit-list."""

    FORWARD = "fw"
    REVERSE_COMPLEMENT = "rc"
    BOTH = "both"


class UnfilteredKind(Enum):
    ABSENT = "absent"
    AUTO_DETECT = "auto"
    WITH_PATH = "path"


@dataclass(frozen=True)
class UnfilteredPermitList:
    """State of the unfiltered permit list option.

    The option may be absent, given without a value (fetch the canonical
    list for the chemistry), or given with an explicit file.
    """

    kind: UnfilteredKind = UnfilteredKind.ABSENT
    path: Optional[Path] = None

    @classmethod
    def absent(cls) -> "UnfilteredPermitList":
        return cls()

    @classmethod
    def auto_detect(cls) -> "UnfilteredPermitList":
        return cls(UnfilteredKind.AUTO_DETECT)

    @classmethod
    def with_path(cls, path: Path) -> "UnfilteredPermitList":
        return cls(UnfilteredKind.WITH_PATH, Path(path))

    @property
    def is_set(self) -> bool:
        return self.kind is not UnfilteredKind.ABSENT


class FilterKind(Enum):
    UNFILTERED_EXTERNAL_LIST = "unfiltered-pl"
    EXPLICIT_LIST = "explicit-pl"
    FORCE_CELLS = "forced-cells"
    EXPECT_CELLS = "expect-cells"
    KNEE_FINDING = "knee"


@dataclass(frozen=True)
class CellFilterMethod:
    """Cell filtering strategy for alevin-fry generate-permit-list."""

    kind: FilterKind
    path: Optional[Path] = None
    count: Optional[int] = None
    min_reads: Optional[int] = None

    @classmethod
    def unfiltered_external_list(cls, path: Path, min_reads: int) -> "CellFilterMethod":
        return cls(FilterKind.UNFILTERED_EXTERNAL_LIST, path=Path(path), min_reads=min_reads)

    @classmethod
    def explicit_list(cls, path: Path) -> "CellFilterMethod":
        return cls(FilterKind.EXPLICIT_LIST, path=Path(path))

    @classmethod
    def force_cells(cls, n: int) -> "CellFilterMethod":
        return cls(FilterKind.FORCE_CELLS, count=n)

    @classmethod
    def expect_cells(cls, n: int) -> "CellFilterMethod":
        return cls(FilterKind.EXPECT_CELLS, count=n)

    @classmethod
    def knee_finding(cls) -> "CellFilterMethod":
        return cls(FilterKind.KNEE_FINDING)

    def to_args(self) -> List[str]:
        """Arguments for ``alevin-fry generate-permit-list``."""
        if self.kind is FilterKind.UNFILTERED_EXTERNAL_LIST:
            return ["--unfiltered-pl", str(self.path), "--min-reads", str(self.min_reads)]
        if self.kind is FilterKind.EXPLICIT_LIST:
            return ["--valid-bc", str(self.path)]
        if self.kind is FilterKind.FORCE_CELLS:
            return ["--force-cells", str(self.count)]
        if self.kind is FilterKind.EXPECT_CELLS:
            return ["--expect-cells", str(self.count)]
        return ["--knee-distance"]


RESOLUTION_MODES = (
    "cr-like",
    "cr-like-em",
    "parsimony",
    "parsimony-em",
    "parsimony-gene",
    "parsimony-gene-em",
)
