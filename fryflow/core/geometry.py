"""Fragment geometry parsing.

A geometry string describes where barcode (``b``), UMI (``u``), biological
read (``r``) and discarded (``x``) sequence lie within read 1 and read 2,
for example ``1{b[16]u[12]x:}2{r:}``. Each piece has a fixed length in
brackets or ``:`` meaning "to the end of the read", which is only allowed
for the last piece of a read.

piscem consumes the geometry string verbatim; salmon needs the
``--bc-geometry``/``--umi-geometry``/``--read-geometry`` triple produced by
:meth:`ParsedGeometry.as_salmon_args`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .errors import GeometryError

READ_PATTERN = re.compile(r"([12])\{([^{}]*)\}")
PIECE_PATTERN = re.compile(r"([bBuUrRxX])(?:\[(\d+)\]|(:))")

PIECE_NAMES = {"b": "barcode", "u": "umi", "r": "read", "x": "discard"}
SALMON_FLAGS = {"b": "--bc-geometry", "u": "--umi-geometry", "r": "--read-geometry"}


@dataclass(frozen=True)
class GeometryPiece:
    """One piece of a read layout; ``length`` is None for ``:``."""

    kind: str
    length: Optional[int] = None


@dataclass
class ParsedGeometry:
    """Validated geometry: read number -> ordered pieces."""

    text: str
    reads: Dict[int, List[GeometryPiece]] = field(default_factory=dict)

    def ranges(self, kind: str) -> Dict[int, List[str]]:
        """1-based inclusive ranges for a piece kind, grouped by read."""
        out: Dict[int, List[str]] = {}
        for read_num, pieces in sorted(self.reads.items()):
            start = 1
            for piece in pieces:
                if piece.length is None:
                    end = "end"
                else:
                    end = str(start + piece.length - 1)
                if piece.kind == kind:
                    out.setdefault(read_num, []).append(f"{start}-{end}")
                if piece.length is not None:
                    start += piece.length
        return out

    def as_salmon_args(self) -> List[str]:
        """Translate into salmon alevin custom geometry arguments.

        Raises
        ------
        GeometryError
            If a piece kind spans both reads, which salmon cannot express.
        """
        args: List[str] = []
        for kind in ("r", "b", "u"):
            ranges = self.ranges(kind)
            if len(ranges) != 1:
                raise GeometryError(
                    f"The {PIECE_NAMES[kind]} sequence must lie within a single read "
                    "to be passed to salmon",
                    self.text,
                )
            (read_num, spans), = ranges.items()
            args.extend([SALMON_FLAGS[kind], f"{read_num}[{','.join(spans)}]"])
        return args


def validate_geometry(text: str) -> ParsedGeometry:
    """Parse and validate a geometry string.

    Parameters
    ----------
    text : str
        Geometry description such as ``1{b[16]u[12]x:}2{r:}``

    Returns
    -------
    ParsedGeometry
        Parsed layout

    Raises
    ------
    GeometryError
        If the string is malformed or lacks a barcode, UMI or read piece.
    """
    stripped = text.strip()
    geometry = ParsedGeometry(text=stripped)

    position = 0
    for match in READ_PATTERN.finditer(stripped):
        if match.start() != position:
            raise GeometryError("Unexpected text between read descriptions", text)
        position = match.end()

        read_num = int(match.group(1))
        if read_num in geometry.reads:
            raise GeometryError(f"Read {read_num} is described more than once", text)
        geometry.reads[read_num] = _parse_pieces(match.group(2), text)

    if not geometry.reads or position != len(stripped):
        raise GeometryError("Could not parse geometry description", text)

    present = {p.kind for pieces in geometry.reads.values() for p in pieces}
    for kind in ("b", "u", "r"):
        if kind not in present:
            raise GeometryError(f"Geometry has no {PIECE_NAMES[kind]} piece", text)

    return geometry


def _parse_pieces(body: str, text: str) -> List[GeometryPiece]:
    pieces: List[GeometryPiece] = []
    position = 0
    for match in PIECE_PATTERN.finditer(body):
        if match.start() != position:
            raise GeometryError(f"Unrecognized piece in '{body}'", text)
        position = match.end()

        if pieces and pieces[-1].length is None:
            raise GeometryError("Only the last piece of a read may be unbounded", text)

        length = None
        if match.group(2) is not None:
            length = int(match.group(2))
            if length == 0:
                raise GeometryError("Piece lengths must be positive", text)
        pieces.append(GeometryPiece(match.group(1).lower(), length))

    if not pieces or position != len(body):
        raise GeometryError(f"Unrecognized piece in '{body}'", text)
    return pieces
