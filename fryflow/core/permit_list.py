"""Canonical unfiltered permit lists for 10x Chromium chemistries.

Lists are downloaded once into ``<home>/plist/`` and reused by later runs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Tuple

import requests

from ..config import AppHome
from ..io import ensure_output_dir
from .errors import PersistenceError
from .types import Chemistry, ChemistryKind

logger = logging.getLogger(__name__)

DOWNLOAD_TIMEOUT = 60
CHUNK_SIZE = 1 << 20

# chemistry -> (cached file name, source URL)
PERMIT_LIST_SOURCES: Dict[ChemistryKind, Tuple[str, str]] = {
    ChemistryKind.TENX_V2: (
        "10x_v2_permit.txt",
        "https://umd.box.com/shared/static/jbs2wszgbj7k4ic2hass9ts6nhqkwq1p",
    ),
    ChemistryKind.TENX_V3: (
        "10x_v3_permit.txt",
        "https://umd.box.com/shared/static/eo0qlkfqf2v24ws6dfnxty6gqk1otf2h",
    ),
}


class PermitListStatus(Enum):
    DOWNLOADED = "downloaded"
    ALREADY_PRESENT = "already_present"
    UNREGISTERED_CHEMISTRY = "unregistered_chemistry"


@dataclass(frozen=True)
class PermitListResult:
    status: PermitListStatus
    path: Optional[Path] = None


def get_permit_if_absent(home: AppHome, chemistry: Chemistry) -> PermitListResult:
    """Return the cached permit list for a chemistry, downloading it if needed.

    Parameters
    ----------
    home : AppHome
        Home directory holding the permit list cache
    chemistry : Chemistry
        Resolved chemistry

    Returns
    -------
    PermitListResult
        UNREGISTERED_CHEMISTRY (with no path) for chemistries without a
        canonical list

    Raises
    ------
    PersistenceError
        If the download or the write fails.
    """
    source = PERMIT_LIST_SOURCES.get(chemistry.kind)
    if source is None:
        return PermitListResult(PermitListStatus.UNREGISTERED_CHEMISTRY)

    filename, url = source
    target = home.permit_list_dir / filename
    if target.is_file():
        logger.info("Using cached permit list: %s", target)
        return PermitListResult(PermitListStatus.ALREADY_PRESENT, target)

    ensure_output_dir(home.permit_list_dir)
    _download(url, target)
    return PermitListResult(PermitListStatus.DOWNLOADED, target)


def _download(url: str, target: Path) -> None:
    """Stream url into target via a temporary file."""
    partial = target.with_name(target.name + ".part")
    logger.info("Fetching permit list from: %s", url)
    try:
        with requests.get(url, stream=True, timeout=DOWNLOAD_TIMEOUT) as response:
            response.raise_for_status()
            with open(partial, "wb") as f:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    f.write(chunk)
        partial.replace(target)
    except requests.RequestException as e:
        partial.unlink(missing_ok=True)
        raise PersistenceError(f"Could not download permit list from {url}: {e}", target) from e
    except OSError as e:
        partial.unlink(missing_ok=True)
        raise PersistenceError(f"Could not write permit list: {e}", target) from e
    logger.info("Saved permit list to %s", target)
