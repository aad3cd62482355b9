"""Pytest configuration and shared fixtures for fryflow tests."""

import sys
from pathlib import Path

import pytest

# Add package to path
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from fryflow.config import AppHome, ToolRegistry
from fryflow.pipeline import PipelineExecutor
from tests.fixtures import FakeToolbox, write_registry

TOOL_NAMES = ("salmon", "piscem", "alevin_fry", "pyroe")


# ============================================================================
# Fake Tool Fixtures
# ============================================================================


@pytest.fixture
def toolbox(tmp_path: Path) -> FakeToolbox:
    """Fake salmon, piscem, alevin-fry and pyroe executables."""
    box = FakeToolbox(tmp_path / "tools")
    for name in TOOL_NAMES:
        box.install(name)
    return box


@pytest.fixture
def af_home(tmp_path: Path, toolbox: FakeToolbox) -> AppHome:
    """Home directory whose registry points at the fake tools."""
    home = tmp_path / "af_home"
    write_registry(home, toolbox.prog_info())
    return AppHome(home)


@pytest.fixture
def registry(af_home: AppHome) -> ToolRegistry:
    return af_home.load_registry()


@pytest.fixture
def executor() -> PipelineExecutor:
    """Executor without file logging."""
    return PipelineExecutor()


# ============================================================================
# Input Fixtures
# ============================================================================


@pytest.fixture
def reads(tmp_path: Path):
    """One pair of (empty) read files."""
    data = tmp_path / "data"
    data.mkdir(exist_ok=True)
    r1 = data / "S1_R1.fastq.gz"
    r2 = data / "S1_R2.fastq.gz"
    r1.write_text("")
    r2.write_text("")
    return (r1,), (r2,)


@pytest.fixture
def t2g_file(tmp_path: Path) -> Path:
    path = tmp_path / "data" / "t2g.tsv"
    path.parent.mkdir(exist_ok=True)
    path.write_text("tx1\tg1\tS\n")
    return path


@pytest.fixture
def map_dir(tmp_path: Path) -> Path:
    """Pre-existing mapping output directory."""
    path = tmp_path / "mapped"
    path.mkdir()
    (path / "map.rad").write_text("")
    return path


@pytest.fixture
def reference_files(tmp_path: Path):
    """(genome FASTA, GTF) pair."""
    data = tmp_path / "data"
    data.mkdir(exist_ok=True)
    fasta = data / "genome.fa"
    gtf = data / "genes.gtf"
    fasta.write_text(">chr1\nACGT\n")
    gtf.write_text("")
    return fasta, gtf
