"""Unit tests for RunPlan construction."""

from pathlib import Path

import pytest

from fryflow.core.errors import GeometryError
from fryflow.core.options import IndexOptions, QuantOptions
from fryflow.core.planner import (
    build_index_plan,
    build_quant_plan,
    piscem_geometry,
    reference_file_names,
    salmon_chemistry_args,
)
from fryflow.core.resolver import ResolvedIndexConfig, ResolvedQuantConfig
from fryflow.core.types import (
    TENX_V2,
    TENX_V3,
    CellFilterMethod,
    Chemistry,
    IndexKind,
    IndexType,
    Orientation,
    ReferenceType,
)


def _quant_config(registry, options, index_type, chemistry=TENX_V3, filter_method=None):
    return ResolvedQuantConfig(
        options=options,
        registry=registry,
        index_type=index_type,
        t2g_map=Path("/ref/t2g.tsv"),
        chemistry=chemistry,
        orientation=Orientation.FORWARD,
        filter_method=filter_method or CellFilterMethod.knee_finding(),
        threads=8,
    )


class TestIndexPlan:
    """Tests for index plans."""

    def test_reference_names(self):
        assert reference_file_names(ReferenceType.SPLICED_INTRONIC, 91) == (
            "splici_fl86.fa",
            "splici_fl86_t2g_3col.tsv",
        )
        assert reference_file_names(ReferenceType.SPLICED_UNSPLICED, None) == (
            "spliceu.fa",
            "spliceu_t2g_3col.tsv",
        )

    def test_splici_piscem(self, registry, tmp_path):
        """Test a pyroe stage followed by a piscem build."""
        out = tmp_path / "idx"
        options = IndexOptions(
            output=out,
            fasta=Path("/g.fa"),
            gtf=Path("/g.gtf"),
            rlen=91,
            dedup=True,
            spliced=Path("/extra.fa"),
            use_piscem=True,
            overwrite=True,
        )
        config = ResolvedIndexConfig(options, registry, IndexKind.PISCEM, threads=4)
        plan, layout = build_index_plan(config)

        assert plan.stage_ids() == ["pyroe", "index"]
        pyroe = plan.get_stage("pyroe")
        assert pyroe.executable == registry.pyroe.exe_path
        assert pyroe.args == (
            "make-splici", "--dedup-seqs", "--extra-spliced", "/extra.fa",
            "/g.fa", "/g.gtf", "91", str(out / "ref"),
        )
        assert Path("/extra.fa") in pyroe.inputs

        index = plan.get_stage("index")
        assert index.args == (
            "build", "-k", "31", "-m", "19",
            "-o", str(out / "index" / "piscem_idx"),
            "-s", str(out / "ref" / "splici_fl86.fa"),
            "--overwrite", "--threads", "4",
        )
        assert index.inputs == (out / "ref" / "splici_fl86.fa",)
        assert layout.t2g_map == out / "ref" / "splici_fl86_t2g_3col.tsv"
        assert out / "index" in layout.directories

    def test_spliceu_has_no_read_length(self, registry, tmp_path):
        options = IndexOptions(
            output=tmp_path, fasta=Path("/g.fa"), gtf=Path("/g.gtf"),
            ref_type=ReferenceType.SPLICED_UNSPLICED,
        )
        config = ResolvedIndexConfig(options, registry, IndexKind.SALMON, threads=4)
        plan, _ = build_index_plan(config)
        assert plan.get_stage("pyroe").args == (
            "make-spliceu", "/g.fa", "/g.gtf", str(tmp_path / "ref"),
        )

    def test_ref_seq_salmon(self, registry, tmp_path):
        """Test direct indexing skips reference construction."""
        options = IndexOptions(
            output=tmp_path, ref_seq=Path("/tx.fa"), sparse=True, keep_duplicates=True, kmer_length=23
        )
        config = ResolvedIndexConfig(options, registry, IndexKind.SALMON, threads=2)
        plan, layout = build_index_plan(config)

        assert plan.stage_ids() == ["index"]
        assert plan.get_stage("index").args == (
            "index", "-k", "23", "-i", str(tmp_path / "index"), "-t", "/tx.fa",
            "--sparse", "--keepDuplicates", "--threads", "2",
        )
        assert layout.t2g_map is None
        assert layout.reference == Path("/tx.fa")


class TestQuantPlan:
    """Tests for quant plans."""

    def test_piscem_geometry(self):
        assert piscem_geometry(TENX_V2) == "chromium_v2"
        assert piscem_geometry(TENX_V3) == "chromium_v3"
        assert piscem_geometry(Chemistry.other("1{b[16]u[12]}2{r:}")) == "1{b[16]u[12]}2{r:}"

    def test_salmon_chemistry_args(self):
        assert salmon_chemistry_args(TENX_V2) == ["--chromium"]
        assert salmon_chemistry_args(TENX_V3) == ["--chromiumV3"]
        assert salmon_chemistry_args(Chemistry.other("1{b[16]u[12]}2{r:}"))[0] == "--read-geometry"
        with pytest.raises(GeometryError):
            salmon_chemistry_args(Chemistry.other("dropseq"))

    def test_piscem_full_chain(self, registry, tmp_path):
        """Test map, permit list, collate and quant stages against a piscem index."""
        out = tmp_path / "quant"
        options = QuantOptions(
            chemistry="10xv3", output=out, resolution="cr-like",
            index=Path("/idx/index"),
            reads1=(Path("/r/a_R1.fq"), Path("/r/b_R1.fq")),
            reads2=(Path("/r/a_R2.fq"), Path("/r/b_R2.fq")),
        )
        base = Path("/idx/index/piscem_idx")
        plan, layout = build_quant_plan(_quant_config(registry, options, IndexType.piscem(base)))

        assert plan.stage_ids() == ["map", "gpl", "collate", "quant"]
        assert layout.mapper == "piscem"
        map_stage = plan.get_stage("map")
        assert map_stage.args == (
            "map-sc", "--index", str(base), "--threads", "8", "-o", str(out / "af_map"),
            "-1", "/r/a_R1.fq,/r/b_R1.fq", "-2", "/r/a_R2.fq,/r/b_R2.fq",
            "--geometry", "chromium_v3",
        )
        assert Path("/idx/index/piscem_idx.sshash") in map_stage.inputs

        af_quant = str(out / "af_quant")
        assert plan.get_stage("gpl").args == (
            "generate-permit-list", "-i", str(out / "af_map"), "-d", "fw",
            "--knee-distance", "-o", af_quant,
        )
        assert plan.get_stage("collate").args == (
            "collate", "-i", af_quant, "-r", str(out / "af_map"), "-t", "8",
        )
        assert plan.get_stage("quant").args == (
            "quant", "-i", af_quant, "-o", af_quant, "-t", "8",
            "-m", "/ref/t2g.tsv", "-r", "cr-like",
        )

    def test_salmon_mapping(self, registry, tmp_path):
        options = QuantOptions(
            chemistry="10xv2", output=tmp_path, resolution="parsimony",
            index=Path("/idx/index"),
            reads1=(Path("/a1.fq"), Path("/b1.fq")), reads2=(Path("/a2.fq"), Path("/b2.fq")),
            use_selective_alignment=True,
        )
        config = _quant_config(registry, options, IndexType.salmon(Path("/idx/index")), chemistry=TENX_V2)
        plan, layout = build_quant_plan(config)
        assert layout.mapper == "salmon"
        assert plan.get_stage("map").args == (
            "alevin", "--index", "/idx/index", "-l", "A",
            "-1", "/a1.fq", "/b1.fq", "-2", "/a2.fq", "/b2.fq",
            "--threads", "8", "-o", str(tmp_path / "af_map"), "--rad", "--chromium",
        )

    def test_map_dir_skips_mapping(self, registry, tmp_path):
        """Test a pre-mapped directory feeds permit list generation directly."""
        options = QuantOptions(
            chemistry="10xv3", output=tmp_path / "out", resolution="cr-like",
            map_dir=tmp_path / "mapped",
        )
        config = _quant_config(
            registry, options, IndexType.no_index(), filter_method=CellFilterMethod.force_cells(500)
        )
        plan, layout = build_quant_plan(config)

        assert plan.stage_ids() == ["gpl", "collate", "quant"]
        assert layout.mapper == ""
        gpl = plan.get_stage("gpl")
        assert gpl.args[:3] == ("generate-permit-list", "-i", str(tmp_path / "mapped"))
        assert ("--force-cells", "500") == gpl.args[5:7]
        assert gpl.inputs == (tmp_path / "mapped",)
