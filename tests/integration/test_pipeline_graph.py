"""Integration tests for the small-RNA task graph topology."""

from __future__ import annotations

from pathlib import Path

import pytest

from smrnaflow.config import Config
from smrnaflow.core.graph import BindingKind
from smrnaflow.core.pipeline import Pipeline
from smrnaflow.exceptions import ConfigurationError

pytestmark = pytest.mark.integration

CORE_TASKS = [
    "fastqc",
    "trim_galore",
    "insertsize",
    "index_mature",
    "bowtie_mature",
    "index_hairpin",
    "bowtie_hairpin",
    "mirna_post_alignment",
    "edger",
    "multiqc",
]


@pytest.fixture
def config(tmp_path, mirbase_refs, reads_files):
    mature, hairpin = mirbase_refs
    cfg = Config(reads=list(reads_files), outdir=tmp_path / "results")
    cfg.reference.mature = mature
    cfg.reference.hairpin = hairpin
    cfg.runtime.enable_progress = False
    return cfg


def _add_genome(cfg: Config, tmp_path: Path, gtf: bool = True, index: bool = True) -> None:
    if gtf:
        cfg.reference.gtf = tmp_path / "genes.gtf"
        cfg.reference.gtf.write_text('chr1\tsrc\texon\t1\t100\t.\t+\t.\tgene_id "g1";\n')
    if index:
        cfg.reference.bt_index = tmp_path / "GRCh38"


def test_minimal_inputs_build_the_mirbase_core(config):
    graph = Pipeline(config).build_graph()
    assert graph.task_names == CORE_TASKS
    assert set(graph.pruned) == {
        "mirtrace",
        "bowtie_genome",
        "genome_unmapped_stats",
        "ngi_visualizations",
    }
    assert graph.sources["raw_reads"].items[0].key == "s1"


def test_mirbase_chain_feeds_unmapped_reads_forward(config):
    graph = Pipeline(config).build_graph()
    assert graph.dependencies("bowtie_mature") == ["trim_galore", "index_mature"]
    assert graph.dependencies("bowtie_hairpin") == ["bowtie_mature", "index_hairpin"]
    assert graph.task("bowtie_hairpin").inputs["reads"].stream == "mature_unmapped"
    assert graph.dependencies("mirna_post_alignment") == ["bowtie_mature", "bowtie_hairpin"]
    assert graph.task("edger").ignorable
    assert graph.task("edger").inputs["stats"].kind is BindingKind.COLLECT


def test_chain_order_follows_config(config):
    config.reference.mirna_chain = ["hairpin", "mature"]
    graph = Pipeline(config).build_graph()
    assert graph.task("bowtie_mature").inputs["reads"].stream == "hairpin_unmapped"
    assert graph.task("bowtie_hairpin").inputs["reads"].stream == "trimmed_reads"


def test_single_reference_chain(config):
    config.reference.mirna_chain = ["mature"]
    graph = Pipeline(config).build_graph()
    assert "bowtie_hairpin" not in graph.task_names
    assert graph.merges["mirna_bams"].sources == ["mature_bam"]


def test_genome_branch_with_gtf_and_index(config, tmp_path):
    _add_genome(config, tmp_path)
    graph = Pipeline(config).build_graph()
    for name in ("bowtie_genome", "genome_unmapped_stats", "ngi_visualizations"):
        assert name in graph.task_names
    assert "genome_unmapped_stats" in graph.dependencies("multiqc")
    assert graph.bound_streams("multiqc")["genome_stats"] == "genome_stats"


@pytest.mark.parametrize("gtf, index", [(True, False), (False, True)])
def test_genome_branch_needs_both_inputs(config, tmp_path, gtf, index):
    _add_genome(config, tmp_path, gtf=gtf, index=index)
    graph = Pipeline(config).build_graph()
    assert "bowtie_genome" in graph.pruned
    assert "ngi_visualizations" in graph.pruned
    assert graph.bound_streams("multiqc")["genome_stats"] == "genome_stats.empty"


def test_mirtrace_with_species(config):
    config.reference.mirtrace_species = "hsa"
    graph = Pipeline(config).build_graph()
    assert "mirtrace" in graph.task_names
    assert graph.task("mirtrace").ignorable
    assert graph.dependencies("multiqc")[-1] == "mirtrace"


def test_skip_qc(config):
    config.skip_qc = True
    graph = Pipeline(config).build_graph()
    assert "fastqc" in graph.pruned
    assert "multiqc" in graph.pruned


def test_skip_fastqc_keeps_multiqc(config):
    config.skip_fastqc = True
    graph = Pipeline(config).build_graph()
    assert "multiqc" in graph.task_names
    assert graph.bound_streams("multiqc")["fastqc"] == "fastqc_reports.empty"


def test_duplicate_sample_keys_are_rejected(config, reads_files):
    clash = reads_files[0].parent / "s1_R1.fastq.gz"
    clash.write_bytes(reads_files[0].read_bytes())
    config.reads.append(clash)
    with pytest.raises(ConfigurationError, match="s1"):
        Pipeline(config).build_graph()


def test_summary_fields(config):
    config.prepare()
    pipeline = Pipeline(config)
    fields = pipeline.summary_fields(pipeline.graph)
    assert fields["Samples"] == ["s1", "s2"]
    assert fields["Library Protocol"] == "illumina"
    assert fields["3' adapter"] == "TGGAATTCTCGGGTGCCAAGG"
    assert fields["miRBase alignment order"] == "mature -> hairpin"
    assert "E-mail Address" not in fields
