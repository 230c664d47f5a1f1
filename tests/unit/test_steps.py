"""Tests for pipeline work units that run in-process."""

import gzip
from pathlib import Path
import sys
from unittest.mock import patch

import pysam
import pytest
from Bio import SeqIO

ROOT = Path(__file__).resolve().parents[2]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from smrnaflow.config import Config
from smrnaflow.core.graph import GraphBuilder
from smrnaflow.core.scheduler import TaskContext
from smrnaflow.core.steps import genome, mirna, preprocess, reporting
from smrnaflow.core.streams import Item
from smrnaflow.exceptions import PipelineError
from smrnaflow.external.mirtrace import MiRTrace
from smrnaflow.external.multiqc import MultiQC


def _ctx(tmp_path, outputs, key, inputs, config=None):
    node = GraphBuilder().task("unit", None, outputs=outputs)
    workdir = tmp_path / "work"
    workdir.mkdir(exist_ok=True)
    return TaskContext(node, key, inputs, workdir, config=config)


def _fastq_gz(path, sequences):
    with gzip.open(path, "wt") as handle:
        for i, seq in enumerate(sequences):
            handle.write(f"@r{i}\n{seq}\n+\n{'I' * len(seq)}\n")
    return path


def _bam(path, mapped, unmapped, secondary=0):
    header = {"HD": {"VN": "1.0"}, "SQ": [{"LN": 1000, "SN": "chr1"}]}
    with pysam.AlignmentFile(str(path), "wb", header=header) as out:
        for i in range(mapped + unmapped + secondary):
            read = pysam.AlignedSegment(out.header)
            read.query_name = f"r{i}"
            read.query_sequence = "ACGTACGTACGTACGTACGT"
            read.query_qualities = pysam.qualitystring_to_array("I" * 20)
            if i < mapped + secondary:
                read.flag = 256 if i >= mapped else 0
                read.reference_id = 0
                read.reference_start = 100
                read.mapping_quality = 30
                read.cigartuples = [(0, 20)]
            else:
                read.flag = 4
                read.reference_id = -1
                read.reference_start = -1
            out.write(read)
    return path


class TestInsertSize:
    def test_read_length_histogram(self, tmp_path):
        reads = _fastq_gz(tmp_path / "s1_trimmed.fq.gz", ["ACGTACGTACGTACGTACGTAC", "ACGTACGTACGTACGTAC", "TTTTTTTTTTTTTTTTTT"])
        assert preprocess.read_length_histogram(reads) == {18: 2, 22: 1}

    def test_plain_fastq(self, tmp_path):
        reads = tmp_path / "s1.fq"
        reads.write_text("@r0\nACGT\n+\nIIII\n")
        assert preprocess.read_length_histogram(reads) == {4: 1}

    def test_insertsize_unit(self, tmp_path):
        reads = _fastq_gz(tmp_path / "s1_trimmed.fq.gz", ["A" * 21, "C" * 22, "G" * 22])
        ctx = _ctx(tmp_path, {"insertsize": "sizes"}, "s1", {"reads": Item.from_path(reads)})
        preprocess.insertsize(ctx)

        [(slot, item)] = ctx.emitted
        assert slot == "insertsize"
        assert item.name == "s1.insertsize"
        assert item.key == "s1"
        assert item.path.read_text() == "21\t1\n22\t2\n"


class TestMirbaseReference:
    def test_species_filter_and_dna_alphabet(self, tmp_path, mirbase_refs):
        mature, _ = mirbase_refs
        output = tmp_path / "idx" / "mature_idx.fa"
        assert mirna.prepare_reference(mature, output, species="hsa") == 1
        [record] = list(SeqIO.parse(str(output), "fasta"))
        assert record.id == "hsa-miR-21-5p"
        assert str(record.seq) == "TAGCTTATCAGACTGATGTTGA"

    def test_without_species_keeps_everything(self, tmp_path, mirbase_refs):
        mature, _ = mirbase_refs
        assert mirna.prepare_reference(mature, tmp_path / "out.fa") == 2

    def test_species_without_sequences(self, tmp_path, mirbase_refs):
        mature, _ = mirbase_refs
        with pytest.raises(PipelineError, match="dre"):
            mirna.prepare_reference(mature, tmp_path / "out.fa", species="dre")

    def test_gzip_handles_missing_unmapped_file(self, tmp_path):
        dest = mirna._gzip(tmp_path / "s1.mature_unmapped.fq", tmp_path / "s1.mature_unmapped.fq.gz")
        with gzip.open(dest, "rt") as handle:
            assert handle.read() == ""
        assert not (tmp_path / "s1.mature_unmapped.fq").exists()


class TestMirtraceUnit:
    @patch.object(MiRTrace, "_check_installation")
    @patch.object(MiRTrace, "qc")
    def test_custom_protocol_runs_as_illumina(self, mock_qc, mock_check, tmp_path, reads_files):
        cfg = Config()
        cfg.reference.mirtrace_species = "hsa"
        cfg.trimming.protocol = "custom"
        cfg.trimming.three_prime_adapter = "CTGTAGGCACCATCAAT"
        mock_qc.return_value = tmp_path / "work" / "mirtrace"
        items = [Item.from_path(p) for p in reads_files]
        ctx = _ctx(tmp_path, {"results": "mirtrace"}, None, {"reads": items}, config=cfg)

        mirna.mirtrace(ctx)

        kwargs = mock_qc.call_args.kwargs
        assert kwargs["protocol"] == "illumina"
        assert kwargs["species"] == "hsa"
        assert kwargs["adapter"] == "CTGTAGGCACCATCAAT"
        sheet = (tmp_path / "work" / "mirtrace_config").read_text().splitlines()
        assert [line.split(",")[1] for line in sheet] == ["s1", "s2"]
        assert ctx.emitted[0][1].key == "mirtrace"


class TestGenomeStats:
    def test_alignment_counts_skip_secondary(self, tmp_path):
        bam = _bam(tmp_path / "s1.genome.bam", mapped=3, unmapped=1, secondary=2)
        assert genome.alignment_counts(bam) == {"total": 4, "mapped": 3, "unmapped": 1}

    def test_genome_unmapped_stats_unit(self, tmp_path):
        bam = _bam(tmp_path / "s1.genome.bam", mapped=1, unmapped=3)
        ctx = _ctx(tmp_path, {"stats": "genome_stats"}, "s1", {"bam": Item.from_path(bam)})
        genome.genome_unmapped_stats(ctx)

        [(_, item)] = ctx.emitted
        assert item.name == "s1.genome.stats"
        lines = item.path.read_text().splitlines()
        assert lines[0].split("\t") == ["sample", "total", "mapped", "unmapped", "unmapped_pct"]
        assert lines[1].split("\t") == ["s1", "4", "1", "3", "75.00"]


class TestMultiQCUnit:
    @patch.object(MultiQC, "_check_installation")
    @patch.object(MultiQC, "report")
    def test_gathers_every_report_slot(self, mock_report, mock_check, tmp_path):
        cfg = Config(run_name="run1")
        mock_report.return_value = tmp_path / "work" / "multiqc" / "multiqc_report.html"
        inputs = {
            "fastqc": [Item.from_path(tmp_path / "s1_fastqc.zip")],
            "trimming": [Item.from_path(tmp_path / "s1.fastq.gz_trimming_report.txt")],
            "mirna_stats": [Item.from_path(tmp_path / "s1.mature.stats")],
            "mirtrace": [],
            "genome_stats": [],
        }
        ctx = _ctx(tmp_path, {"report": "multiqc"}, None, inputs, config=cfg)
        reporting.multiqc(ctx)

        paths = mock_report.call_args[0][0]
        assert [p.name for p in paths] == [
            "s1_fastqc.zip",
            "s1.fastq.gz_trimming_report.txt",
            "s1.mature.stats",
        ]
        assert mock_report.call_args.kwargs["title"] == "run1"
        assert [item.name for _, item in ctx.emitted] == ["multiqc_report.html"]

    def test_nothing_to_aggregate(self, tmp_path):
        slots = {slot: [] for slot in reporting.REPORT_SLOTS}
        ctx = _ctx(tmp_path, {"report": "multiqc"}, None, slots, config=Config())
        with pytest.raises(PipelineError):
            reporting.multiqc(ctx)
