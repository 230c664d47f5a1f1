"""Tests for sample key resolution."""

from pathlib import Path
import sys

import pytest

ROOT = Path(__file__).resolve().parents[2]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from smrnaflow.core.sample import SampleIdentityResolver, resolve_sample_key
from smrnaflow.exceptions import InvalidSampleKey


class TestResolveSampleKey:
    """Filenames from every stage resolve to the same key."""

    @pytest.mark.parametrize(
        "filename",
        [
            "sampleA.fastq.gz",
            "sampleA_R1.fastq.gz",
            "sampleA.R1.fq.gz",
            "sampleA_trimmed.fq.gz",
            "sampleA_R1_trimmed.fq.gz",
            "sampleA.mature.bam",
            "sampleA.mature_unmapped.fq.gz",
            "sampleA.hairpin_unmapped.fq.gz",
            "sampleA.hairpin.sorted.bam",
            "sampleA.mature.sorted.bam.bai",
            "sampleA.mature.stats",
            "sampleA.genome.bam",
            "sampleA.genome.stats",
            "sampleA.insertsize",
        ],
    )
    def test_stage_outputs_share_key(self, filename):
        assert resolve_sample_key(filename) == "sampleA"

    def test_directories_are_ignored(self):
        assert resolve_sample_key("/data/run_1/lib7.fastq.gz") == "lib7"
        assert resolve_sample_key(Path("work") / "x" / "lib7_trimmed.fq.gz") == "lib7"

    def test_repeated_suffixes_are_stripped_until_stable(self):
        assert resolve_sample_key("s1.sorted.sorted.bam") == "s1"

    def test_resolving_a_key_again_is_stable(self):
        key = resolve_sample_key("sampleA_R1_trimmed.fq.gz")
        assert resolve_sample_key(key) == key

    def test_fallback_drops_final_extension(self):
        assert resolve_sample_key("sampleB.txt") == "sampleB"

    @pytest.mark.parametrize(
        "filename, expected",
        [
            ("ctrl.rep2_R1.fastq.gz", "ctrl.rep2"),
            ("ctrl.rep2.mature.sorted.bam", "ctrl.rep2"),
            ("mouse.liver.v2_trimmed.fq.gz", "mouse.liver.v2"),
            ("ctrl.rep2.csv", "ctrl.rep2"),
        ],
    )
    def test_dotted_sample_names_are_stable(self, filename, expected):
        key = resolve_sample_key(filename)
        assert key == expected
        assert resolve_sample_key(key) == key

    def test_fallback_only_drops_known_extensions(self):
        assert resolve_sample_key("ctrl.rep2") == "ctrl.rep2"
        assert resolve_sample_key("sampleB.TSV") == "sampleB"

    def test_fallback_keeps_numeric_extension(self):
        assert resolve_sample_key("lib.1") == "lib.1"
        assert resolve_sample_key(resolve_sample_key("lib.1")) == "lib.1"

    def test_name_without_extension_is_its_own_key(self):
        assert resolve_sample_key("sampleC") == "sampleC"

    @pytest.mark.parametrize("filename", [".fastq.gz", "_trimmed.fq.gz", ".mature.bam"])
    def test_empty_key_raises(self, filename):
        with pytest.raises(InvalidSampleKey) as exc_info:
            resolve_sample_key(filename)
        assert exc_info.value.filename == filename


class TestSampleIdentityResolver:
    def test_custom_suffixes(self):
        resolver = SampleIdentityResolver(suffixes=[r"\.clean", r"\.txt"])
        assert resolver.resolve("run9.clean.txt") == "run9"
        # Not a configured suffix or fallback extension
        assert resolver.resolve("run9_trimmed.fq") == "run9_trimmed.fq"

    def test_custom_fallback_extensions(self):
        resolver = SampleIdentityResolver(fallback_extensions=["DAT"])
        assert resolver.resolve("run9.rep.dat") == "run9.rep"
        assert resolver.resolve("run9.csv") == "run9.csv"

    def test_requires_suffixes(self):
        with pytest.raises(ValueError):
            SampleIdentityResolver(suffixes=[])
