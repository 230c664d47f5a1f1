"""Tests for configuration loading, protocol presets and validation."""

from pathlib import Path
import sys

import pytest
import yaml

ROOT = Path(__file__).resolve().parents[2]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from smrnaflow.config import Config, TrimmingConfig, apply_protocol, load_config, save_config
from smrnaflow.exceptions import ConfigurationError


@pytest.fixture
def valid_config(tmp_path, mirbase_refs, reads_files):
    mature, hairpin = mirbase_refs
    cfg = Config(reads=list(reads_files), outdir=tmp_path / "results")
    cfg.reference.mature = mature
    cfg.reference.hairpin = hairpin
    return cfg


class TestDefaults:
    def test_defaults(self):
        cfg = Config()
        assert cfg.outdir == Path("results")
        assert cfg.threads == 1
        assert cfg.max_workers == 4
        assert cfg.reference.mirna_chain == ["mature", "hairpin"]
        assert cfg.trimming.protocol == "illumina"
        assert cfg.trimming.min_length == 18
        assert cfg.run_fastqc and cfg.run_multiqc
        assert not cfg.genome_branch_active
        assert not cfg.mirtrace_active

    def test_skip_flags(self):
        cfg = Config(skip_qc=True)
        assert not cfg.run_fastqc
        assert not cfg.run_multiqc
        assert not Config(skip_fastqc=True).run_fastqc
        assert Config(skip_fastqc=True).run_multiqc

    def test_genome_branch_needs_gtf_and_index(self):
        cfg = Config()
        cfg.reference.gtf = Path("genes.gtf")
        assert not cfg.genome_branch_active
        cfg.reference.bt_index = Path("idx/genome")
        assert cfg.genome_branch_active

    def test_work_path(self):
        cfg = Config(outdir=Path("/res"))
        assert cfg.work_path == Path("/res/work")
        cfg.runtime.work_dir = Path("/scratch/w")
        assert cfg.work_path == Path("/scratch/w")

    def test_property_setters(self):
        cfg = Config()
        cfg.threads = 8
        cfg.max_workers = 2
        assert cfg.performance.threads == 8
        assert cfg.performance.max_workers == 2


class TestProtocols:
    @pytest.mark.parametrize(
        "protocol, clip, three_prime_clip, adapter",
        [
            ("illumina", 0, 0, "TGGAATTCTCGGGTGCCAAGG"),
            ("nextflex", 4, 4, "TGGAATTCTCGGGTGCCAAGG"),
            ("qiaseq", 0, 0, "AACTGTAGGCACCATCAAT"),
            ("cats", 3, 0, "AAAAAAAA"),
        ],
    )
    def test_presets(self, protocol, clip, three_prime_clip, adapter):
        trimming = apply_protocol(TrimmingConfig(protocol=protocol))
        assert trimming.clip_r1 == clip
        assert trimming.three_prime_clip_r1 == three_prime_clip
        assert trimming.three_prime_adapter == adapter

    def test_explicit_values_win(self):
        trimming = apply_protocol(
            TrimmingConfig(protocol="nextflex", three_prime_adapter="ACGT", clip_r1=0)
        )
        assert trimming.three_prime_adapter == "ACGT"
        assert trimming.clip_r1 == 0
        assert trimming.three_prime_clip_r1 == 4

    def test_custom_requires_adapter(self):
        with pytest.raises(ConfigurationError):
            apply_protocol(TrimmingConfig(protocol="custom"))
        assert apply_protocol(
            TrimmingConfig(protocol="custom", three_prime_adapter="CTGTAGGCACCATCAAT")
        ).clip_r1 == 0

    def test_unknown_protocol(self):
        with pytest.raises(ConfigurationError):
            apply_protocol(TrimmingConfig(protocol="smarter"))


class TestValidation:
    def test_valid_config_prepares(self, valid_config):
        valid_config.prepare()
        assert valid_config.trimming.three_prime_adapter == "TGGAATTCTCGGGTGCCAAGG"

    def test_requires_reads(self, valid_config):
        valid_config.reads = []
        with pytest.raises(ConfigurationError, match="reads"):
            valid_config.validate()

    def test_missing_reads_file(self, valid_config, tmp_path):
        valid_config.reads.append(tmp_path / "missing.fastq.gz")
        with pytest.raises(ConfigurationError, match="not found"):
            valid_config.validate()

    @pytest.mark.parametrize("key", ["mature", "hairpin"])
    def test_requires_mirbase_reference(self, valid_config, key):
        setattr(valid_config.reference, key, None)
        with pytest.raises(ConfigurationError, match=key):
            valid_config.validate()

    def test_missing_gtf(self, valid_config, tmp_path):
        valid_config.reference.gtf = tmp_path / "genes.gtf"
        with pytest.raises(ConfigurationError, match="GTF"):
            valid_config.validate()

    @pytest.mark.parametrize("chain", [[], ["mature", "mature"], ["mature", "star"]])
    def test_bad_mirna_chain(self, valid_config, chain):
        valid_config.reference.mirna_chain = chain
        with pytest.raises(ConfigurationError):
            valid_config.validate()

    def test_numeric_ranges(self, valid_config):
        valid_config.max_workers = 0
        with pytest.raises(ConfigurationError):
            valid_config.validate()

    @pytest.mark.parametrize("work_dir", [".", "../elsewhere"])
    def test_bad_work_dir(self, valid_config, work_dir):
        valid_config.runtime.work_dir = Path(work_dir)
        with pytest.raises(ConfigurationError, match="work_dir"):
            valid_config.validate()


class TestGenomeRegistry:
    def test_registry_fills_unset_references(self, tmp_path):
        cfg = Config()
        cfg.reference.genome = "GRCh38"
        cfg.reference.gtf = tmp_path / "explicit.gtf"
        cfg.reference.genomes = {
            "GRCh38": {
                "mature": "/refs/mature.fa",
                "gtf": "/refs/genes.gtf",
                "bt_index": "/refs/idx/genome",
                "mirtrace_species": "hsa",
            }
        }
        cfg.resolve_references()
        assert cfg.reference.mature == Path("/refs/mature.fa")
        assert cfg.reference.gtf == tmp_path / "explicit.gtf"
        assert cfg.reference.bt_index == Path("/refs/idx/genome")
        assert cfg.reference.mirtrace_species == "hsa"
        assert cfg.reference.hairpin is None

    def test_unknown_genome(self):
        cfg = Config()
        cfg.reference.genome = "GRCm39"
        cfg.reference.genomes = {"GRCh38": {}}
        with pytest.raises(ConfigurationError, match="GRCm39"):
            cfg.resolve_references()


class TestLoadConfig:
    def test_load_sections(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "reads": "data/s1.fastq.gz",
                    "outdir": "out",
                    "skip_fastqc": True,
                    "reference": {"genome": "GRCh38", "mirna_chain": ["hairpin"]},
                    "genomes": {"GRCh38": {"mature": "/refs/mature.fa"}},
                    "trimming": {"protocol": "qiaseq"},
                    "runtime": {"work_dir": "/scratch/work", "keep_work": True},
                    "performance": {"threads": 4, "max_workers": 8},
                    "notification": {"email": "lab@example.org"},
                    "tools": {"bowtie": {"chunkmbs": 512}, "fastqc": None},
                }
            )
        )
        cfg = load_config(path)
        assert cfg.reads == [Path("data/s1.fastq.gz")]
        assert cfg.outdir == Path("out")
        assert cfg.skip_fastqc
        assert cfg.reference.mirna_chain == ["hairpin"]
        assert cfg.reference.genomes["GRCh38"]["mature"] == "/refs/mature.fa"
        assert cfg.trimming.protocol == "qiaseq"
        assert cfg.runtime.work_dir == Path("/scratch/work")
        assert cfg.runtime.keep_work
        assert cfg.threads == 4 and cfg.max_workers == 8
        assert cfg.notification.email == "lab@example.org"
        assert cfg.tools.bowtie["chunkmbs"] == 512
        assert "mirna_args" in cfg.tools.bowtie

    def test_unknown_option(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("trimming:\n  adaptor: ACGT\n")
        with pytest.raises(ConfigurationError, match="adaptor"):
            load_config(path)

    def test_unknown_tool(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("tools:\n  star: {}\n")
        with pytest.raises(ConfigurationError, match="star"):
            load_config(path)

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("reads: [unclosed\n")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_config(path)

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_saved_config_loads_back(self, valid_config, tmp_path):
        valid_config.prepare()
        path = tmp_path / "saved.yaml"
        save_config(valid_config, path)
        loaded = load_config(path)
        assert loaded.reads == valid_config.reads
        assert loaded.reference.mature == valid_config.reference.mature
        assert loaded.trimming.three_prime_adapter == "TGGAATTCTCGGGTGCCAAGG"

    def test_default_template_loads(self, tmp_path):
        from smrnaflow.resources import get_default_config

        path = tmp_path / "template.yaml"
        path.write_text(get_default_config())
        cfg = load_config(path)
        assert cfg.reads == []
        assert cfg.reference.mature is None
        assert cfg.tools.edger["script"] == "edgeR_miRBase.r"
