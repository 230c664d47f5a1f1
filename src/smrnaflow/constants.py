"""Unified constants for smrnaflow.

Shared names for streams, publish directories and sample-key suffixes.
"""

# ================== Sample identity ==================
# Ordered suffix patterns (regular expressions) stripped from the end of a
# filename to recover the sample key, in the order tools append them (pair
# marker first, compression last).
SAMPLE_SUFFIXES: tuple[str, ...] = (
    r"\.R1",
    r"_R1",
    r"\.(?:mature|hairpin)_unmapped",
    r"\.(?:mature|hairpin|genome)",
    r"_trimmed",
    r"\.sorted",
    r"\.(?:fq|fastq|fa|fasta|bam|sam|stats|insertsize)",
    r"\.bai",
    r"\.gz",
)

# Extensions dropped by the fallback when no suffix pattern matches. Anything
# else after the last dot is part of the sample name.
FALLBACK_EXTENSIONS: frozenset[str] = frozenset(
    {
        "txt", "csv", "tsv", "json", "log", "html", "zip", "pdf", "png",
        "bed", "gtf", "gff", "gff3", "vcf", "cram", "bz2", "xz", "fna", "fas",
    }
)

# ================== miRBase ==================
MIRBASE_REFERENCES: tuple[str, ...] = ("mature", "hairpin")
DEFAULT_MIRNA_CHAIN: tuple[str, ...] = ("mature", "hairpin")

# ================== Publish layout ==================
PUBLISH_FASTQC = "fastqc"
PUBLISH_TRIM_GALORE = "trim_galore"
PUBLISH_INSERTSIZE = "trim_galore/insertsize"
PUBLISH_BOWTIE = "bowtie"
PUBLISH_EDGER = "edgeR"
PUBLISH_MIRTRACE = "miRTrace"
PUBLISH_GENOME = "bowtie_ref"
PUBLISH_GENOME_UNMAPPED = "bowtie_ref/unmapped"
PUBLISH_MULTIQC = "MultiQC"
PUBLISH_PIPELINE_INFO = "pipeline_info"

# ================== Defaults ==================
DEFAULT_MIN_LENGTH: int = 18
DEFAULT_MAX_WORKERS: int = 4

# ================== Library protocols ==================
# clip_r1 / three_prime_clip_r1 / 3' adapter per library prep kit. "custom"
# carries no adapter and requires one to be configured explicitly.
PROTOCOLS: dict[str, dict[str, object]] = {
    "illumina": {"clip_r1": 0, "three_prime_clip_r1": 0, "three_prime_adapter": "TGGAATTCTCGGGTGCCAAGG"},
    "nextflex": {"clip_r1": 4, "three_prime_clip_r1": 4, "three_prime_adapter": "TGGAATTCTCGGGTGCCAAGG"},
    "qiaseq": {"clip_r1": 0, "three_prime_clip_r1": 0, "three_prime_adapter": "AACTGTAGGCACCATCAAT"},
    "cats": {"clip_r1": 3, "three_prime_clip_r1": 0, "three_prime_adapter": "AAAAAAAA"},
    "custom": {"clip_r1": 0, "three_prime_clip_r1": 0, "three_prime_adapter": None},
}
DEFAULT_PROTOCOL = "illumina"
