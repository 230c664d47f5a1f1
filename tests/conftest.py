"""Pytest configuration for smrnaflow tests."""

import gzip
import logging
import sys
from pathlib import Path

import pytest

# Add src directory to Python path
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


@pytest.fixture(autouse=True)
def reset_logging_after_test():
    """Reset smrnaflow logger state after each test.

    setup_logging() sets propagate=False, which breaks caplog in later tests.
    """
    yield
    app_logger = logging.getLogger("smrnaflow")
    for handler in list(app_logger.handlers):
        app_logger.removeHandler(handler)
    app_logger.setLevel(logging.NOTSET)
    app_logger.propagate = True


def write_fastq_gz(path: Path, sequences) -> Path:
    """Write a gzipped FASTQ with one record per sequence."""
    with gzip.open(path, "wt") as handle:
        for i, seq in enumerate(sequences):
            handle.write(f"@read{i}\n{seq}\n+\n{'I' * len(seq)}\n")
    return path


@pytest.fixture
def mirbase_refs(tmp_path):
    """Tiny miRBase mature/hairpin FASTA files (RNA alphabet, two species)."""
    mature = tmp_path / "mature.fa"
    mature.write_text(
        ">hsa-miR-21-5p MIMAT0000076 Homo sapiens miR-21-5p\n"
        "UAGCUUAUCAGACUGAUGUUGA\n"
        ">mmu-miR-21a-5p MIMAT0000530 Mus musculus miR-21a-5p\n"
        "UAGCUUAUCAGACUGAUGUUGA\n"
    )
    hairpin = tmp_path / "hairpin.fa"
    hairpin.write_text(
        ">hsa-mir-21 MI0000077 Homo sapiens miR-21 stem-loop\n"
        "UGUCGGGUAGCUUAUCAGACUGAUGUUGACUGUUGAAUCUCAUGGCAACACCAGUCGAUGGGCUGUC\n"
    )
    return mature, hairpin


@pytest.fixture
def reads_files(tmp_path):
    """Two gzipped single-end FASTQ files, samples s1 and s2."""
    data = tmp_path / "data"
    data.mkdir()
    return [
        write_fastq_gz(data / "s1.fastq.gz", ["TAGCTTATCAGACTGATGTTGA", "ACGTACGTACGTACGTACGT"]),
        write_fastq_gz(data / "s2.fastq.gz", ["TAGCTTATCAGACTGATGTTGA"]),
    ]
