"""External tool wrappers (smrnaflow).

This package provides Python wrappers for the executables the pipeline runs:
- FastQC / Trim Galore: read QC and adapter trimming
- Bowtie / bowtie-build: miRBase and host-genome alignment
- Samtools: BAM conversion, sorting, indexing and idxstats
- miRTrace, edgeR (Rscript), NGI visualisations, MultiQC
- mail: fallback notification channel
"""

from smrnaflow.external.base import ExternalTool
from smrnaflow.external.bowtie import Bowtie, BowtieBuild
from smrnaflow.external.edger import EdgeR
from smrnaflow.external.fastqc import FastQC
from smrnaflow.external.mail import MailCommand
from smrnaflow.external.mirtrace import MiRTrace
from smrnaflow.external.multiqc import MultiQC
from smrnaflow.external.ngi import NGIVisualizations
from smrnaflow.external.samtools import Samtools
from smrnaflow.external.trim_galore import TrimGalore

__all__ = [
    "ExternalTool",
    "Bowtie",
    "BowtieBuild",
    "EdgeR",
    "FastQC",
    "MailCommand",
    "MiRTrace",
    "MultiQC",
    "NGIVisualizations",
    "Samtools",
    "TrimGalore",
]
