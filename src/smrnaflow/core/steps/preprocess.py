"""Work units for read QC and adapter trimming."""

from __future__ import annotations

import gzip
from collections import Counter
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Union

from Bio.SeqIO.QualityIO import FastqGeneralIterator

if TYPE_CHECKING:
    from smrnaflow.core.scheduler import TaskContext


def fastqc(ctx: TaskContext) -> None:
    """Quality report for one raw reads file."""
    from smrnaflow.external.fastqc import FastQC

    reads = ctx.input("reads")
    tool = FastQC(threads=ctx.config.threads, logger=ctx.logger)
    for report in tool.run_qc(reads.path, ctx.workdir, **ctx.config.tools.fastqc):
        ctx.emit("reports", report)


def trim_galore(ctx: TaskContext) -> None:
    """Trim the 3' adapter and clip fixed bases per the library protocol."""
    from smrnaflow.external.trim_galore import TrimGalore

    reads = ctx.input("reads")
    trimming = ctx.config.trimming
    tool = TrimGalore(threads=ctx.config.threads, logger=ctx.logger)
    result = tool.trim(
        reads.path,
        ctx.workdir,
        adapter=trimming.three_prime_adapter,
        min_length=trimming.min_length,
        clip_r1=trimming.clip_r1 or 0,
        three_prime_clip_r1=trimming.three_prime_clip_r1 or 0,
        **ctx.config.tools.trim_galore,
    )
    ctx.emit("trimmed", result.trimmed)
    for report in result.reports:
        ctx.emit("reports", report)


def _open_text(path: Path):
    if path.suffix == ".gz":
        return gzip.open(path, "rt")
    return open(path, "r")


def read_length_histogram(path: Union[str, Path]) -> Dict[int, int]:
    """Count reads per sequence length in a (gzipped) FASTQ file."""
    counts: Counter = Counter()
    with _open_text(Path(path)) as handle:
        for _title, seq, _qual in FastqGeneralIterator(handle):
            counts[len(seq)] += 1
    return dict(sorted(counts.items()))


def insertsize(ctx: TaskContext) -> None:
    """Read-length distribution of the trimmed reads (``length<TAB>count``)."""
    reads = ctx.input("reads")
    histogram = read_length_histogram(reads.path)
    output = ctx.workdir / f"{ctx.key}.insertsize"
    with open(output, "w") as f:
        for length, count in histogram.items():
            f.write(f"{length}\t{count}\n")
    ctx.logger.info(f"{ctx.key}: {sum(histogram.values())} trimmed reads")
    ctx.emit("insertsize", output)
