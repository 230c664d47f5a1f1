"""Work units for the optional host-genome branch."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Dict, Union

import pysam

if TYPE_CHECKING:
    from smrnaflow.core.scheduler import TaskContext


def bowtie_genome(ctx: TaskContext) -> None:
    """Align trimmed reads to the host genome index."""
    from smrnaflow.external.bowtie import Bowtie
    from smrnaflow.external.samtools import Samtools

    reads = ctx.input("reads")
    index = ctx.input("index")
    sam = ctx.workdir / f"{ctx.key}.genome.sam"
    Bowtie(threads=ctx.config.threads, logger=ctx.logger).align(
        index.path, reads.path, sam, args=ctx.config.tools.bowtie["genome_args"]
    )
    bam = ctx.workdir / f"{ctx.key}.genome.bam"
    Samtools(threads=ctx.config.threads, logger=ctx.logger).sam_to_bam(sam, bam)
    sam.unlink()
    ctx.emit("bam", bam)


def alignment_counts(bam_path: Union[str, Path]) -> Dict[str, int]:
    """Count primary reads in an unsorted BAM by mapping state."""
    counts = {"total": 0, "mapped": 0, "unmapped": 0}
    with pysam.AlignmentFile(str(bam_path), "rb", check_sq=False) as bam:
        for read in bam.fetch(until_eof=True):
            if read.is_secondary or read.is_supplementary:
                continue
            counts["total"] += 1
            if read.is_unmapped:
                counts["unmapped"] += 1
            else:
                counts["mapped"] += 1
    return counts


def genome_unmapped_stats(ctx: TaskContext) -> None:
    """Reads that did not align to the host genome."""
    bam = ctx.input("bam")
    counts = alignment_counts(bam.path)
    total = counts["total"]
    pct = 100.0 * counts["unmapped"] / total if total else 0.0
    output = ctx.workdir / f"{ctx.key}.genome.stats"
    with open(output, "w") as f:
        f.write("sample\ttotal\tmapped\tunmapped\tunmapped_pct\n")
        f.write(f"{ctx.key}\t{total}\t{counts['mapped']}\t{counts['unmapped']}\t{pct:.2f}\n")
    ctx.logger.info(f"{ctx.key}: {counts['unmapped']} of {total} reads unmapped to genome ({pct:.2f}%)")
    ctx.emit("stats", output)


def ngi_visualizations(ctx: TaskContext) -> None:
    """Biotype plots for one genome alignment."""
    from smrnaflow.external.ngi import NGIVisualizations

    bam = ctx.input("bam")
    gtf = ctx.input("gtf")
    executable = ctx.config.tools.ngi_visualizations.get("executable")
    out_dir = ctx.workdir / "biotypes"
    NGIVisualizations(executable=executable, logger=ctx.logger).plot_biotypes(
        gtf.path, bam.path, out_dir
    )
    plots = sorted(out_dir.glob("*.png")) + sorted(out_dir.glob("*.pdf"))
    for plot in plots:
        ctx.emit("plots", plot)
