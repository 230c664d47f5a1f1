"""Work units for the miRBase alignment chain and its aggregations."""

from __future__ import annotations

import gzip
import shutil
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Union

from Bio import SeqIO
from Bio.Seq import Seq

from smrnaflow.exceptions import PipelineError

if TYPE_CHECKING:
    from smrnaflow.core.scheduler import TaskContext


def prepare_reference(
    fasta: Union[str, Path],
    output: Path,
    species: Optional[str] = None,
) -> int:
    """Write a DNA copy of a miRBase FASTA, optionally limited to one species.

    miRBase identifiers start with the species code (``hsa-miR-21-5p``).
    Returns the number of sequences written.
    """
    def records():
        for record in SeqIO.parse(str(fasta), "fasta"):
            if species and not record.id.startswith(f"{species}-"):
                continue
            record.seq = Seq(str(record.seq).upper().replace("U", "T"))
            record.description = record.id
            yield record

    output.parent.mkdir(parents=True, exist_ok=True)
    written = SeqIO.write(records(), str(output), "fasta")
    if written == 0:
        raise PipelineError(
            f"No sequences left in {fasta}"
            + (f" for species '{species}'" if species else "")
        )
    return written


def build_index(ctx: TaskContext, ref: str) -> None:
    """Prepare and index one miRBase reference set."""
    from smrnaflow.external.bowtie import BowtieBuild

    fasta = ctx.input("fasta")
    prepared = ctx.workdir / f"{ref}_idx.fa"
    count = prepare_reference(fasta.path, prepared, species=ctx.config.reference.mirtrace_species)
    ctx.logger.info(f"{ref}: {count} sequences after species filter")
    prefix = BowtieBuild(threads=ctx.config.threads, logger=ctx.logger).build(
        prepared, ctx.workdir / f"{ref}_idx"
    )
    ctx.emit("index", prefix, key=ref)


def _gzip(src: Path, dest: Path) -> Path:
    if not src.exists():
        # Bowtie skips --un when every read aligned
        src.touch()
    with open(src, "rb") as fin, gzip.open(dest, "wb") as fout:
        shutil.copyfileobj(fin, fout)
    src.unlink()
    return dest


def bowtie_mirna(ctx: TaskContext, ref: str) -> None:
    """Align reads to one miRBase set, keeping the unmapped reads for the next set."""
    from smrnaflow.external.bowtie import Bowtie
    from smrnaflow.external.samtools import Samtools

    reads = ctx.input("reads")
    index = ctx.input("index")
    bowtie_cfg = ctx.config.tools.bowtie
    prefix = ctx.workdir / f"{ctx.key}.{ref}"

    sam = Path(f"{prefix}.sam")
    unmapped = Path(f"{prefix}_unmapped.fq")
    Bowtie(threads=ctx.config.threads, logger=ctx.logger).align(
        index.path,
        reads.path,
        sam,
        args=bowtie_cfg["mirna_args"],
        unmapped=unmapped,
        chunkmbs=bowtie_cfg.get("chunkmbs"),
    )
    bam = Path(f"{prefix}.bam")
    Samtools(threads=ctx.config.threads, logger=ctx.logger).sam_to_bam(sam, bam)
    sam.unlink()

    ctx.emit("bam", bam)
    ctx.emit("unmapped", _gzip(unmapped, Path(f"{unmapped}.gz")))


def mirna_post_alignment(ctx: TaskContext) -> None:
    """Sort, index and count a miRBase alignment."""
    from smrnaflow.external.samtools import Samtools

    bam = ctx.input("bam")
    samtools = Samtools(threads=ctx.config.threads, logger=ctx.logger)
    # e.g. sample.mature.bam -> sample.mature.sorted.bam / sample.mature.stats
    stem = bam.path.name[: -len(".bam")] if bam.name.endswith(".bam") else bam.path.stem
    sorted_bam = ctx.workdir / f"{stem}.sorted.bam"
    samtools.sort_bam(bam.path, sorted_bam)
    index = samtools.index_bam(sorted_bam)
    stats = samtools.idxstats(sorted_bam, ctx.workdir / f"{stem}.stats")

    ctx.emit("stats", stats)
    ctx.emit("sorted", sorted_bam)
    ctx.emit("sorted", index)


def _new_files(directory: Path, before: set):
    return sorted(p for p in directory.iterdir() if p.name not in before)


def edger(ctx: TaskContext) -> None:
    """Normalised miRNA counts across all samples."""
    from smrnaflow.external.edger import EdgeR

    stats = ctx.batch("stats")
    if not stats:
        raise PipelineError("edgeR needs at least one idxstats table")
    edger_cfg = ctx.config.tools.edger
    tool = EdgeR(script=edger_cfg["script"], executable=edger_cfg["rscript"], logger=ctx.logger)
    out_dir = ctx.workdir / "edgeR"
    out_dir.mkdir(parents=True, exist_ok=True)
    before = {p.name for p in out_dir.iterdir()}
    tool.normalise([item.path for item in stats], out_dir)
    for path in _new_files(out_dir, before):
        ctx.emit("results", path, key=path.stem)


def mirtrace(ctx: TaskContext) -> None:
    """miRTrace QC over all raw reads files at once."""
    from smrnaflow.external.mirtrace import MiRTrace

    reads = ctx.batch("reads")
    trimming = ctx.config.trimming
    mirtrace_cfg = dict(ctx.config.tools.mirtrace)
    # miRTrace knows no "custom" protocol
    protocol = "illumina" if trimming.protocol == "custom" else trimming.protocol

    config_path = MiRTrace.write_config(
        ((item.path, item.key) for item in reads), ctx.workdir / "mirtrace_config"
    )
    out_dir = MiRTrace(threads=ctx.config.threads, logger=ctx.logger).qc(
        config_path,
        ctx.workdir / "mirtrace",
        species=ctx.config.reference.mirtrace_species,
        adapter=trimming.three_prime_adapter,
        protocol=protocol,
        additional_args=mirtrace_cfg.get("additional_args", ""),
    )
    ctx.emit("results", out_dir, key="mirtrace")
