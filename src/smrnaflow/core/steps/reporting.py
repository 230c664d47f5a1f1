"""MultiQC aggregation over every QC artifact of the run."""

from __future__ import annotations

from typing import TYPE_CHECKING

from smrnaflow.exceptions import PipelineError

if TYPE_CHECKING:
    from smrnaflow.core.scheduler import TaskContext

REPORT_SLOTS = ("fastqc", "trimming", "mirna_stats", "mirtrace", "genome_stats")


def multiqc(ctx: TaskContext) -> None:
    from smrnaflow.external.multiqc import MultiQC

    inputs = []
    for slot in REPORT_SLOTS:
        inputs.extend(item.path for item in ctx.batch(slot))
    if not inputs:
        raise PipelineError("No QC reports to aggregate")

    cfg = ctx.config.tools.multiqc
    out_dir = ctx.workdir / "multiqc"
    report = MultiQC(logger=ctx.logger).report(
        inputs,
        out_dir,
        title=ctx.config.run_name,
        config=cfg.get("config"),
        additional_args=cfg.get("additional_args", ""),
    )
    ctx.emit("report", report, key="multiqc")
    data_dir = out_dir / "multiqc_data"
    if data_dir.exists():
        ctx.emit("report", data_dir, key="multiqc")
