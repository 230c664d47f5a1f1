"""Main pipeline orchestrator for smrnaflow."""

from __future__ import annotations

import shutil
from functools import partial
from pathlib import Path
from typing import Any, Dict, List, Optional

from smrnaflow.config import Config
from smrnaflow.constants import (
    PUBLISH_BOWTIE,
    PUBLISH_EDGER,
    PUBLISH_FASTQC,
    PUBLISH_GENOME,
    PUBLISH_GENOME_UNMAPPED,
    PUBLISH_INSERTSIZE,
    PUBLISH_MIRTRACE,
    PUBLISH_MULTIQC,
    PUBLISH_PIPELINE_INFO,
    PUBLISH_TRIM_GALORE,
)
from smrnaflow.core.graph import GraphBuilder, TaskGraph, broadcast, collect, each
from smrnaflow.core.pipeline_types import ReportKeys, RunResult
from smrnaflow.core.routing import OutputRouter, PublishRule, mirbase_classifier
from smrnaflow.core.sample import SampleIdentityResolver
from smrnaflow.core.scheduler import Scheduler
from smrnaflow.core.steps import genome, mirna, preprocess, reporting
from smrnaflow.core.streams import Item
from smrnaflow.core.summary import Notifier, ReportRenderer, RunSummary
from smrnaflow.exceptions import ConfigurationError, InvalidSampleKey
from smrnaflow.utils.logging import get_logger


class Pipeline:
    """Builds the small-RNA task graph from a Config and runs it."""

    def __init__(self, config: Config, resolver: Optional[SampleIdentityResolver] = None):
        self.config = config
        self.resolver = resolver or SampleIdentityResolver()
        self.logger = get_logger("pipeline")
        self._graph: Optional[TaskGraph] = None

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------
    def input_items(self) -> List[Item]:
        """Resolve one sample key per reads file.

        Raises:
            ConfigurationError: a key is empty or two files share one key.
        """
        items: List[Item] = []
        seen: Dict[str, Path] = {}
        for path in self.config.reads:
            path = Path(path)
            try:
                key = self.resolver.resolve(path.name)
            except InvalidSampleKey as e:
                raise ConfigurationError(f"Cannot derive a sample name from {path}: {e}") from e
            if key in seen:
                raise ConfigurationError(
                    f"Reads files {seen[key]} and {path} both resolve to sample '{key}'"
                )
            seen[key] = path
            items.append(Item(path=path, key=key))
        return items

    @staticmethod
    def _reference_items(path: Optional[Path], key: str) -> List[Item]:
        return [Item(path=Path(path), key=key)] if path else []

    # ------------------------------------------------------------------
    # Topology
    # ------------------------------------------------------------------
    def build_graph(self) -> TaskGraph:
        """Declare every stage and build the pruned graph.

        The host-genome branch exists only with both a GTF and a Bowtie index;
        miRTrace only with a species code.
        """
        cfg = self.config
        ref = cfg.reference
        b = GraphBuilder()

        b.source("raw_reads", self.input_items())
        for name in ref.mirna_chain:
            b.source(f"{name}_fasta", self._reference_items(getattr(ref, name), name))
        b.source(
            "genome_index",
            self._reference_items(ref.bt_index, "genome"),
            when=cfg.genome_branch_active,
        )
        b.source("gtf", self._reference_items(ref.gtf, "gtf"), when=bool(ref.gtf))

        b.task(
            "fastqc",
            preprocess.fastqc,
            inputs={"reads": each("raw_reads")},
            outputs={"reports": "fastqc_reports"},
            when=cfg.run_fastqc,
            publish=PublishRule(directory=PUBLISH_FASTQC),
            description="FastQC on raw reads",
        )
        b.task(
            "trim_galore",
            preprocess.trim_galore,
            inputs={"reads": each("raw_reads")},
            outputs={"trimmed": "trimmed_reads", "reports": "trimming_reports"},
            publish=PublishRule(directory=PUBLISH_TRIM_GALORE),
            description="Adapter trimming",
        )
        b.task(
            "insertsize",
            preprocess.insertsize,
            inputs={"reads": each("trimmed_reads")},
            outputs={"insertsize": "insertsize"},
            publish=PublishRule(directory=PUBLISH_INSERTSIZE),
            description="Read-length distribution after trimming",
        )

        # miRBase chain: each stage aligns what the previous one left unmapped
        reads_stream = "trimmed_reads"
        bam_streams = []
        for name in ref.mirna_chain:
            b.task(
                f"index_{name}",
                partial(mirna.build_index, ref=name),
                inputs={"fasta": broadcast(f"{name}_fasta")},
                outputs={"index": f"{name}_index"},
                description=f"Bowtie index of miRBase {name}",
            )
            b.task(
                f"bowtie_{name}",
                partial(mirna.bowtie_mirna, ref=name),
                inputs={"reads": each(reads_stream), "index": broadcast(f"{name}_index")},
                outputs={"bam": f"{name}_bam", "unmapped": f"{name}_unmapped"},
                publish=PublishRule(
                    directory=f"{PUBLISH_BOWTIE}/miRBase_{name}/unmapped", outputs=["unmapped"]
                ),
                description=f"Bowtie alignment to miRBase {name}",
            )
            reads_stream = f"{name}_unmapped"
            bam_streams.append(f"{name}_bam")

        b.merge("mirna_bams", bam_streams)
        b.task(
            "mirna_post_alignment",
            mirna.mirna_post_alignment,
            inputs={"bam": each("mirna_bams")},
            outputs={"stats": "mirna_stats", "sorted": "mirna_sorted"},
            publish=PublishRule(classifier=mirbase_classifier),
            description="Sort, index and count miRBase alignments",
        )
        b.task(
            "edger",
            mirna.edger,
            inputs={"stats": collect("mirna_stats")},
            outputs={"results": "edger_results"},
            ignorable=True,
            publish=PublishRule(directory=PUBLISH_EDGER),
            description="edgeR normalised miRNA counts",
        )
        b.task(
            "mirtrace",
            mirna.mirtrace,
            inputs={"reads": collect("raw_reads")},
            outputs={"results": "mirtrace_results"},
            when=cfg.mirtrace_active,
            ignorable=True,
            publish=PublishRule(directory=PUBLISH_MIRTRACE),
            description="miRTrace QC",
        )

        b.task(
            "bowtie_genome",
            genome.bowtie_genome,
            inputs={"reads": each("trimmed_reads"), "index": broadcast("genome_index")},
            outputs={"bam": "genome_bam"},
            when=cfg.genome_branch_active,
            publish=PublishRule(directory=PUBLISH_GENOME),
            description="Bowtie alignment to the host genome",
        )
        b.task(
            "genome_unmapped_stats",
            genome.genome_unmapped_stats,
            inputs={"bam": each("genome_bam")},
            outputs={"stats": "genome_stats"},
            publish=PublishRule(directory=PUBLISH_GENOME_UNMAPPED),
            description="Reads unmapped to the host genome",
        )
        b.task(
            "ngi_visualizations",
            genome.ngi_visualizations,
            inputs={"bam": each("genome_bam"), "gtf": broadcast("gtf")},
            outputs={"plots": "biotype_plots"},
            when=cfg.genome_branch_active,
            ignorable=True,
            publish=PublishRule(directory=PUBLISH_GENOME),
            description="Biotype plots",
        )

        b.task(
            "multiqc",
            reporting.multiqc,
            inputs={
                "fastqc": collect("fastqc_reports", optional=True),
                "trimming": collect("trimming_reports"),
                "mirna_stats": collect("mirna_stats"),
                "mirtrace": collect("mirtrace_results", optional=True),
                "genome_stats": collect("genome_stats", optional=True),
            },
            outputs={"report": "multiqc_report"},
            when=cfg.run_multiqc,
            publish=PublishRule(directory=PUBLISH_MULTIQC),
            description="MultiQC report",
        )

        graph = b.build()
        for name, reason in graph.pruned.items():
            self.logger.info(f"Skipping {name}: {reason}")
        self._graph = graph
        return graph

    @property
    def graph(self) -> TaskGraph:
        if self._graph is None:
            return self.build_graph()
        return self._graph

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------
    def summary_fields(self, graph: TaskGraph) -> Dict[str, Any]:
        cfg = self.config
        ref = cfg.reference
        trimming = cfg.trimming
        samples = [item.key for item in graph.sources["raw_reads"].items]
        fields: Dict[str, Any] = {
            ReportKeys.READS: [str(p) for p in cfg.reads],
            ReportKeys.SAMPLES: samples,
            ReportKeys.GENOME: ref.genome,
            ReportKeys.MATURE: ref.mature,
            ReportKeys.HAIRPIN: ref.hairpin,
            ReportKeys.GTF: ref.gtf,
            ReportKeys.BT_INDEX: ref.bt_index,
            ReportKeys.MIRNA_CHAIN: " -> ".join(ref.mirna_chain),
            ReportKeys.PROTOCOL: trimming.protocol,
            ReportKeys.ADAPTER: trimming.three_prime_adapter,
            ReportKeys.CLIP_R1: trimming.clip_r1,
            ReportKeys.THREE_PRIME_CLIP_R1: trimming.three_prime_clip_r1,
            ReportKeys.MIN_LENGTH: trimming.min_length,
            ReportKeys.MIRTRACE_SPECIES: ref.mirtrace_species,
            ReportKeys.MAX_WORKERS: cfg.max_workers,
            ReportKeys.THREADS: cfg.threads,
            ReportKeys.OUTDIR: cfg.outdir,
            ReportKeys.WORK_DIR: cfg.work_path,
        }
        if cfg.notification.email:
            fields[ReportKeys.EMAIL] = cfg.notification.email
        fields[ReportKeys.ACTIVE_TASKS] = graph.task_names
        fields[ReportKeys.PRUNED_TASKS] = sorted(graph.pruned)
        return fields

    def check_dependencies(self, graph: TaskGraph) -> None:
        """Fail before any task runs if a required executable is missing."""
        from smrnaflow.utils.dependency_checker import check_dependencies

        tools = self.config.tools
        executables = {
            "Rscript": tools.edger.get("rscript", "Rscript"),
            "ngi_visualizations": tools.ngi_visualizations.get("executable", "ngi_visualizations"),
        }
        check_dependencies(
            ((name, graph.task(name).ignorable) for name in graph.task_names),
            executables=executables,
            logger=self.logger.getChild("dependency_checker"),
        )
        self.logger.info("All required dependencies are available")

    def run(self, check_tools: bool = True) -> RunResult:
        """Execute the graph, publish outputs and write the run summary.

        Raises:
            ConfigurationError, GraphError: before any task starts.
            StreamClosedError: a producer published to an already closed stream.
        """
        cfg = self.config
        graph = self.build_graph()
        if check_tools:
            self.check_dependencies(graph)

        cfg.outdir.mkdir(parents=True, exist_ok=True)
        work_dir = cfg.work_path
        work_dir.mkdir(parents=True, exist_ok=True)

        summary = RunSummary(cfg.run_name)
        summary.update(self.summary_fields(graph))

        self.logger.info(
            f"Running {len(graph.task_names)} tasks on {len(cfg.reads)} samples "
            f"(max {cfg.max_workers} in parallel)"
        )
        scheduler = Scheduler(
            graph,
            work_dir,
            output_router=OutputRouter(cfg.outdir),
            max_workers=cfg.max_workers,
            config=cfg,
            on_record=summary.record,
            show_progress=cfg.runtime.enable_progress,
        )
        result = scheduler.run()

        summary.finalize(result)
        paths = ReportRenderer(summary, cfg.outdir / PUBLISH_PIPELINE_INFO).render_all()

        notifier = Notifier.from_config(cfg.notification)
        if notifier is not None:
            notifier.notify(
                summary,
                paths["text"].read_text(encoding="utf-8"),
                html=paths["html"].read_text(encoding="utf-8"),
            )

        if result.success:
            if not cfg.runtime.keep_work:
                self.logger.info(f"Cleaning up working directory: {work_dir}")
                shutil.rmtree(work_dir, ignore_errors=True)
            self.logger.info("Pipeline completed successfully")
        else:
            for record in result.failures:
                self.logger.error(f"Failed: {record.label}: {record.error_message}")
            for record in result.stranded:
                self.logger.error(f"Stranded: {record.label}: {record.error_message}")
            self.logger.info(f"Pipeline failed. Working files retained in: {work_dir}")
        return result
