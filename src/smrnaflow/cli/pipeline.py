"""Shared pipeline execution helpers for the CLI."""

from __future__ import annotations

import glob
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import click

from smrnaflow.config import Config, load_config, save_config
from smrnaflow.constants import PUBLISH_PIPELINE_INFO
from smrnaflow.core.pipeline_types import RunResult
from smrnaflow.utils.logging import setup_logging

LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


@dataclass
class PipelineOptions:
    """Container for pipeline execution options.

    ``None`` means "use the config file value or the default".
    """

    reads: Tuple[str, ...] = ()
    genome: Optional[str] = None
    mature: Optional[Path] = None
    hairpin: Optional[Path] = None
    gtf: Optional[Path] = None
    bt_index: Optional[Path] = None
    mirtrace_species: Optional[str] = None
    protocol: Optional[str] = None
    three_prime_adapter: Optional[str] = None
    outdir: Optional[Path] = None
    config_path: Optional[Path] = None
    threads: Optional[int] = None
    max_workers: Optional[int] = None
    email: Optional[str] = None
    keep_work: bool = False
    verbose: int = 0
    log_file: Optional[Path] = None
    show_graph: bool = False
    dry_run: bool = False


def expand_reads(patterns: Sequence[str]) -> List[Path]:
    """Expand glob patterns; unmatched patterns are kept so validation reports them."""
    paths: List[Path] = []
    for pattern in patterns:
        matches = sorted(glob.glob(str(pattern)))
        for match in matches or [pattern]:
            path = Path(match)
            if path not in paths:
                paths.append(path)
    return paths


def build_config(opts: PipelineOptions) -> Config:
    """Merge defaults, config file and CLI options (CLI wins) and prepare."""
    cfg = load_config(opts.config_path) if opts.config_path else Config()

    if opts.reads:
        cfg.reads = expand_reads(opts.reads)
    else:
        cfg.reads = expand_reads([str(p) for p in cfg.reads])

    ref = cfg.reference
    for name in ("genome", "mature", "hairpin", "gtf", "bt_index", "mirtrace_species"):
        value = getattr(opts, name)
        if value is not None:
            setattr(ref, name, value)

    if opts.protocol is not None:
        cfg.trimming.protocol = opts.protocol.lower()
    if opts.three_prime_adapter is not None:
        cfg.trimming.three_prime_adapter = opts.three_prime_adapter
    if opts.outdir is not None:
        cfg.outdir = opts.outdir
    if opts.threads is not None:
        cfg.threads = opts.threads
    if opts.max_workers is not None:
        cfg.max_workers = opts.max_workers
    if opts.email is not None:
        cfg.notification.email = opts.email
    if opts.keep_work:
        cfg.runtime.keep_work = True

    cfg.prepare()
    return cfg


def configure_logging(opts: PipelineOptions, cfg: Optional[Config] = None) -> None:
    """CLI verbosity wins; otherwise use the config's runtime.log_level."""
    if opts.verbose >= 2:
        level = logging.DEBUG
    elif opts.verbose == 1:
        level = logging.INFO
    elif cfg is not None:
        level = LEVEL_MAP.get(str(cfg.runtime.log_level).upper(), logging.INFO)
    else:
        level = logging.WARNING
    log_file = opts.log_file or (cfg.runtime.log_file if cfg is not None else None)
    setup_logging(level=level, log_file=log_file)


def echo_graph(pipeline) -> None:
    """Print active tasks with their bindings, then pruned tasks."""
    graph = pipeline.graph
    click.echo("\nsmrnaflow task graph:")
    click.echo("-" * 60)
    for line in graph.describe():
        click.echo(f"  {line}")
    click.echo("-" * 60)
    click.echo(f"Active: {len(graph.task_names)} tasks, pruned: {len(graph.pruned)}\n")


def execute_pipeline(opts: PipelineOptions, logger: logging.Logger) -> Optional[RunResult]:
    """Build the configuration and graph, then run unless only showing/dry-running.

    Returns the run result, or None when nothing was executed.
    """
    from smrnaflow.core.pipeline import Pipeline

    cfg = build_config(opts)
    configure_logging(opts, cfg)

    pipeline = Pipeline(cfg)
    pipeline.build_graph()

    if opts.show_graph or opts.dry_run:
        echo_graph(pipeline)
        if opts.dry_run:
            click.echo(f"Would process {len(cfg.reads)} reads files into {cfg.outdir.absolute()}")
            click.echo(f"Using {cfg.max_workers} workers x {cfg.threads} threads")
        return None

    info_dir = cfg.outdir / PUBLISH_PIPELINE_INFO
    try:
        info_dir.mkdir(parents=True, exist_ok=True)
        save_config(cfg, info_dir / "config.yaml")
    except OSError as exc:
        logger.warning(f"Could not save config: {exc}")

    result = pipeline.run()
    if result.success:
        click.echo(f"smrnaflow finished successfully. Results in: {cfg.outdir.absolute()}")
    else:
        click.echo(
            f"smrnaflow finished with {len(result.failures)} failed task(s) "
            f"and {len(result.stranded)} stranded task(s). "
            f"See {info_dir / 'run_summary.txt'}",
            err=True,
        )
    return result
