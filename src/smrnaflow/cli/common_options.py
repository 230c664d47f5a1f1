"""Shared Click options for smrnaflow CLI commands.

The top-level command and the `validate`/`show-graph` subcommands accept the
same pipeline options so a configuration can be checked exactly as it would run.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, TypeVar

import click

from smrnaflow.constants import PROTOCOLS

F = TypeVar("F", bound=Callable[..., None])


def reads_option(func: F) -> F:
    """Input reads option (repeatable, glob patterns allowed)."""
    return click.option(
        "--reads",
        "reads",
        multiple=True,
        help='Input FASTQ files or glob pattern, e.g. "data/*.fastq.gz" (repeatable)',
    )(func)


def genome_option(func: F) -> F:
    return click.option(
        "--genome",
        default=None,
        help="Genome key in the config's genomes registry",
    )(func)


def mature_option(func: F) -> F:
    return click.option(
        "--mature",
        type=click.Path(path_type=Path),
        default=None,
        help="miRBase mature miRNA FASTA",
    )(func)


def hairpin_option(func: F) -> F:
    return click.option(
        "--hairpin",
        type=click.Path(path_type=Path),
        default=None,
        help="miRBase hairpin FASTA",
    )(func)


def gtf_option(func: F) -> F:
    return click.option(
        "--gtf",
        type=click.Path(path_type=Path),
        default=None,
        help="Genome annotation (GTF); with --bt-index enables genome alignment",
    )(func)


def bt_index_option(func: F) -> F:
    return click.option(
        "--bt-index",
        "bt_index",
        type=click.Path(path_type=Path),
        default=None,
        help="Bowtie index prefix of the host genome",
    )(func)


def mirtrace_species_option(func: F) -> F:
    return click.option(
        "--mirtrace-species",
        default=None,
        help="miRBase species code (e.g. hsa); enables miRTrace",
    )(func)


def protocol_option(func: F) -> F:
    return click.option(
        "--protocol",
        type=click.Choice(list(PROTOCOLS), case_sensitive=False),
        default=None,
        help="Library protocol [default: illumina]",
    )(func)


def adapter_option(func: F) -> F:
    return click.option(
        "--three-prime-adapter",
        "three_prime_adapter",
        default=None,
        help="3' adapter sequence (required with --protocol custom)",
    )(func)


def outdir_option(func: F) -> F:
    """Output directory option."""
    return click.option(
        "-o",
        "--outdir",
        type=click.Path(path_type=Path),
        default=None,
        help="Output directory [default: results]",
    )(func)


def config_option(func: F) -> F:
    """Configuration file option."""
    return click.option(
        "-c",
        "--config",
        type=click.Path(exists=True, path_type=Path),
        help="Configuration file (YAML)",
    )(func)


def threads_option(func: F) -> F:
    """Threads option."""
    return click.option(
        "-t",
        "--threads",
        type=int,
        default=None,
        help="Threads per external tool [default: 1]",
    )(func)


def max_workers_option(func: F) -> F:
    return click.option(
        "-j",
        "--max-workers",
        "max_workers",
        type=int,
        default=None,
        help="Task instances run in parallel [default: 4]",
    )(func)


def email_option(func: F) -> F:
    return click.option(
        "--email",
        default=None,
        help="Send a run summary to this address on completion",
    )(func)


def keep_work_option(func: F) -> F:
    return click.option(
        "--keep-work",
        is_flag=True,
        help="Retain the working directory after a successful run",
    )(func)


def verbose_option(func: F) -> F:
    """Verbosity option (unified: use -v/--verbose everywhere)."""
    return click.option(
        "-v",
        "--verbose",
        count=True,
        help="Increase log verbosity (-v for INFO, -vv for DEBUG)",
    )(func)


def log_file_option(func: F) -> F:
    return click.option(
        "--log-file",
        type=click.Path(path_type=Path),
        help="Path for log file output",
    )(func)


def common_pipeline_options(func: F) -> F:
    """Apply all common pipeline options to a command.

    Usage:
        @click.command()
        @common_pipeline_options
        def my_command(reads, genome, mature, ...):
            pass
    """
    decorators = [
        reads_option,
        genome_option,
        mature_option,
        hairpin_option,
        gtf_option,
        bt_index_option,
        mirtrace_species_option,
        protocol_option,
        adapter_option,
        outdir_option,
        config_option,
        threads_option,
        max_workers_option,
        email_option,
        keep_work_option,
        verbose_option,
        log_file_option,
    ]
    for decorator in reversed(decorators):
        func = decorator(func)
    return func
