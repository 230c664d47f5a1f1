"""Click application entrypoint for smrnaflow."""

from __future__ import annotations

import signal
import sys
from types import FrameType
from typing import Optional

import click

from smrnaflow import __version__
from smrnaflow.cli.exit_codes import (
    EXIT_ERROR,
    EXIT_SIGINT,
    EXIT_SIGTERM,
    EXIT_SUCCESS,
)
from smrnaflow.exceptions import SmrnaFlowError
from smrnaflow.utils.logging import get_logger

from .commands.config import init_config
from .commands.graph import show_graph
from .commands.validate import validate
from .common_options import common_pipeline_options
from .pipeline import PipelineOptions, configure_logging, execute_pipeline

_TERMINATED_BY = {"code": EXIT_SIGINT}


def _handle_signal(signum: int, frame: Optional[FrameType]) -> None:
    """Handle interrupt signals for graceful shutdown."""
    sig_name = "SIGINT" if signum == signal.SIGINT else "SIGTERM"
    _TERMINATED_BY["code"] = EXIT_SIGINT if signum == signal.SIGINT else EXIT_SIGTERM
    click.echo(f"\n{sig_name} received, initiating graceful shutdown...", err=True)
    raise KeyboardInterrupt(f"{sig_name} received")


def _print_version(ctx: click.Context, _param: click.Parameter, value: bool) -> None:
    if value and not ctx.resilient_parsing:
        click.echo(f"smrnaflow {__version__}")
        ctx.exit()


@click.group(
    context_settings=dict(help_option_names=["-h", "--help"]),
    invoke_without_command=True,
)
@click.option(
    "-V",
    "--version",
    is_flag=True,
    is_eager=True,
    expose_value=False,
    callback=_print_version,
    help="Show the version and exit.",
)
@common_pipeline_options
@click.option("--show-graph", "show_graph_flag", is_flag=True, help="Show the task graph and exit")
@click.option("--dry-run", is_flag=True, help="Build and show the graph without executing")
@click.pass_context
def cli(ctx: click.Context, show_graph_flag: bool, dry_run: bool, **options) -> None:
    """smrnaflow: small-RNA sequencing analysis pipeline.

    Run directly as: smrnaflow --reads "data/*.fastq.gz" --mature mature.fa --hairpin hairpin.fa
    """
    if ctx.invoked_subcommand:
        return

    opts = PipelineOptions(
        config_path=options.pop("config"),
        show_graph=show_graph_flag,
        dry_run=dry_run,
        **options,
    )
    configure_logging(opts)
    logger = get_logger("cli")

    if not opts.reads and opts.config_path is None:
        click.echo(ctx.get_help())
        sys.exit(EXIT_SUCCESS)

    try:
        result = execute_pipeline(opts, logger)
    except KeyboardInterrupt:
        logger.info("Pipeline interrupted by user")
        sys.exit(_TERMINATED_BY["code"])
    except SmrnaFlowError as exc:
        logger.error(f"Pipeline error: {exc}")
        click.echo(f"Error: {exc}", err=True)
        sys.exit(EXIT_ERROR)
    except Exception as exc:
        logger.exception(f"Unexpected error: {exc}")
        sys.exit(EXIT_ERROR)

    if result is not None and not result.success:
        sys.exit(EXIT_ERROR)


cli.add_command(init_config)
cli.add_command(validate)
cli.add_command(show_graph)


def main(argv: list[str] | None = None) -> int:
    """Main entry point with signal handling."""
    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    try:
        cli(argv)
        return EXIT_SUCCESS
    except KeyboardInterrupt:
        return _TERMINATED_BY["code"]
    except SystemExit as exc:
        # Preserve explicit exit codes from cli()
        if exc.code is None:
            return EXIT_SUCCESS
        return exc.code if isinstance(exc.code, int) else EXIT_ERROR
    except Exception as exc:
        click.echo(f"Error: {exc}", err=True)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
