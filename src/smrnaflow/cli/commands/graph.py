"""`show-graph` subcommand."""

from __future__ import annotations

import sys

import click

from smrnaflow.cli.common_options import common_pipeline_options
from smrnaflow.cli.exit_codes import EXIT_ERROR
from smrnaflow.cli.pipeline import PipelineOptions, build_config, configure_logging, echo_graph
from smrnaflow.exceptions import SmrnaFlowError


@click.command(name="show-graph")
@common_pipeline_options
def show_graph(**options) -> None:
    """Show the pruned task graph for the given inputs and exit."""
    opts = PipelineOptions(config_path=options.pop("config"), **options)
    configure_logging(opts)
    try:
        from smrnaflow.core.pipeline import Pipeline

        echo_graph(Pipeline(build_config(opts)))
    except SmrnaFlowError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(EXIT_ERROR)
