"""Configuration and installation validation command."""

from __future__ import annotations

import sys

import click

from smrnaflow import __version__
from smrnaflow.cli.common_options import common_pipeline_options
from smrnaflow.cli.exit_codes import EXIT_ERROR
from smrnaflow.cli.pipeline import PipelineOptions, build_config, configure_logging
from smrnaflow.exceptions import SmrnaFlowError


@click.command()
@common_pipeline_options
@click.option("--skip-tools", is_flag=True, help="Only check configuration and graph")
def validate(skip_tools: bool, **options) -> None:
    """Check configuration, graph and required tools without running anything."""
    click.echo("Validating smrnaflow run configuration...")
    opts = PipelineOptions(config_path=options.pop("config"), **options)
    configure_logging(opts)

    try:
        from smrnaflow.core.pipeline import Pipeline

        cfg = build_config(opts)
        pipeline = Pipeline(cfg)
        graph = pipeline.build_graph()
        click.echo(f"✓ Configuration valid ({len(cfg.reads)} reads files)")
        click.echo(f"✓ Task graph valid ({len(graph.task_names)} active, {len(graph.pruned)} pruned)")
        if not skip_tools:
            pipeline.check_dependencies(graph)
            click.echo("✓ Required tools found")
    except SmrnaFlowError as exc:
        click.echo(f"✗ {exc}", err=True)
        sys.exit(EXIT_ERROR)

    click.echo(f"  smrnaflow version: {__version__}")
