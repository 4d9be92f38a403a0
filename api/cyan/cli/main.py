"""Cyan CLI - Main entry point."""

import logging
from pathlib import Path

import typer
from typing_extensions import Annotated

app = typer.Typer(
    name="cyan",
    help="Calculates metrics for cyclus simulation data in a DuckDB database.",
    add_completion=False,
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        from cyan import __version__
        from cyan.cli.output import console

        console.print(f"[bold]cyan[/bold] v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="DuckDB database holding cyclus simulation output"),
    ] = None,
    sim_id: Annotated[
        str | None,
        typer.Option("--sim-id", help="Simulation id in hex (default: first run in the database)"),
    ] = None,
    config: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="YAML configuration file"),
    ] = None,
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Enable debug logging")
    ] = False,
    timings: Annotated[
        bool, typer.Option("--timings", help="Print post-processing and query timings")
    ] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = False,
) -> None:
    """Cyan CLI - metrics reconstructed from the simulation event log."""
    from cyan.cli.session import CliState, fail_on_error
    from cyan.config import MetricsConfig, load_config

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    with fail_on_error():
        settings = load_config(config) if config else MetricsConfig()
        updates = {}
        if db is not None:
            updates["db_path"] = db
        if sim_id is not None:
            updates["sim_id"] = sim_id
        if updates:
            settings = MetricsConfig.model_validate({**settings.model_dump(), **updates})

    ctx.obj = CliState(config=settings, timings=timings)


# Import commands after app is defined to avoid circular imports
from cyan.cli.commands.custom import custom_query
from cyan.cli.commands.db import db_app
from cyan.cli.commands.metrics import (
    agents,
    created,
    deploy_series,
    energy,
    flow,
    flow_graph,
    inventory,
    inventory_series,
    sims,
)
from cyan.query.catalog import METRIC_HELP, MetricName

app.command(name="sims", help=METRIC_HELP[MetricName.SIMS])(sims)
app.command(name="agents", help=METRIC_HELP[MetricName.AGENTS])(agents)
app.command(name="inv", help=METRIC_HELP[MetricName.INV])(inventory)
app.command(name="created", help=METRIC_HELP[MetricName.CREATED])(created)
app.command(name="deployseries", help=METRIC_HELP[MetricName.DEPLOYSERIES])(deploy_series)
app.command(name="flow", help=METRIC_HELP[MetricName.FLOW])(flow)
app.command(name="invseries", help=METRIC_HELP[MetricName.INVSERIES])(inventory_series)
app.command(name="flowgraph", help=METRIC_HELP[MetricName.FLOWGRAPH])(flow_graph)
app.command(name="energy", help=METRIC_HELP[MetricName.ENERGY])(energy)
app.command(name="custom", help="Run a named SQL query from the configuration")(custom_query)
app.add_typer(db_app, name="db")


if __name__ == "__main__":
    app()
