"""
Database Management CLI Commands

Commands for managing the DuckDB store:
- init: Create simulator and derived tables
- validate: Validate schema against Pydantic models
- import: Load a Cyclus SQLite output file
- post: Post-process runs (optionally from scratch)
- status: Show which runs are post-processed
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.table import Table

from cyan.cli.output import console, log_error, log_info, log_success, out
from cyan.cli.session import fail_on_error, get_state
from cyan.persistence.connection import DatabaseManager
from cyan.persistence.registry import list_simulation_runs
from cyan.persistence.sqlite_import import import_cyclus_sqlite
from cyan.post.controller import (
    WalkStatus,
    clear,
    finish,
    is_processed,
    prepare,
    walk_all,
)

# Create sub-app for database commands
db_app = typer.Typer(help="Database management commands")


def _db_path(ctx: typer.Context) -> Path:
    db_path = get_state(ctx).db_path
    if db_path is None:
        log_error("must specify database with --db")
        raise typer.Exit(code=1)
    return db_path


@db_app.command("init")
def db_init(ctx: typer.Context) -> None:
    """Create simulator and derived tables from Pydantic models."""
    db_path = _db_path(ctx)
    with fail_on_error(), DatabaseManager(db_path) as manager:
        already = manager.is_initialized()
        manager.initialize_schema()
    if already:
        log_success(f"Database already initialized at {db_path}")
    else:
        log_success(f"Database initialized at {db_path}")


@db_app.command("validate")
def db_validate(ctx: typer.Context) -> None:
    """Validate database schema against Pydantic models."""
    db_path = _db_path(ctx)
    with fail_on_error(), DatabaseManager(db_path) as manager:
        report = manager.validate_schema()

    failed = False
    for table_name, errors in report.items():
        if errors:
            failed = True
            console.print(f"  [red]✗[/red] {table_name}:")
            for error in errors:
                console.print(f"      {error}")
        else:
            console.print(f"  [green]✓[/green] {table_name}")

    if failed:
        log_error("Schema validation failed")
        raise typer.Exit(code=1)
    log_success("Schema validation passed")


@db_app.command("import")
def db_import(
    ctx: typer.Context,
    sqlite_path: Annotated[Path, typer.Argument(help="Cyclus SQLite output file")],
) -> None:
    """Import a Cyclus SQLite database into the DuckDB store."""
    state = get_state(ctx)
    db_path = _db_path(ctx)
    with fail_on_error(), DatabaseManager(db_path) as manager:
        manager.initialize_schema()
        imported = import_cyclus_sqlite(
            sqlite_path, manager.conn, state.config.seconds_per_timestep
        )

    if imported:
        for sim_id in imported:
            log_info(f"Imported simulation {sim_id}")
        log_success(f"Imported {len(imported)} simulation(s) into {db_path}")
    else:
        log_info("No new simulations to import")


@db_app.command("post")
def db_post(
    ctx: typer.Context,
    force: Annotated[
        bool, typer.Option("--force", help="Discard derived tables and post-process again")
    ] = False,
) -> None:
    """Post-process every run in the database."""
    state = get_state(ctx)
    db_path = _db_path(ctx)
    with fail_on_error(), DatabaseManager(db_path) as manager:
        prepare(manager.conn)
        if force:
            for sim_id in list_simulation_runs(manager.conn):
                clear(manager.conn, sim_id)
        statuses = walk_all(
            manager.conn, rules=state.config.transform_rules(), timer=state.timer
        )
        finish(manager.conn)

    for sim_id, status in statuses.items():
        if status is WalkStatus.PROCESSED:
            log_success(f"Post-processed {sim_id}")
        else:
            log_info(f"{sim_id} already post-processed")


@db_app.command("status")
def db_status(ctx: typer.Context) -> None:
    """Show the post-processing state of every run."""
    db_path = _db_path(ctx)
    with fail_on_error(), DatabaseManager(db_path, read_only=True) as manager:
        table = Table(title="Simulations")
        table.add_column("Simulation")
        table.add_column("Post-processed")
        for sim_id in list_simulation_runs(manager.conn):
            table.add_row(sim_id, "yes" if is_processed(manager.conn, sim_id) else "no")
    out.print(table)
