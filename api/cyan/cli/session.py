"""Shared CLI state and the database session every metric command runs in."""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator

import duckdb
import typer

from cyan.config import MetricsConfig
from cyan.errors import CyanError
from cyan.persistence.connection import DatabaseManager
from cyan.persistence.registry import resolve_sim_id
from cyan.post.controller import WalkStatus, post_process_all
from cyan.query.catalog import MetricCatalog
from cyan.timer import Timer

from .output import console, log_error

logger = logging.getLogger(__name__)


@dataclass
class CliState:
    """Options from the top-level callback, stored on the typer context."""

    config: MetricsConfig = field(default_factory=MetricsConfig)
    timings: bool = False
    timer: Timer = field(default_factory=Timer)

    @property
    def db_path(self) -> Path | None:
        return self.config.db_path


@dataclass
class MetricSession:
    """An open, post-processed database bound to one run."""

    conn: duckdb.DuckDBPyConnection
    sim_id: str
    catalog: MetricCatalog
    config: MetricsConfig


def get_state(ctx: typer.Context) -> CliState:
    state = ctx.find_root().obj
    if state is None:
        state = ctx.find_root().obj = CliState()
    return state


@contextmanager
def fail_on_error() -> Iterator[None]:
    """Turn engine and argument errors into a red message and exit code 1."""
    try:
        yield
    except (CyanError, ValueError, FileNotFoundError) as e:
        log_error(str(e))
        raise typer.Exit(code=1)


@contextmanager
def metric_session(state: CliState) -> Iterator[MetricSession]:
    """Open the database, post-process any new runs, and select the run.

    Raises:
        typer.Exit: If no database was given or it does not exist
    """
    db_path = state.db_path
    if db_path is None:
        log_error("must specify database with --db")
        raise typer.Exit(code=1)
    if not Path(db_path).exists():
        log_error(f"database not found: {db_path}")
        raise typer.Exit(code=1)

    with fail_on_error(), DatabaseManager(db_path) as manager:
        rules = state.config.transform_rules()

        state.timer.start("post-process")
        statuses = post_process_all(manager.conn, rules=rules, timer=state.timer)
        state.timer.stop("post-process")
        for sim_id, status in statuses.items():
            if status is WalkStatus.PROCESSED:
                logger.info("Post-processed simulation %s", sim_id)

        sim_id = resolve_sim_id(manager.conn, state.config.sim_id)
        yield MetricSession(
            conn=manager.conn,
            sim_id=sim_id,
            catalog=MetricCatalog(manager.conn, rules),
            config=state.config,
        )

    if state.timings:
        for label, seconds in sorted(state.timer.totals.items()):
            console.print(f"[dim]{label}: {seconds:.3f}s[/dim]")
